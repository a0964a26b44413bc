import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List

from fastapi import FastAPI
from loguru import logger
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.aio_pika import AioPikaInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.instrumentor import BaseInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    TELEMETRY_SDK_LANGUAGE,
    Resource,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import set_tracer_provider
from prometheus_fastapi_instrumentator.instrumentation import (
    PrometheusFastApiInstrumentator,
)
from redis.asyncio import ConnectionPool
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from taskhub.notifications.push import get_firebase_app
from taskhub.notifications.realtime import manager
from taskhub.settings import settings
from taskhub.tkq import broker

# instrumented together with the app, in this order, and undone on shutdown
_INSTRUMENTORS: List[BaseInstrumentor] = [
    RedisInstrumentor(),
    SQLAlchemyInstrumentor(),
    AioPikaInstrumentor(),
]


def _setup_db(app: FastAPI) -> None:  # pragma: no cover
    """
    Store the engine and the session factory on ``app.state``.

    Request sessions come from ``app.state.db_session_factory``.
    """
    engine = create_async_engine(str(settings.db_url), echo=settings.db_echo)
    app.state.db_engine = engine
    app.state.db_session_factory = async_sessionmaker(engine, expire_on_commit=False)


def _excluded_urls(app: FastAPI) -> str:
    """Routes not worth a trace: health, docs and metrics."""
    names = ("health_check", "openapi", "swagger_ui_html", "swagger_ui_redirect", "redoc_html")
    return ",".join([app.url_path_for(name) for name in names] + ["/metrics"])


def setup_opentelemetry(app: FastAPI) -> None:  # pragma: no cover
    """
    Export traces of requests, queries, Redis and RabbitMQ calls to the
    configured OTLP endpoint.
    """
    if not settings.opentelemetry_endpoint:
        return

    tracer_provider = TracerProvider(
        resource=Resource(
            attributes={
                SERVICE_NAME: "taskhub",
                TELEMETRY_SDK_LANGUAGE: "python",
                DEPLOYMENT_ENVIRONMENT: settings.environment,
            },
        ),
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.opentelemetry_endpoint, insecure=True),
        ),
    )

    FastAPIInstrumentor().instrument_app(
        app,
        tracer_provider=tracer_provider,
        excluded_urls=_excluded_urls(app),
    )
    for instrumentor in _INSTRUMENTORS:
        if isinstance(instrumentor, SQLAlchemyInstrumentor):
            instrumentor.instrument(
                tracer_provider=tracer_provider,
                engine=app.state.db_engine.sync_engine,
            )
        else:
            instrumentor.instrument(tracer_provider=tracer_provider)
    LoggingInstrumentor().instrument(
        tracer_provider=tracer_provider,
        set_logging_format=True,
        log_level=logging.getLevelName(settings.log_level.value),
    )

    set_tracer_provider(tracer_provider=tracer_provider)


def stop_opentelemetry(app: FastAPI) -> None:  # pragma: no cover
    if not settings.opentelemetry_endpoint:
        return

    FastAPIInstrumentor().uninstrument_app(app)
    for instrumentor in _INSTRUMENTORS:
        instrumentor.uninstrument()


async def setup_realtime(app: FastAPI) -> None:  # pragma: no cover
    """
    Carry real-time events between processes over Redis pub/sub.

    Web processes publish and relay to their sockets. The taskiq worker runs
    this lifespan too, but it holds no sockets, so it only publishes.
    """
    app.state.redis_pool = ConnectionPool.from_url(str(settings.redis_url))
    await manager.start(
        app.state.redis_pool,
        channel=settings.realtime_channel,
        listen=not broker.is_worker_process,
    )


async def stop_realtime(app: FastAPI) -> None:  # pragma: no cover
    await manager.stop()
    await app.state.redis_pool.disconnect()


def setup_firebase() -> None:  # pragma: no cover
    """Initialize the Firebase app used for push notifications, when configured."""
    if get_firebase_app() is None:
        logger.info("Firebase not configured, push notifications are disabled")


def setup_prometheus(app: FastAPI) -> None:  # pragma: no cover
    """Expose request metrics on ``/metrics``."""
    PrometheusFastApiInstrumentator(should_group_status_codes=False).instrument(
        app,
    ).expose(app, should_gzip=True, name="prometheus_metrics")


@asynccontextmanager
async def lifespan_setup(
    app: FastAPI,
) -> AsyncGenerator[None, None]:  # pragma: no cover
    """
    Startup and shutdown of the web app and of the taskiq worker, which
    enters this lifespan through ``taskiq_fastapi``.

    :param app: the fastAPI application.
    """

    app.middleware_stack = None
    if not broker.is_worker_process:
        await broker.startup()
    _setup_db(app)
    await setup_realtime(app)
    setup_opentelemetry(app)
    setup_firebase()
    setup_prometheus(app)
    app.middleware_stack = app.build_middleware_stack()

    yield
    if not broker.is_worker_process:
        await broker.shutdown()
    await stop_realtime(app)
    await app.state.db_engine.dispose()

    stop_opentelemetry(app)
