from importlib import metadata

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskhub.db.models import load_all_models
from taskhub.log import configure_logging
from taskhub.settings import settings
from taskhub.web.api.router import api_router
from taskhub.web.lifespan import lifespan_setup


def get_app() -> FastAPI:
    """
    Get FastAPI application.

    This is the main constructor of an application.

    :return: application.
    """
    configure_logging()
    load_all_models()
    app = FastAPI(
        title="taskhub",
        version=metadata.version("taskhub"),
        lifespan=lifespan_setup,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Main router for the API.
    app.include_router(router=api_router, prefix="/api")

    return app
