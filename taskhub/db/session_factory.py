from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskhub.settings import settings

# Used by the runners, which live outside the web app's lifespan.
engine = create_async_engine(str(settings.db_url), pool_pre_ping=True)

AsyncSessionFactory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionFactory
