import asyncio

from loguru import logger

from taskhub.db.models import load_all_models
from taskhub.db.session_factory import AsyncSessionFactory
from taskhub.log import configure_logging
from taskhub.task_manager.services import mark_overdue_tasks


async def main() -> None:
    """
    Run the overdue sweep once, outside the scheduler.
    """
    logger.info("Starting overdue sweep")

    async with AsyncSessionFactory() as session:
        try:
            changed = await mark_overdue_tasks(session)
            await session.commit()
            logger.info("Overdue sweep committed, {} task(s) changed", changed)
        except Exception:
            await session.rollback()
            logger.exception("Overdue sweep failed, transaction rolled back")
            raise


if __name__ == "__main__":
    # python -m taskhub.runners.overdue_sweep_runner
    configure_logging()
    load_all_models()
    asyncio.run(main())
