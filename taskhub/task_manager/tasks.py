from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from taskiq import TaskiqDepends

from taskhub.db.dependencies import get_db_session
from taskhub.settings import settings
from taskhub.task_manager import services
from taskhub.tkq import broker


@broker.task(
    task_name="sweep_overdue_tasks",
    schedule=[{"cron": settings.overdue_sweep_cron}],
)
async def sweep_overdue_tasks(
    session: AsyncSession = TaskiqDepends(get_db_session),
) -> int:
    """Flag open work that missed its due date."""
    changed = await services.mark_overdue_tasks(session)
    logger.info("Scheduled overdue sweep finished, {} task(s) changed", changed)
    return changed
