from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import RequestContext
from taskhub.buckets.models import Bucket
from taskhub.buckets.schemas import BucketStats
from taskhub.task_manager.enums import TaskStatus
from taskhub.task_manager.models import Task
from taskhub.task_manager.permissions import TaskPermissions
from taskhub.utils import Conflict, NotFound, ServiceError


def _org_buckets(organization_id: int):
    return select(Bucket).where(
        Bucket.organization_id == organization_id,
        Bucket.is_deleted.is_(False),
    )


async def _ensure_unique_name(
    session: AsyncSession,
    organization_id: int,
    name: str,
    exclude_id: Optional[int] = None,
) -> None:
    stmt = _org_buckets(organization_id).where(func.lower(Bucket.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Bucket.id != exclude_id)
    if (await session.execute(stmt)).first() is not None:
        raise Conflict("A bucket with this name already exists.")


async def list_buckets(
    session: AsyncSession, organization_id: int, *, search: Optional[str] = None
) -> Sequence[Bucket]:
    stmt = _org_buckets(organization_id)
    if search:
        stmt = stmt.where(Bucket.name.icontains(search, autoescape=True))
    stmt = stmt.order_by(Bucket.created_at.desc(), Bucket.id.desc())
    return (await session.execute(stmt)).scalars().all()


async def get_bucket(session: AsyncSession, organization_id: int, bucket_id: int) -> Bucket:
    stmt = _org_buckets(organization_id).where(Bucket.id == bucket_id)
    bucket = (await session.execute(stmt)).scalar_one_or_none()
    if bucket is None:
        raise NotFound("Bucket not found.")
    return bucket


async def create_bucket(
    session: AsyncSession, organization_id: int, *, name: str, created_by: int
) -> Bucket:
    name = name.strip()
    if not name:
        raise ServiceError("Bucket name is required.")
    await _ensure_unique_name(session, organization_id, name)

    bucket = Bucket(organization_id=organization_id, name=name, created_by=created_by)
    session.add(bucket)
    await session.flush()
    await session.refresh(bucket)
    logger.info("Bucket {} created in organization {}", bucket.id, organization_id)
    return bucket


async def update_bucket(
    session: AsyncSession, organization_id: int, bucket_id: int, *, name: str
) -> Bucket:
    bucket = await get_bucket(session, organization_id, bucket_id)
    name = name.strip()
    if not name:
        raise ServiceError("Bucket name is required.")
    await _ensure_unique_name(session, organization_id, name, exclude_id=bucket.id)

    bucket.name = name
    await session.flush()
    await session.refresh(bucket)
    return bucket


async def _task_count(session: AsyncSession, bucket_id: int) -> int:
    stmt = select(func.count(Task.id)).where(
        Task.bucket_id == bucket_id, Task.is_deleted.is_(False)
    )
    return (await session.execute(stmt)).scalar_one()


async def delete_bucket(session: AsyncSession, organization_id: int, bucket_id: int) -> None:
    """Soft delete. A bucket still holding tasks cannot be deleted."""
    bucket = await get_bucket(session, organization_id, bucket_id)
    task_count = await _task_count(session, bucket.id)
    if task_count:
        raise Conflict(
            f"Cannot delete bucket with {task_count} task(s). "
            "Move or delete them first."
        )
    bucket.is_deleted = True
    await session.flush()
    logger.info("Bucket {} deleted from organization {}", bucket.id, organization_id)


async def bucket_tasks(
    session: AsyncSession, ctx: RequestContext, bucket_id: int
) -> Sequence[Task]:
    await get_bucket(session, ctx.organization_id, bucket_id)
    stmt = (
        select(Task)
        .where(Task.bucket_id == bucket_id, *TaskPermissions.scope(ctx))
        .order_by(Task.created_at.desc(), Task.id.desc())
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalars().all()


async def bucket_stats(
    session: AsyncSession, organization_id: int, bucket_id: int
) -> BucketStats:
    await get_bucket(session, organization_id, bucket_id)

    def count_status(status: TaskStatus):
        return func.coalesce(func.sum(case((Task.status == status, 1), else_=0)), 0)

    stmt = select(
        func.count(Task.id),
        count_status(TaskStatus.COMPLETED),
        count_status(TaskStatus.IN_PROGRESS),
    ).where(Task.bucket_id == bucket_id, Task.is_deleted.is_(False))
    total, completed, in_progress = (await session.execute(stmt)).one()
    return BucketStats(
        total=total,
        completed=completed,
        in_progress=in_progress,
        completion_rate=round(completed * 100 / total) if total else 0,
    )
