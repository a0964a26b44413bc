from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import RequestContext
from taskhub.auth.permissions import require_admin, require_org_context
from taskhub.buckets import services
from taskhub.buckets.schemas import BucketIn, BucketOut, BucketStats
from taskhub.db.dependencies import get_db_session
from taskhub.task_manager.permissions import TaskPermissions
from taskhub.task_manager.schemas import TaskOut
from taskhub.utils import translate_service_errors

router = APIRouter()


@router.get("", response_model=List[BucketOut])
@translate_service_errors
async def list_buckets(
    search: Optional[str] = None,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.list_buckets(session, ctx.organization_id, search=search)


@router.post("", response_model=BucketOut, status_code=status.HTTP_201_CREATED)
@translate_service_errors
async def create_bucket(
    payload: BucketIn,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.create_bucket(
        session, ctx.organization_id, name=payload.name, created_by=ctx.user.id
    )


@router.get("/{bucket_id}", response_model=BucketOut)
@translate_service_errors
async def get_bucket(
    bucket_id: int,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.get_bucket(session, ctx.organization_id, bucket_id)


@router.patch("/{bucket_id}", response_model=BucketOut)
@translate_service_errors
async def update_bucket(
    bucket_id: int,
    payload: BucketIn,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.update_bucket(
        session, ctx.organization_id, bucket_id, name=payload.name
    )


@router.delete("/{bucket_id}", status_code=status.HTTP_204_NO_CONTENT)
@translate_service_errors
async def delete_bucket(
    bucket_id: int,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    await services.delete_bucket(session, ctx.organization_id, bucket_id)


@router.get("/{bucket_id}/tasks", response_model=List[TaskOut])
@translate_service_errors
async def bucket_tasks(
    bucket_id: int,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    tasks = await services.bucket_tasks(session, ctx, bucket_id)
    viewer_id = TaskPermissions.viewer_id(ctx)
    return [TaskOut.from_task(task, viewer_id=viewer_id) for task in tasks]


@router.get("/{bucket_id}/stats", response_model=BucketStats)
@translate_service_errors
async def bucket_stats(
    bucket_id: int,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.bucket_stats(session, ctx.organization_id, bucket_id)
