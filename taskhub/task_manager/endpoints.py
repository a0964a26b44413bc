from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import FileResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import RequestContext
from taskhub.auth.permissions import require_admin, require_org_context
from taskhub.db.dependencies import get_db_session
from taskhub.task_manager import attachments, ics, services
from taskhub.task_manager.enums import Priority, TaskAction, TaskStatus
from taskhub.task_manager.permissions import TaskPermissions
from taskhub.task_manager.schemas import (
    CommentIn,
    ReviewIn,
    SubmitIn,
    TaskCreate,
    TaskOut,
    TaskStats,
    TaskUpdate,
)
from taskhub.utils import translate_service_errors

router = APIRouter()


def _out(task, ctx: RequestContext) -> TaskOut:
    return TaskOut.from_task(task, viewer_id=TaskPermissions.viewer_id(ctx))


# -----------------------
# Task endpoints
# -----------------------
@router.get("", response_model=List[TaskOut])
@translate_service_errors
async def list_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    priority: Optional[Priority] = None,
    assigned_to: Optional[int] = None,
    bucket_id: Optional[int] = None,
    search: Optional[str] = None,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    """Tasks of the organization. Employees only get the tasks assigned to them."""
    tasks = await services.list_tasks(
        session,
        ctx,
        status=status_filter,
        priority=priority,
        assigned_to=assigned_to,
        bucket_id=bucket_id,
        search=search,
    )
    return [_out(task, ctx) for task in tasks]


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
@translate_service_errors
async def create_task(
    payload: TaskCreate,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    task = await services.create_task(
        session,
        ctx,
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        due_date=payload.due_date,
        assigned_to=payload.assigned_to,
        bucket_id=payload.bucket_id,
    )
    return _out(task, ctx)


@router.get("/stats", response_model=TaskStats)
@translate_service_errors
async def task_stats(
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.task_stats(session, ctx)


@router.get("/{task_id}", response_model=TaskOut)
@translate_service_errors
async def get_task(
    task_id: int,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    return _out(await services.get_task(session, ctx, task_id), ctx)


@router.patch("/{task_id}", response_model=TaskOut)
@translate_service_errors
async def update_task(
    task_id: int,
    payload: TaskUpdate,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Admins may change any field. Employees may only move their own status
    to ACCEPTED, IN_PROGRESS or SUBMITTED.
    """
    task = await services.update_task(
        session, ctx, task_id, payload.model_dump(exclude_unset=True)
    )
    return _out(task, ctx)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
@translate_service_errors
async def delete_task(
    task_id: int,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    await services.delete_task(session, ctx, task_id)


# -----------------------
# Workflow endpoints
# -----------------------
@router.post("/{task_id}/accept", response_model=TaskOut)
@translate_service_errors
async def accept_task(
    task_id: int,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    task = await services.perform_employee_action(session, ctx, task_id, TaskAction.ACCEPT)
    return _out(task, ctx)


@router.post("/{task_id}/start", response_model=TaskOut)
@translate_service_errors
async def start_task(
    task_id: int,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    task = await services.perform_employee_action(session, ctx, task_id, TaskAction.START)
    return _out(task, ctx)


@router.post("/{task_id}/submit", response_model=TaskOut)
@translate_service_errors
async def submit_task(
    task_id: int,
    payload: SubmitIn,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    task = await services.perform_employee_action(
        session,
        ctx,
        task_id,
        TaskAction.SUBMIT,
        submission_note=payload.submission_note,
    )
    return _out(task, ctx)


@router.post("/{task_id}/complete", response_model=TaskOut)
@translate_service_errors
async def complete_task(
    task_id: int,
    payload: ReviewIn,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Approve submitted work."""
    task = await services.review_task(
        session,
        ctx,
        task_id,
        TaskAction.COMPLETE,
        employee_id=payload.employee_id,
        admin_feedback=payload.admin_feedback,
    )
    return _out(task, ctx)


@router.post("/{task_id}/reject", response_model=TaskOut)
@translate_service_errors
async def reject_task(
    task_id: int,
    payload: ReviewIn,
    ctx: RequestContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Send submitted work back for revision."""
    task = await services.review_task(
        session,
        ctx,
        task_id,
        TaskAction.REJECT,
        employee_id=payload.employee_id,
        admin_feedback=payload.admin_feedback,
    )
    return _out(task, ctx)


@router.post("/{task_id}/comments", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
@translate_service_errors
async def add_comment(
    task_id: int,
    payload: CommentIn,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    task = await services.add_comment(session, ctx, task_id, payload.message)
    return _out(task, ctx)


# -----------------------
# Files
# -----------------------
@router.post("/{task_id}/attachments", response_model=TaskOut)
@translate_service_errors
async def upload_attachment(
    task_id: int,
    file: UploadFile = File(...),
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    task = await attachments.save_attachment(session, ctx, task_id, file)
    return _out(task, ctx)


@router.get("/{task_id}/attachments/{attachment_id}")
@translate_service_errors
async def download_attachment(
    task_id: int,
    attachment_id: int,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    attachment, path = await attachments.get_attachment(
        session, ctx, task_id, attachment_id
    )
    return FileResponse(
        path=path, media_type=attachment.file_type, filename=attachment.file_name
    )


@router.get("/{task_id}/calendar.ics")
@translate_service_errors
async def calendar_file(
    task_id: int,
    ctx: RequestContext = Depends(require_org_context),
    session: AsyncSession = Depends(get_db_session),
):
    task = await services.get_task(session, ctx, task_id)
    return Response(
        content=ics.render_task_event(task),
        media_type="text/calendar",
        headers={
            "Content-Disposition": f'attachment; filename="{ics.calendar_filename(task)}"'
        },
    )
