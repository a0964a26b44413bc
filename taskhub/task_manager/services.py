from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.enums import UserRole
from taskhub.accounts.models import User
from taskhub.auth.dependencies import RequestContext
from taskhub.buckets.models import Bucket
from taskhub.notifications.enums import NotificationType
from taskhub.notifications.realtime import manager
from taskhub.notifications.services import notify
from taskhub.task_manager import lifecycle, messages
from taskhub.task_manager.enums import Priority, TaskAction, TaskStatus
from taskhub.task_manager.models import Task, TaskAssignment, TaskComment
from taskhub.task_manager.permissions import TaskPermissions
from taskhub.task_manager.schemas import TaskStats
from taskhub.utils import Forbidden, InvalidTransition, NotFound, as_utc, utcnow

_ADMIN_EDITABLE = ("title", "description", "priority", "due_date")

_EMPLOYEE_MESSAGES = {
    TaskAction.ACCEPT: messages.accepted,
    TaskAction.START: messages.started,
    TaskAction.SUBMIT: messages.submitted,
}


# ---- Loading ----
async def reload_task(session: AsyncSession, task_id: int) -> Task:
    """Re-select a task with every relationship, overwriting stale state."""
    stmt = (
        select(Task)
        .where(Task.id == task_id)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one()


async def get_task(session: AsyncSession, ctx: RequestContext, task_id: int) -> Task:
    """A task ``ctx`` may see. Anything else, including other tenants' tasks, is a 404."""
    stmt = (
        select(Task)
        .where(Task.id == task_id, *TaskPermissions.scope(ctx))
        .execution_options(populate_existing=True)
    )
    task = (await session.execute(stmt)).scalar_one_or_none()
    if task is None:
        raise NotFound("Task not found.")
    return task


async def list_tasks(
    session: AsyncSession,
    ctx: RequestContext,
    *,
    status: Optional[TaskStatus] = None,
    priority: Optional[Priority] = None,
    assigned_to: Optional[int] = None,
    bucket_id: Optional[int] = None,
    search: Optional[str] = None,
) -> Sequence[Task]:
    stmt = select(Task).where(*TaskPermissions.scope(ctx))
    if status is not None:
        stmt = stmt.where(Task.status == status)
    if priority is not None:
        stmt = stmt.where(Task.priority == priority)
    if assigned_to is not None:
        stmt = stmt.where(Task.assignments.any(TaskAssignment.employee_id == assigned_to))
    if bucket_id is not None:
        stmt = stmt.where(Task.bucket_id == bucket_id)
    if search:
        stmt = stmt.where(
            or_(
                Task.title.icontains(search, autoescape=True),
                Task.description.icontains(search, autoescape=True),
            )
        )
    stmt = stmt.order_by(Task.created_at.desc(), Task.id.desc()).execution_options(
        populate_existing=True
    )
    result = await session.execute(stmt)
    return result.scalars().all()


# ---- Validation helpers ----
async def _resolve_assignees(
    session: AsyncSession, organization_id: int, user_ids: List[int]
) -> List[User]:
    """Active members of the organization, in the order given."""
    wanted = list(dict.fromkeys(user_ids))
    stmt = select(User).where(
        User.id.in_(wanted),
        User.organization_id == organization_id,
        User.is_active.is_(True),
        User.is_deleted.is_(False),
    )
    found = {u.id: u for u in (await session.execute(stmt)).scalars().all()}
    if len(found) != len(wanted):
        raise NotFound("One or more assigned users not found in organization.")
    return [found[user_id] for user_id in wanted]


async def _check_bucket(session: AsyncSession, organization_id: int, bucket_id: int) -> None:
    stmt = select(Bucket.id).where(
        Bucket.id == bucket_id,
        Bucket.organization_id == organization_id,
        Bucket.is_deleted.is_(False),
    )
    if (await session.execute(stmt)).first() is None:
        raise NotFound("Bucket not found.")


async def _org_admins(session: AsyncSession, organization_id: int) -> Sequence[User]:
    stmt = select(User).where(
        User.organization_id == organization_id,
        User.role == UserRole.ADMIN,
        User.is_active.is_(True),
        User.is_deleted.is_(False),
    )
    return (await session.execute(stmt)).scalars().all()


# ---- Fan-out ----
async def _broadcast(task: Task, event: str) -> None:
    await manager.broadcast_to_org(
        task.organization_id,
        {
            "event": event,
            "data": {"taskId": task.id, "title": task.title, "status": task.status.value},
        },
    )


async def _notify_users(
    session: AsyncSession,
    task: Task,
    users: Sequence[User],
    type_: NotificationType,
    message: str,
    *,
    skip_user_id: Optional[int] = None,
) -> None:
    for user in users:
        if user.id == skip_user_id:
            continue
        await notify(
            session,
            user=user,
            type_=type_,
            message=message,
            task_id=task.id,
            organization_id=task.organization_id,
            payload={"taskTitle": task.title, "status": task.status.value},
        )


def _assignees(task: Task) -> List[User]:
    return [a.employee for a in task.assignments]


# ---- CRUD ----
async def create_task(
    session: AsyncSession,
    ctx: RequestContext,
    *,
    title: str,
    assigned_to: List[int],
    description: Optional[str] = None,
    priority: Priority = Priority.MEDIUM,
    due_date: Optional[datetime] = None,
    bucket_id: Optional[int] = None,
) -> Task:
    TaskPermissions.ensure_admin(ctx)
    assignees = await _resolve_assignees(session, ctx.organization_id, assigned_to)
    if bucket_id is not None:
        await _check_bucket(session, ctx.organization_id, bucket_id)

    task = Task(
        organization_id=ctx.organization_id,
        title=title,
        description=description,
        priority=priority,
        status=TaskStatus.PENDING,
        due_date=as_utc(due_date),
        created_by=ctx.user.id,
        bucket_id=bucket_id,
        assignments=[
            TaskAssignment(employee=user, status=TaskStatus.PENDING) for user in assignees
        ],
    )
    session.add(task)
    await session.flush()
    task = await reload_task(session, task.id)
    logger.info(
        "Task {} created in organization {} for {} assignee(s)",
        task.id,
        task.organization_id,
        len(assignees),
    )

    await _notify_users(
        session,
        task,
        assignees,
        NotificationType.TASK_ASSIGNED,
        messages.assigned(task, ctx.user.name),
    )
    await _broadcast(task, "task-created")
    return task


async def update_task(
    session: AsyncSession,
    ctx: RequestContext,
    task_id: int,
    changes: Dict[str, Any],
) -> Task:
    """
    Apply a partial update.

    Admins may edit any field, and setting ``status`` overrides the workflow
    for every assignee. Employees may only move their own status along the
    workflow.
    """
    task = await get_task(session, ctx, task_id)
    changes = dict(changes)
    new_status: Optional[TaskStatus] = changes.pop("status", None)

    if ctx.is_employee:
        if changes:
            raise Forbidden("Employees can only update the status of their tasks.")
        if new_status is None:
            return task
        action = lifecycle.EMPLOYEE_STATUS_ACTIONS.get(new_status)
        if action is None:
            raise InvalidTransition(f"Employees cannot set a task to {new_status.value}.")
        return await perform_employee_action(session, ctx, task_id, action)

    newly_assigned: List[User] = []
    if changes.get("assigned_to") is not None:
        users = await _resolve_assignees(session, ctx.organization_id, changes["assigned_to"])
        wanted = {u.id for u in users}
        for assignment in list(task.assignments):
            if assignment.employee_id not in wanted:
                task.assignments.remove(assignment)
        existing = set(task.assignee_ids)
        for user in users:
            if user.id not in existing:
                task.assignments.append(
                    TaskAssignment(employee=user, status=TaskStatus.PENDING)
                )
                newly_assigned.append(user)

    if "bucket_id" in changes:
        if changes["bucket_id"] is not None:
            await _check_bucket(session, ctx.organization_id, changes["bucket_id"])
        task.bucket_id = changes["bucket_id"]

    for field in _ADMIN_EDITABLE:
        if field not in changes:
            continue
        value = changes[field]
        if value is None and field in ("title", "priority"):
            continue
        setattr(task, field, as_utc(value) if field == "due_date" else value)

    now = utcnow()
    if new_status is not None:
        status_changed = lifecycle.override_status(task, new_status, now)
    else:
        status_changed = lifecycle.sync_task_status(task, now)

    await session.flush()
    task = await reload_task(session, task.id)

    if newly_assigned:
        await _notify_users(
            session,
            task,
            newly_assigned,
            NotificationType.TASK_ASSIGNED,
            messages.assigned(task, ctx.user.name),
        )
    if status_changed:
        logger.info("Task {} set to {} by admin {}", task.id, task.status.value, ctx.user.id)
        already_told = {u.id for u in newly_assigned}
        await _notify_users(
            session,
            task,
            [u for u in _assignees(task) if u.id not in already_told],
            NotificationType.TASK_UPDATED,
            messages.status_changed(task, ctx.user.name, task.status),
            skip_user_id=ctx.user.id,
        )
    await _broadcast(task, "task-updated")
    return task


async def delete_task(session: AsyncSession, ctx: RequestContext, task_id: int) -> None:
    """Soft delete: the task disappears from every listing."""
    TaskPermissions.ensure_admin(ctx)
    task = await get_task(session, ctx, task_id)
    task.is_deleted = True
    await session.flush()
    logger.info("Task {} deleted by {}", task.id, ctx.user.id)
    await _broadcast(task, "task-deleted")


# ---- Workflow ----
async def perform_employee_action(
    session: AsyncSession,
    ctx: RequestContext,
    task_id: int,
    action: TaskAction,
    *,
    submission_note: Optional[str] = None,
) -> Task:
    """Accept, start or submit the caller's own assignment."""
    if action not in _EMPLOYEE_MESSAGES:
        raise InvalidTransition(f"{action.value} is not an assignee action.")
    task = await get_task(session, ctx, task_id)
    assignment = TaskPermissions.own_assignment(ctx, task)

    now = utcnow()
    lifecycle.apply_action(assignment, action, now)
    if action == TaskAction.SUBMIT:
        assignment.submission_note = submission_note
        task.submission_note = submission_note
    lifecycle.sync_task_status(task, now)

    await session.flush()
    task = await reload_task(session, task.id)

    if task.creator.id != ctx.user.id:
        await notify(
            session,
            user=task.creator,
            type_=NotificationType.TASK_UPDATED,
            message=_EMPLOYEE_MESSAGES[action](task, ctx.user.name),
            task_id=task.id,
            organization_id=task.organization_id,
            payload={"employeeId": ctx.user.id, "action": action.value},
        )
    await _broadcast(task, "task-updated")
    return task


async def review_task(
    session: AsyncSession,
    ctx: RequestContext,
    task_id: int,
    action: TaskAction,
    *,
    employee_id: Optional[int] = None,
    admin_feedback: Optional[str] = None,
) -> Task:
    """
    Complete or reject submitted work.

    With ``employee_id`` only that assignee is reviewed, otherwise every
    assignee who has submitted.
    """
    if action not in (TaskAction.COMPLETE, TaskAction.REJECT):
        raise InvalidTransition(f"{action.value} is not a review action.")
    TaskPermissions.ensure_admin(ctx)
    task = await get_task(session, ctx, task_id)

    if employee_id is not None:
        assignment = task.assignment_for(employee_id)
        if assignment is None:
            raise NotFound("Employee is not assigned to this task.")
        targets = [assignment]
    else:
        targets = [a for a in task.assignments if a.status == TaskStatus.SUBMITTED]
        if not targets:
            raise InvalidTransition("Task has no submitted work to review.")

    now = utcnow()
    for assignment in targets:
        lifecycle.apply_action(assignment, action, now)
        if admin_feedback is not None:
            assignment.admin_feedback = admin_feedback
    if admin_feedback is not None:
        task.admin_feedback = admin_feedback
    lifecycle.sync_task_status(task, now)
    reviewed_ids = [a.employee_id for a in targets]

    await session.flush()
    task = await reload_task(session, task.id)
    logger.info("Task {}: {} for employees {}", task.id, action.value, reviewed_ids)

    reviewed = [a.employee for a in task.assignments if a.employee_id in reviewed_ids]
    if action == TaskAction.COMPLETE:
        await _notify_users(
            session, task, reviewed, NotificationType.TASK_COMPLETED, messages.completed(task)
        )
    else:
        await _notify_users(
            session, task, reviewed, NotificationType.TASK_UPDATED, messages.rejected(task)
        )
    await _broadcast(task, "task-updated")
    return task


async def add_comment(
    session: AsyncSession, ctx: RequestContext, task_id: int, message: str
) -> Task:
    task = await get_task(session, ctx, task_id)
    task.comments.append(TaskComment(author=ctx.user, message=message.strip()))
    await session.flush()
    task = await reload_task(session, task.id)

    if ctx.has_admin_privileges:
        recipients = _assignees(task)
    else:
        recipients = [task.creator]
    await _notify_users(
        session,
        task,
        recipients,
        NotificationType.TASK_COMMENT,
        messages.commented(task, ctx.user.name, message.strip()),
        skip_user_id=ctx.user.id,
    )
    return task


# ---- Reporting ----
async def task_stats(session: AsyncSession, ctx: RequestContext) -> TaskStats:
    """
    Counts per status. Admins count tasks, employees count their own
    sub-statuses. ``overdue`` also covers open work past its due date.
    """
    now = utcnow()
    if ctx.is_employee:
        status_col = TaskAssignment.status
        base_where = [
            TaskAssignment.employee_id == ctx.user.id,
            Task.organization_id == ctx.organization_id,
            Task.is_deleted.is_(False),
        ]

        def base(*cols):
            return (
                select(*cols)
                .select_from(TaskAssignment)
                .join(Task, Task.id == TaskAssignment.task_id)
                .where(*base_where)
            )
    else:
        status_col = Task.status
        base_where = TaskPermissions.scope(ctx)

        def base(*cols):
            return select(*cols).select_from(Task).where(*base_where)

    rows = await session.execute(base(status_col, func.count()).group_by(status_col))
    counts = {status: count for status, count in rows.all()}

    late_stmt = base(func.count()).where(
        Task.due_date.is_not(None),
        Task.due_date < now,
        status_col.not_in([TaskStatus.COMPLETED, TaskStatus.OVERDUE]),
    )
    late = (await session.execute(late_stmt)).scalar_one()

    return TaskStats(
        total=sum(counts.values()),
        pending=counts.get(TaskStatus.PENDING, 0),
        accepted=counts.get(TaskStatus.ACCEPTED, 0),
        in_progress=counts.get(TaskStatus.IN_PROGRESS, 0),
        submitted=counts.get(TaskStatus.SUBMITTED, 0),
        completed=counts.get(TaskStatus.COMPLETED, 0),
        rejected=counts.get(TaskStatus.REJECTED, 0),
        overdue=counts.get(TaskStatus.OVERDUE, 0) + late,
    )


# ---- Overdue sweep ----
async def _mark_task_overdue(session: AsyncSession, task: Task, now: datetime) -> None:
    moved = [a for a in task.assignments if a.status in lifecycle.OPEN_STATUSES]
    for assignment in moved:
        lifecycle.apply_action(assignment, TaskAction.MARK_OVERDUE, now)
    if task.assignments:
        lifecycle.sync_task_status(task, now)
    else:
        lifecycle.override_status(task, TaskStatus.OVERDUE, now)
    await session.flush()

    await _notify_users(
        session,
        task,
        [a.employee for a in moved],
        NotificationType.TASK_OVERDUE,
        messages.overdue_for_assignee(task),
    )
    assignee_names = ", ".join(u.name for u in _assignees(task))
    await _notify_users(
        session,
        task,
        await _org_admins(session, task.organization_id),
        NotificationType.TASK_OVERDUE,
        messages.overdue_for_admin(task, assignee_names),
    )


async def mark_overdue_tasks(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Move open work past its due date to OVERDUE and warn the assignees and
    the organization's admins. Returns how many tasks changed.
    """
    now = now or utcnow()
    stmt = (
        select(Task)
        .where(
            Task.is_deleted.is_(False),
            Task.due_date.is_not(None),
            Task.due_date < now,
            Task.status.in_(lifecycle.OPEN_STATUSES),
        )
        .order_by(Task.id)
        .execution_options(populate_existing=True)
    )
    tasks = (await session.execute(stmt)).scalars().all()
    logger.info("Overdue sweep found {} task(s) past due", len(tasks))

    changed = 0
    for task in tasks:
        task_id = task.id
        try:
            async with session.begin_nested():
                await _mark_task_overdue(session, task, now)
        except Exception:
            logger.exception("Overdue sweep skipped task {}, its changes were rolled back", task_id)
            continue
        changed += 1

    logger.info("Overdue sweep marked {} task(s) overdue", changed)
    return changed
