"""
Task status workflow.

Every assignee of a task moves through the workflow on their own
``TaskAssignment``. The status stored on the ``Task`` is an aggregate of those
sub-statuses and is re-derived after each change. The functions here only
touch in-memory objects; persisting them is left to the services.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Tuple

from loguru import logger

from taskhub.task_manager.enums import TaskAction, TaskStatus
from taskhub.task_manager.models import Task, TaskAssignment, TimeTrackingMixin
from taskhub.utils import InvalidTransition, as_utc

# statuses the overdue sweep may still move
OPEN_STATUSES: FrozenSet[TaskStatus] = frozenset(
    {
        TaskStatus.PENDING,
        TaskStatus.ACCEPTED,
        TaskStatus.IN_PROGRESS,
        TaskStatus.REJECTED,
    }
)

TRANSITIONS: Dict[TaskAction, Tuple[FrozenSet[TaskStatus], TaskStatus]] = {
    TaskAction.ACCEPT: (frozenset({TaskStatus.PENDING}), TaskStatus.ACCEPTED),
    TaskAction.START: (
        frozenset(
            {
                TaskStatus.PENDING,
                TaskStatus.ACCEPTED,
                TaskStatus.REJECTED,
                TaskStatus.OVERDUE,
            }
        ),
        TaskStatus.IN_PROGRESS,
    ),
    TaskAction.SUBMIT: (frozenset({TaskStatus.IN_PROGRESS}), TaskStatus.SUBMITTED),
    TaskAction.COMPLETE: (frozenset({TaskStatus.SUBMITTED}), TaskStatus.COMPLETED),
    TaskAction.REJECT: (frozenset({TaskStatus.SUBMITTED}), TaskStatus.REJECTED),
    TaskAction.MARK_OVERDUE: (OPEN_STATUSES, TaskStatus.OVERDUE),
}

# status an employee may request through a plain update
EMPLOYEE_STATUS_ACTIONS: Dict[TaskStatus, TaskAction] = {
    TaskStatus.ACCEPTED: TaskAction.ACCEPT,
    TaskStatus.IN_PROGRESS: TaskAction.START,
    TaskStatus.SUBMITTED: TaskAction.SUBMIT,
}

_STARTED = frozenset(
    {TaskStatus.IN_PROGRESS, TaskStatus.SUBMITTED, TaskStatus.COMPLETED}
)


def next_status(current: TaskStatus, action: TaskAction) -> TaskStatus:
    """Return the status ``action`` leads to, or raise ``InvalidTransition``."""
    allowed_from, target = TRANSITIONS[action]
    if current not in allowed_from:
        raise InvalidTransition(
            f"Cannot {action.value.replace('_', ' ')} a task that is {current.value}."
        )
    return target


def aggregate_status(statuses: Iterable[TaskStatus], current: TaskStatus) -> TaskStatus:
    """
    Derive the task-level status from the assignees' sub-statuses.

    The first matching rule wins:
    all completed, any rejected, any overdue, all submitted (or completed),
    any started, all accepted, else pending.
    A task without assignees keeps ``current``.
    """
    statuses = list(statuses)
    if not statuses:
        return current
    if all(s == TaskStatus.COMPLETED for s in statuses):
        return TaskStatus.COMPLETED
    if TaskStatus.REJECTED in statuses:
        return TaskStatus.REJECTED
    if TaskStatus.OVERDUE in statuses:
        return TaskStatus.OVERDUE
    if all(s in (TaskStatus.SUBMITTED, TaskStatus.COMPLETED) for s in statuses):
        return TaskStatus.SUBMITTED
    if any(s in _STARTED for s in statuses):
        return TaskStatus.IN_PROGRESS
    if all(s == TaskStatus.ACCEPTED for s in statuses):
        return TaskStatus.ACCEPTED
    return TaskStatus.PENDING


def minutes_since(start: datetime, now: datetime) -> int:
    return max(0, round((now - as_utc(start)).total_seconds() / 60))


def stamp(record: TimeTrackingMixin, status: TaskStatus, now: datetime) -> None:
    """
    Record the time ``record`` reached ``status``.

    accepted_at and started_at keep the first occurrence, while submitted_at
    and completed_at follow the latest one.
    """
    if status == TaskStatus.ACCEPTED and record.accepted_at is None:
        record.accepted_at = now
    elif status == TaskStatus.IN_PROGRESS and record.started_at is None:
        record.started_at = now
    elif status == TaskStatus.SUBMITTED:
        record.submitted_at = now
    elif status == TaskStatus.COMPLETED:
        record.completed_at = now

    if status in (TaskStatus.SUBMITTED, TaskStatus.COMPLETED) and record.started_at:
        record.time_spent_minutes = minutes_since(record.started_at, now)


def apply_action(
    assignment: TaskAssignment, action: TaskAction, now: datetime
) -> TaskStatus:
    """Move one assignee along the workflow."""
    new_status = next_status(assignment.status, action)
    logger.debug(
        "Assignment {} of task {}: {} -> {}",
        assignment.employee_id,
        assignment.task_id,
        assignment.status.value,
        new_status.value,
    )
    assignment.status = new_status
    stamp(assignment, new_status, now)
    return new_status


def sync_task_status(task: Task, now: datetime) -> bool:
    """Re-derive ``task.status``. Returns True when it changed."""
    new_status = aggregate_status((a.status for a in task.assignments), task.status)
    if new_status == task.status:
        return False
    task.status = new_status
    stamp(task, new_status, now)
    return True


def override_status(task: Task, status: TaskStatus, now: datetime) -> bool:
    """
    Force ``status`` on the task and on every assignment.

    Used when an admin edits the status directly, which bypasses the workflow.
    """
    changed = task.status != status
    for assignment in task.assignments:
        assignment.status = status
        stamp(assignment, status, now)
    task.status = status
    stamp(task, status, now)
    return changed
