from datetime import UTC, datetime, timedelta

import pytest

from taskhub.task_manager import lifecycle
from taskhub.task_manager.enums import TaskAction, TaskStatus
from taskhub.task_manager.models import Task, TaskAssignment
from taskhub.utils import InvalidTransition

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


def _task(*statuses: TaskStatus) -> Task:
    return Task(
        status=TaskStatus.PENDING,
        assignments=[
            TaskAssignment(employee_id=i + 1, status=status)
            for i, status in enumerate(statuses)
        ],
    )


@pytest.mark.parametrize(
    "current, action, expected",
    [
        (TaskStatus.PENDING, TaskAction.ACCEPT, TaskStatus.ACCEPTED),
        (TaskStatus.PENDING, TaskAction.START, TaskStatus.IN_PROGRESS),
        (TaskStatus.ACCEPTED, TaskAction.START, TaskStatus.IN_PROGRESS),
        (TaskStatus.REJECTED, TaskAction.START, TaskStatus.IN_PROGRESS),
        (TaskStatus.OVERDUE, TaskAction.START, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskAction.SUBMIT, TaskStatus.SUBMITTED),
        (TaskStatus.SUBMITTED, TaskAction.COMPLETE, TaskStatus.COMPLETED),
        (TaskStatus.SUBMITTED, TaskAction.REJECT, TaskStatus.REJECTED),
        (TaskStatus.ACCEPTED, TaskAction.MARK_OVERDUE, TaskStatus.OVERDUE),
    ],
)
def test_next_status_follows_workflow(current, action, expected):
    assert lifecycle.next_status(current, action) == expected


@pytest.mark.parametrize(
    "current, action",
    [
        (TaskStatus.PENDING, TaskAction.SUBMIT),
        (TaskStatus.ACCEPTED, TaskAction.ACCEPT),
        (TaskStatus.COMPLETED, TaskAction.START),
        (TaskStatus.IN_PROGRESS, TaskAction.COMPLETE),
        (TaskStatus.SUBMITTED, TaskAction.MARK_OVERDUE),
        (TaskStatus.COMPLETED, TaskAction.MARK_OVERDUE),
    ],
)
def test_next_status_rejects_illegal_moves(current, action):
    with pytest.raises(InvalidTransition):
        lifecycle.next_status(current, action)


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ([TaskStatus.COMPLETED, TaskStatus.COMPLETED], TaskStatus.COMPLETED),
        ([TaskStatus.COMPLETED, TaskStatus.REJECTED], TaskStatus.REJECTED),
        ([TaskStatus.REJECTED, TaskStatus.OVERDUE], TaskStatus.REJECTED),
        ([TaskStatus.SUBMITTED, TaskStatus.OVERDUE], TaskStatus.OVERDUE),
        ([TaskStatus.SUBMITTED, TaskStatus.COMPLETED], TaskStatus.SUBMITTED),
        ([TaskStatus.SUBMITTED, TaskStatus.PENDING], TaskStatus.IN_PROGRESS),
        ([TaskStatus.IN_PROGRESS, TaskStatus.ACCEPTED], TaskStatus.IN_PROGRESS),
        ([TaskStatus.ACCEPTED, TaskStatus.ACCEPTED], TaskStatus.ACCEPTED),
        ([TaskStatus.ACCEPTED, TaskStatus.PENDING], TaskStatus.PENDING),
    ],
)
def test_aggregate_status_rules(statuses, expected):
    assert lifecycle.aggregate_status(statuses, TaskStatus.PENDING) == expected


def test_aggregate_status_without_assignees_keeps_current():
    assert lifecycle.aggregate_status([], TaskStatus.OVERDUE) == TaskStatus.OVERDUE


def test_stamp_keeps_first_start_and_tracks_time():
    assignment = TaskAssignment(employee_id=1, status=TaskStatus.PENDING)
    lifecycle.stamp(assignment, TaskStatus.IN_PROGRESS, NOW)
    lifecycle.stamp(assignment, TaskStatus.IN_PROGRESS, NOW + timedelta(hours=1))
    assert assignment.started_at == NOW

    lifecycle.stamp(assignment, TaskStatus.SUBMITTED, NOW + timedelta(minutes=90))
    assert assignment.submitted_at == NOW + timedelta(minutes=90)
    assert assignment.time_spent_minutes == 90


def test_apply_action_moves_one_assignee():
    task = _task(TaskStatus.PENDING, TaskStatus.PENDING)
    first, second = task.assignments

    assert lifecycle.apply_action(first, TaskAction.START, NOW) == TaskStatus.IN_PROGRESS
    assert first.started_at == NOW
    assert second.status == TaskStatus.PENDING

    assert lifecycle.sync_task_status(task, NOW) is True
    assert task.status == TaskStatus.IN_PROGRESS
    assert lifecycle.sync_task_status(task, NOW) is False


def test_override_status_forces_every_assignment():
    task = _task(TaskStatus.IN_PROGRESS, TaskStatus.PENDING)

    assert lifecycle.override_status(task, TaskStatus.COMPLETED, NOW) is True
    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at == NOW
    assert {a.status for a in task.assignments} == {TaskStatus.COMPLETED}
