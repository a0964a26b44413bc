from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.models import User
from taskhub.notifications.enums import NotificationType
from taskhub.notifications.models import Notification
from taskhub.task_manager import services
from taskhub.task_manager.enums import TaskAction, TaskStatus
from taskhub.task_manager.tasks import sweep_overdue_tasks
from taskhub.utils import utcnow

from tests.conftest import context


async def _notifications(session: AsyncSession, user: User):
    stmt = select(Notification).where(
        Notification.user_id == user.id,
        Notification.type == NotificationType.TASK_OVERDUE,
    )
    return (await session.execute(stmt)).scalars().all()


@pytest.mark.anyio
async def test_sweep_marks_open_work_overdue(
    dbsession: AsyncSession, admin: User, employee: User, other_employee: User
):
    ctx = context(admin)
    now = utcnow()
    late = await services.create_task(
        dbsession,
        ctx,
        title="Late",
        assigned_to=[employee.id, other_employee.id],
        due_date=now - timedelta(hours=2),
    )
    on_time = await services.create_task(
        dbsession,
        ctx,
        title="Not yet due",
        assigned_to=[employee.id],
        due_date=now + timedelta(days=1),
    )
    # submitted work is left alone by the sweep
    await services.perform_employee_action(
        dbsession, context(other_employee), late.id, TaskAction.START
    )
    await services.perform_employee_action(
        dbsession, context(other_employee), late.id, TaskAction.SUBMIT
    )

    assert await services.mark_overdue_tasks(dbsession, now=now) == 1

    late = await services.reload_task(dbsession, late.id)
    assert late.status == TaskStatus.OVERDUE
    statuses = {a.employee_id: a.status for a in late.assignments}
    assert statuses == {
        employee.id: TaskStatus.OVERDUE,
        other_employee.id: TaskStatus.SUBMITTED,
    }
    on_time = await services.reload_task(dbsession, on_time.id)
    assert on_time.status == TaskStatus.PENDING

    assert len(await _notifications(dbsession, employee)) == 1
    assert len(await _notifications(dbsession, other_employee)) == 0
    admin_alerts = await _notifications(dbsession, admin)
    assert len(admin_alerts) == 1
    assert "Alice" in admin_alerts[0].message

    # already overdue, nothing more to do
    assert await services.mark_overdue_tasks(dbsession, now=now) == 0


@pytest.mark.anyio
async def test_sweep_rolls_back_a_failing_task(
    dbsession: AsyncSession,
    admin: User,
    employee: User,
    monkeypatch: pytest.MonkeyPatch,
):
    now = utcnow()
    broken = await services.create_task(
        dbsession,
        context(admin),
        title="Broken",
        assigned_to=[employee.id],
        due_date=now - timedelta(hours=2),
    )
    fine = await services.create_task(
        dbsession,
        context(admin),
        title="Fine",
        assigned_to=[employee.id],
        due_date=now - timedelta(hours=1),
    )
    broken_id, fine_id = broken.id, fine.id

    org_admins = services._org_admins
    calls = []

    async def failing_once(session: AsyncSession, organization_id: int):
        calls.append(organization_id)
        if len(calls) == 1:
            raise RuntimeError("admin lookup failed")
        return await org_admins(session, organization_id)

    monkeypatch.setattr(services, "_org_admins", failing_once)

    assert await services.mark_overdue_tasks(dbsession, now=now) == 1

    broken = await services.reload_task(dbsession, broken_id)
    assert broken.status == TaskStatus.PENDING
    assert [a.status for a in broken.assignments] == [TaskStatus.PENDING]
    fine = await services.reload_task(dbsession, fine_id)
    assert fine.status == TaskStatus.OVERDUE

    assert [n.task_id for n in await _notifications(dbsession, employee)] == [fine_id]
    assert [n.task_id for n in await _notifications(dbsession, admin)] == [fine_id]

    # the skipped task is picked up by the next run
    assert await services.mark_overdue_tasks(dbsession, now=now) == 1
    broken = await services.reload_task(dbsession, broken_id)
    assert broken.status == TaskStatus.OVERDUE


@pytest.mark.anyio
async def test_overdue_task_can_still_be_worked_on(
    dbsession: AsyncSession, admin: User, employee: User
):
    now = utcnow()
    task = await services.create_task(
        dbsession,
        context(admin),
        title="Late",
        assigned_to=[employee.id],
        due_date=now - timedelta(minutes=5),
    )
    await services.mark_overdue_tasks(dbsession, now=now)

    task = await services.perform_employee_action(
        dbsession, context(employee), task.id, TaskAction.START
    )
    assert task.status == TaskStatus.IN_PROGRESS


@pytest.mark.anyio
async def test_completed_tasks_are_never_overdue(
    dbsession: AsyncSession, admin: User, employee: User
):
    now = utcnow()
    task = await services.create_task(
        dbsession,
        context(admin),
        title="Done early",
        assigned_to=[employee.id],
        due_date=now - timedelta(days=1),
    )
    await services.update_task(
        dbsession, context(admin), task.id, {"status": TaskStatus.COMPLETED}
    )

    assert await services.mark_overdue_tasks(dbsession, now=now) == 0


@pytest.mark.anyio
async def test_scheduled_sweep_task(dbsession: AsyncSession, admin: User, employee: User):
    await services.create_task(
        dbsession,
        context(admin),
        title="Late",
        assigned_to=[employee.id],
        due_date=utcnow() - timedelta(hours=1),
    )

    assert await sweep_overdue_tasks(session=dbsession) == 1
    assert sweep_overdue_tasks.labels["schedule"] == [{"cron": "0 * * * *"}]
