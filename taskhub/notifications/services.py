from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accounts.models import PushToken, User
from taskhub.notifications import push
from taskhub.notifications.enums import PUSH_TITLES, NotificationType
from taskhub.notifications.models import Notification
from taskhub.notifications.realtime import manager
from taskhub.notifications.schemas import NotificationOut
from taskhub.utils import NotFound, utcnow

# per-type opt-out flag on User; types missing here are always pushed
_PUSH_SETTING = {
    NotificationType.TASK_ASSIGNED: "notify_task_assigned",
    NotificationType.TASK_UPDATED: "notify_task_updated",
    NotificationType.TASK_COMMENT: "notify_task_updated",
    NotificationType.TASK_COMPLETED: "notify_task_completed",
}


def wants_push(user: User, type_: NotificationType) -> bool:
    if not user.push_notifications:
        return False
    flag = _PUSH_SETTING.get(type_)
    return flag is None or bool(getattr(user, flag))


async def notify(
    session: AsyncSession,
    *,
    user: User,
    type_: NotificationType,
    message: str,
    task_id: Optional[int] = None,
    organization_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> Notification:
    """
    Store an in-app notification, then fan it out over the real-time channel
    and, when the recipient allows it, as a push notification.

    Only storing can fail the caller; delivery problems are logged.
    """
    notification = Notification(
        user_id=user.id,
        organization_id=organization_id if organization_id is not None else user.organization_id,
        type=type_,
        message=message,
        task_id=task_id,
        payload=payload or {},
    )
    session.add(notification)
    await session.flush()

    try:
        await manager.broadcast_to_user(
            user.id,
            {
                "event": "notification",
                "data": NotificationOut.model_validate(notification).model_dump(mode="json"),
            },
        )
    except Exception as e:
        logger.warning("Real-time delivery to user {} failed: {}", user.id, e)

    if wants_push(user, type_):
        await _push(session, user, notification)
    return notification


async def _push(session: AsyncSession, user: User, notification: Notification) -> None:
    tokens = list(
        (
            await session.execute(
                select(PushToken.token).where(PushToken.user_id == user.id)
            )
        ).scalars().all()
    )
    if not tokens:
        return
    data = {"type": notification.type.value, "notificationId": str(notification.id)}
    if notification.task_id is not None:
        data["taskId"] = str(notification.task_id)
    try:
        stale = await push.send_push(
            tokens, PUSH_TITLES[notification.type], notification.message, data
        )
    except Exception as e:
        logger.error("Push delivery to user {} failed: {}", user.id, e)
        return
    if stale:
        await session.execute(
            delete(PushToken).where(
                PushToken.user_id == user.id, PushToken.token.in_(stale)
            )
        )
        logger.info("Removed {} invalid push tokens of user {}", len(stale), user.id)


def _own(stmt, user_id: int, organization_id: Optional[int]):
    stmt = stmt.where(Notification.user_id == user_id)
    if organization_id is not None:
        stmt = stmt.where(Notification.organization_id == organization_id)
    return stmt


async def list_notifications(
    session: AsyncSession,
    *,
    user_id: int,
    organization_id: Optional[int],
    is_read: Optional[bool] = None,
    limit: int = 50,
) -> tuple[Sequence[Notification], int]:
    stmt = _own(select(Notification), user_id, organization_id)
    if is_read is not None:
        stmt = stmt.where(Notification.is_read.is_(is_read))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    notifications = (await session.execute(stmt)).scalars().all()

    unread_stmt = _own(
        select(func.count(Notification.id)), user_id, organization_id
    ).where(Notification.is_read.is_(False))
    unread_count = (await session.execute(unread_stmt)).scalar_one()
    return notifications, unread_count


async def _get_own(
    session: AsyncSession, notification_id: int, user_id: int, organization_id: Optional[int]
) -> Notification:
    stmt = _own(
        select(Notification).where(Notification.id == notification_id),
        user_id,
        organization_id,
    )
    notification = (await session.execute(stmt)).scalar_one_or_none()
    if notification is None:
        raise NotFound("Notification not found.")
    return notification


async def mark_read(
    session: AsyncSession,
    notification_id: int,
    *,
    user_id: int,
    organization_id: Optional[int],
) -> Notification:
    notification = await _get_own(session, notification_id, user_id, organization_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await session.flush()
        await session.refresh(notification)
    return notification


async def mark_all_read(
    session: AsyncSession, *, user_id: int, organization_id: Optional[int]
) -> int:
    stmt = _own(update(Notification), user_id, organization_id).where(
        Notification.is_read.is_(False)
    ).values(is_read=True, read_at=utcnow())
    result = await session.execute(stmt)
    return result.rowcount


async def delete_notification(
    session: AsyncSession,
    notification_id: int,
    *,
    user_id: int,
    organization_id: Optional[int],
) -> None:
    notification = await _get_own(session, notification_id, user_id, organization_id)
    await session.delete(notification)
    await session.flush()


async def clear_all(
    session: AsyncSession, *, user_id: int, organization_id: Optional[int]
) -> int:
    stmt = _own(delete(Notification), user_id, organization_id)
    result = await session.execute(stmt)
    return result.rowcount
