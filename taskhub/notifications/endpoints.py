from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.dependencies import RequestContext, get_request_context, resolve_context
from taskhub.db.dependencies import get_db_session
from taskhub.notifications import services
from taskhub.notifications.realtime import manager, org_room, user_room
from taskhub.notifications.schemas import ClearedOut, NotificationList, NotificationOut
from taskhub.settings import settings
from taskhub.utils import Forbidden, Unauthorized, translate_service_errors

router = APIRouter()


@router.get("", response_model=NotificationList)
@translate_service_errors
async def list_notifications(
    is_read: Optional[bool] = None,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    """The 50 newest notifications and the unread count."""
    notifications, unread_count = await services.list_notifications(
        session,
        user_id=ctx.user.id,
        organization_id=ctx.organization_id,
        is_read=is_read,
    )
    return NotificationList(
        notifications=[NotificationOut.model_validate(n) for n in notifications],
        unread_count=unread_count,
    )


@router.patch("/read-all", response_model=ClearedOut)
@translate_service_errors
async def mark_all_read(
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    count = await services.mark_all_read(
        session, user_id=ctx.user.id, organization_id=ctx.organization_id
    )
    return ClearedOut(count=count)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
@translate_service_errors
async def mark_read(
    notification_id: int,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    return await services.mark_read(
        session,
        notification_id,
        user_id=ctx.user.id,
        organization_id=ctx.organization_id,
    )


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
@translate_service_errors
async def delete_notification(
    notification_id: int,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    await services.delete_notification(
        session,
        notification_id,
        user_id=ctx.user.id,
        organization_id=ctx.organization_id,
    )


@router.delete("", response_model=ClearedOut)
@translate_service_errors
async def clear_all(
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
):
    count = await services.clear_all(
        session, user_id=ctx.user.id, organization_id=ctx.organization_id
    )
    return ClearedOut(count=count)


@router.websocket("/ws")
async def notifications_ws(websocket: WebSocket, token: Optional[str] = None):
    """
    Real-time channel. Authenticated with the session cookie or a ``token``
    query parameter, the socket joins its user room and organization room.
    """
    token = token or websocket.cookies.get(settings.cookie_name)
    session_factory = websocket.app.state.db_session_factory
    async with session_factory() as session:
        try:
            ctx = await resolve_context(session, token)
        except (Unauthorized, Forbidden) as e:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
            return

    rooms = [user_room(ctx.user.id)]
    if ctx.organization_id is not None:
        rooms.append(org_room(ctx.organization_id))
    await manager.connect(websocket, rooms)
    logger.debug("Socket connected for user {} in {}", ctx.user.id, rooms)

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                logger.debug("Ignoring non-JSON frame from user {}", ctx.user.id)
                continue
            if not isinstance(message, dict):
                continue
            if message.get("event") == "task-update" and ctx.organization_id is not None:
                await manager.broadcast_to_org(
                    ctx.organization_id,
                    {"event": "task-updated", "data": message.get("data")},
                    exclude=websocket,
                )
    except WebSocketDisconnect:
        logger.debug("Socket disconnected for user {}", ctx.user.id)
    finally:
        manager.disconnect(websocket)
