from __future__ import annotations

import asyncio
import json
import uuid
from collections import defaultdict
from typing import Any, DefaultDict, Dict, Iterable, Optional, Set

from fastapi import WebSocket
from loguru import logger
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

RECONNECT_DELAY = 1.0


def user_room(user_id: int) -> str:
    return f"user-{user_id}"


def org_room(organization_id: int) -> str:
    return f"org-{organization_id}"


class ConnectionManager:
    """
    Registry of live WebSocket connections grouped by room.

    Every connection joins its user's room and its organization's room.
    Sockets only live in the process that accepted them, so once
    :meth:`start` is called every broadcast is also published on a Redis
    channel. Each web process listens on that channel and relays what other
    processes (other web workers, the taskiq worker) published to its own
    sockets.
    """

    def __init__(self, channel: str = "taskhub:realtime") -> None:
        self.rooms: DefaultDict[str, Set[WebSocket]] = defaultdict(set)
        self.channel = channel
        self.instance_id = uuid.uuid4().hex
        self.redis: Optional[Redis] = None
        self._listener: Optional[asyncio.Task] = None

    # ---- Lifecycle ----
    async def start(
        self, redis_pool: ConnectionPool, channel: Optional[str] = None, listen: bool = True
    ) -> None:
        """
        Publish broadcasts through Redis. With ``listen`` the manager also
        relays broadcasts of other processes to the local sockets.
        """
        if channel:
            self.channel = channel
        self.redis = Redis(connection_pool=redis_pool)
        if listen:
            self._listener = asyncio.create_task(self._listen())
        logger.info("Real-time fan-out on Redis channel {} (listening: {})", self.channel, listen)

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None

    async def _listen(self) -> None:
        while True:
            pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
            try:
                await pubsub.subscribe(self.channel)
                async for message in pubsub.listen():
                    await self.relay(message["data"])
            except RedisError as e:
                logger.warning("Real-time subscription lost: {}, reconnecting", e)
                await asyncio.sleep(RECONNECT_DELAY)
            finally:
                await pubsub.aclose()

    # ---- Connections ----
    async def connect(self, websocket: WebSocket, rooms: Iterable[str]) -> None:
        await websocket.accept()
        self.join(websocket, rooms)

    def join(self, websocket: WebSocket, rooms: Iterable[str]) -> None:
        for room in rooms:
            self.rooms[room].add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        for room in list(self.rooms):
            self.rooms[room].discard(websocket)
            if not self.rooms[room]:
                del self.rooms[room]

    def connection_count(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    # ---- Delivery ----
    async def _deliver(
        self,
        room: str,
        message: Dict[str, Any],
        exclude: Optional[WebSocket] = None,
    ) -> int:
        delivered = 0
        for websocket in list(self.rooms.get(room, ())):
            if websocket is exclude:
                continue
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning("Dropping dead socket in room {}: {}", room, e)
                self.disconnect(websocket)
        return delivered

    async def _publish(self, room: str, message: Dict[str, Any]) -> None:
        if self.redis is None:
            return
        envelope = json.dumps({"origin": self.instance_id, "room": room, "message": message})
        try:
            await self.redis.publish(self.channel, envelope)
        except RedisError as e:
            logger.warning("Could not publish to room {}: {}", room, e)

    async def relay(self, raw: Any) -> int:
        """Deliver a broadcast published by another process to the local sockets."""
        try:
            envelope = json.loads(raw)
            origin, room, message = envelope["origin"], envelope["room"], envelope["message"]
        except (TypeError, ValueError, KeyError) as e:
            logger.warning("Ignoring malformed real-time envelope: {}", e)
            return 0
        if origin == self.instance_id:
            return 0
        return await self._deliver(room, message)

    async def broadcast_to_room(
        self,
        room: str,
        message: Dict[str, Any],
        exclude: Optional[WebSocket] = None,
    ) -> int:
        """
        Send ``message`` to every socket in ``room``. Returns how many local
        sockets got it.
        """
        delivered = await self._deliver(room, message, exclude)
        await self._publish(room, message)
        return delivered

    async def broadcast_to_user(self, user_id: int, message: Dict[str, Any]) -> int:
        return await self.broadcast_to_room(user_room(user_id), message)

    async def broadcast_to_org(
        self,
        organization_id: int,
        message: Dict[str, Any],
        exclude: Optional[WebSocket] = None,
    ) -> int:
        return await self.broadcast_to_room(org_room(organization_id), message, exclude)


manager = ConnectionManager()
