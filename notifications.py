"""
Presence and notification routing over socket.io.

Every connected client announces its user id with `setup` and joins a room
named after that id; clients viewing a conversation also join a room named
after the conversation id to receive typing indicators. Server pushes are
fire-and-forget: no acknowledgement, no retry, nothing stored for offline
users.
"""
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from functools import partial
from typing import Any, Dict, List, Optional, Set

import anyio.from_thread
import socketio
from loguru import logger

EVENT_CONNECTED = "connected"
EVENT_MESSAGE_RECEIVED = "message received"
EVENT_NEW_POST = "new-post"
EVENT_POST_DELETED = "post-deleted"
EVENT_POST_COMPLETED = "post-completed"
EVENT_KARMA_UPDATED = "karma-updated"
EVENT_NOTIFICATION = "notification"
EVENT_TYPING = "typing"
EVENT_STOP_TYPING = "stop typing"


class SessionRegistry:
    """Connected socket sessions keyed by user id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[str, str] = {}
        self._sessions: Dict[str, Set[str]] = defaultdict(set)

    def register(self, sid: str, user_id: str) -> None:
        with self._lock:
            previous = self._users.get(sid)
            if previous and previous != user_id:
                self._drop(sid, previous)
            self._users[sid] = user_id
            self._sessions[user_id].add(sid)

    def unregister(self, sid: str) -> Optional[str]:
        with self._lock:
            user_id = self._users.pop(sid, None)
            if user_id:
                self._drop(sid, user_id)
            return user_id

    def _drop(self, sid: str, user_id: str) -> None:
        sids = self._sessions.get(user_id)
        if sids is None:
            return
        sids.discard(sid)
        if not sids:
            del self._sessions[user_id]

    def user_for(self, sid: str) -> Optional[str]:
        with self._lock:
            return self._users.get(sid)

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return bool(self._sessions.get(user_id))

    def online_users(self) -> List[str]:
        with self._lock:
            return list(self._sessions)


class Notifier(ABC):
    @abstractmethod
    def to_user(self, user_id: str, event: str, data: Any = None) -> None:
        """Push an event to the room named after `user_id`."""

    @abstractmethod
    def broadcast(self, event: str, data: Any = None) -> None:
        """Push an event to every connected client."""

    def notify_user(self, user_id: str, message: str, karma_points: Optional[int] = None) -> None:
        self.to_user(user_id, EVENT_NOTIFICATION, {"message": message, "karma_points": karma_points})


class NullNotifier(Notifier):
    """Stands in when no router is wired up; the mutation still goes through."""

    def to_user(self, user_id, event, data=None):
        logger.warning("Notification router unavailable, dropped '{}' for user {}", event, user_id)

    def broadcast(self, event, data=None):
        logger.warning("Notification router unavailable, dropped '{}' broadcast", event)


class SocketNotifier(Notifier):
    """Emits through a socket.io AsyncServer from sync request handlers.

    FastAPI runs sync endpoints in anyio worker threads, so emits are handed
    back to the event loop with `anyio.from_thread.run`.
    """

    def __init__(self, sio: socketio.AsyncServer, registry: SessionRegistry):
        self.sio = sio
        self.registry = registry

    def to_user(self, user_id, event, data=None):
        if not self.registry.is_online(user_id):
            logger.debug("User {} offline, '{}' not delivered", user_id, event)
            return
        self._emit(event, data, room=user_id)

    def broadcast(self, event, data=None):
        self._emit(event, data)

    def _emit(self, event: str, data: Any, room: Optional[str] = None) -> None:
        try:
            anyio.from_thread.run(partial(self.sio.emit, event, data, room=room))
        except RuntimeError:
            logger.warning("No event loop reachable, skipped '{}' push", event)


def _extract_user_id(payload: Any) -> Optional[str]:
    if isinstance(payload, str):
        return payload or None
    if isinstance(payload, dict):
        value = payload.get("id") or payload.get("_id")
        return str(value) if value else None
    return None


class SocketEvents:
    """Client-to-server socket handlers: setup, join chat, typing, stop typing."""

    def __init__(self, sio: socketio.AsyncServer, registry: SessionRegistry):
        self.sio = sio
        self.registry = registry

    def bind(self) -> None:
        self.sio.on("connect", self.connect)
        self.sio.on("setup", self.setup)
        self.sio.on("join chat", self.join_chat)
        self.sio.on(EVENT_TYPING, self.typing)
        self.sio.on(EVENT_STOP_TYPING, self.stop_typing)
        self.sio.on("disconnect", self.disconnect)

    async def connect(self, sid, environ, auth=None):
        logger.debug("Socket {} connected", sid)

    async def setup(self, sid, user):
        user_id = _extract_user_id(user)
        if not user_id:
            logger.warning("Socket {} sent setup without a user id", sid)
            return
        previous = self.registry.user_for(sid)
        if previous and previous != user_id:
            await self.sio.leave_room(sid, previous)
        await self.sio.enter_room(sid, user_id)
        self.registry.register(sid, user_id)
        logger.info("User joined room: {}", user_id)
        await self.sio.emit(EVENT_CONNECTED, room=sid)

    async def join_chat(self, sid, room):
        if not room:
            return
        await self.sio.enter_room(sid, str(room))
        logger.info("Socket {} joined chat {}", sid, room)

    async def typing(self, sid, room):
        if room:
            await self.sio.emit(EVENT_TYPING, room=str(room), skip_sid=sid)

    async def stop_typing(self, sid, room):
        if room:
            await self.sio.emit(EVENT_STOP_TYPING, room=str(room), skip_sid=sid)

    async def disconnect(self, sid, *args):
        user_id = self.registry.unregister(sid)
        logger.info("User disconnected: {}", user_id or sid)


def create_socket_server(cors_origins: List[str]) -> socketio.AsyncServer:
    origins = "*" if "*" in cors_origins else cors_origins
    return socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=origins)
