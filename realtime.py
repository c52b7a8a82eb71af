# /quickpick/realtime.py
# Socket.IO relay for chat. It holds no authoritative state: messages are
# stored through chat_service first and only then pushed to subscribers.

import logging
from typing import Dict, Optional, Set
from urllib.parse import parse_qs

import socketio
from socketio import exceptions as sio_exceptions
from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool

from auth.utils import Identity, decode_access_token
from config import CORS_ORIGINS
from services import chat_service
from services.chat_service import Participant

logger = logging.getLogger("CHAT_SOCKET")

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if CORS_ORIGINS == ["*"] else CORS_ORIGINS,
)


class SubscriptionRegistry:
    """Who is connected as whom, and which room each socket is listening to.

    In-memory only. A reconnecting client starts from nothing and joins again.
    """

    def __init__(self):
        self.identities: Dict[str, Identity] = {}
        self.rooms: Dict[str, Set[str]] = {}
        self.current: Dict[str, str] = {}

    def connect(self, sid: str, identity: Identity):
        self.identities[sid] = identity

    def identity(self, sid: str) -> Optional[Identity]:
        return self.identities.get(sid)

    def join(self, sid: str, chat_id: str) -> Optional[str]:
        """Subscribes `sid` to `chat_id`; returns the room it had to leave, if any."""
        previous = self.current.get(sid)
        if previous == chat_id:
            return None
        if previous:
            self.leave(sid, previous)
        self.rooms.setdefault(chat_id, set()).add(sid)
        self.current[sid] = chat_id
        return previous

    def leave(self, sid: str, chat_id: str) -> bool:
        members = self.rooms.get(chat_id)
        if not members or sid not in members:
            return False
        members.discard(sid)
        if not members:
            del self.rooms[chat_id]
        if self.current.get(sid) == chat_id:
            del self.current[sid]
        return True

    def drop(self, sid: str):
        chat_id = self.current.get(sid)
        if chat_id:
            self.leave(sid, chat_id)
        self.identities.pop(sid, None)

    def members(self, chat_id: str) -> Set[str]:
        return set(self.rooms.get(chat_id, ()))


registry = SubscriptionRegistry()


def token_from_handshake(environ: dict, auth) -> Optional[str]:
    if isinstance(auth, dict) and auth.get("token"):
        return auth["token"]
    query = parse_qs(environ.get("QUERY_STRING", ""))
    tokens = query.get("token")
    return tokens[0] if tokens else None


async def notify_failure(sid: str, error: str):
    logger.warning("Chat event from %s failed: %s", sid, error)
    await sio.emit("messageFailed", {"error": error}, to=sid)


# --- Socket.IO events ---

@sio.event
async def connect(sid, environ, auth=None):
    token = token_from_handshake(environ, auth)
    if not token:
        raise sio_exceptions.ConnectionRefusedError("Not authorized, no token")
    try:
        identity = decode_access_token(token)
    except HTTPException as e:
        raise sio_exceptions.ConnectionRefusedError(e.detail)
    if identity.role not in chat_service.CHAT_ROLES:
        raise sio_exceptions.ConnectionRefusedError("Only buyers and sellers can use chat")

    registry.connect(sid, identity)
    logger.info("Socket %s connected as %s %s", sid, identity.role, identity.id)


@sio.event
async def disconnect(sid, reason=None):
    registry.drop(sid)
    logger.info("Socket %s disconnected", sid)


@sio.event
async def joinChat(sid, chat_id):
    identity = registry.identity(sid)
    if identity is None:
        await notify_failure(sid, "Not authorized")
        return
    chat_id = str(chat_id)
    try:
        await run_in_threadpool(chat_service.get_room_for_participant, chat_id, Participant.from_identity(identity))
    except HTTPException as e:
        await notify_failure(sid, e.detail)
        return

    previous = registry.join(sid, chat_id)
    if previous:
        await sio.leave_room(sid, previous)
    await sio.enter_room(sid, chat_id)
    logger.info("Socket %s joined chat %s", sid, chat_id)


@sio.event
async def leaveChat(sid, chat_id):
    chat_id = str(chat_id)
    if registry.leave(sid, chat_id):
        await sio.leave_room(sid, chat_id)
        logger.info("Socket %s left chat %s", sid, chat_id)


@sio.event
async def sendMessage(sid, data):
    identity = registry.identity(sid)
    if identity is None:
        await notify_failure(sid, "Not authorized")
        return
    if not isinstance(data, dict):
        await notify_failure(sid, "Invalid message payload")
        return

    chat_id = str(data.get("chatId") or "")
    sender_id = str(data.get("senderId") or "")
    sender_role = data.get("senderRole")
    if sender_id != identity.id or sender_role != identity.role:
        await notify_failure(sid, "Sender does not match the authenticated user")
        return

    try:
        message = await run_in_threadpool(
            chat_service.record_message, chat_id, sender_id, sender_role, data.get("text")
        )
    except HTTPException as e:
        await notify_failure(sid, e.detail)
        return
    except Exception:
        logger.exception("Could not store message for chat %s", chat_id)
        await notify_failure(sid, "Server error")
        return

    # Stored; now fan out to everyone subscribed to the room.
    await sio.emit("receiveMessage", message, room=chat_id)
