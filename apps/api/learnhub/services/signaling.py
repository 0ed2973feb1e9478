"""In-memory room signaling relay for WebRTC sessions and chat notifications.

Rooms are keyed by a caller-supplied id and hold one participant record per
connection id. The registry is only touched from inside event handlers and
every mutation completes before the first ``await``, so handlers never
observe a half-applied change and no lock is required.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Protocol

from ..schemas.signaling import DIRECT_SIGNALS, ClientEvent, ServerEvent, conversation_group

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown"


class RelayNotInitializedError(RuntimeError):
    """Raised when the relay is requested before the realtime server exists."""


class Transport(Protocol):
    """Delivery primitives the relay needs from the realtime server."""

    async def emit(self, event: str, data: Any, to: str, skip_sid: str | None = None) -> None:
        ...

    async def enter_room(self, sid: str, room: str) -> None:
        ...

    async def leave_room(self, sid: str, room: str) -> None:
        ...


@dataclass(slots=True)
class Participant:
    """Identity a connection announced when joining a room."""

    user_id: Any
    user_name: Any


class RoomRegistry:
    """Room id to participant map, plus the reverse index used on disconnect."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, Participant]] = {}
        self._memberships: Dict[str, set[str]] = {}

    def add(self, room_id: str, connection_id: str, participant: Participant) -> list[tuple[str, Participant]]:
        """Record a participant and return everyone else already in the room."""

        participants = self._rooms.setdefault(room_id, {})
        participants[connection_id] = participant
        self._memberships.setdefault(connection_id, set()).add(room_id)
        return [(sid, member) for sid, member in participants.items() if sid != connection_id]

    def remove(self, room_id: str, connection_id: str) -> bool:
        """Drop a participant, deleting the room once empty. Return whether it was present."""

        participants = self._rooms.get(room_id)
        if not participants or connection_id not in participants:
            return False
        del participants[connection_id]
        if not participants:
            del self._rooms[room_id]

        rooms = self._memberships.get(connection_id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self._memberships[connection_id]
        return True

    def rooms_of(self, connection_id: str) -> list[str]:
        return list(self._memberships.get(connection_id, ()))

    def get(self, room_id: str, connection_id: str) -> Participant | None:
        return self._rooms.get(room_id, {}).get(connection_id)

    def participants(self, room_id: str) -> dict[str, Participant]:
        return dict(self._rooms.get(room_id, {}))

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)


def _field(data: Any, key: str) -> Any:
    """Read a payload key, treating non-mapping payloads as empty."""

    if isinstance(data, dict):
        return data.get(key)
    return None


def _address(value: Any) -> str | int | None:
    """Return a usable room or connection id, or ``None`` for anything else."""

    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return value
    return None


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SignalingRelay:
    """Relay room presence, WebRTC negotiation and chat events between connections."""

    def __init__(self, transport: Transport, clock: Callable[[], str] = _utc_timestamp) -> None:
        self._transport = transport
        self._clock = clock
        self.rooms = RoomRegistry()
        self._handlers: dict[ClientEvent, Callable[..., Awaitable[None]]] = {
            ClientEvent.JOIN_ROOM: self.join_room,
            ClientEvent.LEAVE_ROOM: self.leave_room,
            ClientEvent.OFFER: self._relay_offer,
            ClientEvent.ANSWER: self._relay_answer,
            ClientEvent.ICE_CANDIDATE: self._relay_ice_candidate,
            ClientEvent.START_SCREEN_SHARE: self._start_screen_share,
            ClientEvent.STOP_SCREEN_SHARE: self._stop_screen_share,
            ClientEvent.TOGGLE_MEDIA: self.toggle_media,
            ClientEvent.CHAT_MESSAGE: self.chat_message,
            ClientEvent.JOIN_CONVERSATION: self.join_conversation,
            ClientEvent.LEAVE_CONVERSATION: self.leave_conversation,
            ClientEvent.DISCONNECT: self.disconnect,
        }

    async def handle(self, sid: str, event: ClientEvent | str, *args: Any) -> None:
        """Dispatch one incoming client event."""

        try:
            kind = ClientEvent(event)
        except ValueError:
            logger.debug("Ignoring unknown event %r from %s", event, sid)
            return
        await self._handlers[kind](sid, *args)

    async def join_room(
        self,
        sid: str,
        room_id: Any = None,
        user_id: Any = None,
        user_name: Any = None,
        *_: Any,
    ) -> None:
        """Add ``sid`` to a room, announce it, and send it the current roster."""

        if isinstance(room_id, dict):
            room_id, user_id, user_name = room_id.get("roomId"), room_id.get("userId"), room_id.get("userName")

        room_id = _address(room_id)
        if room_id is None:
            logger.debug("Ignoring join-room without a usable room id from %s", sid)
            return

        others = self.rooms.add(room_id, sid, Participant(user_id=user_id, user_name=user_name))
        snapshot = [
            {"socketId": other_sid, "userId": member.user_id, "userName": member.user_name}
            for other_sid, member in others
        ]

        await self._transport.enter_room(sid, room_id)
        await self._transport.emit(
            ServerEvent.USER_JOINED.value,
            {"socketId": sid, "userId": user_id, "userName": user_name},
            to=room_id,
            skip_sid=sid,
        )
        await self._transport.emit(ServerEvent.EXISTING_USERS.value, snapshot, to=sid)
        logger.info("User %s joined room %s", user_name, room_id)

    async def leave_room(self, sid: str, room_id: Any = None, *_: Any) -> None:
        """Remove ``sid`` from a room; a room it never joined is left untouched."""

        if isinstance(room_id, dict):
            room_id = room_id.get("roomId")
        room_id = _address(room_id)

        if room_id is None or not self.rooms.remove(room_id, sid):
            logger.debug("Connection %s is not in room %s", sid, room_id)
            return

        await self._transport.emit(ServerEvent.USER_LEFT.value, {"socketId": sid}, to=room_id, skip_sid=sid)
        await self._transport.leave_room(sid, room_id)
        logger.info("User %s left room %s", sid, room_id)

    async def disconnect(self, sid: str, *_: Any) -> None:
        """Drop ``sid`` from every room it belongs to."""

        logger.info("User disconnected: %s", sid)
        departed = self.rooms.rooms_of(sid)
        for room_id in departed:
            self.rooms.remove(room_id, sid)
        for room_id in departed:
            await self._transport.emit(ServerEvent.USER_LEFT.value, {"socketId": sid}, to=room_id, skip_sid=sid)

    async def relay_signal(self, sid: str, event: ClientEvent, data: Any = None, *_: Any) -> None:
        """Forward an offer, answer or ICE candidate to its target connection."""

        server_event, key = DIRECT_SIGNALS[event]
        target = _address(_field(data, "target"))
        if target is None:
            return
        await self._transport.emit(
            server_event.value,
            {key: _field(data, key), "sender": sid},
            to=target,
            skip_sid=sid,
        )

    async def _relay_offer(self, sid: str, data: Any = None, *_: Any) -> None:
        await self.relay_signal(sid, ClientEvent.OFFER, data)

    async def _relay_answer(self, sid: str, data: Any = None, *_: Any) -> None:
        await self.relay_signal(sid, ClientEvent.ANSWER, data)

    async def _relay_ice_candidate(self, sid: str, data: Any = None, *_: Any) -> None:
        await self.relay_signal(sid, ClientEvent.ICE_CANDIDATE, data)

    async def screen_share(self, sid: str, data: Any, is_sharing: bool) -> None:
        room_id = _address(_field(data, "roomId"))
        if room_id is None:
            return
        await self._transport.emit(
            ServerEvent.USER_SCREEN_SHARING.value,
            {"socketId": sid, "isSharing": is_sharing},
            to=room_id,
            skip_sid=sid,
        )

    async def _start_screen_share(self, sid: str, data: Any = None, *_: Any) -> None:
        await self.screen_share(sid, data, True)

    async def _stop_screen_share(self, sid: str, data: Any = None, *_: Any) -> None:
        await self.screen_share(sid, data, False)

    async def toggle_media(self, sid: str, data: Any = None, *_: Any) -> None:
        room_id = _address(_field(data, "roomId"))
        if room_id is None:
            return
        await self._transport.emit(
            ServerEvent.USER_MEDIA_TOGGLE.value,
            {"socketId": sid, "video": _field(data, "video"), "audio": _field(data, "audio")},
            to=room_id,
            skip_sid=sid,
        )

    async def chat_message(self, sid: str, data: Any = None, *_: Any) -> None:
        """Broadcast a room chat line to every member, the sender included."""

        room_id = _address(_field(data, "roomId"))
        if room_id is None:
            return
        participant = self.rooms.get(room_id, sid)
        await self._transport.emit(
            ServerEvent.CHAT_MESSAGE.value,
            {
                "message": _field(data, "message"),
                "userName": (participant.user_name if participant else None) or UNKNOWN_USER_NAME,
                "userId": (participant.user_id if participant else None) or sid,
                "timestamp": self._clock(),
            },
            to=room_id,
        )

    async def join_conversation(self, sid: str, conversation_id: Any = None, *_: Any) -> None:
        await self._transport.enter_room(sid, conversation_group(conversation_id))
        logger.info("User %s joined conversation %s", sid, conversation_id)

    async def leave_conversation(self, sid: str, conversation_id: Any = None, *_: Any) -> None:
        await self._transport.leave_room(sid, conversation_group(conversation_id))
        logger.info("User %s left conversation %s", sid, conversation_id)

    async def notify_new_message(self, conversation_id: Any, message: Any) -> None:
        """Push a persisted chat message to everyone subscribed to its conversation."""

        await self._transport.emit(
            ServerEvent.NEW_MESSAGE.value,
            {"message": message, "conversationId": str(conversation_id)},
            to=conversation_group(conversation_id),
        )


def get_relay(app: "FastAPI") -> SignalingRelay:
    """Return the relay attached to the application at startup."""

    relay = getattr(app.state, "relay", None)
    if relay is None:
        raise RelayNotInitializedError("Socket.IO relay not initialized")
    return relay


def get_relay_or_none(request: "Request") -> SignalingRelay | None:
    """FastAPI dependency yielding the relay, or ``None`` when realtime is unavailable."""

    try:
        return get_relay(request.app)
    except RelayNotInitializedError as exc:
        logger.warning("Realtime notifications disabled: %s", exc)
        return None
