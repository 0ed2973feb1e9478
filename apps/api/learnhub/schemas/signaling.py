"""Event vocabulary exchanged over the Socket.IO signaling connection."""
from __future__ import annotations

import enum


class ClientEvent(str, enum.Enum):
    """Events a connected client may send to the relay."""

    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    START_SCREEN_SHARE = "start-screen-share"
    STOP_SCREEN_SHARE = "stop-screen-share"
    TOGGLE_MEDIA = "toggle-media"
    CHAT_MESSAGE = "chat-message"
    JOIN_CONVERSATION = "join-conversation"
    LEAVE_CONVERSATION = "leave-conversation"
    DISCONNECT = "disconnect"


class ServerEvent(str, enum.Enum):
    """Events the relay delivers to clients."""

    EXISTING_USERS = "existing-users"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    USER_SCREEN_SHARING = "user-screen-sharing"
    USER_MEDIA_TOGGLE = "user-media-toggle"
    CHAT_MESSAGE = "chat-message"
    NEW_MESSAGE = "new-message"


# Signaling messages forwarded verbatim to one target, keyed by the payload field they carry.
DIRECT_SIGNALS: dict[ClientEvent, tuple[ServerEvent, str]] = {
    ClientEvent.OFFER: (ServerEvent.OFFER, "offer"),
    ClientEvent.ANSWER: (ServerEvent.ANSWER, "answer"),
    ClientEvent.ICE_CANDIDATE: (ServerEvent.ICE_CANDIDATE, "candidate"),
}


def conversation_group(conversation_id: object) -> str:
    """Return the transport group name for a chat conversation."""

    return f"conversation-{conversation_id}"
