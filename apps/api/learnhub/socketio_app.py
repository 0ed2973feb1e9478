"""Socket.IO server wiring for the signaling relay."""
from __future__ import annotations

import logging
from typing import Any

import socketio

from .core.config import Settings
from .schemas.signaling import ClientEvent
from .services.signaling import SignalingRelay

logger = logging.getLogger(__name__)


class SocketIOTransport:
    """Adapt ``socketio.AsyncServer`` to the relay's transport interface."""

    def __init__(self, server: socketio.AsyncServer) -> None:
        self._server = server

    async def emit(self, event: str, data: Any, to: str | None, skip_sid: str | None = None) -> None:
        # python-socketio treats a missing recipient as "everyone"; a payload without a target goes nowhere.
        if to is None:
            logger.debug("Dropping %s without a recipient", event)
            return
        await self._server.emit(event, data, to=to, skip_sid=skip_sid)

    async def enter_room(self, sid: str, room: str) -> None:
        await self._server.enter_room(sid, room)

    async def leave_room(self, sid: str, room: str) -> None:
        await self._server.leave_room(sid, room)


def create_server(settings: Settings) -> socketio.AsyncServer:
    """Build the ASGI Socket.IO server."""

    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=settings.cors_allow_origins,
        logger=settings.socketio_logger,
        engineio_logger=settings.socketio_logger,
    )


def _forward(relay: SignalingRelay, event: ClientEvent):
    async def handler(sid: str, *args: Any) -> None:
        await relay.handle(sid, event, *args)

    handler.__name__ = f"on_{event.name.lower()}"
    return handler


def register_handlers(sio: socketio.AsyncServer, relay: SignalingRelay) -> None:
    """Route every client event on the default namespace through the relay."""

    async def connect(sid: str, environ: dict, auth: Any = None) -> bool:
        logger.info("User connected: %s", sid)
        return True

    sio.on("connect", handler=connect)
    for event in ClientEvent:
        sio.on(event.value, handler=_forward(relay, event))
