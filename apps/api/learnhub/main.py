"""FastAPI application with the Socket.IO signaling relay mounted alongside."""
from __future__ import annotations

import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from .core.config import settings
from .routers import chat as chat_router
from .services.signaling import SignalingRelay
from .socketio_app import SocketIOTransport, create_server, register_handlers

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LearnHub Realtime API", version="0.1.0")

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

sio = create_server(settings)
relay = SignalingRelay(SocketIOTransport(sio))
register_handlers(sio, relay)
app.state.relay = relay

app.include_router(chat_router.router, prefix="/api/chat", tags=["chat"])

# Entry point for uvicorn: Socket.IO on /socket.io/, everything else to FastAPI.
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=settings.socketio_path)


@app.get("/api/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness check."""

    return {"status": "ok"}


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)


@app.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def index() -> PlainTextResponse:
    return PlainTextResponse("LearnHub realtime API")


logger.info("Socket.IO relay ready at /%s/", settings.socketio_path.strip("/"))
