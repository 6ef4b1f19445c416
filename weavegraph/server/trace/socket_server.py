"""
Socket.IO bridge for trace events.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(fastapi_app, emitter)` returns the composite ASGI
application to pass to uvicorn.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict

import logging

import socketio

from .trace_emitter import TraceEmitter

logger = logging.getLogger(__name__)


def create_socket_server(emitter: TraceEmitter) -> socketio.AsyncServer:
    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins="*",
        logger=False,
        engineio_logger=False,
    )

    def _on_trace(event: Dict[str, Any]) -> None:
        """
        Called synchronously by TraceEmitter.fire().
        We schedule an async emit on the running event loop.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # no loop: edits made outside the server, nobody to notify
        loop.create_task(sio.emit("trace", event))

    emitter.on_trace(_on_trace)

    @sio.event
    async def connect(sid: str, environ: dict) -> None:
        logger.debug(f"Trace client connected: {sid}")

    @sio.event
    async def disconnect(sid: str) -> None:
        logger.debug(f"Trace client disconnected: {sid}")

    return sio


def create_socket_app(fastapi_app: Any, emitter: TraceEmitter) -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    return socketio.ASGIApp(create_socket_server(emitter), other_asgi_app=fastapi_app)
