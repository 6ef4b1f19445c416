"""
FastAPI + Socket.IO shell around one EditorSession.

Start with:
    python -m weavegraph.server.main

Or via uvicorn directly:
    uvicorn weavegraph.server.main:socket_app --factory --port 3001
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Optional

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import Settings
from ..core.EditorSession import EditorSession
from ..core.JobBridge import JobRunner
from ..services.cloudinary import CloudinaryMedia
from ..services.trigger_client import TriggerDevClient
from .routes.editor_routes import router
from .trace.socket_server import create_socket_app
from .trace.trace_emitter import TraceEmitter

logger = logging.getLogger(__name__)


def _default_runner(settings: Settings) -> Optional[TriggerDevClient]:
    if not settings.trigger_secret_key:
        logger.warning("TRIGGER_SECRET_KEY not set; run-llm and extract-frame nodes are disabled")
        return None
    return TriggerDevClient.from_settings(settings)


def _default_media(settings: Settings) -> Optional[CloudinaryMedia]:
    if not settings.cloudinary_cloud_name or not settings.cloudinary_upload_preset:
        logger.warning("Cloudinary is not configured; uploads and crops are disabled")
        return None
    return CloudinaryMedia.from_settings(settings)


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None,
               runner: Optional[JobRunner] = None,
               media: Any = None,
               sleep=None) -> FastAPI:
    """
    Build the FastAPI app with its own session and trace emitter.

    Collaborators not passed in are built from *settings*; a missing
    credential disables the nodes that need it rather than failing startup.
    """
    settings = settings or Settings.from_env()
    owned = []
    if runner is None:
        runner = _default_runner(settings)
        owned.append(runner)
    if media is None:
        media = _default_media(settings)
        owned.append(media)

    session = EditorSession(runner=runner, media=media, settings=settings, sleep=sleep)
    emitter = TraceEmitter()
    emitter.attach(session)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        for client in owned:
            if client is not None:
                await client.aclose()

    app = FastAPI(title="Weavegraph API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.session = session
    app.state.emitter = emitter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


# ---------------------------------------------------------------------------
# Wrap with Socket.IO ASGI layer
# ---------------------------------------------------------------------------

def socket_app(settings: Optional[Settings] = None):
    """
    Top-level ASGI app passed to uvicorn. Socket.IO connections are handled
    at the root; all other requests are forwarded to the inner FastAPI app.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    return create_socket_app(app, app.state.emitter)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "weavegraph.server.main:socket_app",
        factory=True,
        host="0.0.0.0",
        port=3001,
    )
