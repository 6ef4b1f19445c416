"""
TraceEmitter: fan-out of editor session events to registered listeners
(sockets, loggers, tests).

One emitter per app. ``attach(session)`` subscribes it to a session so graph
edits, live data updates and status transitions become trace events.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, List

import logging

logger = logging.getLogger(__name__)

TraceListener = Callable[[Dict[str, Any]], None]


class TraceEmitter:
    def __init__(self) -> None:
        self._listeners: List[TraceListener] = []

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on_trace(self, callback: TraceListener) -> None:
        """Register a callback that receives every emitted trace event."""
        self._listeners.append(callback)

    def attach(self, session) -> None:
        session.subscribe(self._on_session_event)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    def fire(self, payload: Dict[str, Any]) -> None:
        """Stamp the payload with a millisecond timestamp and broadcast it."""
        if "ts" not in payload:
            payload["ts"] = _now_ms()
        for cb in self._listeners:
            try:
                cb(payload)
            except Exception:
                logger.exception("Trace listener failed")

    def _on_session_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.fire({"type": event_type, **payload})


def _now_ms() -> int:
    return int(time.time() * 1000)
