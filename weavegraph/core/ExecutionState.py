from typing import Callable, Dict, List, Optional

import logging

from .Errors import InvalidTransition
from .Types import ExecutionStatus

logger = logging.getLogger(__name__)

# listener(node_id, previous, current, message)
TransitionListener = Callable[[str, ExecutionStatus, ExecutionStatus, Optional[str]], None]


class ExecutionStateTracker:
    """
    Per-node run lifecycle: idle -> running -> completed | failed.

    Kept apart from live data so a node can show its last good output while a
    new run is in flight or after a run failed.
    """

    def __init__(self):
        self._states: Dict[str, ExecutionStatus] = {}
        self._errors: Dict[str, str] = {}
        self._listeners: List[TransitionListener] = []

    def on_transition(self, callback: TransitionListener) -> None:
        self._listeners.append(callback)

    def status(self, node_id: str) -> ExecutionStatus:
        return self._states.get(node_id, ExecutionStatus.IDLE)

    def error(self, node_id: str) -> Optional[str]:
        return self._errors.get(node_id)

    def is_running(self, node_id: str) -> bool:
        return self.status(node_id) == ExecutionStatus.RUNNING

    def start(self, node_id: str) -> bool:
        """Move to running. Returns False, changing nothing, if already running."""
        if self.is_running(node_id):
            logger.debug(f"Node '{node_id}' is already running; ignoring start")
            return False
        self._errors.pop(node_id, None)
        self._set(node_id, ExecutionStatus.RUNNING)
        return True

    def complete(self, node_id: str) -> None:
        self._require_running(node_id, ExecutionStatus.COMPLETED)
        self._set(node_id, ExecutionStatus.COMPLETED)

    def fail(self, node_id: str, message: str) -> None:
        self._require_running(node_id, ExecutionStatus.FAILED)
        self._errors[node_id] = message
        self._set(node_id, ExecutionStatus.FAILED, message)

    def reset(self) -> None:
        """Forget every node's status and error; all nodes read as idle again."""
        self._states.clear()
        self._errors.clear()

    def _require_running(self, node_id: str, target: ExecutionStatus) -> None:
        current = self.status(node_id)
        if current != ExecutionStatus.RUNNING:
            raise InvalidTransition(
                f"Node '{node_id}' cannot move from {current.value} to {target.value}"
            )

    def _set(self, node_id: str, status: ExecutionStatus, message: Optional[str] = None) -> None:
        previous = self.status(node_id)
        self._states[node_id] = status
        logger.debug(f"Node '{node_id}': {previous.value} -> {status.value}")
        for callback in self._listeners:
            try:
                callback(node_id, previous, status, message)
            except Exception:
                logger.exception("Execution state listener failed")
