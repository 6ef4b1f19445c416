from contextlib import contextmanager
from typing import Iterator, List

import logging

from ..config import DEFAULT_HISTORY_LIMIT
from .GraphPrimitives import GraphSnapshot
from .GraphStore import GraphStore

logger = logging.getLogger(__name__)


class History:
    """
    Snapshot undo/redo over the structural part of a GraphStore.

    Only nodes and edges are captured. Live data and execution state are never
    part of a snapshot, so async results do not land in the undo stack.
    """

    def __init__(self, store: GraphStore, limit: int = DEFAULT_HISTORY_LIMIT):
        self.store = store
        self.limit = limit
        self.undo_stack: List[GraphSnapshot] = []
        self.redo_stack: List[GraphSnapshot] = []

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def snapshot(self) -> GraphSnapshot:
        """Push the current graph onto the undo stack and clear redo."""
        snap = self.store.capture()
        self._push(snap)
        return snap

    @contextmanager
    def recording(self) -> Iterator[GraphSnapshot]:
        """Record the graph before an edit; keep it only if the edit changed something."""
        before = self.store.capture()
        yield before
        if self.store.capture() != before:
            self._push(before)

    def undo(self) -> bool:
        current = self.store.capture()
        while self.undo_stack:
            previous = self.undo_stack.pop()
            if previous == current:
                continue
            self.redo_stack.append(current)
            self.store.restore(previous)
            logger.debug(f"Undo: {len(self.undo_stack)} left, {len(self.redo_stack)} to redo")
            return True
        return False

    def redo(self) -> bool:
        current = self.store.capture()
        while self.redo_stack:
            following = self.redo_stack.pop()
            if following == current:
                continue
            self.undo_stack.append(current)
            self.store.restore(following)
            logger.debug(f"Redo: {len(self.redo_stack)} left")
            return True
        return False

    def clear(self) -> None:
        self.undo_stack.clear()
        self.redo_stack.clear()

    def _push(self, snap: GraphSnapshot) -> None:
        self.undo_stack.append(snap)
        self.redo_stack.clear()
        if self.limit and len(self.undo_stack) > self.limit:
            del self.undo_stack[0]
