"""
EditorSession: the per-session context object.

One session owns one GraphStore, ExecutionStateTracker, History and (when a
job runner is supplied) JobBridge. It is constructed explicitly and handed to
whatever needs it; nothing here is module-global.

``run_node`` is the node-run boundary: every error a run can produce is caught
here and turned into an execution state transition plus a message, so the
graph and history stay valid whatever a single run does.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import logging

from ..config import Settings
from .Errors import JobError, ValidationError
from .ExecutionState import ExecutionStateTracker
from .GraphPrimitives import Edge, GraphSnapshot, Position
from .GraphStore import GraphStore
from .History import History
from .JobBridge import JobBridge, JobRunner, PollSchedule
from .Node import ExecutionContext, Node, NodeData
from .Types import ExecutionStatus, NodeKind

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 100 * 1024 * 1024

# listener(event_type, payload)
SessionListener = Callable[[str, Dict[str, Any]], None]


@dataclass(frozen=True)
class RunOutcome:
    node_id: str
    status: ExecutionStatus
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    # True when the run was not started: already running or invalid input
    skipped: bool = False


class EditorSession:
    def __init__(self,
                 runner: Optional[JobRunner] = None,
                 media: Any = None,
                 settings: Optional[Settings] = None,
                 sleep: Optional[Callable[[float], Any]] = None):
        self.settings = settings or Settings()
        self.store = GraphStore(validator_fail_open=self.settings.validator_fail_open)
        self.tracker = ExecutionStateTracker()
        self.history = History(self.store, limit=self.settings.history_limit)
        self.media = media

        self.bridge: Optional[JobBridge] = None
        if runner is not None:
            schedule = PollSchedule(self.settings.poll_interval, self.settings.poll_attempts)
            if sleep is not None:
                self.bridge = JobBridge(runner, schedule, sleep=sleep)
            else:
                self.bridge = JobBridge(runner, schedule)

        self._run_slots: Optional[asyncio.Semaphore] = None
        if self.settings.max_concurrent_runs:
            self._run_slots = asyncio.Semaphore(self.settings.max_concurrent_runs)

        self._listeners: List[SessionListener] = []
        self.tracker.on_transition(self._on_transition)

    # --- Events ---

    def subscribe(self, callback: SessionListener) -> None:
        self._listeners.append(callback)

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        for callback in self._listeners:
            try:
                callback(event_type, payload)
            except Exception:
                logger.exception(f"Session listener failed on '{event_type}'")

    def _on_transition(self, node_id, previous, current, message) -> None:
        self._emit("status", {"nodeId": node_id, "status": current.value, "error": message})

    # --- Structural edits (recorded in history) ---

    def add_node(self,
                 kind: Union[NodeKind, str],
                 position: Optional[Position] = None,
                 data: Union[NodeData, Dict[str, Any], None] = None,
                 id: Optional[str] = None) -> Node:
        node = Node.create_node(kind, id=id, position=position, data=data)
        with self.history.recording():
            self.store.add_node(node)
        self._publish_source(node)
        self._emit("graph", {"action": "add_node", "nodeId": node.id})
        return node

    def remove_node(self, node_id: str) -> bool:
        with self.history.recording():
            removed = self.store.remove_node(node_id)
        if removed:
            self._emit("graph", {"action": "remove_node", "nodeId": node_id})
        return removed

    def connect(self, source: str, source_handle: str, target: str, target_handle: str,
                replace: bool = True) -> Edge:
        edge = Edge.between(source, source_handle, target, target_handle)
        with self.history.recording():
            edge = self.store.add_edge(edge, replace=replace)
        self._emit("graph", {"action": "connect", "edgeId": edge.id})
        return edge

    def disconnect(self, edge_id: str) -> bool:
        with self.history.recording():
            removed = self.store.remove_edge(edge_id)
        if removed:
            self._emit("graph", {"action": "disconnect", "edgeId": edge_id})
        return removed

    def update_node_data(self, node_id: str, **changes) -> Node:
        with self.history.recording():
            node = self.store.update_node_data(node_id, **changes)
        self._publish_source(node)
        self._emit("graph", {"action": "update_node_data", "nodeId": node_id})
        return node

    def move_node(self, node_id: str, position: Position) -> Node:
        with self.history.recording():
            node = self.store.move_node(node_id, position)
        return node

    def snapshot(self) -> GraphSnapshot:
        return self.history.snapshot()

    def undo(self) -> bool:
        changed = self.history.undo()
        if changed:
            self._emit("graph", {"action": "undo"})
        return changed

    def redo(self) -> bool:
        changed = self.history.redo()
        if changed:
            self._emit("graph", {"action": "redo"})
        return changed

    # --- Live data ---

    def set_live_data(self, node_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        entry = self.store.set_live_data(node_id, fields)
        self._emit("live_data", {"nodeId": node_id, "data": entry})
        return entry

    def _publish_source(self, node: Node) -> None:
        # Pure nodes publish their own output as soon as it is edited
        fields = node.live_fields()
        if fields:
            self.set_live_data(node.id, fields)

    def resolve_input(self, node_id: str, handle_name: str) -> Any:
        return self.store.resolve_input(node_id, handle_name)

    # --- Runs ---

    async def run_node(self, node_id: str) -> RunOutcome:
        """
        Run one node: gather inputs, validate, execute and apply the result.

        A second call while the node is running is a no-op. Invalid input is
        reported without leaving the current state.
        """
        node = self.store.require_node(node_id)

        if self.tracker.is_running(node_id):
            return RunOutcome(node_id, ExecutionStatus.RUNNING, skipped=True)

        try:
            payload = self._prepare(node)
        except ValidationError as exc:
            logger.info(f"Run of '{node_id}' rejected: {exc}")
            self._emit("run_rejected", {"nodeId": node_id, "error": str(exc)})
            return RunOutcome(node_id, self.tracker.status(node_id), error=str(exc), skipped=True)

        self.tracker.start(node_id)
        context = ExecutionContext(node, payload, bridge=self.bridge, media=self.media)

        try:
            if self._run_slots is not None:
                async with self._run_slots:
                    output = await node.compute(context)
            else:
                output = await node.compute(context)
        except asyncio.CancelledError:
            self._fail(node_id, "Run cancelled")
            raise
        except JobError as exc:
            self._fail(node_id, exc.message)
            return RunOutcome(node_id, ExecutionStatus.FAILED, error=exc.message)
        except Exception as exc:
            logger.exception(f"Run of node '{node_id}' failed")
            self._fail(node_id, str(exc) or type(exc).__name__)
            return RunOutcome(node_id, ExecutionStatus.FAILED, error=str(exc) or type(exc).__name__)

        if not self.tracker.is_running(node_id):
            return self._discarded(node_id)

        # data first, then state: a completed node always has its outputs
        self.set_live_data(node_id, output)
        self.tracker.complete(node_id)
        return RunOutcome(node_id, ExecutionStatus.COMPLETED, output=output)

    def _fail(self, node_id: str, message: str) -> None:
        # a workflow load resets run state while a run is in flight
        if self.tracker.is_running(node_id):
            self.tracker.fail(node_id, message)

    def _discarded(self, node_id: str) -> RunOutcome:
        logger.info(f"Discarding result for '{node_id}': run state was reset while it ran")
        return RunOutcome(node_id, self.tracker.status(node_id), skipped=True)

    def _prepare(self, node: Node) -> Dict[str, Any]:
        if not node.isRunnable():
            raise ValidationError(f"{node.kind.value} nodes cannot be run")
        if node.job_kind and self.bridge is None:
            raise ValidationError(f"No job runner configured for {node.job_kind}")
        if node.requires_media and self.media is None:
            raise ValidationError(f"No media service configured for {node.kind.value}")
        return node.prepare(self.store.gather_inputs(node))

    async def upload_media(self, node_id: str, content: bytes, filename: str,
                           media_type: Optional[str] = None) -> RunOutcome:
        """Upload a file for an upload node and publish the resulting URL."""
        node = self.store.require_node(node_id)
        resource_type = getattr(node, "upload_resource_type", None)

        if resource_type is None:
            return RunOutcome(node_id, self.tracker.status(node_id),
                              error=f"{node.kind.value} nodes do not accept uploads", skipped=True)
        if self.media is None:
            return RunOutcome(node_id, self.tracker.status(node_id),
                              error="No media service configured", skipped=True)
        if len(content) > MAX_UPLOAD_BYTES:
            return RunOutcome(node_id, self.tracker.status(node_id), error="File is too large", skipped=True)
        if not self.tracker.start(node_id):
            return RunOutcome(node_id, ExecutionStatus.RUNNING, skipped=True)

        try:
            url = await self.media.upload(content, filename, resource_type)
        except asyncio.CancelledError:
            self._fail(node_id, "Upload cancelled")
            raise
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc) or "Upload failed"
            logger.warning(f"Upload for '{node_id}' failed: {message}")
            self._fail(node_id, message)
            return RunOutcome(node_id, ExecutionStatus.FAILED, error=message)

        if not self.tracker.is_running(node_id):
            return self._discarded(node_id)

        if node_id in self.store.nodes:
            node = self.update_node_data(node_id, **node.uploaded(url, media_type))
        fields = node.live_fields() or {}
        self.set_live_data(node_id, fields)
        self.tracker.complete(node_id)
        return RunOutcome(node_id, ExecutionStatus.COMPLETED, output=fields)

    # --- Persistence ---

    def export_snapshot(self) -> GraphSnapshot:
        return self.store.capture()

    def load_snapshot(self, snapshot: GraphSnapshot) -> None:
        """Replace the graph with *snapshot*; history, live data and run state start empty."""
        fresh = GraphStore(validator_fail_open=self.settings.validator_fail_open)
        for node in snapshot.nodes:
            fresh.add_node(node.copy())
        for edge in snapshot.edges:
            fresh.add_edge(edge, replace=False)

        self.store.restore(fresh.capture())
        self.store.live_data.clear()
        self.tracker.reset()
        self.history.clear()
        for node in self.store.nodes.values():
            self._publish_source(node)
        self._emit("graph", {"action": "load"})

    def export_workflow(self) -> Dict[str, Any]:
        from ..serializers.workflow_serializer import serialize_workflow
        return serialize_workflow(self.export_snapshot())

    def load_workflow(self, payload: Dict[str, Any]) -> None:
        from ..serializers.workflow_serializer import deserialize_workflow
        self.load_snapshot(deserialize_workflow(payload))
