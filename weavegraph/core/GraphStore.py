from collections import defaultdict
from typing import Optional, List, Dict, Any, Tuple

import logging

from .Errors import DuplicateId, DuplicateTarget, InvalidConnection, NodeNotFound
from .GraphPrimitives import Edge, GraphSnapshot, Position
from .Node import Node
from .Validator import is_valid_connection

logger = logging.getLogger(__name__)


class GraphStore:
    """
    Canonical node list, edge list and live data table for one editor session.

    Every mutation is synchronous and visible to readers as soon as it returns.
    Live data is keyed by node id and resolved through the edges at read time.
    """

    def __init__(self, validator_fail_open: bool = False):
        self.validator_fail_open = validator_fail_open

        self.nodes: Dict[str, Node] = {}
        self.edges: Dict[str, Edge] = {}
        self.live_data: Dict[str, Dict[str, Any]] = {}

        # (target, target_handle) -> edge id; an input handle has one producer
        self.incoming_edges: Dict[Tuple[str, str], str] = {}
        # (source, source_handle) -> [edge id]; fan-out is allowed
        self.outgoing_edges: Dict[Tuple[str, str], List[str]] = defaultdict(list)

    # --- Nodes ---

    def add_node(self, node: Node) -> Node:
        if node.id in self.nodes:
            raise DuplicateId(f"Node with id '{node.id}' already exists")
        self.nodes[node.id] = node
        logger.debug(f"Added {node.kind.value} node '{node.id}'")
        return node

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    def require_node(self, node_id: str) -> Node:
        node = self.nodes.get(node_id)
        if node is None:
            raise NodeNotFound(f"Node '{node_id}' does not exist")
        return node

    def remove_node(self, node_id: str) -> bool:
        if node_id not in self.nodes:
            return False

        incident = [e.id for e in self.edges.values() if e.source == node_id or e.target == node_id]
        for edge_id in incident:
            self.remove_edge(edge_id)

        del self.nodes[node_id]
        logger.debug(f"Removed node '{node_id}' and {len(incident)} incident edge(s)")
        return True

    def update_node_data(self, node_id: str, **changes) -> Node:
        node = self.require_node(node_id)
        node.data = node.with_data(**changes)
        return node

    def move_node(self, node_id: str, position: Position) -> Node:
        node = self.require_node(node_id)
        node.position = Position(*position)
        return node

    # --- Edges ---

    def add_edge(self, edge: Edge, replace: bool = True) -> Edge:
        source_node = self.nodes.get(edge.source)
        target_node = self.nodes.get(edge.target)

        if source_node is None or target_node is None:
            raise InvalidConnection(f"Cannot connect {edge!r}: endpoint node does not exist")

        if not is_valid_connection(source_node, edge.source_handle, target_node, edge.target_handle,
                                   fail_open=self.validator_fail_open):
            logger.warning(f"Rejected connection {edge!r}")
            raise InvalidConnection(
                f"Cannot connect {source_node.kind.value}.{edge.source_handle} "
                f"to {target_node.kind.value}.{edge.target_handle}"
            )

        existing_id = self.incoming_edges.get((edge.target, edge.target_handle))
        if existing_id is not None:
            existing = self.edges[existing_id]
            if existing.sameEndpoints(edge):
                return existing
            if not replace:
                raise DuplicateTarget(
                    f"Input handle '{edge.target_handle}' on node '{edge.target}' is already connected"
                )

        clash = self.edges.get(edge.id)
        if clash is not None and clash.id != existing_id:
            raise DuplicateId(f"Edge with id '{edge.id}' already exists")

        if existing_id is not None:
            logger.debug(f"Replacing {self.edges[existing_id]!r} with {edge!r}")
            self.remove_edge(existing_id)

        self.edges[edge.id] = edge
        self.incoming_edges[(edge.target, edge.target_handle)] = edge.id
        self.outgoing_edges[(edge.source, edge.source_handle)].append(edge.id)
        return edge

    def remove_edge(self, edge_id: str) -> bool:
        edge = self.edges.pop(edge_id, None)
        if edge is None:
            return False

        key = (edge.target, edge.target_handle)
        if self.incoming_edges.get(key) == edge_id:
            del self.incoming_edges[key]

        outgoing = self.outgoing_edges.get((edge.source, edge.source_handle))
        if outgoing and edge_id in outgoing:
            outgoing.remove(edge_id)
            if not outgoing:
                del self.outgoing_edges[(edge.source, edge.source_handle)]
        return True

    def get_incoming_edge(self, node_id: str, handle_name: str) -> Optional[Edge]:
        edge_id = self.incoming_edges.get((node_id, handle_name))
        return self.edges.get(edge_id) if edge_id else None

    def get_outgoing_edges(self, node_id: str, handle_name: str) -> List[Edge]:
        return [self.edges[e] for e in self.outgoing_edges.get((node_id, handle_name), [])]

    # --- Live data ---

    def set_live_data(self, node_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        entry = self.live_data.setdefault(node_id, {})
        entry.update(fields)
        return dict(entry)

    def get_live_data(self, node_id: str) -> Dict[str, Any]:
        return dict(self.live_data.get(node_id, {}))

    def resolve_input(self, node_id: str, handle_name: str) -> Any:
        """Value currently at the other end of an input handle, or None."""
        edge = self.get_incoming_edge(node_id, handle_name)
        if edge is None:
            return None

        source_node = self.nodes.get(edge.source)
        if source_node is None:
            return None

        source_handle = source_node.outputs.get(edge.source_handle)
        field = source_handle.field if source_handle else edge.source_handle
        return self.live_data.get(edge.source, {}).get(field)

    def gather_inputs(self, node: Node) -> Dict[str, Any]:
        return {name: self.resolve_input(node.id, name) for name in node.inputs}

    # --- Snapshots ---

    def capture(self) -> GraphSnapshot:
        return GraphSnapshot(
            nodes=tuple(node.copy() for node in self.nodes.values()),
            edges=tuple(self.edges.values()),
        )

    def restore(self, snapshot: GraphSnapshot) -> None:
        """Replace nodes and edges with *snapshot*. Live data is left alone."""
        self.nodes = {node.id: node.copy() for node in snapshot.nodes}
        self.edges = {}
        self.incoming_edges = {}
        self.outgoing_edges = defaultdict(list)
        for edge in snapshot.edges:
            self.edges[edge.id] = edge
            self.incoming_edges[(edge.target, edge.target_handle)] = edge.id
            self.outgoing_edges[(edge.source, edge.source_handle)].append(edge.id)

    def reset(self) -> None:
        self.nodes.clear()
        self.edges.clear()
        self.live_data.clear()
        self.incoming_edges.clear()
        self.outgoing_edges.clear()
