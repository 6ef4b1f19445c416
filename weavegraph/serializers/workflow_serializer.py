"""
Workflow serializer: GraphSnapshot <-> the persisted workflow wire shape.

Only structure is persisted. Live data and execution state are never written.

    {"nodes": [{"id", "type", "position": {"x", "y"}, "data": {...}}],
     "edges": [{"id", "source", "sourceHandle", "target", "targetHandle"}]}
"""
from __future__ import annotations

from typing import Any, Dict, List

from ..core.GraphPrimitives import Edge, GraphSnapshot, Position
from ..core.Node import Node


def _serialize_node(node: Node) -> Dict[str, Any]:
    return {
        "id": node.id,
        "type": node.kind.value,
        "position": {"x": node.position.x, "y": node.position.y},
        "data": node.data.to_dict(),
    }


def _serialize_edge(edge: Edge) -> Dict[str, Any]:
    return {
        "id": edge.id,
        "source": edge.source,
        "sourceHandle": edge.source_handle,
        "target": edge.target,
        "targetHandle": edge.target_handle,
    }


def serialize_workflow(snapshot: GraphSnapshot) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "nodes": [_serialize_node(n) for n in snapshot.nodes],
        "edges": [_serialize_edge(e) for e in snapshot.edges],
    }


def deserialize_workflow(payload: Dict[str, Any]) -> GraphSnapshot:
    """
    Build a GraphSnapshot from a persisted workflow.

    Raises ValueError for unknown node types or malformed entries; edge
    validity is checked when the snapshot is loaded into a session.
    """
    nodes = []
    for raw in payload.get("nodes", []):
        if "id" not in raw or "type" not in raw:
            raise ValueError(f"Node entry needs 'id' and 'type': {raw!r}")
        pos = raw.get("position") or {}
        nodes.append(Node.create_node(
            raw["type"],
            id=raw["id"],
            position=Position(float(pos.get("x", 0)), float(pos.get("y", 0))),
            data=raw.get("data") or {},
        ))

    edges = []
    for raw in payload.get("edges", []):
        try:
            edges.append(Edge.between(
                raw["source"], raw["sourceHandle"], raw["target"], raw["targetHandle"], id=raw.get("id"),
            ))
        except KeyError as exc:
            raise ValueError(f"Edge entry missing {exc.args[0]!r}: {raw!r}") from None

    return GraphSnapshot(tuple(nodes), tuple(edges))
