"""
Editor REST routes. Every route drives the EditorSession kept in
``app.state.session``.

All routes are mounted under /api by main.py.
"""
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, NoReturn, Optional

import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response
from pydantic import BaseModel

from ...core.EditorSession import EditorSession, RunOutcome
from ...core.Errors import NodeNotFound
from ...core.GraphPrimitives import Position
from ...core.Node import Node

logger = logging.getLogger(__name__)

router = APIRouter()


def _session(request: Request) -> EditorSession:
    return request.app.state.session


def _raise_http(exc: ValueError) -> NoReturn:
    status = 404 if isinstance(exc, NodeNotFound) else 400
    raise HTTPException(status_code=status, detail=str(exc))


def _node_summary(node: Node) -> Dict[str, Any]:
    return {
        "id": node.id,
        "type": node.kind.value,
        "position": {"x": node.position.x, "y": node.position.y},
        "data": node.data.to_dict(),
        "inputs": list(node.inputs),
        "outputs": list(node.outputs),
    }


def _outcome(outcome: RunOutcome) -> Dict[str, Any]:
    return {
        "nodeId": outcome.node_id,
        "status": outcome.status.value,
        "output": outcome.output,
        "error": outcome.error,
        "skipped": outcome.skipped,
    }


# ── GET /node-types ───────────────────────────────────────────────────────────

@router.get("/node-types")
async def get_node_types() -> List[str]:
    return [kind.value for kind in Node._node_registry]


# ── GET /workflow ─────────────────────────────────────────────────────────────

@router.get("/workflow")
async def get_workflow(request: Request) -> Dict[str, Any]:
    return _session(request).export_workflow()


# ── PUT /workflow ─────────────────────────────────────────────────────────────

class WorkflowBody(BaseModel):
    nodes: List[Dict[str, Any]] = []
    edges: List[Dict[str, Any]] = []


@router.put("/workflow")
async def put_workflow(request: Request, body: WorkflowBody) -> Dict[str, Any]:
    session = _session(request)
    try:
        session.load_workflow({"nodes": body.nodes, "edges": body.edges})
    except ValueError as exc:
        _raise_http(exc)
    return session.export_workflow()


# ── POST /nodes ───────────────────────────────────────────────────────────────

class CreateNodeBody(BaseModel):
    type: str
    id: Optional[str] = None
    position: Optional[Dict[str, float]] = None
    data: Optional[Dict[str, Any]] = None


@router.post("/nodes", status_code=201)
async def create_node(request: Request, body: CreateNodeBody) -> Dict[str, Any]:
    session = _session(request)
    position = None
    if body.position:
        position = Position(body.position.get("x", 0.0), body.position.get("y", 0.0))
    try:
        node = session.add_node(body.type, position=position, data=body.data, id=body.id)
    except ValueError as exc:
        _raise_http(exc)
    return _node_summary(node)


# ── PATCH /nodes/:nodeId ──────────────────────────────────────────────────────

class UpdateNodeBody(BaseModel):
    data: Dict[str, Any] = {}
    position: Optional[Dict[str, float]] = None


@router.patch("/nodes/{node_id}")
async def update_node(request: Request, node_id: str, body: UpdateNodeBody) -> Dict[str, Any]:
    session = _session(request)
    try:
        node = session.store.require_node(node_id)
        if body.data:
            # wire keys are camelCase, dataclass fields snake_case
            changes = type(node.data).from_dict({**node.data.to_dict(), **body.data})
            node = session.update_node_data(node_id, **asdict(changes))
        if body.position:
            node = session.move_node(node_id, Position(body.position.get("x", 0.0), body.position.get("y", 0.0)))
    except ValueError as exc:
        _raise_http(exc)
    return _node_summary(node)


# ── DELETE /nodes/:nodeId ─────────────────────────────────────────────────────

@router.delete("/nodes/{node_id}", status_code=204)
async def delete_node(request: Request, node_id: str) -> Response:
    if not _session(request).remove_node(node_id):
        raise HTTPException(status_code=404, detail="Node not found")
    return Response(status_code=204)


# ── POST /edges ───────────────────────────────────────────────────────────────

class EdgeBody(BaseModel):
    source: str
    sourceHandle: str
    target: str
    targetHandle: str
    replace: bool = True


@router.post("/edges", status_code=201)
async def add_edge(request: Request, body: EdgeBody) -> Dict[str, Any]:
    try:
        edge = _session(request).connect(
            body.source, body.sourceHandle, body.target, body.targetHandle, replace=body.replace,
        )
    except ValueError as exc:
        _raise_http(exc)
    return {
        "id": edge.id,
        "source": edge.source,
        "sourceHandle": edge.source_handle,
        "target": edge.target,
        "targetHandle": edge.target_handle,
    }


# ── DELETE /edges/:edgeId ─────────────────────────────────────────────────────

@router.delete("/edges/{edge_id}", status_code=204)
async def delete_edge(request: Request, edge_id: str) -> Response:
    if not _session(request).disconnect(edge_id):
        raise HTTPException(status_code=404, detail="Edge not found")
    return Response(status_code=204)


# ── POST /nodes/:nodeId/run ───────────────────────────────────────────────────

@router.post("/nodes/{node_id}/run")
async def run_node(request: Request, node_id: str) -> Dict[str, Any]:
    try:
        outcome = await _session(request).run_node(node_id)
    except ValueError as exc:
        _raise_http(exc)
    return _outcome(outcome)


# ── POST /nodes/:nodeId/upload ────────────────────────────────────────────────
# The file is sent as the raw request body.

@router.post("/nodes/{node_id}/upload")
async def upload_node_media(
    request: Request,
    node_id: str,
    filename: str = Query(..., description="Original file name"),
) -> Dict[str, Any]:
    content = await request.body()
    if not content:
        raise HTTPException(status_code=400, detail="Empty upload")
    media_type = request.headers.get("content-type")
    try:
        outcome = await _session(request).upload_media(node_id, content, filename, media_type)
    except ValueError as exc:
        _raise_http(exc)
    return _outcome(outcome)


# ── GET /nodes/:nodeId/state ──────────────────────────────────────────────────

@router.get("/nodes/{node_id}/state")
async def get_node_state(request: Request, node_id: str) -> Dict[str, Any]:
    session = _session(request)
    try:
        session.store.require_node(node_id)
    except ValueError as exc:
        _raise_http(exc)
    return {
        "nodeId": node_id,
        "status": session.tracker.status(node_id).value,
        "error": session.tracker.error(node_id),
        "data": session.store.get_live_data(node_id),
    }


# ── POST /history/undo, /history/redo ─────────────────────────────────────────

@router.post("/history/undo")
async def undo(request: Request) -> Dict[str, Any]:
    session = _session(request)
    changed = session.undo()
    return {"changed": changed, "canUndo": session.history.can_undo, "canRedo": session.history.can_redo}


@router.post("/history/redo")
async def redo(request: Request) -> Dict[str, Any]:
    session = _session(request)
    changed = session.redo()
    return {"changed": changed, "canUndo": session.history.can_undo, "canRedo": session.history.can_redo}
