from typing import NamedTuple, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .Node import Node


class Position(NamedTuple):
    x: float = 0.0
    y: float = 0.0


def make_edge_id(source: str, source_handle: str, target: str, target_handle: str) -> str:
    return f"{source}:{source_handle}->{target}:{target_handle}"


# Edge is a plain immutable record. The store owns the indexes over it.
class Edge(NamedTuple):
    id: str
    source: str
    source_handle: str
    target: str
    target_handle: str

    @classmethod
    def between(cls, source: str, source_handle: str, target: str, target_handle: str,
                id: Optional[str] = None) -> 'Edge':
        edge_id = id or make_edge_id(source, source_handle, target, target_handle)
        return cls(edge_id, source, source_handle, target, target_handle)

    def sameEndpoints(self, other: 'Edge') -> bool:
        return self[1:] == other[1:]

    def __repr__(self):
        return f"Edge({self.source}.{self.source_handle} -> {self.target}.{self.target_handle})"


class GraphSnapshot(NamedTuple):
    """Structural state only: nodes and edges, never live data or run state."""
    nodes: Tuple['Node', ...] = ()
    edges: Tuple[Edge, ...] = ()
