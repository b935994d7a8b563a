"""Workflow graph model used by the editor and the simulator."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Iterator, List, Optional, Tuple

from .domain import Edge, Node, NodeKind, Payload, payload_type_for
from .repository import (
    DanglingReferenceError,
    DuplicateIdError,
    InMemoryRepository,
    InvalidHandleError,
    NotFoundError,
)

_ROW_HANDLE = re.compile(r"^(branch|item|sub)-(\d+)$")


def parse_row_handle(handle: Optional[str]) -> Optional[Tuple[str, int]]:
    """Split ``branch-2`` style handles into ``("branch", 2)``.

    Handles that do not address an output row return ``None``.
    """

    if not handle:
        return None
    match = _ROW_HANDLE.match(handle)
    if match is None:
        return None
    return match.group(1), int(match.group(2))


class WorkflowGraph:
    """Nodes and edges of one process workflow.

    Insertion order is preserved for both collections; the order of
    ``outgoing_edges`` is what the simulator uses to break ties.
    """

    def __init__(self) -> None:
        self._nodes: InMemoryRepository[Node] = InMemoryRepository()
        self._edges: InMemoryRepository[Edge] = InMemoryRepository()

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def add_node(self, node: Node) -> Node:
        self._nodes.add(node.id, node)
        return node

    def remove_node(self, node_id: str) -> None:
        if self._nodes.discard(node_id) is None:
            return
        for edge in self._edges:
            if edge.source == node_id or edge.target == node_id:
                self._edges.discard(edge.id)

    def update_payload(self, node_id: str, payload: Payload) -> Node:
        node = self.find_node(node_id)
        expected = payload_type_for(node.kind)
        if type(payload) is not expected:
            raise ValueError(
                f"Node {node_id!r} of kind {node.kind.value!r} expects {expected.__name__}"
            )
        updated = replace(node, payload=payload)
        self._nodes.replace(node_id, updated)
        return updated

    def move_node(self, node_id: str, position: Tuple[float, float]) -> Node:
        node = self.find_node(node_id)
        updated = replace(node, position=(float(position[0]), float(position[1])))
        self._nodes.replace(node_id, updated)
        return updated

    def add_edge(self, edge: Edge, *, check_handle: bool = True) -> Edge:
        for endpoint in (edge.source, edge.target):
            if endpoint not in self._nodes:
                raise DanglingReferenceError(
                    f"Edge {edge.id!r} references unknown node {endpoint!r}"
                )
        if edge.id in self._edges:
            raise DuplicateIdError(f"Edge with id {edge.id!r} already exists")
        source = self._nodes.get(edge.source)
        if check_handle and not self.handle_resolves(source, edge.source_handle):
            raise InvalidHandleError(
                f"Node {source.id!r} has no output row for handle {edge.source_handle!r}"
            )
        self._edges.add(edge.id, edge)
        return edge

    def connect(
        self, source: str, target: str, source_handle: Optional[str] = None
    ) -> Edge:
        """Create an edge with a generated id."""

        base = f"e-{source}-{target}"
        if source_handle:
            base = f"{base}-{source_handle}"
        edge_id = base
        suffix = 1
        while edge_id in self._edges:
            edge_id = f"{base}-{suffix}"
            suffix += 1
        return self.add_edge(
            Edge(id=edge_id, source=source, target=target, source_handle=source_handle)
        )

    def remove_edge(self, edge_id: str) -> None:
        self._edges.discard(edge_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def find_node(self, node_id: str) -> Node:
        try:
            return self._nodes.get(node_id)
        except NotFoundError as exc:
            raise NotFoundError(f"Node {node_id!r} not found") from exc

    def find_edge(self, edge_id: str) -> Edge:
        try:
            return self._edges.get(edge_id)
        except NotFoundError as exc:
            raise NotFoundError(f"Edge {edge_id!r} not found") from exc

    def nodes(self) -> List[Node]:
        return self._nodes.list()

    def edges(self) -> List[Edge]:
        return self._edges.list()

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self._edges if edge.source == node_id]

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self._edges if edge.target == node_id]

    def nodes_of_kind(self, kind: NodeKind) -> List[Node]:
        return [node for node in self._nodes if node.kind == kind]

    def start_node(self) -> Optional[Node]:
        starts = self.nodes_of_kind(NodeKind.START)
        return starts[0] if starts else None

    @staticmethod
    def handle_resolves(node: Node, handle: Optional[str]) -> bool:
        parsed = parse_row_handle(handle)
        if parsed is None:
            return True
        prefix, index = parsed
        return index < node.payload.output_rows().get(prefix, 0)

    def dangling_handles(self) -> List[Edge]:
        """Edges whose source handle no longer matches a row of the source node."""

        return [
            edge
            for edge in self._edges
            if not self.handle_resolves(self._nodes.get(edge.source), edge.source_handle)
        ]

    def copy(self) -> "WorkflowGraph":
        clone = WorkflowGraph()
        for node in self._nodes:
            clone._nodes.add(node.id, node)
        for edge in self._edges:
            clone._edges.add(edge.id, edge)
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WorkflowGraph):
            return NotImplemented
        return self.nodes() == other.nodes() and self.edges() == other.edges()

    __hash__ = None  # type: ignore[assignment]


__all__ = ["WorkflowGraph", "parse_row_handle"]
