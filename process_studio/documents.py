"""Conversion between ``WorkflowGraph`` and the editor's JSON document.

The document is the plain ``{"nodes": [...], "edges": [...]}`` structure the
process editor saves. Node data keys are camelCase, matching what the editor
produces, for example::

    {"id": "mul-1", "type": "math_multiply", "position": {"x": 250, "y": 200},
     "data": {"label": "Rendimiento", "expression": "{{coco}} * 2",
              "resultVar": "output"}}
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Tuple, Union

from pydantic import ValidationError

from .domain import (
    BasicPayload,
    DecisionPayload,
    DisplayPayload,
    Edge,
    ItemRef,
    ItemsPayload,
    MathPayload,
    Node,
    NodeKind,
    PieceworkPayload,
    ProcessPayload,
    Subproduct,
    payload_type_for,
)
from .graph import WorkflowGraph
from .repository import GraphError
from .schemas import (
    BRANCHES,
    ITEM_ROWS,
    OPTIONAL_FLOAT,
    OPTIONAL_STR,
    SUBPRODUCT_ROWS,
    VALUES,
    EdgeDocument,
    NodeDocument,
    Position,
    WorkflowDocument,
)

Document = Dict[str, List[Dict[str, Any]]]

# Keys the renderer injects into node data while drawing; never persisted.
TRANSIENT_KEYS = frozenset(
    {"simActive", "activeStep", "simValues", "inventory", "tasks", "onDelete"}
)

_COMMON_KEYS = {
    "label": "label",
    "subLabel": "sub_label",
    "description": "description",
    "location": "location",
}


class DocumentError(ValueError):
    """Raised when a workflow document cannot be turned into a graph."""


def empty_document() -> Document:
    return {"nodes": [], "edges": []}


# ----------------------------------------------------------------------
# Graph -> document
# ----------------------------------------------------------------------
def _dump_items(items: Tuple[ItemRef, ...]) -> List[Dict[str, Any]]:
    rows = []
    for item in items:
        row: Dict[str, Any] = {"id": item.product_id}
        if item.yield_ratio is not None:
            row["yield"] = item.yield_ratio
        rows.append(row)
    return rows


def _dump_subproduct(sub: Subproduct) -> Dict[str, Any]:
    row: Dict[str, Any] = {"productId": sub.product_id}
    if sub.is_variable:
        row["isVariable"] = True
        if sub.unit:
            row["unit"] = sub.unit
    else:
        row["ratio"] = sub.ratio
    return row


def dump_payload(payload: BasicPayload) -> Dict[str, Any]:
    data: Dict[str, Any] = dict(payload.extra)
    for key, attribute in _COMMON_KEYS.items():
        value = getattr(payload, attribute)
        if value:
            data[key] = value

    if isinstance(payload, (ItemsPayload, ProcessPayload)) and payload.items:
        data["items"] = _dump_items(payload.items)
    if isinstance(payload, ProcessPayload):
        if payload.subproducts:
            data["subproducts"] = [_dump_subproduct(sub) for sub in payload.subproducts]
        if payload.piecework_rate is not None:
            data["pieceworkRate"] = payload.piecework_rate
    elif isinstance(payload, DecisionPayload):
        data["branches"] = list(payload.branches)
    elif isinstance(payload, MathPayload):
        if payload.expression is not None:
            data["expression"] = payload.expression
        if payload.result_var is not None:
            data["resultVar"] = payload.result_var
    elif isinstance(payload, DisplayPayload):
        data["values"] = dict(payload.values)
    elif isinstance(payload, PieceworkPayload):
        if payload.task_id is not None:
            data["taskId"] = payload.task_id
        if payload.rate is not None:
            data["rate"] = payload.rate
    return data


def dump_node(node: Node) -> Dict[str, Any]:
    x, y = node.position
    return {
        "id": node.id,
        "type": node.kind.value,
        "position": {"x": x, "y": y},
        "data": dump_payload(node.payload),
    }


def dump_edge(edge: Edge) -> Dict[str, Any]:
    row: Dict[str, Any] = {"id": edge.id, "source": edge.source, "target": edge.target}
    if edge.source_handle is not None:
        row["sourceHandle"] = edge.source_handle
    return row


def dump_graph(graph: WorkflowGraph) -> Document:
    return {
        "nodes": [dump_node(node) for node in graph.nodes()],
        "edges": [dump_edge(edge) for edge in graph.edges()],
    }


# ----------------------------------------------------------------------
# Document -> graph
# ----------------------------------------------------------------------
def _load_items(rows: Any) -> Tuple[ItemRef, ...]:
    return tuple(
        ItemRef(product_id=row.id, yield_ratio=row.yield_ratio)
        for row in ITEM_ROWS.validate_python(rows)
    )


def _load_subproducts(rows: Any) -> Tuple[Subproduct, ...]:
    subproducts = []
    for row in SUBPRODUCT_ROWS.validate_python(rows):
        try:
            subproducts.append(
                Subproduct(
                    product_id=row.product_id,
                    ratio=row.ratio,
                    is_variable=row.is_variable,
                    unit=row.unit or "",
                )
            )
        except ValueError as exc:
            raise DocumentError(str(exc)) from exc
    return tuple(subproducts)


def _load_branches(rows: Any) -> Tuple[str, ...]:
    return tuple(BRANCHES.validate_python(rows))


# Per payload type: document key -> (attribute, converter)
_SPECIFIC_KEYS: Dict[type, Dict[str, Tuple[str, Callable[[Any], Any]]]] = {
    BasicPayload: {},
    ItemsPayload: {"items": ("items", _load_items)},
    ProcessPayload: {
        "items": ("items", _load_items),
        "subproducts": ("subproducts", _load_subproducts),
        "pieceworkRate": ("piecework_rate", OPTIONAL_FLOAT.validate_python),
    },
    DecisionPayload: {"branches": ("branches", _load_branches)},
    MathPayload: {
        "expression": ("expression", OPTIONAL_STR.validate_python),
        "resultVar": ("result_var", OPTIONAL_STR.validate_python),
    },
    DisplayPayload: {"values": ("values", VALUES.validate_python)},
    PieceworkPayload: {
        "taskId": ("task_id", OPTIONAL_STR.validate_python),
        "rate": ("rate", OPTIONAL_FLOAT.validate_python),
    },
}


def _invalid(exc: ValidationError, what: str) -> DocumentError:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or what}: {error['msg']}"
        for error in exc.errors()
    )
    return DocumentError(f"Invalid {what}: {problems}")


def load_payload(kind: NodeKind, data: Mapping[str, Any]) -> BasicPayload:
    payload_type = payload_type_for(kind)
    specific = _SPECIFIC_KEYS[payload_type]
    fields: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for key, value in data.items():
        if key in TRANSIENT_KEYS:
            continue
        if key in _COMMON_KEYS:
            fields[_COMMON_KEYS[key]] = "" if value is None else str(value)
        elif key in specific:
            attribute, convert = specific[key]
            try:
                fields[attribute] = convert(value)
            except ValidationError as exc:
                raise _invalid(exc, f"field {key!r}") from exc
        else:
            extra[key] = value
    return payload_type(extra=extra, **fields)


def load_node(row: Union[NodeDocument, Mapping[str, Any]]) -> Node:
    if not isinstance(row, NodeDocument):
        try:
            row = NodeDocument.model_validate(row)
        except ValidationError as exc:
            raise _invalid(exc, "node") from exc
    position = row.position or Position()
    try:
        payload = load_payload(row.type, row.data or {})
    except DocumentError as exc:
        raise DocumentError(f"Node {row.id!r}: {exc}") from exc
    return Node(id=row.id, kind=row.type, payload=payload, position=(position.x, position.y))


def load_edge(row: Union[EdgeDocument, Mapping[str, Any]]) -> Edge:
    if not isinstance(row, EdgeDocument):
        try:
            row = EdgeDocument.model_validate(row)
        except ValidationError as exc:
            raise _invalid(exc, "edge") from exc
    return Edge(
        id=row.id,
        source=row.source,
        target=row.target,
        source_handle=row.source_handle,
    )


def load_graph(document: Union[WorkflowDocument, Mapping[str, Any], None]) -> WorkflowGraph:
    """Build a graph from a saved document; ``None`` yields an empty graph.

    Edges whose handle no longer matches a row of their source node are kept
    as saved; the simulator falls back to the first outgoing edge for them.
    """

    graph = WorkflowGraph()
    if document is None:
        return graph
    if not isinstance(document, WorkflowDocument):
        try:
            document = WorkflowDocument.model_validate(document)
        except ValidationError as exc:
            raise _invalid(exc, "workflow document") from exc
    try:
        for node in document.nodes:
            graph.add_node(load_node(node))
        for edge in document.edges:
            graph.add_edge(load_edge(edge), check_handle=False)
    except GraphError as exc:
        raise DocumentError(str(exc)) from exc
    return graph


__all__ = [
    "Document",
    "DocumentError",
    "TRANSIENT_KEYS",
    "empty_document",
    "dump_payload",
    "dump_node",
    "dump_edge",
    "dump_graph",
    "load_payload",
    "load_node",
    "load_edge",
    "load_graph",
]
