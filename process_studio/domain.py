"""Core data structures for process workflows.

A workflow is a directed graph of typed nodes. Every node kind owns exactly
one payload shape, so code that inspects node data can dispatch on the
payload class instead of probing an open bag of optional keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type, Union

Scalar = Union[float, int, str]


class NodeKind(str, Enum):
    """Closed set of node variants available in the process editor."""

    START = "start"
    END = "end"
    PROCESS = "process"
    DECISION = "decision"
    CONDITIONAL = "conditional"
    TRIGGER = "trigger"
    ACTION = "action"
    DELAY = "delay"
    NOTIFICATION = "notification"
    AI_AGENT = "ai_agent"
    DISPLAY = "display"
    MATH_ADD = "math_add"
    MATH_SUBTRACT = "math_subtract"
    MATH_DIVIDE = "math_divide"
    MATH_MULTIPLY = "math_multiply"
    MATH_SUM_ALL = "math_sum_all"
    API_CURRENCY = "api_currency"
    INVENTORY_IN = "inventory_in"
    INVENTORY_OUT = "inventory_out"
    PIECEWORK = "piecework"

    @property
    def is_math(self) -> bool:
        return self.value.startswith("math_")

    @property
    def is_branching(self) -> bool:
        return self in (NodeKind.DECISION, NodeKind.CONDITIONAL)


@dataclass(slots=True, frozen=True)
class ItemRef:
    """Reference to an inventory product, optionally with an expected yield."""

    product_id: str
    yield_ratio: Optional[float] = None


@dataclass(slots=True, frozen=True)
class Subproduct:
    """Output row of a process step.

    A row either has a fixed ratio per input unit or is variable, meaning
    the quantity is captured on the shop floor in ``unit``.
    """

    product_id: str
    ratio: Optional[float] = None
    is_variable: bool = False
    unit: str = ""

    def __post_init__(self) -> None:
        if self.is_variable and self.ratio is not None:
            raise ValueError("A variable subproduct cannot also declare a fixed ratio")
        if not self.is_variable and self.ratio is None:
            raise ValueError("A subproduct needs either a fixed ratio or the variable flag")


@dataclass(slots=True, frozen=True)
class BasicPayload:
    """Fields shared by every node kind."""

    label: str = ""
    sub_label: str = ""
    description: str = ""
    location: str = ""
    extra: Mapping[str, Any] = field(default_factory=dict)

    def output_rows(self) -> Dict[str, int]:
        """Number of addressable output rows per source-handle prefix."""
        return {}


@dataclass(slots=True, frozen=True)
class ItemsPayload(BasicPayload):
    """Payload for start, end and inventory movement nodes."""

    items: Tuple[ItemRef, ...] = ()

    def output_rows(self) -> Dict[str, int]:
        return {"item": len(self.items)}


@dataclass(slots=True, frozen=True)
class ProcessPayload(BasicPayload):
    """Transformation step consuming items and producing subproducts."""

    items: Tuple[ItemRef, ...] = ()
    subproducts: Tuple[Subproduct, ...] = ()
    piecework_rate: Optional[float] = None

    def output_rows(self) -> Dict[str, int]:
        return {"item": len(self.items), "sub": len(self.subproducts)}


@dataclass(slots=True, frozen=True)
class DecisionPayload(BasicPayload):
    branches: Tuple[str, ...] = ()

    def output_rows(self) -> Dict[str, int]:
        return {"branch": len(self.branches)}


@dataclass(slots=True, frozen=True)
class MathPayload(BasicPayload):
    """Arithmetic node. ``result_var`` names the variable that receives the result."""

    expression: Optional[str] = None
    result_var: Optional[str] = None


@dataclass(slots=True, frozen=True)
class DisplayPayload(BasicPayload):
    """Indicator node; ``values`` are the defaults seeded into a simulation."""

    values: Mapping[str, Scalar] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class PieceworkPayload(BasicPayload):
    task_id: Optional[str] = None
    rate: Optional[float] = None


Payload = Union[
    BasicPayload,
    ItemsPayload,
    ProcessPayload,
    DecisionPayload,
    MathPayload,
    DisplayPayload,
    PieceworkPayload,
]

PAYLOAD_TYPES: Dict[NodeKind, Type[BasicPayload]] = {
    NodeKind.START: ItemsPayload,
    NodeKind.END: ItemsPayload,
    NodeKind.INVENTORY_IN: ItemsPayload,
    NodeKind.INVENTORY_OUT: ItemsPayload,
    NodeKind.PROCESS: ProcessPayload,
    NodeKind.DECISION: DecisionPayload,
    NodeKind.CONDITIONAL: DecisionPayload,
    NodeKind.DISPLAY: DisplayPayload,
    NodeKind.MATH_ADD: MathPayload,
    NodeKind.MATH_SUBTRACT: MathPayload,
    NodeKind.MATH_DIVIDE: MathPayload,
    NodeKind.MATH_MULTIPLY: MathPayload,
    NodeKind.MATH_SUM_ALL: MathPayload,
    NodeKind.PIECEWORK: PieceworkPayload,
    NodeKind.TRIGGER: BasicPayload,
    NodeKind.ACTION: BasicPayload,
    NodeKind.DELAY: BasicPayload,
    NodeKind.NOTIFICATION: BasicPayload,
    NodeKind.AI_AGENT: BasicPayload,
    NodeKind.API_CURRENCY: BasicPayload,
}


def payload_type_for(kind: NodeKind) -> Type[BasicPayload]:
    return PAYLOAD_TYPES[NodeKind(kind)]


@dataclass(slots=True, frozen=True)
class Node:
    """A typed vertex of the workflow graph.

    ``payload`` defaults to the empty payload of the node kind. Passing a
    payload of another variant raises ``ValueError``.
    """

    id: str
    kind: NodeKind
    payload: Optional[Payload] = None
    position: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("A node requires a non-empty id")
        kind = NodeKind(self.kind)
        object.__setattr__(self, "kind", kind)
        x, y = self.position
        object.__setattr__(self, "position", (float(x), float(y)))
        expected = payload_type_for(kind)
        if self.payload is None:
            object.__setattr__(self, "payload", expected())
        elif type(self.payload) is not expected:
            raise ValueError(
                f"Node kind {kind.value!r} expects {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )

    @property
    def label(self) -> str:
        return self.payload.label


@dataclass(slots=True, frozen=True)
class Edge:
    """Directed connection; ``source_handle`` identifies the output row used."""

    id: str
    source: str
    target: str
    source_handle: Optional[str] = None


@dataclass(slots=True)
class InventoryItem:
    """Product record from the inventory catalog, used to resolve display names."""

    id: str
    name: str
    unit_of_measure: str = ""
    is_production_input: bool = False
    is_production_output: bool = False


@dataclass(slots=True)
class Task:
    """Shop-floor task that piecework nodes can point at."""

    id: str
    name: str
    description: str = ""
    piecework_rate: float = 0.0


@dataclass(slots=True)
class ProcessDefinition:
    """A named process whose workflow document is kept in a workflow store."""

    id: str
    name: str
    description: str = ""


__all__ = [
    "NodeKind",
    "ItemRef",
    "Subproduct",
    "BasicPayload",
    "ItemsPayload",
    "ProcessPayload",
    "DecisionPayload",
    "MathPayload",
    "DisplayPayload",
    "PieceworkPayload",
    "Payload",
    "PAYLOAD_TYPES",
    "payload_type_for",
    "Node",
    "Edge",
    "InventoryItem",
    "Task",
    "ProcessDefinition",
]
