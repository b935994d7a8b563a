"""Variable store shared by the simulator and the expression evaluator."""

from __future__ import annotations

from typing import Any, Dict, Iterator, Mapping, Optional

from .domain import DisplayPayload, Scalar
from .expressions import coerce_number
from .graph import WorkflowGraph


class VariableStore(Mapping[str, Scalar]):
    """Read-only mapping of simulation values.

    Updates return a new store, so a session snapshot handed to a renderer
    never changes underneath it.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[str, Scalar]] = None) -> None:
        self._values: Dict[str, Scalar] = dict(values or {})

    @classmethod
    def from_graph(
        cls, graph: WorkflowGraph, seed: Optional[Mapping[str, Scalar]] = None
    ) -> "VariableStore":
        """Collect display defaults in graph order, later nodes winning.

        ``seed`` values are applied last and override any default.
        """

        values: Dict[str, Scalar] = {}
        for node in graph.nodes():
            if isinstance(node.payload, DisplayPayload):
                values.update(node.payload.values)
        if seed:
            values.update(seed)
        return cls(values)

    def __getitem__(self, name: str) -> Scalar:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VariableStore({self._values!r})"

    def number(self, name: str) -> float:
        return coerce_number(self._values.get(name))

    def assign(self, name: str, value: Scalar) -> "VariableStore":
        values = dict(self._values)
        values[name] = value
        return VariableStore(values)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)


__all__ = ["VariableStore"]
