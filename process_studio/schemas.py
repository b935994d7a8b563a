"""Wire models for the editor's JSON document and the HTTP request bodies.

These validate the shape of incoming JSON. ``documents`` turns a validated
``WorkflowDocument`` into the domain graph; the payload dataclasses in
``domain`` stay the model the rest of the package works with.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from .domain import NodeKind


class _WireModel(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}


class Position(_WireModel):
    x: float = 0.0
    y: float = 0.0


class NodeDocument(_WireModel):
    """One node as the editor saves it."""

    id: str = Field(..., min_length=1)
    type: NodeKind
    position: Optional[Position] = None
    data: Optional[Dict[str, Any]] = None


class EdgeDocument(_WireModel):
    id: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    source_handle: Optional[str] = Field(None, alias="sourceHandle")


class WorkflowDocument(_WireModel):
    """``{"nodes": [...], "edges": [...]}``; missing or null lists are empty."""

    nodes: List[NodeDocument] = Field(default_factory=list)
    edges: List[EdgeDocument] = Field(default_factory=list)

    @field_validator("nodes", "edges", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


# ----------------------------------------------------------------------
# Rows inside node data
# ----------------------------------------------------------------------
class ItemRow(_WireModel):
    id: str = Field(..., min_length=1)
    yield_ratio: Optional[float] = Field(None, alias="yield")


class SubproductRow(_WireModel):
    product_id: str = Field(..., min_length=1, alias="productId")
    ratio: Optional[float] = None
    is_variable: bool = Field(False, alias="isVariable")
    unit: Optional[str] = None


ITEM_ROWS = TypeAdapter(List[ItemRow])
SUBPRODUCT_ROWS = TypeAdapter(List[SubproductRow])
BRANCHES = TypeAdapter(List[str])
VALUES = TypeAdapter(Dict[str, Any])
OPTIONAL_FLOAT = TypeAdapter(Optional[float])
OPTIONAL_STR = TypeAdapter(Optional[str])


# ----------------------------------------------------------------------
# API request bodies
# ----------------------------------------------------------------------
class ConnectRequest(_WireModel):
    """Body of ``POST /api/processes/{id}/edges``."""

    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    source_handle: Optional[str] = Field(None, alias="sourceHandle")


class StartSimulationRequest(_WireModel):
    """Body of ``POST /api/processes/{id}/simulation/start``."""

    variables: Optional[Dict[str, Any]] = None


__all__ = [
    "Position",
    "NodeDocument",
    "EdgeDocument",
    "WorkflowDocument",
    "ItemRow",
    "SubproductRow",
    "ConnectRequest",
    "StartSimulationRequest",
]
