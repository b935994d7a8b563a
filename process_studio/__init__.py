"""Process workflow authoring and step-by-step simulation.

This package provides the graph model for manufacturing and business
process workflows, a safe arithmetic evaluator for math nodes, and a
simulation engine that plays a workflow one node at a time.
"""

from .domain import (
    Edge,
    InventoryItem,
    Node,
    NodeKind,
    ProcessDefinition,
    Task,
)
from .expressions import ExpressionSyntaxError, evaluate
from .graph import WorkflowGraph
from .repository import (
    DanglingReferenceError,
    DuplicateIdError,
    GraphError,
    InvalidHandleError,
    NotFoundError,
)
from .services import ProcessStudioService
from .simulation import (
    SimulationController,
    SimulationOptions,
    SimulationSession,
    SimulationState,
)
from .variables import VariableStore

__all__ = [
    "Edge",
    "InventoryItem",
    "Node",
    "NodeKind",
    "ProcessDefinition",
    "Task",
    "ExpressionSyntaxError",
    "evaluate",
    "WorkflowGraph",
    "DanglingReferenceError",
    "DuplicateIdError",
    "GraphError",
    "InvalidHandleError",
    "NotFoundError",
    "ProcessStudioService",
    "SimulationController",
    "SimulationOptions",
    "SimulationSession",
    "SimulationState",
    "VariableStore",
]
