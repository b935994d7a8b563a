"""Step-by-step simulation of a workflow graph.

A simulation session is an immutable snapshot. ``start_session``,
``step_session`` and ``stop_session`` are pure transitions from one
snapshot to the next; ``SimulationController`` wraps them for hosts that
prefer to keep a single mutable handle.

States::

    IDLE --start--> RUNNING --step--> RUNNING | HALTED | COMPLETED
    any  --stop---> IDLE

Every ``step`` executes exactly one node, so a cyclic graph never hangs
the engine; it only grows the visited history on each manual step.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .domain import Edge, MathPayload, Node, NodeKind, Scalar
from .expressions import ExpressionSyntaxError, assignment_target, evaluate, format_number
from .graph import WorkflowGraph
from .repository import NotFoundError
from .variables import VariableStore

logger = logging.getLogger(__name__)

FIRST_BRANCH_HANDLE = "branch-0"


class SimulationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    HALTED = "halted"
    COMPLETED = "completed"


@dataclass(slots=True)
class SimulationOptions:
    """Tuning knobs for simulation runs.

    ``history_limit`` keeps only the most recent node ids in the visited
    history; ``None`` leaves the history unbounded.
    """

    history_limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.history_limit is not None and self.history_limit < 1:
            raise ValueError("history_limit must be a positive integer or None")


def _json_value(value: Any) -> Any:
    """Strict-JSON form of a variable; infinities and NaN become strings.

    ``"Infinity"``, ``"-Infinity"`` and ``"NaN"`` coerce the same way as the
    numbers they stand for when sent back as a seed.
    """

    if isinstance(value, float) and not math.isfinite(value):
        return format_number(value)
    return value


@dataclass(slots=True, frozen=True)
class SimulationSession:
    state: SimulationState = SimulationState.IDLE
    active_node_id: Optional[str] = None
    step_count: int = 0
    visited_history: Tuple[str, ...] = ()
    variables: VariableStore = field(default_factory=VariableStore)
    active_edge_id: Optional[str] = None
    end_node_id: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.state is not SimulationState.IDLE

    @property
    def is_terminal(self) -> bool:
        return self.state in (SimulationState.HALTED, SimulationState.COMPLETED)

    @property
    def completed(self) -> bool:
        return self.state is SimulationState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "isRunning": self.is_running,
            "activeNodeId": self.active_node_id,
            "activeEdgeId": self.active_edge_id,
            "stepCount": self.step_count,
            "visitedHistory": list(self.visited_history),
            "variables": {
                name: _json_value(value) for name, value in self.variables.items()
            },
            "endNodeId": self.end_node_id,
            "completed": self.completed,
            "lastError": self.last_error,
        }


IDLE_SESSION = SimulationSession()


def start_session(
    graph: WorkflowGraph, seed: Optional[Mapping[str, Scalar]] = None
) -> SimulationSession:
    """Create a running session positioned on the graph's start node."""

    variables = VariableStore.from_graph(graph, seed)
    starts = graph.nodes_of_kind(NodeKind.START)
    if len(starts) > 1:
        logger.warning(
            "Graph has %d start nodes, simulating from %s", len(starts), starts[0].id
        )
    if not starts:
        logger.info("No start node in graph, simulation halted immediately")
        return SimulationSession(state=SimulationState.HALTED, variables=variables)
    logger.info("Simulation started at node %s", starts[0].id)
    return SimulationSession(
        state=SimulationState.RUNNING,
        active_node_id=starts[0].id,
        variables=variables,
    )


def stop_session(session: SimulationSession) -> SimulationSession:
    return IDLE_SESSION


def select_next_edge(graph: WorkflowGraph, node: Node) -> Optional[Edge]:
    """Outgoing edge the simulation follows from ``node``.

    Decision nodes take the ``branch-0`` edge when one exists; branch
    predicates are not evaluated. Everything else, and a decision node whose
    first-branch edge is missing, follows the first edge in insertion order.
    """

    outgoing = graph.outgoing_edges(node.id)
    if not outgoing:
        return None
    if node.kind.is_branching:
        for edge in outgoing:
            if edge.source_handle == FIRST_BRANCH_HANDLE:
                return edge
    return outgoing[0]


def apply_expression(
    node: Node, variables: VariableStore
) -> Tuple[VariableStore, Optional[str]]:
    """Evaluate a math node against ``variables``.

    Returns the updated store and an error message. On a syntax error the
    store comes back unchanged.
    """

    payload = node.payload
    if not node.kind.is_math or not isinstance(payload, MathPayload):
        return variables, None
    if not payload.expression:
        return variables, None
    try:
        result = evaluate(payload.expression, variables)
    except ExpressionSyntaxError as exc:
        logger.warning("Expression error on node %s: %s", node.id, exc)
        return variables, str(exc)
    target = assignment_target(payload.expression, payload.result_var)
    if target is None:
        return variables, None
    return variables.assign(target, result), None


def step_session(
    session: SimulationSession,
    graph: WorkflowGraph,
    options: Optional[SimulationOptions] = None,
) -> SimulationSession:
    """Execute the active node and move to the next one.

    Sessions that are idle, terminal or without an active node are returned
    unchanged.
    """

    if session.state is not SimulationState.RUNNING or session.active_node_id is None:
        return session
    options = options or SimulationOptions()

    try:
        node = graph.find_node(session.active_node_id)
    except NotFoundError:
        logger.warning(
            "Active node %s no longer exists, simulation halted", session.active_node_id
        )
        return replace(
            session,
            state=SimulationState.HALTED,
            active_node_id=None,
            active_edge_id=None,
        )

    variables, error = apply_expression(node, session.variables)

    history = session.visited_history + (node.id,)
    if options.history_limit is not None:
        history = history[-options.history_limit:]

    advanced = replace(
        session,
        step_count=session.step_count + 1,
        visited_history=history,
        variables=variables,
        last_error=error,
    )

    edge = select_next_edge(graph, node)
    if edge is None:
        logger.info("Simulation halted at node %s: no outgoing edge", node.id)
        return replace(
            advanced,
            state=SimulationState.HALTED,
            active_node_id=None,
            active_edge_id=None,
        )

    target = graph.find_node(edge.target)
    if target.kind is NodeKind.END:
        logger.info("Simulation completed at end node %s", target.id)
        return replace(
            advanced,
            state=SimulationState.COMPLETED,
            active_node_id=None,
            active_edge_id=edge.id,
            end_node_id=target.id,
        )

    return replace(advanced, active_node_id=target.id, active_edge_id=edge.id)


class SimulationController:
    """Owns the current session for one graph and applies transitions to it."""

    def __init__(
        self, graph: WorkflowGraph, options: Optional[SimulationOptions] = None
    ) -> None:
        self.graph = graph
        self.options = options or SimulationOptions()
        self._session = IDLE_SESSION

    @property
    def session(self) -> SimulationSession:
        return self._session

    def start(self, seed: Optional[Mapping[str, Scalar]] = None) -> SimulationSession:
        self._session = start_session(self.graph, seed)
        return self._session

    def step(self) -> SimulationSession:
        self._session = step_session(self._session, self.graph, self.options)
        return self._session

    def stop(self) -> SimulationSession:
        self._session = stop_session(self._session)
        return self._session

    def run(self, max_steps: int = 100) -> SimulationSession:
        """Step until the session is terminal or ``max_steps`` steps were taken."""

        for _ in range(max_steps):
            if self._session.state is not SimulationState.RUNNING:
                break
            self.step()
        return self._session


__all__ = [
    "SimulationState",
    "SimulationOptions",
    "SimulationSession",
    "IDLE_SESSION",
    "start_session",
    "stop_session",
    "step_session",
    "select_next_edge",
    "apply_expression",
    "SimulationController",
]
