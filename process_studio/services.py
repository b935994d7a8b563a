"""Service layer tying catalogs, workflow documents and simulations together."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from uuid import uuid4

from .documents import Document, dump_graph, load_graph
from .domain import (
    Edge,
    InventoryItem,
    Node,
    NodeKind,
    Payload,
    ProcessDefinition,
    Scalar,
    Task,
)
from .graph import WorkflowGraph
from .repository import InMemoryRepository, NotFoundError
from .schemas import WorkflowDocument
from .simulation import (
    IDLE_SESSION,
    SimulationController,
    SimulationOptions,
    SimulationSession,
)
from .storage import InMemoryWorkflowStore, SQLiteRepository, WorkflowStore

logger = logging.getLogger(__name__)

Repository = Union[InMemoryRepository, SQLiteRepository]


class ProcessStudioService:
    """Facade that exposes process authoring and preview use-cases to clients.

    Graphs are loaded from the workflow store on first access and edited in
    memory until ``save_process`` writes them back.
    """

    def __init__(
        self,
        inventory_repo: Optional[Repository] = None,
        task_repo: Optional[Repository] = None,
        process_repo: Optional[Repository] = None,
        workflow_store: Optional[WorkflowStore] = None,
    ) -> None:
        self.inventory = inventory_repo if inventory_repo is not None else InMemoryRepository()
        self.tasks = task_repo if task_repo is not None else InMemoryRepository()
        self.processes = process_repo if process_repo is not None else InMemoryRepository()
        self.workflows = workflow_store if workflow_store is not None else InMemoryWorkflowStore()
        self.simulation_options = SimulationOptions()
        self._graphs: Dict[str, WorkflowGraph] = {}
        self._controllers: Dict[str, SimulationController] = {}

    # ------------------------------------------------------------------
    # Catalogs
    # ------------------------------------------------------------------
    def register_inventory_item(
        self,
        name: str,
        unit_of_measure: str = "",
        *,
        item_id: Optional[str] = None,
        is_production_input: bool = False,
        is_production_output: bool = False,
    ) -> InventoryItem:
        item = InventoryItem(
            id=item_id or str(uuid4()),
            name=name,
            unit_of_measure=unit_of_measure,
            is_production_input=is_production_input,
            is_production_output=is_production_output,
        )
        self.inventory.add(item.id, item)
        return item

    def register_task(
        self,
        name: str,
        *,
        task_id: Optional[str] = None,
        description: str = "",
        piecework_rate: float = 0.0,
    ) -> Task:
        if piecework_rate < 0:
            raise ValueError("Piecework rates cannot be negative")
        task = Task(
            id=task_id or str(uuid4()),
            name=name,
            description=description,
            piecework_rate=piecework_rate,
        )
        self.tasks.add(task.id, task)
        return task

    def product_name(self, product_id: str) -> str:
        """Display name of an inventory product, falling back to its id."""

        item = self.inventory.find(product_id)
        return item.name if item is not None else product_id

    # ------------------------------------------------------------------
    # Process definitions and editing
    # ------------------------------------------------------------------
    def create_process(
        self, name: str, *, description: str = "", process_id: Optional[str] = None
    ) -> ProcessDefinition:
        process = ProcessDefinition(
            id=process_id or str(uuid4()), name=name, description=description
        )
        self.processes.add(process.id, process)
        return process

    def get_graph(self, process_id: str) -> WorkflowGraph:
        if process_id not in self.processes:
            raise NotFoundError(f"Process {process_id!r} does not exist")
        graph = self._graphs.get(process_id)
        if graph is None:
            graph = self.workflows.load_graph(process_id)
            self._graphs[process_id] = graph
        return graph

    def add_node(
        self,
        process_id: str,
        kind: Union[NodeKind, str],
        payload: Optional[Payload] = None,
        *,
        node_id: Optional[str] = None,
        position: Tuple[float, float] = (0.0, 0.0),
    ) -> Node:
        kind = NodeKind(kind)
        node = Node(
            id=node_id or f"{kind.value}-{uuid4().hex[:8]}",
            kind=kind,
            payload=payload,
            position=position,
        )
        return self.get_graph(process_id).add_node(node)

    def connect(
        self,
        process_id: str,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
    ) -> Edge:
        return self.get_graph(process_id).connect(source, target, source_handle)

    def update_payload(self, process_id: str, node_id: str, payload: Payload) -> Node:
        return self.get_graph(process_id).update_payload(node_id, payload)

    def remove_node(self, process_id: str, node_id: str) -> None:
        self.get_graph(process_id).remove_node(node_id)

    def replace_workflow(
        self, process_id: str, document: Union[WorkflowDocument, Mapping[str, Any]]
    ) -> WorkflowGraph:
        """Swap the in-memory graph for one parsed from an editor document."""

        if process_id not in self.processes:
            raise NotFoundError(f"Process {process_id!r} does not exist")
        graph = load_graph(document)
        self._graphs[process_id] = graph
        self._drop_controller(process_id)
        return graph

    def save_process(self, process_id: str) -> Document:
        graph = self.get_graph(process_id)
        document = self.workflows.save_graph(process_id, graph)
        logger.info(
            "Saved process %s with %d nodes and %d edges",
            process_id,
            len(document["nodes"]),
            len(document["edges"]),
        )
        return document

    def export_workflow(self, process_id: str) -> Document:
        return dump_graph(self.get_graph(process_id))

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------
    def start_simulation(
        self, process_id: str, seed: Optional[Mapping[str, Scalar]] = None
    ) -> SimulationSession:
        controller = SimulationController(self.get_graph(process_id), self.simulation_options)
        self._controllers[process_id] = controller
        return controller.start(seed)

    def step_simulation(self, process_id: str) -> SimulationSession:
        controller = self._controllers.get(process_id)
        if controller is None:
            return IDLE_SESSION
        return controller.step()

    def stop_simulation(self, process_id: str) -> SimulationSession:
        self._drop_controller(process_id)
        return IDLE_SESSION

    def get_session(self, process_id: str) -> SimulationSession:
        controller = self._controllers.get(process_id)
        return controller.session if controller is not None else IDLE_SESSION

    def update_simulation_options(self, *, history_limit: Optional[int]) -> SimulationOptions:
        """Apply new simulation options to future and running sessions."""

        self.simulation_options = SimulationOptions(history_limit=history_limit)
        for controller in self._controllers.values():
            controller.options = self.simulation_options
        return self.simulation_options

    def _drop_controller(self, process_id: str) -> None:
        controller = self._controllers.pop(process_id, None)
        if controller is not None:
            controller.stop()


__all__ = ["ProcessStudioService"]
