"""FastAPI-based web interface for the process studio."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from ..documents import DocumentError, dump_edge
from ..domain import (
    DecisionPayload,
    DisplayPayload,
    ItemRef,
    ItemsPayload,
    MathPayload,
    NodeKind,
    ProcessPayload,
    Subproduct,
)
from ..repository import GraphError, NotFoundError
from ..schemas import ConnectRequest, StartSimulationRequest, WorkflowDocument
from ..services import ProcessStudioService
from ..storage import StudioDatabase

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

DEMO_PROCESS_ID = "coco-processing"


def create_app(database_path: str = "process_studio.sqlite3") -> FastAPI:
    database = StudioDatabase(database_path)
    service = ProcessStudioService(
        inventory_repo=database.inventory,
        task_repo=database.tasks,
        process_repo=database.processes,
        workflow_store=database.workflows,
    )
    ensure_demo_data(service)

    app = FastAPI(title="Process Studio")
    app.state.studio_service = service
    app.state.database = database

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        database.close()

    # ------------------------------------------------------------------
    # HTML overview
    # ------------------------------------------------------------------
    @app.get("/")
    async def overview(request: Request):
        service: ProcessStudioService = request.app.state.studio_service
        processes = service.processes.list()
        selected_id = request.query_params.get("process")
        if selected_id is None and processes:
            selected_id = processes[0].id
        selected = None
        nodes = []
        session = None
        if selected_id:
            try:
                selected = service.processes.get(selected_id)
                nodes = service.get_graph(selected_id).nodes()
                session = service.get_session(selected_id)
            except NotFoundError:
                selected = None
        return templates.TemplateResponse(
            request,
            "overview.html",
            {
                "processes": processes,
                "selected": selected,
                "nodes": nodes,
                "session": session,
                "product_name": service.product_name,
                "options": service.simulation_options,
            },
        )

    @app.post("/processes")
    async def create_process(
        request: Request,
        name: str = Form(...),
        description: str = Form(""),
    ):
        service: ProcessStudioService = request.app.state.studio_service
        process = service.create_process(name.strip() or "Proceso", description=description)
        service.save_process(process.id)
        return RedirectResponse("/?" + urlencode({"process": process.id}), status_code=303)

    @app.post("/processes/{process_id}/simulation")
    async def simulation_action(
        request: Request,
        process_id: str,
        action: str = Form(...),
    ):
        service: ProcessStudioService = request.app.state.studio_service
        try:
            if action == "start":
                service.start_simulation(process_id)
            elif action == "step":
                service.step_simulation(process_id)
            elif action == "stop":
                service.stop_simulation(process_id)
        except NotFoundError:
            return RedirectResponse("/", status_code=303)
        return RedirectResponse("/?" + urlencode({"process": process_id}), status_code=303)

    @app.post("/simulation/options")
    async def update_simulation_options(
        request: Request,
        history_limit: str = Form(""),
    ):
        service: ProcessStudioService = request.app.state.studio_service
        limit: Optional[int] = None
        if history_limit.strip():
            try:
                limit = int(history_limit)
            except ValueError as exc:
                raise HTTPException(
                    status_code=400,
                    detail=f"History limit must be a whole number, got {history_limit!r}",
                ) from exc
        try:
            service.update_simulation_options(history_limit=limit)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return RedirectResponse("/", status_code=303)

    # ------------------------------------------------------------------
    # JSON API used by the graphical editor
    # ------------------------------------------------------------------
    @app.get("/api/processes")
    async def list_processes(request: Request):
        service: ProcessStudioService = request.app.state.studio_service
        return [
            {"id": process.id, "name": process.name, "description": process.description}
            for process in service.processes.list()
        ]

    @app.get("/api/processes/{process_id}/workflow")
    async def get_workflow(request: Request, process_id: str):
        service: ProcessStudioService = request.app.state.studio_service
        try:
            return service.export_workflow(process_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.put("/api/processes/{process_id}/workflow")
    async def put_workflow(request: Request, process_id: str, document: WorkflowDocument):
        service: ProcessStudioService = request.app.state.studio_service
        try:
            service.replace_workflow(process_id, document)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except DocumentError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return service.save_process(process_id)

    @app.post("/api/processes/{process_id}/edges")
    async def connect_nodes(request: Request, process_id: str, body: ConnectRequest):
        service: ProcessStudioService = request.app.state.studio_service
        try:
            edge = service.connect(process_id, body.source, body.target, body.source_handle)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except GraphError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return dump_edge(edge)

    @app.get("/api/processes/{process_id}/simulation")
    async def get_simulation(request: Request, process_id: str):
        service: ProcessStudioService = request.app.state.studio_service
        return service.get_session(process_id).to_dict()

    @app.post("/api/processes/{process_id}/simulation/start")
    async def start_simulation(
        request: Request,
        process_id: str,
        body: Optional[StartSimulationRequest] = None,
    ):
        service: ProcessStudioService = request.app.state.studio_service
        seed = body.variables if body is not None else None
        try:
            session = service.start_simulation(process_id, seed or None)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return session.to_dict()

    @app.post("/api/processes/{process_id}/simulation/step")
    async def step_simulation(request: Request, process_id: str):
        service: ProcessStudioService = request.app.state.studio_service
        return service.step_simulation(process_id).to_dict()

    @app.post("/api/processes/{process_id}/simulation/stop")
    async def stop_simulation(request: Request, process_id: str):
        service: ProcessStudioService = request.app.state.studio_service
        return service.stop_simulation(process_id).to_dict()

    return app


def ensure_demo_data(service: ProcessStudioService) -> None:
    """Seed the coconut processing line used as the editor's starter template."""

    if DEMO_PROCESS_ID in service.processes:
        return

    for product_id, name, unit in [
        ("coco-parent", "Coco entero", "u"),
        ("coco-sin-estopa", "Coco sin estopa", "u"),
        ("estopa", "Estopa", "m3"),
        ("almendra-coco", "Almendra de coco", "u"),
        ("agua-coco", "Agua de coco", "L"),
        ("pulpa-coco", "Pulpa de coco", "Kg"),
    ]:
        if product_id not in service.inventory:
            service.register_inventory_item(
                name,
                unit,
                item_id=product_id,
                is_production_input=product_id == "coco-parent",
                is_production_output=product_id != "coco-parent",
            )

    service.create_process(
        "Procesamiento de Coco",
        description="Destopado, control de calidad, deshuesado y pelado",
        process_id=DEMO_PROCESS_ID,
    )
    pid = DEMO_PROCESS_ID
    service.add_node(
        pid,
        NodeKind.START,
        ItemsPayload(
            label="Compra de Coco",
            sub_label="Materia Prima Inicial",
            items=(ItemRef("coco-parent", yield_ratio=1.0),),
        ),
        node_id="start-1",
        position=(-100, 200),
    )
    service.add_node(
        pid,
        NodeKind.DISPLAY,
        DisplayPayload(label="Lote", values={"cocos": 100, "merma": 0}),
        node_id="display-1",
        position=(-100, 420),
    )
    service.add_node(
        pid,
        NodeKind.PROCESS,
        ProcessPayload(
            label="Destopado",
            sub_label="Remoción de Estopa",
            piecework_rate=0.40,
            items=(ItemRef("coco-parent"),),
            subproducts=(
                Subproduct("coco-sin-estopa", ratio=1.0),
                Subproduct("estopa", is_variable=True, unit="m3"),
            ),
        ),
        node_id="destopado-1",
        position=(250, 200),
    )
    service.add_node(
        pid,
        NodeKind.MATH_SUBTRACT,
        MathPayload(
            label="Descontar merma",
            expression="{{cocos}} - {{merma}}",
            result_var="cocos_utiles",
        ),
        node_id="merma-1",
        position=(425, 200),
    )
    service.add_node(
        pid,
        NodeKind.DECISION,
        DecisionPayload(
            label="Control Calidad",
            sub_label="Validación de Lote",
            branches=("Lote Aprobado", "Rechazo/Desecho"),
        ),
        node_id="decision-1",
        position=(600, 200),
    )
    service.add_node(
        pid,
        NodeKind.PROCESS,
        ProcessPayload(
            label="Deshuesado",
            sub_label="Extracción de Almendra",
            piecework_rate=0.35,
            subproducts=(
                Subproduct("almendra-coco", ratio=1.0),
                Subproduct("agua-coco", is_variable=True, unit="L"),
            ),
        ),
        node_id="deshuesado-1",
        position=(950, 100),
    )
    service.add_node(
        pid,
        NodeKind.PROCESS,
        ProcessPayload(
            label="Pelado de Pulpa",
            sub_label="Procesamiento Final",
            piecework_rate=2.00,
            subproducts=(Subproduct("pulpa-coco", is_variable=True, unit="Kg"),),
        ),
        node_id="pelado-1",
        position=(1300, 100),
    )
    service.add_node(
        pid,
        NodeKind.END,
        ItemsPayload(label="Producto Terminado", sub_label="Almacén Central"),
        node_id="end-1",
        position=(1650, 200),
    )
    service.connect(pid, "start-1", "destopado-1", "item-0")
    service.connect(pid, "destopado-1", "merma-1", "sub-0")
    service.connect(pid, "merma-1", "decision-1")
    service.connect(pid, "decision-1", "deshuesado-1", "branch-0")
    service.connect(pid, "deshuesado-1", "pelado-1", "sub-0")
    service.connect(pid, "pelado-1", "end-1", "sub-0")
    service.save_process(pid)
    logger.info("Seeded demo process %s", pid)


__all__ = ["create_app", "ensure_demo_data", "DEMO_PROCESS_ID"]
