"""Demonstration script for the process studio simulation engine."""

from __future__ import annotations

import logging
from pprint import pprint

from . import NodeKind, ProcessStudioService
from .domain import DecisionPayload, DisplayPayload, ItemRef, ItemsPayload, MathPayload


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    studio = ProcessStudioService()

    coco = studio.register_inventory_item("Coco entero", "u", item_id="coco")
    process = studio.create_process("Rendimiento de pulpa")
    pid = process.id

    # Flujo
    studio.add_node(
        pid,
        NodeKind.START,
        ItemsPayload(label="Recepción", items=(ItemRef(coco.id),)),
        node_id="recepcion",
    )
    studio.add_node(
        pid,
        NodeKind.DISPLAY,
        DisplayPayload(label="Lote", values={"coco": 10, "kg_por_coco": 0.45}),
        node_id="lote",
    )
    studio.add_node(
        pid,
        NodeKind.MATH_MULTIPLY,
        MathPayload(label="Pulpa estimada", expression="{{coco}} * {{kg_por_coco}}", result_var="pulpa"),
        node_id="pulpa",
    )
    studio.add_node(
        pid,
        NodeKind.DECISION,
        DecisionPayload(label="Control", branches=("Aprobado", "Rechazo")),
        node_id="control",
    )
    studio.add_node(
        pid,
        NodeKind.MATH_SUBTRACT,
        MathPayload(label="Merma", expression="{{coco}} - 1"),
        node_id="merma",
    )
    studio.add_node(pid, NodeKind.END, ItemsPayload(label="Almacén"), node_id="almacen")
    studio.connect(pid, "recepcion", "pulpa", "item-0")
    studio.connect(pid, "pulpa", "control")
    studio.connect(pid, "control", "almacen", "branch-1")
    studio.connect(pid, "control", "merma", "branch-0")
    studio.connect(pid, "merma", "almacen")

    print(f"Simulación de {process.name}")
    session = studio.start_simulation(pid)
    while session.is_running and not session.is_terminal:
        print(f" - Paso {session.step_count + 1}: {session.active_node_id}")
        session = studio.step_simulation(pid)

    print(f"\nEstado final: {session.state.value} (fin en {session.end_node_id})")
    print("Recorrido:", " -> ".join(session.visited_history))
    pprint(session.variables.as_dict())

    print("\nDocumento guardado")
    pprint(studio.save_process(pid))


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
