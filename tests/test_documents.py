"""Tests for workflow documents and the persistence adapters."""

import json

import pytest

from process_studio.documents import (
    DocumentError,
    dump_graph,
    empty_document,
    load_graph,
)
from process_studio.domain import (
    DecisionPayload,
    DisplayPayload,
    Edge,
    InventoryItem,
    ItemRef,
    ItemsPayload,
    MathPayload,
    Node,
    NodeKind,
    PieceworkPayload,
    ProcessPayload,
    Subproduct,
)
from process_studio.graph import WorkflowGraph
from process_studio.repository import DuplicateIdError, NotFoundError
from process_studio.storage import InMemoryWorkflowStore, StudioDatabase


def _sample_graph() -> WorkflowGraph:
    graph = WorkflowGraph()
    graph.add_node(
        Node(
            "start-1",
            NodeKind.START,
            ItemsPayload(label="Compra de Coco", items=(ItemRef("coco", yield_ratio=1.0),)),
            position=(-100, 200),
        )
    )
    graph.add_node(
        Node(
            "destopado-1",
            NodeKind.PROCESS,
            ProcessPayload(
                label="Destopado",
                sub_label="Remoción de Estopa",
                piecework_rate=0.4,
                items=(ItemRef("coco"),),
                subproducts=(
                    Subproduct("coco-sin-estopa", ratio=1.0),
                    Subproduct("estopa", is_variable=True, unit="m3"),
                ),
            ),
        )
    )
    graph.add_node(
        Node("decision-1", NodeKind.DECISION, DecisionPayload(branches=("Aprobado", "Rechazo")))
    )
    graph.add_node(
        Node(
            "mul-1",
            NodeKind.MATH_MULTIPLY,
            MathPayload(expression="{{coco}} * 2", result_var="output"),
        )
    )
    graph.add_node(Node("kpi", NodeKind.DISPLAY, DisplayPayload(values={"coco": 10, "lote": "A"})))
    graph.add_node(Node("ticket", NodeKind.PIECEWORK, PieceworkPayload(task_id="t1", rate=0.35)))
    graph.add_node(Node("end-1", NodeKind.END, ItemsPayload(label="Almacén")))
    graph.add_edge(Edge("e1", "start-1", "destopado-1", source_handle="item-0"))
    graph.add_edge(Edge("e2", "destopado-1", "decision-1", source_handle="sub-1"))
    graph.add_edge(Edge("e3", "decision-1", "mul-1", source_handle="branch-0"))
    graph.add_edge(Edge("e4", "mul-1", "end-1"))
    return graph


class TestDocumentRoundTrip:
    """Graph <-> document conversion."""

    def test_round_trip_is_structurally_equal(self):
        graph = _sample_graph()
        restored = load_graph(json.loads(json.dumps(dump_graph(graph))))
        assert restored == graph
        assert restored.nodes() == graph.nodes()
        assert restored.edges() == graph.edges()

    def test_document_uses_editor_keys(self):
        document = dump_graph(_sample_graph())
        process = next(node for node in document["nodes"] if node["id"] == "destopado-1")
        assert process["type"] == "process"
        assert process["data"]["subLabel"] == "Remoción de Estopa"
        assert process["data"]["pieceworkRate"] == 0.4
        assert process["data"]["subproducts"][1] == {
            "productId": "estopa",
            "isVariable": True,
            "unit": "m3",
        }
        math_node = next(node for node in document["nodes"] if node["id"] == "mul-1")
        assert math_node["data"]["resultVar"] == "output"
        assert document["edges"][0]["sourceHandle"] == "item-0"
        assert "sourceHandle" not in document["edges"][3]

    def test_none_loads_as_empty_graph(self):
        graph = load_graph(None)
        assert graph.nodes() == []
        assert dump_graph(graph) == empty_document()

    def test_transient_keys_are_dropped_and_unknown_keys_kept(self):
        document = {
            "nodes": [
                {
                    "id": "n1",
                    "type": "action",
                    "position": {"x": 1, "y": 2},
                    "data": {
                        "label": "Lavar",
                        "simActive": True,
                        "activeStep": False,
                        "simValues": {"a": 1},
                        "color": "amber",
                    },
                }
            ],
            "edges": [],
        }
        node = load_graph(document).find_node("n1")
        assert node.payload.label == "Lavar"
        assert node.payload.extra == {"color": "amber"}
        assert node.position == (1.0, 2.0)
        assert dump_graph(load_graph(document))["nodes"][0]["data"] == {
            "color": "amber",
            "label": "Lavar",
        }

    def test_dangling_branch_handles_survive_loading(self):
        document = {
            "nodes": [
                {"id": "d", "type": "decision", "data": {"branches": []}},
                {"id": "t", "type": "action"},
            ],
            "edges": [{"id": "e", "source": "d", "target": "t", "sourceHandle": "branch-3"}],
        }
        graph = load_graph(document)
        assert [edge.id for edge in graph.dangling_handles()] == ["e"]

    @pytest.mark.parametrize(
        "document",
        [
            [],
            {"nodes": {}},
            {"nodes": [{"id": "a", "type": "warp"}]},
            {"nodes": [{"type": "start"}]},
            {"nodes": [{"id": "a", "type": "start", "data": {"items": [{}]}}]},
            {"nodes": [{"id": "a", "type": "process", "data": {"subproducts": [{"productId": "x"}]}}]},
            {"nodes": [{"id": "a", "type": "display", "data": {"values": [1]}}]},
            {"nodes": [{"id": "a", "type": "start"}], "edges": [{"id": "e", "source": "a", "target": "b"}]},
            {"nodes": [{"id": "a", "type": "start"}, {"id": "a", "type": "end"}]},
            {"nodes": [{"id": "a", "type": "start", "position": {"x": "left"}}]},
        ],
    )
    def test_malformed_documents_raise(self, document):
        with pytest.raises(DocumentError):
            load_graph(document)


class TestWorkflowStores:
    """save/load contract shared by the stores."""

    @pytest.fixture(params=["memory", "sqlite"])
    def store(self, request):
        if request.param == "memory":
            yield InMemoryWorkflowStore()
            return
        database = StudioDatabase(":memory:")
        yield database.workflows
        database.close()

    def test_load_unknown_process_is_empty(self, store):
        assert store.load("nope") == {"nodes": [], "edges": []}

    def test_save_then_load_round_trip(self, store):
        graph = _sample_graph()
        saved = store.save("p1", graph.nodes(), graph.edges())
        assert store.load("p1") == saved
        assert store.load_graph("p1") == graph

    def test_save_overwrites(self, store):
        graph = _sample_graph()
        store.save_graph("p1", graph)
        graph.remove_node("decision-1")
        store.save_graph("p1", graph)
        restored = store.load_graph("p1")
        assert "decision-1" not in restored
        assert len(restored.edges()) == 2
        assert "p1" in store


class TestSQLiteRepository:
    def test_catalog_records_round_trip(self):
        with StudioDatabase(":memory:") as database:
            item = InventoryItem(id="coco", name="Coco entero", unit_of_measure="u")
            database.inventory.add(item.id, item)
            assert database.inventory.get("coco") == item
            assert "coco" in database.inventory
            assert len(database.inventory) == 1
            with pytest.raises(DuplicateIdError):
                database.inventory.add(item.id, item)

    def test_missing_record(self):
        with StudioDatabase(":memory:") as database:
            assert database.tasks.find("t") is None
            with pytest.raises(NotFoundError):
                database.tasks.get("t")
            assert database.tasks.discard("t") is None
