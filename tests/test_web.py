"""Tests for the FastAPI web interface."""

import pytest
from fastapi.testclient import TestClient

from process_studio.web.app import DEMO_PROCESS_ID, create_app


@pytest.fixture
def client(tmp_path):
    app = create_app(str(tmp_path / "studio.sqlite3"))
    with TestClient(app) as test_client:
        yield test_client


class TestWorkflowApi:
    def test_demo_process_is_seeded(self, client):
        processes = client.get("/api/processes").json()
        assert [process["id"] for process in processes] == [DEMO_PROCESS_ID]

        document = client.get(f"/api/processes/{DEMO_PROCESS_ID}/workflow").json()
        assert document["nodes"][0]["id"] == "start-1"
        assert any(edge.get("sourceHandle") == "branch-0" for edge in document["edges"])

    def test_put_replaces_and_persists(self, client):
        document = {
            "nodes": [
                {"id": "s", "type": "start", "position": {"x": 0, "y": 0}, "data": {}},
                {"id": "e", "type": "end", "position": {"x": 100, "y": 0}, "data": {}},
            ],
            "edges": [{"id": "e1", "source": "s", "target": "e"}],
        }
        response = client.put(f"/api/processes/{DEMO_PROCESS_ID}/workflow", json=document)
        assert response.status_code == 200
        stored = client.get(f"/api/processes/{DEMO_PROCESS_ID}/workflow").json()
        assert [node["id"] for node in stored["nodes"]] == ["s", "e"]

    def test_put_malformed_document(self, client):
        response = client.put(
            f"/api/processes/{DEMO_PROCESS_ID}/workflow",
            json={"nodes": [{"id": "x", "type": "warp"}], "edges": []},
        )
        assert response.status_code == 422

    def test_unknown_process(self, client):
        assert client.get("/api/processes/nope/workflow").status_code == 404

    def test_connect_rejects_invalid_branch(self, client):
        response = client.post(
            f"/api/processes/{DEMO_PROCESS_ID}/edges",
            json={"source": "decision-1", "target": "end-1", "sourceHandle": "branch-7"},
        )
        assert response.status_code == 409

        response = client.post(
            f"/api/processes/{DEMO_PROCESS_ID}/edges",
            json={"source": "decision-1", "target": "end-1", "sourceHandle": "branch-1"},
        )
        assert response.status_code == 200
        assert response.json()["sourceHandle"] == "branch-1"

    def test_connect_validates_body(self, client):
        response = client.post(
            f"/api/processes/{DEMO_PROCESS_ID}/edges",
            json={"source": None, "target": "end-1"},
        )
        assert response.status_code == 422
        response = client.post(f"/api/processes/{DEMO_PROCESS_ID}/edges", json={"target": "end-1"})
        assert response.status_code == 422

    def test_put_rejects_malformed_payload_rows(self, client):
        document = {
            "nodes": [{"id": "p", "type": "process", "data": {"items": [{"yield": 1}]}}],
            "edges": [],
        }
        response = client.put(f"/api/processes/{DEMO_PROCESS_ID}/workflow", json=document)
        assert response.status_code == 422
        assert "items" in response.json()["detail"]


class TestSimulationApi:
    def test_play_demo_process(self, client):
        base = f"/api/processes/{DEMO_PROCESS_ID}/simulation"
        session = client.post(f"{base}/start", json={"variables": {"merma": 12}}).json()
        assert session["state"] == "running"
        assert session["activeNodeId"] == "start-1"
        assert session["variables"] == {"cocos": 100, "merma": 12}

        for _ in range(10):
            session = client.post(f"{base}/step").json()
            if session["state"] != "running":
                break

        assert session["state"] == "completed"
        assert session["endNodeId"] == "end-1"
        assert session["variables"]["cocos_utiles"] == 88
        assert session["visitedHistory"] == [
            "start-1",
            "destopado-1",
            "merma-1",
            "decision-1",
            "deshuesado-1",
            "pelado-1",
        ]
        assert client.get(base).json() == session

        stopped = client.post(f"{base}/stop").json()
        assert stopped["state"] == "idle"
        assert stopped["isRunning"] is False

    def test_start_without_body(self, client):
        response = client.post(f"/api/processes/{DEMO_PROCESS_ID}/simulation/start")
        assert response.status_code == 200
        assert response.json()["variables"] == {"cocos": 100, "merma": 0}

    def test_step_before_start_is_idle(self, client):
        response = client.post(f"/api/processes/{DEMO_PROCESS_ID}/simulation/step")
        assert response.json()["state"] == "idle"

    def test_division_by_zero_keeps_session_serializable(self, client):
        document = {
            "nodes": [
                {"id": "s", "type": "start"},
                {
                    "id": "div",
                    "type": "math_divide",
                    "data": {"expression": "1 / 0", "resultVar": "r"},
                },
                {"id": "next", "type": "action"},
            ],
            "edges": [
                {"id": "e1", "source": "s", "target": "div"},
                {"id": "e2", "source": "div", "target": "next"},
            ],
        }
        client.put(f"/api/processes/{DEMO_PROCESS_ID}/workflow", json=document)
        base = f"/api/processes/{DEMO_PROCESS_ID}/simulation"
        client.post(f"{base}/start")
        client.post(f"{base}/step")
        response = client.post(f"{base}/step")
        assert response.status_code == 200
        assert response.json()["variables"] == {"r": "Infinity"}
        assert response.json()["activeNodeId"] == "next"
        assert client.get(base).status_code == 200

    def test_start_rejects_non_object_variables(self, client):
        response = client.post(
            f"/api/processes/{DEMO_PROCESS_ID}/simulation/start", json={"variables": [1, 2]}
        )
        assert response.status_code == 422


class TestOverviewPage:
    def test_overview_renders(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "Procesamiento de Coco" in response.text
        assert "Coco entero" in response.text

    def test_form_driven_simulation(self, client):
        response = client.post(
            f"/processes/{DEMO_PROCESS_ID}/simulation",
            data={"action": "start"},
            follow_redirects=False,
        )
        assert response.status_code == 303
        client.post(f"/processes/{DEMO_PROCESS_ID}/simulation", data={"action": "step"})
        page = client.get("/", params={"process": DEMO_PROCESS_ID})
        assert "Simulación en vivo" in page.text
        assert "destopado-1" in page.text

    def test_create_process_form(self, client):
        response = client.post("/processes", data={"name": "Empaque"}, follow_redirects=False)
        assert response.status_code == 303
        names = [process["name"] for process in client.get("/api/processes").json()]
        assert "Empaque" in names

    def test_history_limit_form(self, client):
        client.post("/simulation/options", data={"history_limit": "2"})
        base = f"/api/processes/{DEMO_PROCESS_ID}/simulation"
        client.post(f"{base}/start")
        for _ in range(3):
            session = client.post(f"{base}/step").json()
        assert session["visitedHistory"] == ["destopado-1", "merma-1"]
        assert session["stepCount"] == 3

    @pytest.mark.parametrize("value", ["dos", "0", "-3"])
    def test_history_limit_form_rejects_invalid_values(self, client, value):
        client.post("/simulation/options", data={"history_limit": "5"})
        response = client.post(
            "/simulation/options", data={"history_limit": value}, follow_redirects=False
        )
        assert response.status_code == 400
        assert client.app.state.studio_service.simulation_options.history_limit == 5
