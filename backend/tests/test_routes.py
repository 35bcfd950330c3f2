"""
API tests for the research and history routes, with the task queue replaced
by an in-memory list and the store backed by SQLite.
"""
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.api.routes_research import get_orchestrator
from app.services.orchestrator import ResearchOrchestrator
from app.services.store import UnconfiguredStore


@pytest.fixture
def orchestrator(make_orchestrator, scripted_source):
    return make_orchestrator(scripted_source(["a" * 50 + "\n", "b" * 60]))


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def unconfigured_client(dispatched, scripted_source):
    orch = ResearchOrchestrator(
        store=UnconfiguredStore(),
        source_factory=scripted_source,
        dispatch=dispatched.append,
    )
    app.dependency_overrides[get_orchestrator] = lambda: orch
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestCreateResearch:
    def test_returns_session_id_immediately(self, client, dispatched, store):
        resp = client.post("/api/research", data={"query": "X"})
        assert resp.status_code == 202
        session_id = resp.json()["session_id"]

        assert [d.session_id for d in dispatched] == [session_id]
        assert store.get_session(session_id).status.value == "running"

    def test_uploaded_files_become_documents(self, client, store):
        resp = client.post(
            "/api/research",
            data={"query": "X"},
            files=[
                ("files", ("notes.txt", b"hello world", "text/plain")),
                ("files", ("table.csv", b"a,b\n1,2", "text/csv")),
            ],
        )
        assert resp.status_code == 202
        docs = store.list_documents(resp.json()["session_id"])
        assert [(d.filename, d.content, d.file_size, d.mime_type) for d in docs] == [
            ("notes.txt", "hello world", 11, "text/plain"),
            ("table.csv", "a,b\n1,2", 7, "text/csv"),
        ]

    def test_blank_query_rejected(self, client, dispatched, store):
        resp = client.post("/api/research", data={"query": "  "})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Query is required"
        assert dispatched == []
        assert store.list_sessions() == []

    def test_not_configured(self, unconfigured_client, dispatched):
        resp = unconfigured_client.post("/api/research", data={"query": "X"})
        assert resp.status_code == 503
        assert "not configured" in resp.json()["detail"]
        assert dispatched == []


class TestPollResearch:
    def test_snapshot_while_running(self, client):
        session_id = client.post("/api/research", data={"query": "X"}).json()["session_id"]

        resp = client.get(f"/api/research/{session_id}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["session"]["status"] == "running"
        assert body["session"]["total_tokens"] == 0
        assert body["session"]["total_cost"] == 0.0
        assert body["session"]["result_summary"] is None
        assert body["steps"] == []

    def test_snapshot_after_run(self, client, orchestrator, dispatched):
        session_id = client.post("/api/research", data={"query": "X"}).json()["session_id"]
        orchestrator.run(dispatched[0])

        body = client.get(f"/api/research/{session_id}").json()
        assert body["session"]["status"] == "completed"
        assert body["session"]["total_tokens"] == 28
        assert body["session"]["total_cost"] == pytest.approx(0.00028)
        assert body["session"]["completed_at"] is not None
        assert [(s["step_number"], s["step_type"], s["tokens_used"]) for s in body["steps"]] == [
            (1, "analysis", 28),
        ]

    def test_unknown_session(self, client):
        resp = client.get("/api/research/nope")
        assert resp.status_code == 404

    def test_not_configured_is_not_empty_data(self, unconfigured_client):
        resp = unconfigured_client.get("/api/research/anything")
        assert resp.status_code == 503

    def test_documents_listing(self, client):
        session_id = client.post(
            "/api/research",
            data={"query": "X"},
            files=[("files", ("notes.txt", b"hello", "text/plain"))],
        ).json()["session_id"]

        resp = client.get(f"/api/research/{session_id}/documents")
        assert resp.status_code == 200
        assert [d["filename"] for d in resp.json()] == ["notes.txt"]
        assert "content" not in resp.json()[0]


class TestContinueResearch:
    def test_fork_returns_new_session(self, client, orchestrator, dispatched, store):
        parent_id = client.post("/api/research", data={"query": "X"}).json()["session_id"]
        orchestrator.run(dispatched[0])

        resp = client.post(
            "/api/research/continue",
            json={"session_id": parent_id, "additional_query": "go deeper"},
        )
        assert resp.status_code == 202
        body = resp.json()
        assert body["parent_session_id"] == parent_id
        assert body["new_session_id"] != parent_id
        assert dispatched[-1].session_id == body["new_session_id"]
        assert "Continuation: go deeper" in store.get_session(body["new_session_id"]).query

    def test_unknown_parent(self, client, dispatched):
        resp = client.post(
            "/api/research/continue",
            json={"session_id": "missing", "additional_query": "go deeper"},
        )
        assert resp.status_code == 404
        assert dispatched == []

    def test_blank_additional_query(self, client):
        resp = client.post(
            "/api/research/continue",
            json={"session_id": "whatever", "additional_query": "   "},
        )
        assert resp.status_code == 422


class TestHistory:
    def test_history_lists_recent_sessions(self, client):
        ids = {
            client.post("/api/research", data={"query": f"q{i}"}).json()["session_id"]
            for i in range(3)
        }
        resp = client.get("/api/research/history")
        assert resp.status_code == 200
        assert {s["id"] for s in resp.json()["sessions"]} == ids

    def test_history_limit(self, client):
        for i in range(3):
            client.post("/api/research", data={"query": f"q{i}"})
        assert len(client.get("/api/research/history?limit=2").json()["sessions"]) == 2

    def test_cost_summary(self, client, orchestrator, dispatched):
        for i in range(2):
            client.post("/api/research", data={"query": f"q{i}"})
        for descriptor in dispatched:
            orchestrator.run(descriptor)

        body = client.get("/api/research/costs").json()
        assert body["session_count"] == 2
        assert body["total_tokens"] == 56
        assert body["total_cost"] == pytest.approx(0.00056)
        assert body["avg_cost_per_session"] == pytest.approx(0.00028)

    def test_history_not_configured(self, unconfigured_client):
        assert unconfigured_client.get("/api/research/history").status_code == 503
