"""
HTTP API Tests

Every route answers with the Result envelope. Stores are redirected to
temp files through app.dependency_overrides; the LLM provider is disabled.
"""

import pytest
from fastapi.testclient import TestClient

from tracker.main import app, get_llm_provider, get_reflection_store, get_task_store


# -----------------------------------------------------------------------------
# Test Client Setup
# -----------------------------------------------------------------------------
@pytest.fixture
def client(task_store, reflection_store):
    """Test client bound to temp stores and no LLM."""
    app.dependency_overrides[get_task_store] = lambda: task_store
    app.dependency_overrides[get_reflection_store] = lambda: reflection_store
    app.dependency_overrides[get_llm_provider] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(client):
    client.post("/reset")
    return client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "value": "ok"}


class TestTasks:
    """CRUD and transitions."""

    def test_create_goal_and_action(self, client):
        response = client.post("/tasks", json={"title": "Launch podcast"})
        assert response.status_code == 201
        assert response.json()["value"] == {
            "id": 1, "title": "Launch podcast", "status": "todo", "kind": "goal",
        }

        response = client.post("/tasks", json={"title": "Record pilot", "parentId": 1})
        assert response.json()["value"]["kind"] == "action"
        assert response.json()["value"]["parentId"] == 1

    def test_create_persists(self, client, task_store):
        client.post("/tasks", json={"title": "Launch podcast"})
        assert [t.title for t in task_store.load().list_tasks().value] == ["Launch podcast"]

    def test_missing_title_is_bad_request(self, client):
        response = client.post("/tasks", json={})
        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_list_with_filters(self, seeded):
        body = seeded.get("/tasks").json()
        assert [t["id"] for t in body["value"]] == [1, 2, 3, 4, 5]

        body = seeded.get("/tasks", params={"parentId": 1}).json()
        assert [t["id"] for t in body["value"]] == [2, 3]

        body = seeded.get("/tasks", params={"status": "done"}).json()
        assert [t["id"] for t in body["value"]] == [5]

    def test_start_cascades_to_parent(self, seeded):
        response = seeded.post("/tasks/2/start")
        assert response.status_code == 200
        assert response.json()["value"]["status"] == "in-progress"

        goal = [t for t in seeded.get("/tasks").json()["value"] if t["id"] == 1][0]
        assert goal["status"] == "in-progress"

    def test_invalid_transition(self, seeded):
        response = seeded.post("/tasks/2/done")
        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "INVALID_TRANSITION",
            "message": 'Task 2 is "todo", expected "in-progress"',
        }

    def test_not_found(self, client):
        response = client.post("/tasks/42/start")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_patch(self, seeded):
        response = seeded.patch("/tasks/2", json={"outcome": "Price sheet for 5 rivals"})
        assert response.json()["value"]["outcome"] == "Price sheet for 5 rivals"

    def test_empty_patch_rejected(self, seeded):
        response = seeded.patch("/tasks/2", json={})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_reset_returns_seed(self, client):
        response = client.post("/reset")
        assert response.status_code == 200
        assert len(response.json()["value"]) == 5


class TestSuggestions:
    """Advisory endpoint; never mutates tasks."""

    def test_returns_bounded_list(self, seeded):
        response = seeded.post("/suggestions", json={"id": 1, "title": "Decide on Q3 pricing strategy"})
        assert response.status_code == 200
        suggestions = response.json()["value"]["suggestions"]
        assert 1 <= len(suggestions) <= 4
        assert [s["kind"] for s in suggestions].count("validation") == 1

    def test_does_not_mutate(self, seeded):
        before = seeded.get("/tasks").json()
        seeded.post("/suggestions", json={"id": 2, "title": "Research competitor pricing"})
        assert seeded.get("/tasks").json() == before

    def test_client_reflections_shape_validation(self, seeded):
        body = {
            "id": 7,
            "title": "Plan the offsite",
            "reflections": [{
                "id": "r1", "createdAt": "2026-01-01T00:00:00+00:00",
                "goalId": 7, "signals": ["unclear_action"],
            }],
        }
        suggestions = seeded.post("/suggestions", json=body).json()["value"]["suggestions"]
        validation = [s for s in suggestions if s["kind"] == "validation"][0]
        assert validation["title"] == "Rewrite the next step so it fits in 15 minutes"

    def test_missing_title_is_bad_request(self, client):
        response = client.post("/suggestions", json={"id": 1})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"


class TestBriefing:
    def test_briefing(self, seeded):
        response = seeded.post("/briefing", json={"userName": "Sam"})
        value = response.json()["value"]
        assert value["greeting"] == "Good morning, Sam."
        assert [f["goalId"] for f in value["focus"]] == [4, 1]

    def test_briefing_without_body(self, client):
        value = client.post("/briefing").json()["value"]
        assert value["focus"] == []
        assert value["greeting"] == "Good morning."


class TestReflections:
    """Append-only endpoint plus filtered listing."""

    def test_append_and_list(self, client):
        response = client.post("/reflections", json={"goalId": 1, "signals": ["low_energy"]})
        assert response.status_code == 201
        assert response.json()["value"]["signals"] == ["low_energy"]

        listed = client.get("/reflections", params={"goalId": 1}).json()["value"]
        assert len(listed) == 1
        assert client.get("/reflections", params={"goalId": 2}).json()["value"] == []

    def test_validation_error(self, client):
        response = client.post("/reflections", json={"goalId": 1, "note": "x" * 141})
        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "VALIDATION",
            "message": "note must be <= 140 characters",
        }

    def test_nested_signal_is_validation_error(self, client):
        response = client.post("/reflections", json={"goalId": 1, "signals": [["low_energy"]]})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION"

    def test_non_object_body(self, client):
        response = client.post("/reflections", json=[1, 2])
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"
