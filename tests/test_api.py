"""Tests for the HTTP surface (in-memory store, mocked model)."""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from ops_assistant.api import deps
from ops_assistant.core.context_resolver import ContextResolver
from ops_assistant.core.errors import ModelUnavailableError
from ops_assistant.core.feedback_learner import FeedbackLearner
from ops_assistant.db.context_cache import ContextCache
from ops_assistant.main import app
from ops_assistant.services.summary_orchestrator import SummaryOrchestrator


@pytest.fixture
def model_client():
    client = AsyncMock()
    client.complete = AsyncMock(
        return_value=json.dumps({"summary": "Quiet.", "action_items": ["Check in"]})
    )
    return client


@pytest.fixture
def client(store, model_client):
    resolver = ContextResolver(ContextCache(), store)
    learner = FeedbackLearner(store)
    orchestrator = SummaryOrchestrator(resolver, learner, model_client, store)

    app.dependency_overrides[deps.get_resolver] = lambda: resolver
    app.dependency_overrides[deps.get_learner] = lambda: learner
    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_resolve_context(client, store):
    store.add_client("Acme Corp")

    response = client.post("/v1/context/resolve", json={"records": [{"text": "Acme Corp called"}]})

    assert response.status_code == 200
    data = response.json()
    assert [c["name"] for c in data["clients"]] == ["Acme Corp"]


def test_cache_admin(client):
    assert client.get("/v1/context/cache").json()["clients"]["kind"] == "clients"
    assert client.delete("/v1/context/cache", params={"kind": "clients"}).json()["cleared"] == ["clients"]
    assert client.delete("/v1/context/cache", params={"kind": "invoices"}).status_code == 400
    assert client.post("/v1/context/cache/prune").json()["pruned"] == {"clients": 0, "projects": 0}


def test_client_crud(client):
    created = client.post("/v1/clients", json={"name": "Globex", "profile": {"tier": "gold"}})
    assert created.status_code == 201
    client_id = created.json()["id"]

    assert client.get(f"/v1/clients/{client_id}").json()["name"] == "Globex"
    assert client.get("/v1/clients/missing").status_code == 404

    patched = client.patch(f"/v1/clients/{client_id}", json={"profile": {"tier": "silver"}})
    assert patched.json()["profile"] == {"tier": "silver"}
    assert client.patch(f"/v1/clients/{client_id}", json={}).status_code == 400

    assert client.post("/v1/clients", json={"name": " "}).status_code == 400


def test_submit_feedback(client, store):
    summary = store.add_summary("slack", "Digest")

    response = client.post("/v1/feedback", json={"summary_id": summary["id"], "rating": "EDITED"})

    assert response.status_code == 201
    assert response.json()["feedback"]["rating"] == "edited"
    history = client.get("/v1/feedback", params={"summary_id": summary["id"]}).json()
    assert len(history) == 1


def test_submit_feedback_requires_summary_id(client):
    response = client.post("/v1/feedback", json={"rating": "approved"})
    assert response.status_code == 400


def test_feedback_stats_and_preferences(client, store):
    summary = store.add_summary("slack", "Digest")
    client.post("/v1/feedback", json={"summary_id": summary["id"], "rating": "approved"})

    stats = client.get("/v1/feedback/stats", params={"days": 7}).json()
    assert stats["total"] == 1
    assert stats["approval_rate"] == 100.0

    prefs = client.get("/v1/feedback/preferences").json()
    assert prefs["tone"] == "neutral"
    assert prefs["length"] == "medium"


def test_summarize_source(client):
    response = client.post("/v1/summarize/slack", json={"records": [{"text": "hello"}]})

    assert response.status_code == 200
    assert response.json()["summary"] == "Quiet."
    assert response.json()["action_items"] == ["Check in"]


def test_summarize_model_unavailable_is_503(client, model_client):
    model_client.complete.side_effect = ModelUnavailableError("down", attempts=3)

    response = client.post("/v1/summarize/slack", json={"records": [{"text": "hello"}]})

    assert response.status_code == 503


def test_summarize_multi_and_all(client):
    multi = client.post("/v1/summarize", json={"batches": {"slack": [{"text": "hi"}], "email": []}})
    assert multi.status_code == 200
    data = multi.json()
    assert set(data["results"]) == {"slack", "email"}
    assert data["combined"]["summary"].startswith("SLACK: Quiet.")

    recent = client.post("/v1/summarize/all")
    assert recent.status_code == 200
    assert recent.json()["source"] == "all"
    assert "SLACK: Quiet." in recent.json()["summary"]


def test_list_summaries(client, store):
    store.add_summary("slack", "One")

    response = client.get("/v1/summaries")

    assert response.status_code == 200
    assert [s["summary"] for s in response.json()] == ["One"]
