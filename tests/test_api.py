"""
Tests for the FSM HTTP adapter
"""

import logging
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chatfsm import CollaboratorError
from chatfsm.api import create_fsm_router


@pytest.fixture
def client(engine):
    app = FastAPI()
    app.include_router(create_fsm_router(engine))
    return TestClient(app)


class TestStepEndpoint:
    """Test POST /fsm/{platform}/step"""

    def test_step_returns_emitted_messages(self, client):
        response = client.post("/fsm/web/step", json={"uuid": "user-1", "input": "hello"})

        assert response.status_code == 200
        data = response.json()
        assert data["uuid"] == "user-1"
        assert data["state"] == "start"
        assert data["created"] is True
        assert data["messages"] == ["enter start", "reenter start"]

    def test_step_transition(self, client):
        client.post("/fsm/web/step", json={"uuid": "user-1", "input": "hello"})

        response = client.post("/fsm/web/step", json={"uuid": "user-1", "input": "A!"})

        data = response.json()
        assert data["state"] == "middle"
        assert data["intent"] == "a"
        assert data["created"] is False
        assert data["messages"] == ["enter middle"]

    def test_step_requires_uuid(self, client):
        response = client.post("/fsm/web/step", json={"input": "hello"})
        assert response.status_code == 422

    def test_unknown_state_maps_to_422(self, client, store):
        client.post("/fsm/web/step", json={"uuid": "user-1", "input": "hello"})
        store.records["user-1"].current_state = "ghost"

        response = client.post("/fsm/web/step", json={"uuid": "user-1", "input": "hello"})

        assert response.status_code == 422

    def test_collaborator_failure_maps_to_500(self, client, engine):
        engine.step = AsyncMock(side_effect=CollaboratorError("fetch_traverser", OSError("down")))

        response = client.post("/fsm/web/step", json={"uuid": "user-1", "input": "hello"})

        assert response.status_code == 500
        assert response.json()["detail"] == "fetch_traverser failed"


class TestTriggerEndpoint:
    """Test POST /fsm/{platform}/trigger"""

    def test_trigger_unknown_traverser(self, client):
        response = client.post("/fsm/web/trigger", json={"uuid": "nobody", "target": "start"})
        assert response.status_code == 404

    def test_error_mapping_logged_without_raw_uuid(self, client, caplog):
        with caplog.at_level(logging.WARNING, logger="chatfsm.api"):
            client.post("/fsm/web/trigger", json={"uuid": "+15551234567", "target": "start"})

        [record] = [r for r in caplog.records if r.name == "chatfsm.api"]
        assert "404" in record.getMessage()
        assert "TraverserNotFoundError" in record.getMessage()
        assert "+15551234567" not in record.getMessage()

    def test_trigger_queued_while_blocked(self, client):
        client.post("/fsm/web/step", json={"uuid": "user-1", "input": "a"})

        response = client.post(
            "/fsm/web/trigger",
            json={"uuid": "user-1", "target": "start", "payload": {"id": 1}},
        )

        data = response.json()
        assert response.status_code == 200
        assert data["applied"] is False
        assert data["reason"] == "not_exitable"
        assert data["state"] == "middle"
        assert data["messages"] == []

    def test_trigger_applied(self, client, clock):
        client.post("/fsm/web/step", json={"uuid": "user-1", "input": "hello"})
        clock.advance(seconds=60)

        response = client.post("/fsm/web/trigger", json={"uuid": "user-1", "target": "elsewhere"})

        data = response.json()
        assert data["applied"] is True
        assert data["state"] == "elsewhere"
        assert data["messages"] == ["enter elsewhere"]


class TestMetricsEndpoint:
    """Test GET /fsm/metrics"""

    def test_metrics_exposed(self, client):
        client.post("/fsm/web/step", json={"uuid": "user-1", "input": "hello"})

        response = client.get("/fsm/metrics")

        assert response.status_code == 200
        assert "fsm_steps_total" in response.text
