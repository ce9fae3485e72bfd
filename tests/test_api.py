"""
Tests for the HTTP surface.

The app runs without its lifespan: tests put an AlertService backed by the
in-memory store on app.state and override authentication.
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from alerting.alerts.manager import AlertManager, ManagerConfig
from alerting.alerts.service import AlertService
from alerting.api.deps import Principal, get_current_principal
from alerting.main import app

from conftest import FakeChannel, FakeGateway, make_rule


RULE_BODY = {
    "name": "Bot error",
    "owner_id": "org-1",
    "resource_type": "bot",
    "resource_id": "bot-1",
    "trigger_type": "status_change",
    "conditions": {"trigger_on": ["error"]},
    "severity": "critical",
    "recipients": ["ops@example.com"],
}


@pytest.fixture
def gateway():
    return FakeGateway([True])


@pytest.fixture
def client(store, gateway):
    app.state.alert_service = AlertService(store, gateway)
    app.state.alert_manager = None
    app.dependency_overrides[get_current_principal] = lambda: Principal("user-1", "tok")
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.alert_manager = None


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["alert_delivery"] is False


class TestRuleRoutes:
    """Tests for rule CRUD over HTTP."""

    def test_create_and_get(self, client):
        response = client.post("/api/v1/alert-rules", json=RULE_BODY)
        assert response.status_code == 201
        rule_id = response.json()["id"]

        response = client.get(f"/api/v1/alert-rules/{rule_id}")
        assert response.status_code == 200
        assert response.json()["recipients"] == ["ops@example.com"]
        assert response.json()["delivery_mode"] == "immediate"

    def test_invalid_conditions_are_422(self, client, store):
        body = {**RULE_BODY, "conditions": {"trigger_on": ["error"], "oops": True}}
        response = client.post("/api/v1/alert-rules", json=body)
        assert response.status_code == 422
        assert store.rules == []

    def test_denied_is_403(self, client, gateway):
        gateway.decisions = [False]
        response = client.post("/api/v1/alert-rules", json=RULE_BODY)
        assert response.status_code == 403

    def test_unknown_rule_is_404(self, client):
        response = client.get(f"/api/v1/alert-rules/{uuid.uuid4()}")
        assert response.status_code == 404

    def test_update_toggle_delete(self, client):
        rule_id = client.post("/api/v1/alert-rules", json=RULE_BODY).json()["id"]

        response = client.put(f"/api/v1/alert-rules/{rule_id}", json={"cooldown_seconds": 60})
        assert response.json()["cooldown_seconds"] == 60

        response = client.patch(f"/api/v1/alert-rules/{rule_id}/toggle", json={"enabled": False})
        assert response.json()["enabled"] is False

        assert client.delete(f"/api/v1/alert-rules/{rule_id}").status_code == 204
        assert client.get(f"/api/v1/alert-rules/{rule_id}").status_code == 404

    def test_update_with_bad_conditions_is_422(self, client):
        rule_id = client.post("/api/v1/alert-rules", json=RULE_BODY).json()["id"]
        response = client.put(
            f"/api/v1/alert-rules/{rule_id}", json={"conditions": {"target_percent": 5}}
        )
        assert response.status_code == 422

    def test_list_filters_by_resource(self, client):
        client.post("/api/v1/alert-rules", json=RULE_BODY)
        client.post("/api/v1/alert-rules", json={**RULE_BODY, "resource_id": "bot-2"})

        response = client.get("/api/v1/alert-rules", params={"resource_id": "bot-2"})

        assert response.json()["total"] == 1

    def test_trigger_types(self, client):
        response = client.get("/api/v1/alert-rules/trigger-types")
        types = {item["type"] for item in response.json()}
        assert "status_change" in types and "backtest_failed" in types

    def test_trigger_types_filtered_by_resource(self, client):
        response = client.get(
            "/api/v1/alert-rules/trigger-types", params={"resource_type": "runner"}
        )
        assert response.status_code == 200
        assert [item["type"] for item in response.json()] == ["connection_issue"]

        bot_types = {
            item["type"]
            for item in client.get(
                "/api/v1/alert-rules/trigger-types", params={"resource_type": "bot"}
            ).json()
        }
        assert "status_change" in bot_types
        assert "backtest_completed" not in bot_types


class TestDeliveryRoutes:
    """Tests for test sends and the audit trail."""

    def test_test_send_without_manager_is_503(self, client):
        rule_id = client.post("/api/v1/alert-rules", json=RULE_BODY).json()["id"]
        response = client.post(f"/api/v1/alert-rules/{rule_id}/test")
        assert response.status_code == 503

    def test_test_send(self, client, store):
        channel = FakeChannel()
        app.state.alert_manager = AlertManager(
            store, channel, ManagerConfig(batch_interval_seconds=60)
        )
        rule_id = client.post("/api/v1/alert-rules", json=RULE_BODY).json()["id"]

        response = client.post(f"/api/v1/alert-rules/{rule_id}/test")

        assert response.status_code == 202
        assert channel.sent[0].subject.startswith("[TEST] ")

    def test_channel_test(self, client, store):
        channel = FakeChannel()
        app.state.alert_manager = AlertManager(
            store, channel, ManagerConfig(batch_interval_seconds=60)
        )
        response = client.post("/api/v1/alert-channels/test", json={"recipient": ""})
        assert response.status_code == 202
        assert channel.tests == ["alerts@example.com"]

    def test_rule_events(self, client, store):
        rule = make_rule()
        store.rules.append(rule)
        response = client.get(f"/api/v1/alert-rules/{rule.id}/events")
        assert response.status_code == 200
        assert response.json() == []
