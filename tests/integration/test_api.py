"""HTTP tests through the FastAPI test client."""

import json

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_db, get_notifier, get_reconciliation_service
from app.main import app
from app.services.subscription.webhook_signature import SIGNATURE_HEADER

OWNER = {"X-User-Id": "user-1", "X-Property-Id": "property-1"}


@pytest.fixture
def client(db, notifier, reconciliation):
    """Test client bound to the per-test database; lifespan events are not run."""

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_reconciliation_service] = lambda: reconciliation
    yield TestClient(app)
    app.dependency_overrides.clear()


def signed_webhook(client, sign, notes, event="payment.captured", payment_id="pay_001"):
    body = json.dumps(
        {
            "event": event,
            "payload": {
                "payment": {"entity": {"id": payment_id, "order_id": "order_001", "amount": 99900}},
                "order": {"entity": {"id": "order_001", "notes": notes}},
            },
        }
    ).encode()
    return client.post(
        "/api/v1/payments/webhook",
        content=body,
        headers={SIGNATURE_HEADER: sign(body), "Content-Type": "application/json"},
    )


@pytest.mark.integration
class TestHealthAndIdentity:
    """Test service wiring."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_missing_user_header(self, client):
        response = client.get("/api/v1/subscriptions/current")

        assert response.status_code == 401

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.integration
class TestSubscriptionEndpoints:
    """Test plan and subscription routes."""

    def test_list_plans(self, client, system_plans, sample_plan):
        response = client.get("/api/v1/subscriptions/plans", headers=OWNER)

        assert response.status_code == 200
        names = [plan["plan_name"] for plan in response.json()["data"]]
        assert names == ["Free Trial Plan", "Standard"]

    def test_calculate_cost(self, client, sample_plan):
        response = client.post(
            f"/api/v1/subscriptions/plans/{sample_plan.id}/calculate-cost",
            json={"bedCount": 15},
            headers=OWNER,
        )

        assert response.status_code == 200
        assert response.json()["data"]["total_monthly_price"] == 1249.0

    def test_calculate_cost_rejects_bad_counts(self, client, sample_plan):
        response = client.post(
            f"/api/v1/subscriptions/plans/{sample_plan.id}/calculate-cost",
            json={"bedCount": 500},
            headers=OWNER,
        )

        body = response.json()
        assert response.status_code == 400
        assert body["success"] is False
        assert body["code"] == "VALIDATION_ERROR"
        assert body["field"] == "bed_count"

    def test_trial_activation_and_current(self, client, system_plans, notifier):
        created = client.post("/api/v1/subscriptions/trial", headers=OWNER)

        assert created.status_code == 201
        assert created.json()["data"]["status"] == "trial"

        current = client.get("/api/v1/subscriptions/current", headers=OWNER)
        assert current.status_code == 200
        assert current.json()["data"]["total_beds"] == 30
        assert len(notifier.of_type("SUBSCRIPTION_UPDATED")) == 1

    def test_second_trial_conflicts(self, client, system_plans):
        client.post("/api/v1/subscriptions/trial", headers=OWNER)

        response = client.post("/api/v1/subscriptions/trial", headers=OWNER)

        assert response.status_code == 409

    def test_no_current_subscription(self, client):
        response = client.get("/api/v1/subscriptions/current", headers=OWNER)

        assert response.status_code == 404

    def test_subscribe_and_cancel(self, client, sample_plan):
        created = client.post(
            "/api/v1/subscriptions/subscribe",
            json={"planId": sample_plan.id, "bedCount": 12},
            headers=OWNER,
        )
        assert created.status_code == 201
        assert created.json()["data"]["payment_status"] == "pending"

        cancelled = client.post("/api/v1/subscriptions/cancel", json={"reason": "Moving out"}, headers=OWNER)
        assert cancelled.status_code == 200
        assert cancelled.json()["data"]["status"] == "cancelled"


@pytest.mark.integration
class TestRoomEndpoints:
    """Test quota-gated room routes."""

    def test_create_room(self, client, system_plans, sample_floor):
        response = client.post(
            "/api/v1/rooms",
            json={"floorId": sample_floor.id, "roomNumber": "101", "numberOfBeds": 2},
            headers=OWNER,
        )

        assert response.status_code == 201
        assert response.json()["data"]["bed_labels"] == ["101-A", "101-B"]

    def test_quota_refusal_is_forbidden(self, client, make_rooms, system_plans, sample_floor):
        make_rooms(sample_floor, beds_per_room=1, count=5)

        response = client.post(
            "/api/v1/rooms",
            json={"floorId": sample_floor.id, "roomNumber": "201"},
            headers=OWNER,
        )

        body = response.json()
        assert response.status_code == 403
        assert body["code"] == "QUOTA_EXCEEDED"
        assert body["details"]["type"] == "rooms"

    def test_property_header_required(self, client, sample_floor):
        response = client.post(
            "/api/v1/rooms",
            json={"floorId": sample_floor.id, "roomNumber": "101"},
            headers={"X-User-Id": "user-1"},
        )

        assert response.status_code == 400


@pytest.mark.integration
class TestPaymentWebhook:
    """Test the gateway webhook route."""

    def notes(self, plan):
        return {
            "userId": "user-1",
            "subscriptionPlanId": plan.id,
            "bedCount": "10",
            "billingCycle": "monthly",
        }

    def test_bad_signature(self, client, sample_plan):
        response = client.post(
            "/api/v1/payments/webhook",
            content=b'{"event": "payment.captured"}',
            headers={SIGNATURE_HEADER: "deadbeef"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_SIGNATURE"

    def test_applied_then_duplicate(self, client, sample_plan, sign):
        applied = signed_webhook(client, sign, self.notes(sample_plan))
        duplicate = signed_webhook(client, sign, self.notes(sample_plan))

        assert applied.status_code == 200
        assert applied.json()["message"] == "Payment applied"
        assert duplicate.status_code == 200
        assert duplicate.json()["metadata"] == {"code": "DUPLICATE_EVENT"}

        current = client.get("/api/v1/subscriptions/current", headers=OWNER).json()["data"]
        assert current["payment_status"] == "completed"

    def test_unusable_notes_still_answer_ok(self, client, sign):
        response = signed_webhook(client, sign, {"type": "gift", "userId": "user-1"})

        assert response.status_code == 200
        assert response.json()["success"] is False
