import pytest
from fastapi.testclient import TestClient

from shopcore.utils import settings

from tests.conftest import ADDRESS


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_cart_flow(client):
    resp = client.get("/carts", params={"user_id": 1})
    assert resp.status_code == 200
    assert resp.json()["cart_id"] is None

    resp = client.post("/carts/items", params={"user_id": 1}, json={"product_id": 1, "quantity": 2})
    assert resp.status_code == 200
    cart = resp.json()
    assert float(cart["total_amount"]) == 20.0
    item_id = cart["items"][0]["id"]

    resp = client.patch(f"/carts/items/{item_id}", params={"user_id": 1}, json={"quantity": 3})
    assert float(resp.json()["total_amount"]) == 30.0

    resp = client.delete(f"/carts/items/{item_id}", params={"user_id": 1})
    assert resp.json()["items"] == []

    resp = client.delete("/carts", params={"user_id": 1})
    assert resp.status_code == 200


def test_validation_error_envelope(client):
    resp = client.post("/carts/items", params={"user_id": 1}, json={"product_id": 1, "quantity": 0})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "validation_error"
    assert any(d["field"] == "body.quantity" for d in body["error"]["details"])


def test_missing_owner_is_a_validation_error(client):
    resp = client.get("/carts")
    assert resp.status_code == 400


def test_domain_errors_map_to_status_codes(client):
    resp = client.post("/carts/items", params={"user_id": 1}, json={"product_id": 3, "quantity": 1})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "product_unavailable"

    resp = client.post("/carts/items", params={"user_id": 1}, json={"product_id": 2, "quantity": 9})
    assert resp.status_code == 409
    assert resp.json()["error"]["details"] == {"product_id": 2, "requested": 9, "available": 3}


def test_order_endpoints(client):
    resp = client.post(
        "/orders",
        params={"user_id": 1},
        json={"items": [{"product_id": 1, "quantity": 1}], "shipping_address": ADDRESS},
        headers={"Idempotency-Key": "order-1"},
    )
    assert resp.status_code == 201
    order = resp.json()
    assert order["status"] == "pending"

    replay = client.post(
        "/orders",
        params={"user_id": 1},
        json={"items": [{"product_id": 1, "quantity": 1}], "shipping_address": ADDRESS},
        headers={"Idempotency-Key": "order-1"},
    )
    assert replay.json()["id"] == order["id"]

    resp = client.get("/orders", params={"user_id": 1})
    assert [o["id"] for o in resp.json()] == [order["id"]]

    resp = client.get(f"/orders/{order['id']}", params={"user_id": 2})
    assert resp.status_code == 404

    resp = client.patch(f"/orders/{order['id']}/status", json={"status": "shipped"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "invalid_status_transition"

    resp = client.patch(f"/orders/{order['id']}/status", json={"status": "lost"})
    assert resp.status_code == 400

    resp = client.patch(f"/orders/{order['id']}/payment", json={"payment_status": "paid"})
    assert resp.json()["payment_status"] == "paid"


def test_order_from_cart_endpoint(client):
    client.post("/carts/items", params={"user_id": 1}, json={"product_id": 1, "quantity": 2})
    client.post("/carts/items", params={"user_id": 1}, json={"product_id": 2, "quantity": 1})

    resp = client.post("/orders/from-cart", params={"user_id": 1}, json={"shipping_address": ADDRESS})
    assert resp.status_code == 201
    assert float(resp.json()["total_amount"]) == 25.0

    resp = client.post("/orders/from-cart", params={"user_id": 1}, json={"shipping_address": ADDRESS})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "empty_cart"


def _paid_flow(client):
    order = client.post(
        "/orders",
        params={"user_id": 1},
        json={"items": [{"product_id": 1, "quantity": 1}], "shipping_address": ADDRESS},
    ).json()
    intent = client.post(f"/payments/create-intent/{order['id']}", params={"user_id": 1}).json()
    return order, intent


def test_payment_endpoints(client):
    order, intent = _paid_flow(client)
    assert intent["client_secret"]

    event = {"type": "payment_succeeded", "intent_id": intent["payment_intent_id"]}
    resp = client.post("/payments/webhook", json=event, headers={"Stripe-Signature": "test-signature"})
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "queued": False, "applied": True}

    resp = client.post("/payments/webhook", json=event, headers={"Stripe-Signature": "test-signature"})
    assert resp.json()["applied"] is False

    resp = client.get(f"/payments/{intent['payment_id']}", params={"user_id": 1})
    assert resp.json()["status"] == "succeeded"
    assert resp.json()["order"]["payment_status"] == "paid"

    resp = client.post(f"/payments/{intent['payment_id']}/refund", params={"user_id": 1})
    assert resp.status_code == 200
    assert resp.json()["order"]["status"] == "cancelled"

    resp = client.post(f"/payments/{intent['payment_id']}/refund", params={"user_id": 1})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "not_refundable"


def test_gateway_failure_is_a_502(client, gateway):
    order = client.post(
        "/orders",
        params={"user_id": 1},
        json={"items": [{"product_id": 1, "quantity": 1}], "shipping_address": ADDRESS},
    ).json()
    gateway.configure(should_succeed=False, failure_reason="upstream timeout")

    resp = client.post(f"/payments/create-intent/{order['id']}", params={"user_id": 1})
    assert resp.status_code == 502
    assert resp.json()["error"] == {"code": "external_service_error", "message": "The request could not be completed"}


def test_webhook_rejects_bad_signature(client):
    resp = client.post("/payments/webhook", json={"type": "payment_succeeded"}, headers={"Stripe-Signature": "forged"})
    assert resp.status_code == 400


def test_webhook_rejects_bad_json(client):
    resp = client.post("/payments/webhook", content=b"not json", headers={"Stripe-Signature": "test-signature"})
    assert resp.status_code == 400


def test_webhook_ignores_unknown_events(client):
    resp = client.post(
        "/payments/webhook",
        json={"type": "customer.created", "data": {"object": {"id": "cus_1"}}},
        headers={"Stripe-Signature": "test-signature"},
    )
    assert resp.status_code == 200
    assert resp.json()["applied"] is False


def test_webhook_can_be_queued(client, monkeypatch):
    from shopcore.tasks.webhooks import process_webhook_event_task

    queued = []
    monkeypatch.setattr(settings, "WEBHOOK_PROCESSING", "async")
    monkeypatch.setattr(process_webhook_event_task, "delay", lambda data: queued.append(data))

    resp = client.post(
        "/payments/webhook",
        json={"type": "payment_succeeded", "intent_id": "pi_123"},
        headers={"Stripe-Signature": "test-signature"},
    )
    assert resp.json() == {"received": True, "queued": True, "applied": False}
    assert queued[0]["type"] == "payment_succeeded"
    assert queued[0]["intent_id"] == "pi_123"


@pytest.fixture
def failing_client(app):
    @app.get("/boom")
    def boom():
        raise RuntimeError("secret internals")

    return TestClient(app, raise_server_exceptions=False)


def test_unexpected_errors_are_hidden(failing_client):
    resp = failing_client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["code"] == "internal_error"
    assert "secret internals" not in resp.text
    assert "stack" not in body["error"]


def test_debug_mode_shows_details(failing_client, monkeypatch):
    monkeypatch.setattr(settings, "DEBUG", True)
    body = failing_client.get("/boom").json()
    assert body["error"]["message"] == "secret internals"
    assert body["error"]["stack"]


def test_refund_endpoint_accepts_reason(client, gateway):
    order, intent = _paid_flow(client)
    client.post(
        "/payments/webhook",
        json={"type": "payment_succeeded", "intent_id": intent["payment_intent_id"]},
        headers={"Stripe-Signature": "test-signature"},
    )

    resp = client.post(f"/payments/{intent['payment_id']}/refund", params={"user_id": 1}, json={"reason": "  too late  "})
    assert resp.status_code == 200
    assert resp.json()["metadata"]["refund_reason"] == "too late"
    assert gateway.calls[-1]["reason"] == "too late"


def test_refund_endpoint_rejects_blank_reason(client):
    order, intent = _paid_flow(client)
    resp = client.post(f"/payments/{intent['payment_id']}/refund", params={"user_id": 1}, json={"reason": "   "})
    assert resp.status_code == 400
