from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest
from sqlmodel import select

from sadhana_billing.api.errors import GatewayError, StateError, StoreError
from sadhana_billing.models import PaymentOrder
from sadhana_billing.services import order_service
from sadhana_billing.services.order_service import OrderRequest, build_receipt, create_payment_order

ORDER_URL = "/api/v1/create-order"
NOW = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_create_order_returns_gateway_order(client, db, gateway):
    gateway.order_ids = ["order_abc"]

    r = client.post(ORDER_URL, json={"amount": 50000, "currency": "INR", "userId": "u_1"})
    assert r.status_code == 200
    assert r.json() == {"orderId": "order_abc", "amount": 50000, "currency": "INR"}

    assert len(gateway.orders) == 1
    sent = gateway.orders[0]
    assert sent["amount"] == 50000
    assert sent["currency"] == "INR"
    assert sent["receipt"].startswith("rcpt_")
    assert len(sent["receipt"]) <= 40
    assert sent["notes"]["userId"] == "u_1"

    stored = db.exec(select(PaymentOrder).where(PaymentOrder.id == "order_abc")).one()
    assert stored.user_id == "u_1"
    assert stored.amount == 50000
    assert stored.receipt == sent["receipt"]


def test_create_order_legacy_path(client, gateway):
    r = client.post(
        "/api/v1/create-payment-order",
        json={"amount": 29900, "currency": "INR", "userId": "u_2", "planId": "plan_monthly"},
    )
    assert r.status_code == 200
    assert r.json()["amount"] == 29900
    assert gateway.orders[0]["notes"]["planId"] == "plan_monthly"


@pytest.mark.parametrize(
    "payload",
    [
        {"currency": "INR", "userId": "u_1"},
        {"amount": 50000, "userId": "u_1"},
        {"amount": 50000, "currency": "INR"},
        {"amount": 50000, "currency": "INR", "userId": ""},
        {},
    ],
)
def test_create_order_missing_fields(client, gateway, payload):
    r = client.post(ORDER_URL, json=payload)
    assert r.status_code == 400
    assert r.json() == {"error": "Missing required fields"}
    assert gateway.orders == []


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"amount": -5, "currency": "INR", "userId": "u_1"}, "amount"),
        ({"amount": 0, "currency": "INR", "userId": "u_1"}, "amount"),
        ({"amount": "50000", "currency": "INR", "userId": "u_1"}, "amount"),
        ({"amount": 499.5, "currency": "INR", "userId": "u_1"}, "amount"),
        ({"amount": True, "currency": "INR", "userId": "u_1"}, "amount"),
        ({"amount": 50000, "currency": "inr", "userId": "u_1"}, "currency"),
        ({"amount": 50000, "currency": "RUPEE", "userId": "u_1"}, "currency"),
        ({"amount": 50000, "currency": "INR", "userId": 42}, "userId"),
        ({"amount": 50000, "currency": "INR", "userId": "u_1", "planId": 7}, "planId"),
    ],
)
def test_create_order_invalid_fields(client, gateway, payload, field):
    r = client.post(ORDER_URL, json=payload)
    assert r.status_code == 400
    assert r.json()["error"].startswith("Invalid fields")
    assert field in r.json()["error"]
    assert gateway.orders == []


def test_create_order_rejects_malformed_body(client, gateway):
    r = client.post(ORDER_URL, content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid request body"}

    r = client.post(ORDER_URL, json=[1, 2, 3])
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid request body"}
    assert gateway.orders == []


def test_create_order_gateway_failure_is_generic(client, db, gateway):
    gateway.create_error = GatewayError(
        gateway_code="BAD_REQUEST_ERROR", message="The amount must be at least INR 1.00"
    )

    r = client.post(ORDER_URL, json={"amount": 50000, "currency": "INR", "userId": "u_1"})
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to create order"}
    assert db.exec(select(PaymentOrder)).all() == []


def test_create_order_idempotency_key_replays(client, db, gateway):
    body = {"amount": 50000, "currency": "INR", "userId": "u_1"}
    headers = {"Idempotency-Key": "checkout-123"}

    first = client.post(ORDER_URL, json=body, headers=headers)
    second = client.post(ORDER_URL, json=body, headers=headers)
    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json() == second.json()
    assert len(gateway.orders) == 1
    assert len(db.exec(select(PaymentOrder)).all()) == 1

    # The body key is equivalent to the header.
    third = client.post(ORDER_URL, json={**body, "idempotencyKey": "checkout-123"})
    assert third.json() == first.json()
    assert len(gateway.orders) == 1


def test_create_order_idempotency_key_reused_with_other_params(client, gateway):
    headers = {"Idempotency-Key": "checkout-123"}
    r = client.post(ORDER_URL, json={"amount": 50000, "currency": "INR", "userId": "u_1"}, headers=headers)
    assert r.status_code == 200

    r = client.post(ORDER_URL, json={"amount": 70000, "currency": "INR", "userId": "u_1"}, headers=headers)
    assert r.status_code == 409
    assert "error" in r.json()
    assert len(gateway.orders) == 1


def test_create_order_same_key_different_users(client, gateway):
    headers = {"Idempotency-Key": "checkout-123"}
    a = client.post(ORDER_URL, json={"amount": 50000, "currency": "INR", "userId": "u_1"}, headers=headers)
    b = client.post(ORDER_URL, json={"amount": 50000, "currency": "INR", "userId": "u_2"}, headers=headers)
    assert a.status_code == b.status_code == 200
    assert a.json()["orderId"] != b.json()["orderId"]
    assert len(gateway.orders) == 2


def test_create_order_persistence_failure_still_succeeds(client, gateway, monkeypatch, caplog):
    gateway.order_ids = ["order_lost"]

    def _boom(**_kwargs):
        raise StoreError("Failed to save payment order")

    monkeypatch.setattr(order_service.crud, "insert_order", _boom)

    with caplog.at_level(logging.ERROR, logger=order_service.__name__):
        r = client.post(ORDER_URL, json={"amount": 50000, "currency": "INR", "userId": "u_1"})
    assert r.status_code == 200
    assert r.json() == {"orderId": "order_lost", "amount": 50000, "currency": "INR"}
    assert "reconciliation gap" in caplog.text
    assert "order_lost" in caplog.text


def test_create_order_without_key_merges_within_window(db, gateway):
    request = OrderRequest(amount=50000, currency="INR", user_id="u_1", plan_id="plan_monthly")

    a = create_payment_order(session=db, gateway=gateway, request=request, now=NOW)
    b = create_payment_order(session=db, gateway=gateway, request=request, now=NOW)
    assert a == b
    assert len(gateway.orders) == 1

    later = NOW.replace(hour=13)
    c = create_payment_order(session=db, gateway=gateway, request=request, now=later)
    assert c.order_id != a.order_id
    assert len(gateway.orders) == 2


def test_create_order_key_mismatch_raises_state_error(db, gateway):
    create_payment_order(
        session=db,
        gateway=gateway,
        request=OrderRequest(amount=100, currency="INR", user_id="u_1", idempotency_key="k"),
        now=NOW,
    )
    with pytest.raises(StateError):
        create_payment_order(
            session=db,
            gateway=gateway,
            request=OrderRequest(amount=100, currency="USD", user_id="u_1", idempotency_key="k"),
            now=NOW,
        )


def test_build_receipt_is_deterministic():
    kwargs = dict(user_id="u_1", amount=50000, currency="INR", plan_id=None, now=NOW)

    keyed = build_receipt(idempotency_key="checkout-123", **kwargs)
    assert keyed == build_receipt(idempotency_key="checkout-123", **kwargs)
    assert keyed != build_receipt(idempotency_key="checkout-124", **kwargs)
    assert keyed.startswith("rcpt_")
    assert len(keyed) <= 40

    bucketed = build_receipt(idempotency_key=None, **kwargs)
    assert bucketed == build_receipt(idempotency_key=None, **{**kwargs, "now": NOW.replace(second=30)})
    assert bucketed != build_receipt(idempotency_key=None, **{**kwargs, "amount": 50001})
    assert bucketed != build_receipt(idempotency_key=None, **{**kwargs, "user_id": "u_2"})


def test_create_order_preflight(client):
    r = client.options(
        ORDER_URL,
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, content-type, idempotency-key",
        },
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"

    r = client.options(ORDER_URL)
    assert r.status_code == 200
    assert r.text == "ok"


def test_create_order_response_carries_cors_header(client):
    r = client.post(
        ORDER_URL,
        json={"amount": 50000, "currency": "INR", "userId": "u_1"},
        headers={"Origin": "https://app.example.com"},
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"

    r = client.post(ORDER_URL, json={}, headers={"Origin": "https://app.example.com"})
    assert r.status_code == 400
    assert r.headers["access-control-allow-origin"] == "*"


def test_concurrent_same_key_converges_on_persisted_order(db, gateway, monkeypatch):
    request = OrderRequest(amount=50000, currency="INR", user_id="u_1", idempotency_key="k1")
    receipt = build_receipt(
        user_id="u_1", amount=50000, currency="INR", plan_id=None, idempotency_key="k1", now=NOW
    )
    # Another request won the race and persisted its order after this one's replay check.
    db.add(
        PaymentOrder(id="order_winner", user_id="u_1", amount=50000, currency="INR", receipt=receipt)
    )
    db.commit()

    real_lookup = order_service.crud.get_order_by_receipt
    lookups: list[str] = []

    def _stale_first_lookup(**kwargs):
        lookups.append(kwargs["receipt"])
        if len(lookups) == 1:
            return None
        return real_lookup(**kwargs)

    monkeypatch.setattr(order_service.crud, "get_order_by_receipt", _stale_first_lookup)

    result = create_payment_order(session=db, gateway=gateway, request=request, now=NOW)
    assert result.order_id == "order_winner"
    assert result.amount == 50000
    assert len(gateway.orders) == 1
    assert [o.id for o in db.exec(select(PaymentOrder)).all()] == ["order_winner"]


@pytest.mark.parametrize(
    "extra, field",
    [
        ({"userId": "u" * 65}, "userId"),
        ({"userId": "u_1", "planId": "p" * 65}, "planId"),
        ({"userId": "u_1", "idempotencyKey": "k" * 256}, "idempotencyKey"),
    ],
)
def test_create_order_rejects_oversized_ids(client, gateway, extra, field):
    r = client.post(ORDER_URL, json={"amount": 50000, "currency": "INR", **extra})
    assert r.status_code == 400
    assert r.json() == {"error": f"Invalid fields: {field}"}
    assert gateway.orders == []


def test_preflight_is_answered_by_cors_middleware(client):
    headers = {"Origin": "https://app.example.com", "Access-Control-Request-Method": "POST"}

    r = client.options(ORDER_URL, headers={**headers, "Access-Control-Request-Headers": "apikey"})
    assert r.status_code == 200
    assert r.text == "OK"
    allowed = r.headers["access-control-allow-headers"].lower()
    for name in ("authorization", "x-client-info", "apikey", "content-type", "idempotency-key"):
        assert name in allowed

    r = client.options(ORDER_URL, headers={**headers, "Access-Control-Request-Headers": "x-custom"})
    assert r.status_code == 400
    assert r.text == "Disallowed CORS headers"
