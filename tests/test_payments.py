import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_order, make_user
from storefront.payments.service import from_subunits, to_subunits, verify_webhook_signature

WEBHOOK_SECRET = b"sk_test_paystack"


def gateway_response(body, status_code=200):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.json.return_value = body
    response.text = json.dumps(body)
    return response


def signed(event):
    body = json.dumps(event).encode("utf-8")
    signature = hmac.new(WEBHOOK_SECRET, body, hashlib.sha512).hexdigest()
    return body, {"x-paystack-signature": signature, "content-type": "application/json"}


@pytest.fixture
def gateway(mocker):
    return mocker.patch("storefront.payments.service.requests.request")


def test_amount_conversion():
    assert to_subunits(19.99) == 1999
    assert from_subunits(1999) == 19.99
    assert from_subunits(None) == 0


def test_signature_check():
    body, headers = signed({"event": "charge.success"})

    assert verify_webhook_signature(body, headers["x-paystack-signature"])
    assert not verify_webhook_signature(body + b" ", headers["x-paystack-signature"])
    assert not verify_webhook_signature(body, None)


def test_initialize_payment_for_own_order(client, db_session, test_user, auth_headers, gateway):
    order = make_order(db_session, test_user, total=45.5)
    gateway.return_value = gateway_response({
        "status": True,
        "data": {"authorization_url": "https://checkout.paystack.com/abc", "access_code": "abc", "reference": "ref-1"},
    })

    response = client.post("/api/payments/initialize", json={"orderId": order.id}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "authorizationUrl": "https://checkout.paystack.com/abc",
        "accessCode": "abc",
        "reference": "ref-1",
    }
    sent = gateway.call_args.kwargs["json"]
    assert sent["amount"] == 4550
    assert sent["currency"] == "GHS"
    assert sent["metadata"]["order_id"] == order.id
    db_session.refresh(order)
    assert order.payment_reference == "ref-1"
    assert order.payment_status == "pending"


def test_initialize_payment_for_someone_elses_order(client, db_session, auth_headers, gateway):
    stranger = make_user(db_session, email="stranger@example.com")
    order = make_order(db_session, stranger)

    response = client.post("/api/payments/initialize", json={"orderId": order.id}, headers=auth_headers)

    assert response.status_code == 403
    gateway.assert_not_called()


def test_verify_payment_marks_order_paid(client, db_session, test_user, auth_headers, gateway):
    order = make_order(db_session, test_user, total=20.0, payment_reference="ref-2")
    gateway.return_value = gateway_response({
        "status": True,
        "data": {
            "status": "success",
            "reference": "ref-2",
            "amount": 2000,
            "currency": "GHS",
            "channel": "card",
            "paid_at": "2026-10-01T10:00:00.000Z",
            "customer": {"email": test_user.email},
            "metadata": {"order_id": order.id},
        },
    })

    response = client.post("/api/payments/verify-paystack", json={"reference": "ref-2"}, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["amount"] == 20.0
    assert body["data"]["orderId"] == order.id
    db_session.refresh(order)
    assert order.payment_status == "paid"
    assert order.order_status == "processing"
    assert order.paid_at is not None


def charge(reference, amount, order_id=None):
    data = {"status": "success", "reference": reference, "amount": amount, "currency": "GHS"}
    if order_id is not None:
        data["metadata"] = {"order_id": order_id}
    return gateway_response({"status": True, "data": data})


def test_verify_payment_for_someone_elses_order(client, db_session, auth_headers, gateway):
    stranger = make_user(db_session, email="stranger@example.com")
    order = make_order(db_session, stranger, total=500.0)
    gateway.return_value = charge("ref-cheap", 100)

    response = client.post(
        "/api/payments/verify-paystack", json={"reference": "ref-cheap", "orderId": order.id}, headers=auth_headers
    )

    assert response.status_code == 403
    gateway.assert_not_called()
    db_session.refresh(order)
    assert order.payment_status == "unpaid"


def test_verify_payment_tagged_for_someone_elses_order(client, db_session, auth_headers, gateway):
    stranger = make_user(db_session, email="stranger@example.com")
    order = make_order(db_session, stranger)
    gateway.return_value = charge("ref-tagged", 2000, order_id=order.id)

    response = client.post("/api/payments/verify-paystack", json={"reference": "ref-tagged"}, headers=auth_headers)

    assert response.status_code == 403
    db_session.refresh(order)
    assert order.payment_status == "unpaid"


def test_verify_payment_below_order_total(client, db_session, test_user, auth_headers, gateway):
    order = make_order(db_session, test_user, total=500.0)
    gateway.return_value = charge("ref-short", 100, order_id=order.id)

    response = client.post(
        "/api/payments/verify-paystack", json={"reference": "ref-short", "orderId": order.id}, headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Payment amount does not cover the order total"
    db_session.refresh(order)
    assert order.payment_status == "unpaid"


def test_verify_payment_for_a_different_order(client, db_session, test_user, auth_headers, gateway):
    cheap = make_order(db_session, test_user, total=1.0)
    expensive = make_order(db_session, test_user, total=500.0)
    gateway.return_value = charge("ref-swap", 50000, order_id=cheap.id)

    response = client.post(
        "/api/payments/verify-paystack", json={"reference": "ref-swap", "orderId": expensive.id}, headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Transaction does not belong to this order"
    db_session.refresh(expensive)
    assert expensive.payment_status == "unpaid"


def test_verify_payment_failures(client, auth_headers, gateway):
    missing = client.post("/api/payments/verify-paystack", json={}, headers=auth_headers)
    assert missing.status_code == 400
    assert missing.json()["error"]["message"] == "Payment reference is required"

    gateway.return_value = gateway_response({"status": True, "data": {"status": "abandoned", "reference": "ref-3"}})
    failed = client.post("/api/payments/verify-paystack", json={"reference": "ref-3"}, headers=auth_headers)
    assert failed.status_code == 400
    assert failed.json()["error"]["message"] == "Payment verification failed"


def test_gateway_errors_map_to_bad_gateway(client, auth_headers, gateway):
    gateway.side_effect = requests.ConnectionError("connection refused")
    unreachable = client.post("/api/payments/verify-paystack", json={"reference": "ref-4"}, headers=auth_headers)
    assert unreachable.status_code == 502
    assert unreachable.json()["error"]["code"] == "PAYMENT_GATEWAY_ERROR"

    gateway.side_effect = None
    gateway.return_value = gateway_response({"status": False, "message": "Transaction reference not found"}, 400)
    rejected = client.post("/api/payments/verify-paystack", json={"reference": "ref-4"}, headers=auth_headers)
    assert rejected.status_code == 502
    assert rejected.json()["error"]["message"] == "Transaction reference not found"


def test_webhook_charge_success_marks_order_paid(client, db_session, test_user):
    order = make_order(db_session, test_user)
    body, headers = signed({
        "event": "charge.success",
        "data": {
            "reference": "ref-hook",
            "amount": 2000,
            "metadata": {"order_id": order.id},
            "customer": {"first_name": "<Ama>"},
        },
    })

    response = client.post("/api/payments/paystack-webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "Webhook received"}
    db_session.refresh(order)
    assert order.payment_status == "paid"
    assert order.payment_reference == "ref-hook"


def test_webhook_ignores_underpaid_charge(client, db_session, test_user):
    order = make_order(db_session, test_user, total=500.0)
    body, headers = signed({
        "event": "charge.success",
        "data": {"reference": "ref-under", "amount": 100, "metadata": {"order_id": order.id}},
    })

    response = client.post("/api/payments/paystack-webhook", content=body, headers=headers)

    assert response.status_code == 200
    db_session.refresh(order)
    assert order.payment_status == "unpaid"


def test_webhook_charge_failed_finds_order_by_reference(client, db_session, test_user):
    order = make_order(db_session, test_user, payment_reference="ref-fail")
    body, headers = signed({"event": "charge.failed", "data": {"reference": "ref-fail"}})

    client.post("/api/payments/paystack-webhook", content=body, headers=headers)

    db_session.refresh(order)
    assert order.payment_status == "failed"


def test_webhook_rejects_bad_signature(client, db_session, test_user):
    order = make_order(db_session, test_user)
    body, _ = signed({"event": "charge.success", "data": {"metadata": {"order_id": order.id}}})

    response = client.post(
        "/api/payments/paystack-webhook",
        content=body,
        headers={"x-paystack-signature": "0" * 128, "content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Invalid signature"
    db_session.refresh(order)
    assert order.payment_status == "unpaid"


def test_list_banks(client, gateway):
    gateway.return_value = gateway_response({"status": True, "data": [{"name": "GCB Bank", "code": "040"}]})

    response = client.get("/api/payments/paystack/banks", params={"country": "ghana"})

    assert response.json() == {"success": True, "banks": [{"name": "GCB Bank", "code": "040"}]}
    assert gateway.call_args.kwargs["params"] == {"country": "ghana"}


def test_payment_endpoints_require_login(client, db_session, test_user):
    order = make_order(db_session, test_user)

    assert client.post("/api/payments/initialize", json={"orderId": order.id}).status_code == 401
