import pytest

from conftest import make_product
from storefront.core.security import (
    contains_sql_injection,
    find_sql_injection,
    sanitize_string,
    sanitize_value,
)
from storefront.products.models import Product


def test_security_headers_on_every_response(client):
    response = client.get("/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert response.headers["Strict-Transport-Security"].startswith("max-age=31536000")
    assert "default-src 'self'" in response.headers["Content-Security-Policy"]


def test_docs_skip_content_security_policy(client):
    response = client.get("/docs")

    assert "Content-Security-Policy" not in response.headers
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_request_id_is_echoed_or_generated(client):
    echoed = client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert echoed.headers["X-Request-ID"] == "trace-123"

    generated = client.get("/health")
    assert len(generated.headers["X-Request-ID"]) == 36


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "OK"
    assert body["environment"]
    assert body["uptime"] >= 0
    assert "timestamp" in body


@pytest.mark.parametrize(
    "value",
    [
        "1' OR '1'='1",
        "x UNION SELECT password FROM users",
        "name'; DROP TABLE users; --",
        "1; SELECT * FROM orders",
        "abc /* hidden */",
    ],
)
def test_sql_heuristic_matches(value):
    assert contains_sql_injection(value)


@pytest.mark.parametrize("value", ["Classic Tee", "rock & roll", "O'Neil", "select your size", "10/10"])
def test_sql_heuristic_allows_ordinary_text(value):
    assert not contains_sql_injection(value)


def test_suspicious_query_is_rejected(client):
    response = client.get("/api/products", params={"search": "1' OR '1'='1"})

    assert response.status_code == 400
    assert response.json() == {"error": {"code": "INVALID_INPUT", "message": "Invalid input detected"}}


def test_suspicious_body_is_rejected(client, db_session, admin_headers):
    response = client.post(
        "/api/products",
        json={"title": "Tee'; DROP TABLE products; --", "price": 10},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_INPUT"
    assert db_session.query(Product).count() == 0


def test_body_strings_are_html_escaped(client, db_session, admin_headers):
    response = client.post(
        "/api/products",
        json={"title": "<b>Bold</b> Tee", "price": 10},
        headers=admin_headers,
    )

    assert response.status_code == 201
    assert response.json()["title"] == "&lt;b&gt;Bold&lt;/b&gt; Tee"


def test_query_strings_are_html_escaped(client, db_session):
    make_product(db_session, title="Fish &amp; Chips", price=5)

    response = client.get("/api/products", params={"search": "Fish & Chips"})

    assert [p["title"] for p in response.json()] == ["Fish &amp; Chips"]


def test_password_fields_are_not_escaped(client, mocker):
    mocker.patch("storefront.services.email_service.send_otp_email", return_value=None)
    password = "<Secret&Pass>1"

    client.post(
        "/api/users",
        json={"firstName": "Pat", "lastName": "Lee", "email": "pat@example.com", "password": password},
    )
    login = client.post("/api/users/auth", json={"email": "pat@example.com", "password": password})

    assert login.status_code == 200


def test_sanitize_helpers():
    assert sanitize_string("a\x00b<c>") == "ab&lt;c&gt;"
    assert sanitize_string("a/b") == "a/b"
    assert sanitize_value({"name": "<x>", "password": "<y>", "nested": [{"newPassword": "<z>"}, 3]}) == {
        "name": "&lt;x&gt;",
        "password": "<y>",
        "nested": [{"newPassword": "<z>"}, 3],
    }
    assert find_sql_injection({"note": ["ok", "UNION SELECT 1"]})
    assert not find_sql_injection({"password": "'; DROP TABLE users; --"})
