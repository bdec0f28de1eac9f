import pytest

from storefront.core.rate_limiter import limiter


@pytest.fixture
def limited(client):
    limiter.enabled = True
    yield client
    limiter.enabled = False


def test_login_attempts_are_limited(limited, test_user):
    attempts = [
        limited.post("/api/users/auth", json={"email": test_user.email, "password": "wrong-password"})
        for _ in range(6)
    ]

    assert [r.status_code for r in attempts[:5]] == [401] * 5
    blocked = attempts[5]
    assert blocked.status_code == 429
    assert blocked.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert blocked.json()["error"]["message"] == "Too many authentication attempts, please try again later."


def test_password_reset_requests_are_limited(limited, mocker):
    mocker.patch("storefront.services.email_service.send_password_reset_email", return_value=None)

    statuses = [
        limited.post("/api/users/forgot-password", json={"email": "someone@example.com"}).status_code
        for _ in range(4)
    ]

    assert statuses == [200, 200, 200, 429]


def test_health_is_never_limited(limited, test_user):
    for _ in range(6):
        limited.post("/api/users/auth", json={"email": test_user.email, "password": "wrong-password"})

    assert limited.get("/health").status_code == 200


def test_disabled_limiter_lets_everything_through(client, test_user):
    statuses = {
        client.post("/api/users/auth", json={"email": test_user.email, "password": "wrong-password"}).status_code
        for _ in range(8)
    }

    assert statuses == {401}


def test_order_creation_is_limited(limited, auth_headers):
    statuses = [
        limited.post("/api/orders", json={"items": [], "totalAmount": 0}, headers=auth_headers).status_code
        for _ in range(10)
    ]
    assert statuses == [400] * 10

    blocked = limited.post("/api/orders", json={"items": [], "totalAmount": 0}, headers=auth_headers)
    assert blocked.status_code == 429
    assert blocked.json()["error"]["message"] == "Too many orders created, please slow down."


def test_uploads_are_limited(limited, admin_headers):
    statuses = [limited.post("/api/upload", headers=admin_headers).status_code for _ in range(20)]
    assert statuses == [400] * 20

    blocked = limited.post("/api/upload", headers=admin_headers)
    assert blocked.status_code == 429
    assert blocked.json()["error"]["message"] == "Too many upload requests, please try again later."


def test_general_api_limit(limited):
    statuses = {limited.get("/api/products").status_code for _ in range(100)}
    assert statuses == {200}

    blocked = limited.get("/api/products")
    assert blocked.status_code == 429
    assert blocked.json()["error"]["message"] == "Too many requests from this IP, please try again later."
