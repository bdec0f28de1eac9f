import pytest

from storefront.core.exceptions import ResourceNotFoundError, ValidationFailedError
from storefront.site_settings.models import Setting
from storefront.site_settings.service import SettingService


def test_defaults_when_nothing_is_stored(client, admin_headers):
    response = client.get("/api/settings", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {
        "siteName": "",
        "email": "",
        "currency": "USD",
        "taxRate": 0,
        "shippingCost": 0,
        "notifications": False,
        "emailNotifications": False,
        "orderAlerts": False,
        "lowStockAlert": 10,
        "theme": "light",
    }


def test_update_settings_translates_keys(client, db_session, admin_headers):
    response = client.put(
        "/api/settings",
        json={"siteName": "Branding House", "taxRate": 12.5, "notifications": True, "bogus": "ignored"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Settings updated successfully"
    assert body["settings"]["siteName"] == "Branding House"
    assert body["settings"]["taxRate"] == 12.5
    assert body["settings"]["notifications"] is True

    stored = {row.setting_key: (row.setting_value, row.setting_type) for row in db_session.query(Setting)}
    assert stored == {
        "site_name": ("Branding House", "string"),
        "tax_rate": ("12.5", "number"),
        "notifications_enabled": ("true", "boolean"),
    }


def test_update_settings_requires_payload(client, admin_headers):
    response = client.put("/api/settings", json={}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "No settings provided"


def test_update_settings_is_all_or_nothing(client, db_session, admin_headers):
    SettingService.set(db_session, "site_name", "Before")

    response = client.put(
        "/api/settings",
        json={"siteName": "After", "taxRate": "not-a-number"},
        headers=admin_headers,
    )

    assert response.status_code == 400
    db_session.expire_all()
    assert SettingService.get(db_session, "site_name") == "Before"


def test_settings_cache_cleared_on_update(client, admin_headers):
    assert client.get("/api/settings", headers=admin_headers).headers["X-Cache"] == "MISS"
    assert client.get("/api/settings", headers=admin_headers).headers["X-Cache"] == "HIT"

    client.put("/api/settings", json={"theme": "dark"}, headers=admin_headers)

    refreshed = client.get("/api/settings", headers=admin_headers)
    assert refreshed.headers["X-Cache"] == "MISS"
    assert refreshed.json()["theme"] == "dark"


def test_get_and_delete_single_setting(client, db_session, admin_headers):
    SettingService.set(db_session, "low_stock_threshold", 5, "number")

    assert client.get("/api/settings/low_stock_threshold", headers=admin_headers).json() == {
        "low_stock_threshold": 5.0
    }
    assert client.delete("/api/settings/low_stock_threshold", headers=admin_headers).status_code == 200

    missing = client.get("/api/settings/low_stock_threshold", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["message"] == "Setting not found"
    assert client.delete("/api/settings/low_stock_threshold", headers=admin_headers).status_code == 404


def test_settings_are_admin_only(client, auth_headers):
    assert client.get("/api/settings", headers=auth_headers).status_code == 403
    assert client.put("/api/settings", json={"theme": "dark"}, headers=auth_headers).status_code == 403


def test_values_parse_per_type(db_session):
    SettingService.set(db_session, "flag", "1", "boolean")
    SettingService.set(db_session, "layout", {"columns": 3}, "json")
    SettingService.set(db_session, "rate", 2, "number")

    assert SettingService.get_all(db_session) == {"flag": True, "layout": {"columns": 3}, "rate": 2.0}


def test_unknown_type_is_rejected(db_session):
    with pytest.raises(ValidationFailedError):
        SettingService.set(db_session, "odd", "x", "colour")


def test_delete_missing_setting(db_session):
    with pytest.raises(ResourceNotFoundError):
        SettingService.delete(db_session, "nope")


@pytest.mark.parametrize("value", [None, [1], {"rate": 1}])
def test_update_settings_rejects_non_numeric_number(client, db_session, admin_headers, value):
    response = client.put("/api/settings", json={"taxRate": value}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["error"]["message"].startswith("Error updating settings: Expected a number")
    assert db_session.query(Setting).count() == 0


@pytest.mark.parametrize("value, setting_type", [(None, "number"), ([1], "number"), ({1, 2}, "json")])
def test_set_rejects_values_of_the_wrong_shape(db_session, value, setting_type):
    with pytest.raises(ValidationFailedError) as exc:
        SettingService.set(db_session, "rate", value, setting_type)

    assert exc.value.user_message == "Invalid value for setting 'rate'"
    assert db_session.query(Setting).count() == 0
