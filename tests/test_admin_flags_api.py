def test_list_flags_requires_auth(client):
    r = client.get("/api/admin/feature-flags")
    assert r.status_code == 401


def test_list_flags_defaults(client, auth_headers):
    r = client.get("/api/admin/feature-flags", headers=auth_headers("ann"))
    assert r.status_code == 200, r.get_json()
    body = r.get_json()
    assert body["data"]["settings_ui_enabled"]["enabled"] is True
    assert body["data"]["live_location"]["enabled"] is False
    assert {f["key"] for f in body["flags"]} == {"settings_ui_enabled", "auto_join_v1", "live_location"}


def test_patch_requires_admin_scope(client, auth_headers):
    r = client.patch(
        "/api/admin/feature-flags", json={"key": "live_location", "enabled": True}, headers=auth_headers("ann")
    )
    assert r.status_code == 403
    assert r.get_json()["required_scope"] == "admin"


def test_patch_toggles_flag_and_settings_follow(client, auth_headers):
    admin = auth_headers("root", scope="admin")
    user = auth_headers("ann")
    client.patch("/api/v1/settings", json={"locationSharing": "live"}, headers=user)
    assert client.get("/api/v1/settings", headers=user).get_json()["data"]["locationSharing"] == "off"

    r = client.patch(
        "/api/admin/feature-flags",
        json={"key": "live_location", "enabled": True, "payload": {"note": "beta"}},
        headers=admin,
    )
    assert r.status_code == 200, r.get_json()
    assert r.get_json()["data"]["live_location"] == {"enabled": True, "payload": {"note": "beta"}}
    assert client.get("/api/v1/settings", headers=user).get_json()["data"]["locationSharing"] == "live"


def test_patch_validates_body(client, auth_headers):
    admin = auth_headers("root", scope=["admin"])
    r = client.patch("/api/admin/feature-flags", json={"key": "nope", "enabled": "yes"}, headers=admin)
    assert r.status_code == 400
    names = {p["name"] for p in r.get_json()["invalid_params"]}
    assert names == {"key", "enabled"}
    r = client.patch("/api/admin/feature-flags", data="[]", headers={**admin, "Content-Type": "application/json"})
    assert r.status_code == 400


def test_disabling_settings_ui_hides_settings(client, auth_headers):
    admin = auth_headers("root", scope="admin")
    r = client.patch("/api/admin/feature-flags", json={"key": "settings_ui_enabled", "enabled": False}, headers=admin)
    assert r.status_code == 200, r.get_json()
    r = client.get("/api/v1/settings", headers=auth_headers("ann"))
    assert r.status_code == 404
