from travelai.preferences import default_preferences


def _doc(**changes):
    doc = default_preferences("ignored")
    doc.pop("userId")
    doc.pop("updatedAt")
    doc.update(changes)
    return doc


def test_requires_bearer_token(client):
    r = client.get("/api/v1/settings")
    assert r.status_code == 401
    assert r.get_json()["error"] == "unauthorized"


def test_expired_token_rejected(client, make_token):
    tok = make_token("ann", ttl=-10)
    r = client.get("/api/v1/settings", headers={"Authorization": f"Bearer {tok}"})
    assert r.status_code == 401, r.get_json()


def test_get_defaults(client, auth_headers):
    r = client.get("/api/v1/settings", headers=auth_headers("ann", name="Ann"))
    assert r.status_code == 200, r.get_json()
    data = r.get_json()["data"]
    assert data["userId"] == "ann"
    assert data["displayName"] == "Ann"
    assert r.headers["Cache-Control"] == "no-store"


def test_put_then_get_round_trip(client, auth_headers):
    headers = auth_headers("ann")
    body = _doc(radiusKm=25, interests=["museums", "tea"], budget={"maxCents": 4000})
    r = client.put("/api/v1/settings", json=body, headers=headers)
    assert r.status_code == 200, r.get_json()
    saved = r.get_json()["data"]
    assert saved["radiusKm"] == 25
    assert saved["budget"] == {"maxCents": 4000}
    assert saved["updatedAt"].endswith("Z")
    r = client.get("/api/v1/settings", headers=headers)
    assert r.get_json()["data"] == saved


def test_patch_live_location_suppressed_when_flag_off(client, auth_headers):
    r = client.patch("/api/v1/settings", json={"locationSharing": "live"}, headers=auth_headers("ann"))
    assert r.status_code == 200, r.get_json()
    assert r.get_json()["data"]["locationSharing"] == "off"


def test_invalid_radius_returns_field_problems(client, auth_headers):
    r = client.patch("/api/v1/settings", json={"radiusKm": 0}, headers=auth_headers("ann"))
    assert r.status_code == 400
    body = r.get_json()
    assert body["error"] == "invalid_payload"
    assert {"name": "radiusKm", "reason": "radiusKm must be at least 1"} in body["invalid_params"]


def test_malformed_json_rejected(client, auth_headers):
    headers = {**auth_headers("ann"), "Content-Type": "application/json"}
    r = client.put("/api/v1/settings", data="{not json", headers=headers)
    assert r.status_code == 400
    assert r.get_json()["message"] == "Invalid JSON payload"


def test_delete_schedules_job_and_turns_location_off(client, auth_headers, services):
    services.flags.set_flag("live_location", True)
    headers = auth_headers("ann")
    client.patch("/api/v1/settings", json={"locationSharing": "live"}, headers=headers)
    r = client.post("/api/v1/settings/delete", headers=headers)
    assert r.status_code == 202, r.get_json()
    body = r.get_json()
    assert body["status"] == "scheduled"
    assert set(body) >= {"jobId", "scheduledFor", "message"}
    r = client.get("/api/v1/settings", headers=headers)
    assert r.get_json()["data"]["locationSharing"] == "off"


def test_export_download_flow(client, auth_headers, notifier):
    headers = auth_headers("ann", email="ann@example.com")
    client.patch("/api/v1/settings", json={"radiusKm": 17}, headers=headers)
    r = client.post("/api/v1/settings/export", headers=headers)
    assert r.status_code == 201, r.get_json()
    ticket = r.get_json()
    assert ticket["status"] == "completed"
    assert ticket["downloadUrl"].startswith("/api/v1/settings/export/")
    assert notifier.sent[-1].download_url == ticket["downloadUrl"]

    client.post("/api/v1/settings/delete", headers=headers)

    r = client.get(ticket["downloadUrl"], headers=auth_headers("bob"))
    assert r.status_code == 403, r.get_json()

    r = client.get(ticket["downloadUrl"], headers=headers)
    assert r.status_code == 200
    assert r.headers["Content-Disposition"] == 'attachment; filename="travelai-settings-ann.json"'
    archive = r.get_json()
    assert archive["preferences"]["radiusKm"] == 17

    r = client.get(ticket["downloadUrl"], headers=headers)
    assert r.status_code == 404


def test_settings_hidden_when_flag_disabled(client, auth_headers, services):
    services.flags.set_flag("settings_ui_enabled", False)
    headers = auth_headers("ann")
    for method, path in (
        ("get", "/api/v1/settings"),
        ("patch", "/api/v1/settings"),
        ("post", "/api/v1/settings/delete"),
        ("post", "/api/v1/settings/export"),
    ):
        r = getattr(client, method)(path, json={}, headers=headers)
        assert r.status_code == 404, (method, path, r.get_json())
        assert r.get_json()["error"] == "feature_disabled"
