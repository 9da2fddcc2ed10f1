from mbee import __version__


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "mbee"}


def test_version(client, monkeypatch):
    monkeypatch.setenv("BUILD_SHA", "abc123")
    r = client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert data["version"] == __version__
    assert data["build_sha"] == "abc123"
    assert data["service_name"] == "mbee"


def test_unknown_routes_are_404(client, root_headers):
    assert client.get("/nope", headers=root_headers).status_code == 404


def test_initialize_server_is_idempotent(client, root_headers):
    from mbee.api.main import initialize_server

    initialize_server()
    orgs = client.get("/orgs", headers=root_headers).json()
    assert [o["id"] for o in orgs] == ["default"]


def test_guest_writes_can_be_enabled(client, monkeypatch):
    from mbee.config import refresh_config_cache

    monkeypatch.setenv("MBEE_ALLOW_GUEST_WRITES", "true")
    refresh_config_cache()
    # Past the read-only gate, the route itself still needs an identity
    r = client.post("/orgs", json={"id": "acme", "name": "Acme"})
    assert r.status_code == 401
    assert "read-only" not in r.json()["detail"]
