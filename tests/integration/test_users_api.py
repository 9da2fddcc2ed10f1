def test_admin_creates_users(client, root_headers):
    r = client.post(
        "/users",
        json=[
            {"username": "dave", "password": "Passw0rdX", "fname": "Dave"},
            {"username": "erin", "provider": "proxy"},
        ],
        headers=root_headers,
    )
    assert r.status_code == 201, r.text
    assert [u["username"] for u in r.json()] == ["dave", "erin"]
    assert all("password_hash" not in u for u in r.json())

    r = client.get("/users", params={"usernames": "dave,erin"}, headers=root_headers)
    assert sorted(u["username"] for u in r.json()) == ["dave", "erin"]


def test_create_user_validation(client, root_headers):
    r = client.post("/users", json={"username": "admin", "password": "Passw0rdX"}, headers=root_headers)
    assert r.status_code == 400
    r = client.post("/users", json={"username": "weak", "password": "short"}, headers=root_headers)
    assert r.status_code == 400
    r = client.post("/users", json=[{"username": "twin", "provider": "proxy"}, {"username": "twin", "provider": "proxy"}],
                    headers=root_headers)
    assert r.status_code == 400
    client.post("/users", json={"username": "once", "provider": "proxy"}, headers=root_headers)
    r = client.post("/users", json={"username": "once", "provider": "proxy"}, headers=root_headers)
    assert r.status_code == 409


def test_non_admin_cannot_create_users(client, user_headers):
    r = client.post("/users", json={"username": "frank", "provider": "proxy"}, headers=user_headers("alice"))
    assert r.status_code == 403


def test_create_single_user_checks_url(client, root_headers):
    r = client.post("/users/gina", json={"username": "other", "provider": "proxy"}, headers=root_headers)
    assert r.status_code == 400
    r = client.post("/users/gina", json={"username": "gina", "provider": "proxy"}, headers=root_headers)
    assert r.status_code == 201
    assert r.json()["username"] == "gina"


def test_users_edit_own_profile_only(client, user_headers):
    alice = user_headers("alice")
    user_headers("bob")
    r = client.patch("/users/alice", json={"fname": "Alice", "custom": {"team": "gnc"}}, headers=alice)
    assert r.status_code == 200
    assert r.json()["fname"] == "Alice"
    assert r.json()["custom"] == {"team": "gnc"}

    assert client.patch("/users/bob", json={"fname": "Robert"}, headers=alice).status_code == 403
    assert client.patch("/users/alice", json={"is_admin": True}, headers=alice).status_code == 403


def test_archived_user_is_hidden_and_locked(client, root_headers, user_headers):
    bob = user_headers("bob")
    r = client.patch("/users/bob", json={"archived": True}, headers=root_headers)
    assert r.status_code == 200
    assert r.json()["archived"] is True

    assert client.get("/users/bob", headers=root_headers).status_code == 404
    assert client.get("/users/bob", params={"include_archived": True}, headers=root_headers).status_code == 200
    assert client.get("/users/whoami", headers=bob).status_code == 401
    assert client.patch("/users/bob", json={"fname": "B"}, headers=root_headers).status_code == 403

    r = client.patch("/users/bob", json={"archived": False}, headers=root_headers)
    assert r.status_code == 200
    assert client.get("/users/whoami", headers=bob).status_code == 200


def test_admin_cannot_archive_or_delete_self(client, root_headers):
    client.get("/users/whoami", headers=root_headers)
    assert client.patch("/users/root", json={"archived": True}, headers=root_headers).status_code == 403
    assert client.delete("/users/root", headers=root_headers).status_code == 403


def test_delete_users(client, root_headers, user_headers):
    user_headers("alice")
    user_headers("bob")
    r = client.delete("/users", params={"ids": "alice,bob"}, headers=root_headers)
    assert r.status_code == 200
    assert r.json() == ["alice", "bob"]
    assert client.get("/users/alice", headers=root_headers).status_code == 404
    assert client.delete("/users/alice", headers=root_headers).status_code == 404


def test_user_events_are_emitted(client, root_headers, captured_events):
    client.post("/users", json={"username": "hank", "provider": "proxy"}, headers=root_headers)
    names = [name for name, _payload, _ctx in captured_events]
    assert "users-created" in names
