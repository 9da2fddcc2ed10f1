def test_create_and_read_org(client, root_headers, org_factory):
    org = org_factory("acme", "Acme Corp")
    assert org["id"] == "acme"
    assert org["name"] == "Acme Corp"
    assert org["permissions"]["root"] == ["read", "write", "admin"]

    r = client.get("/orgs/acme", headers=root_headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Acme Corp"


def test_create_org_validation(client, root_headers, org_factory):
    assert client.post("/orgs", json={"id": "Bad Id", "name": "x"}, headers=root_headers).status_code == 400
    assert client.post("/orgs", json={"id": "orgs", "name": "x"}, headers=root_headers).status_code == 400
    assert client.post("/orgs", json={"id": "empty", "name": "   "}, headers=root_headers).status_code == 400
    org_factory("acme")
    assert client.post("/orgs", json={"id": "acme", "name": "Again"}, headers=root_headers).status_code == 409


def test_only_system_admins_create_orgs(client, user_headers):
    r = client.post("/orgs", json={"id": "acme", "name": "Acme"}, headers=user_headers("alice"))
    assert r.status_code == 403


def test_members_see_only_their_orgs(client, user_headers, org_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "read"})
    org_factory("globex")

    ids = sorted(o["id"] for o in client.get("/orgs", headers=alice).json())
    assert ids == ["acme", "default"]
    assert client.get("/orgs/globex", headers=alice).status_code == 404
    assert client.get("/orgs/acme/members", headers=alice).json()["alice"] == ["read"]


def test_org_admin_manages_members(client, user_headers, org_factory):
    alice = user_headers("alice")
    user_headers("bob")
    org_factory("acme", permissions={"alice": "admin"})

    r = client.put("/orgs/acme/members/bob", json={"role": "write"}, headers=alice)
    assert r.status_code == 200
    assert r.json()["permissions"]["bob"] == ["read", "write"]

    r = client.patch("/orgs/acme", json={"permissions": {"bob": "REMOVE_ALL"}}, headers=alice)
    assert r.status_code == 200
    assert "bob" not in r.json()["permissions"]

    assert client.delete("/orgs/acme/members/bob", headers=alice).status_code == 404


def test_permission_edge_cases(client, root_headers, user_headers, org_factory):
    alice = user_headers("alice")
    user_headers("bob")
    org_factory("acme", permissions={"alice": "admin"})

    r = client.patch("/orgs/acme", json={"permissions": {"alice": "read"}}, headers=alice)
    assert r.status_code == 403
    r = client.patch("/orgs/acme", json={"permissions": {"bob": "owner"}}, headers=alice)
    assert r.status_code == 400
    r = client.patch("/orgs/acme", json={"permissions": {"ghost": "read"}}, headers=alice)
    assert r.status_code == 404
    r = client.patch("/orgs/default", json={"permissions": {"bob": "REMOVE_ALL"}}, headers=root_headers)
    assert r.status_code == 403


def test_writer_cannot_update_org(client, user_headers, org_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "write"})
    assert client.patch("/orgs/acme", json={"name": "Renamed"}, headers=alice).status_code == 403


def test_archived_org_blocks_changes_until_unarchived(client, root_headers, org_factory):
    org_factory("acme")
    r = client.patch("/orgs/acme", json={"archived": True}, headers=root_headers)
    assert r.status_code == 200
    assert r.json()["archived"] is True
    assert r.json()["archived_by"] == "root"

    assert client.get("/orgs/acme", headers=root_headers).status_code == 404
    assert client.get("/orgs/acme", params={"include_archived": True}, headers=root_headers).status_code == 200
    assert client.patch("/orgs/acme", json={"name": "Nope"}, headers=root_headers).status_code == 403
    r = client.post("/orgs/acme/projects", json={"id": "rocket", "name": "Rocket"}, headers=root_headers)
    assert r.status_code == 403

    r = client.patch("/orgs/acme", json={"archived": False}, headers=root_headers)
    assert r.status_code == 200
    assert r.json()["archived_at"] is None


def test_default_org_is_protected(client, root_headers):
    assert client.patch("/orgs/default", json={"archived": True}, headers=root_headers).status_code == 403
    assert client.delete("/orgs/default", headers=root_headers).status_code == 403


def test_delete_org_cascades(client, root_headers, model_project):
    r = client.delete("/orgs", params={"ids": "acme"}, headers=root_headers)
    assert r.status_code == 200
    assert r.json() == ["acme"]
    assert client.get("/orgs/acme", headers=root_headers).status_code == 404
    assert client.get(model_project, headers=root_headers).status_code == 404
    assert client.get("/projects", headers=root_headers).json() == []


def test_org_events_carry_context(client, org_factory, captured_events):
    org_factory("acme")
    created = [(p, c) for name, p, c in captured_events if name == "orgs-created"]
    assert len(created) == 1
    payload, ctx = created[0]
    assert payload["id"] == "acme"
    assert ctx.organization_id == "acme"
    assert ctx.actor == "root"
