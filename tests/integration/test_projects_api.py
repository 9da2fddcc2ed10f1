def test_org_writer_creates_project_with_master_branch(client, user_headers, org_factory, project_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "write"})
    project = project_factory("acme", "rocket", headers=alice)
    assert project["id"] == "rocket"
    assert project["org"] == "acme"
    assert project["visibility"] == "private"
    assert project["permissions"] == {"alice": ["read", "write", "admin"]}

    branches = client.get("/orgs/acme/projects/rocket/branches", headers=alice).json()
    assert [b["id"] for b in branches] == ["master"]
    assert branches[0]["source"] is None


def test_org_reader_cannot_create_projects(client, user_headers, org_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "read"})
    r = client.post("/orgs/acme/projects", json={"id": "rocket", "name": "Rocket"}, headers=alice)
    assert r.status_code == 403


def test_project_validation(client, root_headers, model_project):
    assert client.post("/orgs/acme/projects", json={"id": "Bad!", "name": "x"}, headers=root_headers).status_code == 400
    assert client.post("/orgs/acme/projects", json={"id": "rocket", "name": "x"}, headers=root_headers).status_code == 409
    assert client.post("/orgs/ghost/projects", json={"id": "x", "name": "x"}, headers=root_headers).status_code == 404
    r = client.post("/orgs/acme/projects/rocket2", json={"id": "other", "name": "x"}, headers=root_headers)
    assert r.status_code == 400


def test_private_and_internal_visibility(client, user_headers, org_factory, project_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "read"})
    project_factory("acme", "secret", visibility="private")
    project_factory("acme", "shared", visibility="internal")

    ids = [p["id"] for p in client.get("/orgs/acme/projects", headers=alice).json()]
    assert ids == ["shared"]
    assert client.get("/orgs/acme/projects/secret", headers=alice).status_code == 403
    assert client.get("/orgs/acme/projects/shared", headers=alice).status_code == 200

    r = client.post(
        "/orgs/acme/projects/shared/branches/master/elements",
        json={"id": "engine"},
        headers=alice,
    )
    assert r.status_code == 403


def test_project_membership_grants_access(client, root_headers, user_headers, org_factory, project_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "read"})
    project_factory("acme", "rocket")

    r = client.put("/orgs/acme/projects/rocket/members/alice", json={"role": "write"}, headers=root_headers)
    assert r.status_code == 200
    assert r.json()["permissions"]["alice"] == ["read", "write"]

    r = client.post("/orgs/acme/projects/rocket/branches/master/elements", json={"id": "engine"}, headers=alice)
    assert r.status_code == 201
    assert client.patch("/orgs/acme/projects/rocket", json={"name": "X"}, headers=alice).status_code == 403

    r = client.delete("/orgs/acme/projects/rocket/members/alice", headers=root_headers)
    assert r.status_code == 200
    assert client.get("/orgs/acme/projects/rocket", headers=alice).status_code == 403


def test_project_role_adds_user_to_org(client, root_headers, user_headers, org_factory, project_factory):
    bob = user_headers("bob")
    org_factory("acme")
    project_factory("acme", "rocket")
    assert client.get("/orgs/acme/projects/rocket", headers=bob).status_code == 404

    r = client.put("/orgs/acme/projects/rocket/members/bob", json={"role": "admin"}, headers=root_headers)
    assert r.status_code == 200
    assert client.get("/orgs/acme/members", headers=root_headers).json()["bob"] == ["read"]
    assert client.get("/orgs/acme/projects/rocket", headers=bob).status_code == 200

    # Leaving the org drops the project role too
    client.delete("/orgs/acme/members/bob", headers=root_headers)
    assert "bob" not in client.get("/orgs/acme/projects/rocket/members", headers=root_headers).json()
    assert client.get("/orgs/acme/projects/rocket", headers=bob).status_code == 404


def test_project_keeps_an_admin(client, root_headers, model_project):
    r = client.patch(model_project, json={"permissions": {"root": "read"}}, headers=root_headers)
    assert r.status_code == 409


def test_update_and_archive_project(client, root_headers, model_project):
    r = client.patch(model_project, json={"name": "Saturn V", "custom": {"stage": 1}}, headers=root_headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Saturn V"

    r = client.patch("/orgs/acme/projects", json=[{"id": "rocket", "archived": True}], headers=root_headers)
    assert r.status_code == 200
    assert r.json()[0]["archived"] is True

    assert client.get(model_project, headers=root_headers).status_code == 404
    assert client.get(model_project, params={"include_archived": True}, headers=root_headers).status_code == 200
    assert client.get(f"{model_project}/branches/master", headers=root_headers).status_code == 403
    assert client.patch(model_project, json={"name": "Nope"}, headers=root_headers).status_code == 403

    listed = client.get("/orgs/acme/projects", headers=root_headers).json()
    assert listed == []
    listed = client.get("/orgs/acme/projects", params={"archived": True}, headers=root_headers).json()
    assert [p["id"] for p in listed] == ["rocket"]

    assert client.patch(model_project, json={"archived": False}, headers=root_headers).status_code == 200
    assert client.get(f"{model_project}/branches/master", headers=root_headers).status_code == 200


def test_projects_of_archived_org_are_hidden(client, root_headers, model_project):
    client.patch("/orgs/acme", json={"archived": True}, headers=root_headers)
    assert client.get("/projects", headers=root_headers).json() == []
    assert client.get(model_project, headers=root_headers).status_code == 404
    r = client.patch(model_project, json={"name": "x"}, headers=root_headers)
    assert r.status_code == 403


def test_projects_of_archived_org_cannot_be_deleted(client, root_headers, model_project):
    client.patch("/orgs/acme", json={"archived": True}, headers=root_headers)
    assert client.delete(model_project, headers=root_headers).status_code == 403
    r = client.delete("/orgs/acme/projects", params={"ids": "rocket"}, headers=root_headers)
    assert r.status_code == 403

    client.patch("/orgs/acme", json={"archived": False}, headers=root_headers)
    assert client.get(model_project, headers=root_headers).status_code == 200


def test_delete_project_requires_org_admin(client, root_headers, user_headers, org_factory, project_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "write"})
    project_factory("acme", "rocket", headers=alice)
    assert client.delete("/orgs/acme/projects/rocket", headers=alice).status_code == 403

    r = client.delete("/orgs/acme/projects", params={"ids": "rocket"}, headers=root_headers)
    assert r.status_code == 200
    assert r.json() == ["rocket"]
    assert client.get("/orgs/acme/projects/rocket", headers=root_headers).status_code == 404
    assert client.get("/orgs/acme/projects/rocket/branches/master/elements", headers=root_headers).status_code == 404


def test_all_projects_listing(client, root_headers, user_headers, org_factory, project_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "read"})
    org_factory("globex")
    project_factory("acme", "shared", visibility="internal")
    project_factory("globex", "hidden", visibility="internal")

    assert [p["id"] for p in client.get("/projects", headers=alice).json()] == ["shared"]
    assert sorted(p["id"] for p in client.get("/projects", headers=root_headers).json()) == ["hidden", "shared"]


def test_project_events_carry_context(client, org_factory, project_factory, captured_events):
    org_factory("acme")
    project_factory("acme", "rocket")
    created = [c for name, _p, c in captured_events if name == "projects-created"]
    assert len(created) == 1
    assert created[0].organization_id == "acme"
    assert created[0].project_id == "acme:rocket"


def test_member_removal_checks_rights_before_membership(client, root_headers, user_headers, org_factory, project_factory):
    alice = user_headers("alice")
    user_headers("bob")
    org_factory("acme", permissions={"alice": "write", "bob": "read"})
    project_factory("acme", "rocket", visibility="internal")
    client.put("/orgs/acme/projects/rocket/members/bob", json={"role": "write"}, headers=root_headers)

    # Same answer for a member and a non-member
    assert client.delete("/orgs/acme/projects/rocket/members/bob", headers=alice).status_code == 403
    assert client.delete("/orgs/acme/projects/rocket/members/nobody", headers=alice).status_code == 403
    assert client.delete("/orgs/acme/projects/rocket/members/nobody", headers=root_headers).status_code == 404


def test_put_replaces_existing_project(client, root_headers, model_project, captured_events):
    client.post(f"{model_project}/branches/master/elements", json={"id": "engine"}, headers=root_headers)
    client.post(f"{model_project}/branches", json={"id": "dev", "source": "master"}, headers=root_headers)

    r = client.put("/orgs/acme/projects/rocket", json={"id": "rocket", "name": "Rocket II"}, headers=root_headers)
    assert r.status_code == 200, r.text
    assert r.json()["name"] == "Rocket II"

    branches = client.get(f"{model_project}/branches", headers=root_headers).json()
    assert [b["id"] for b in branches] == ["master"]
    elements = client.get(f"{model_project}/branches/master/elements", headers=root_headers).json()
    assert sorted(e["id"] for e in elements) == ["__mbee__", "holding_bin", "model", "undefined"]

    names = [name for name, _p, _c in captured_events if name in ("projects-deleted", "projects-created")]
    assert names[-2:] == ["projects-deleted", "projects-created"]
    deleted = [p for name, p, _c in captured_events if name == "projects-deleted"]
    assert deleted == [["rocket"]]

    logs = client.get("/orgs/acme/audits", params={"action_type": "project_replace"}, headers=root_headers).json()
    assert [entry["target_id"] for entry in logs] == ["acme:rocket"]


def test_put_creates_missing_projects(client, root_headers, model_project):
    r = client.put(
        "/orgs/acme/projects",
        json=[{"id": "rocket", "name": "Rocket"}, {"id": "lander", "name": "Lander"}],
        headers=root_headers,
    )
    assert r.status_code == 200
    assert [p["id"] for p in r.json()] == ["rocket", "lander"]
    assert client.get("/orgs/acme/projects/lander", headers=root_headers).status_code == 200

    r = client.put("/orgs/acme/projects/rocket", json={"id": "other", "name": "x"}, headers=root_headers)
    assert r.status_code == 400


def test_replace_needs_project_admin(client, root_headers, user_headers, org_factory, project_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "write"})
    project_factory("acme", "rocket")
    client.post("/orgs/acme/projects/rocket/branches/master/elements", json={"id": "engine"}, headers=root_headers)

    r = client.put("/orgs/acme/projects/rocket", json={"id": "rocket", "name": "Mine"}, headers=alice)
    assert r.status_code == 403
    r = client.get("/orgs/acme/projects/rocket/branches/master/elements/engine", headers=root_headers)
    assert r.status_code == 200
