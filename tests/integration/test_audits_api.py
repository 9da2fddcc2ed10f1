def _actions(logs):
    return [entry["action_type"] for entry in logs]


def test_system_admin_reads_full_log(client, root_headers, model_project):
    r = client.get("/audits", headers=root_headers)
    assert r.status_code == 200
    actions = _actions(r.json())
    assert "organization_create" in actions
    assert "project_create" in actions

    r = client.get("/audits", params={"action_type": "project_create"}, headers=root_headers)
    entries = r.json()
    assert len(entries) == 1
    assert entries[0]["target_id"] == "acme:rocket"
    assert entries[0]["actor_user_id"] == "root"
    assert entries[0]["organization_id"] == "acme"
    assert entries[0]["status"] == "success"


def test_non_admins_must_scope_to_an_org(client, user_headers, org_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "admin"})
    assert client.get("/audits", headers=alice).status_code == 403
    r = client.get("/audits", params={"organization_id": "acme"}, headers=alice)
    assert r.status_code == 200
    assert "member_add" in _actions(r.json())


def test_org_audit_log_requires_org_admin(client, root_headers, user_headers, org_factory):
    alice = user_headers("alice")
    bob = user_headers("bob")
    org_factory("acme", permissions={"alice": "admin", "bob": "write"})

    r = client.get("/orgs/acme/audits", headers=alice)
    assert r.status_code == 200
    assert all(entry["organization_id"] == "acme" for entry in r.json())
    assert client.get("/orgs/acme/audits", headers=bob).status_code == 403
    assert client.get("/orgs/ghost/audits", headers=root_headers).status_code == 404


def test_element_changes_are_audited(client, root_headers, model_project):
    url = f"{model_project}/branches/master/elements"
    client.post(url, json=[{"id": "a"}, {"id": "b"}], headers=root_headers)
    client.delete(url, params={"ids": "a"}, headers=root_headers)

    logs = client.get("/orgs/acme/audits", params={"action_type": "element_create"}, headers=root_headers).json()
    assert len(logs) == 1
    assert logs[0]["target_type"] == "branch"
    assert logs[0]["target_id"] == "acme:rocket:master"
    assert logs[0]["metadata"] == {"count": 2, "ids": ["a", "b"]}

    logs = client.get("/orgs/acme/audits", params={"action_type": "element_delete"}, headers=root_headers).json()
    assert logs[0]["metadata"]["ids"] == ["a"]


def test_audit_log_filters_by_target(client, root_headers, model_project):
    client.patch(model_project, json={"name": "Rocket 2"}, headers=root_headers)

    logs = client.get(
        "/orgs/acme/audits",
        params={"target_type": "project", "target_id": "acme:rocket"},
        headers=root_headers,
    ).json()
    assert sorted(_actions(logs)) == ["project_create", "project_update"]
    update = next(entry for entry in logs if entry["action_type"] == "project_update")
    assert update["metadata"] == {"fields": ["name"]}

    assert client.get("/audits", params={"target_id": "acme:ghost"}, headers=root_headers).json() == []
