import pytest

from mbee.db import models


@pytest.fixture
def elements_url(model_project):
    return f"{model_project}/branches/master/elements"


def _get(client, url, element_id, headers, **params):
    return client.get(f"{url}/{element_id}", params=params, headers=headers)


def test_create_defaults_to_block_under_model(client, root_headers, elements_url):
    r = client.post(elements_url, json={"id": "engine", "name": "Engine"}, headers=root_headers)
    assert r.status_code == 201, r.text
    engine = r.json()[0]
    assert engine["type"] == "Block"
    assert engine["parent"] == "model"
    assert engine["created_by"] == "root"
    assert (engine["org"], engine["project"], engine["branch"]) == ("acme", "rocket", "master")

    model = _get(client, elements_url, "model", root_headers).json()
    assert "engine" in model["contains"]


def test_batch_references_resolve_within_request(client, root_headers, elements_url):
    r = client.post(
        elements_url,
        json=[
            {"id": "feeds", "source": "tank", "target": "engine"},
            {"id": "engine", "parent": "propulsion"},
            {"id": "tank", "parent": "propulsion"},
            {"id": "propulsion", "type": "Package"},
        ],
        headers=root_headers,
    )
    assert r.status_code == 201, r.text
    by_id = {e["id"]: e for e in r.json()}
    assert by_id["feeds"]["type"] == "Relationship"
    assert (by_id["feeds"]["source"], by_id["feeds"]["target"]) == ("tank", "engine")
    assert sorted(by_id["propulsion"]["contains"]) == ["engine", "tank"]

    rels = client.get(elements_url, params={"type": "Relationship"}, headers=root_headers).json()
    assert [e["id"] for e in rels] == ["feeds"]
    children = client.get(elements_url, params={"parent": "propulsion"}, headers=root_headers).json()
    assert [e["id"] for e in children] == ["engine", "tank"]


def test_create_validation(client, root_headers, elements_url):
    def post(body):
        return client.post(elements_url, json=body, headers=root_headers).status_code

    assert post({"id": "bad id"}) == 400
    assert post({"id": "loop", "parent": "loop"}) == 400
    assert post({"id": "half", "type": "Relationship", "source": "model"}) == 400
    assert post({"id": "blk", "type": "Block", "source": "model", "target": "model"}) == 400
    assert post({"id": "orphan", "parent": "ghost"}) == 404
    assert post([{"id": "twin"}, {"id": "twin"}]) == 400
    assert post({"id": "engine"}) == 201
    assert post({"id": "engine"}) == 409
    assert post({"id": "model"}) == 409


def test_update_fields_and_moves(client, root_headers, elements_url):
    client.post(elements_url, json=[{"id": "a"}, {"id": "b", "parent": "a"}, {"id": "c"}], headers=root_headers)

    r = client.patch(f"{elements_url}/c", json={"name": "C", "documentation": "doc", "custom": {"k": 1}}, headers=root_headers)
    assert r.status_code == 200
    assert (r.json()["name"], r.json()["documentation"], r.json()["custom"]) == ("C", "doc", {"k": 1})

    r = client.patch(elements_url, json=[{"id": "c", "parent": "b"}], headers=root_headers)
    assert r.status_code == 200
    assert r.json()[0]["parent"] == "b"

    # a -> b -> c: moving a under c would close a loop
    r = client.patch(f"{elements_url}/a", json={"parent": "c"}, headers=root_headers)
    assert r.status_code == 400
    assert _get(client, elements_url, "a", root_headers).json()["parent"] == "model"


def test_update_validation(client, root_headers, elements_url):
    client.post(elements_url, json=[{"id": "a"}, {"id": "b"}], headers=root_headers)

    def patch(element_id, body):
        return client.patch(f"{elements_url}/{element_id}", json=body, headers=root_headers).status_code

    assert patch("model", {"parent": "a"}) == 403
    assert patch("a", {"parent": None}) == 400
    assert patch("a", {"parent": "a"}) == 400
    assert patch("a", {"source": "b"}) == 400
    assert patch("a", {"parent": "ghost"}) == 404
    assert patch("ghost", {"name": "x"}) == 404


def test_relationship_endpoints_can_be_changed(client, root_headers, elements_url):
    client.post(elements_url, json=[{"id": "a"}, {"id": "b"}, {"id": "c"}, {"id": "r", "source": "a", "target": "b"}],
                headers=root_headers)
    r = client.patch(f"{elements_url}/r", json={"target": "c"}, headers=root_headers)
    assert r.status_code == 200
    assert r.json()["target"] == "c"
    assert client.get(elements_url, params={"target": "c"}, headers=root_headers).json()[0]["id"] == "r"


def test_delete_removes_subtree_and_relinks_relationships(client, root_headers, elements_url):
    client.post(
        elements_url,
        json=[
            {"id": "pkg", "type": "Package"},
            {"id": "engine", "parent": "pkg"},
            {"id": "nozzle", "parent": "engine"},
            {"id": "tank"},
            {"id": "feeds", "source": "tank", "target": "nozzle"},
        ],
        headers=root_headers,
    )
    r = client.delete(f"{elements_url}/pkg", headers=root_headers)
    assert r.status_code == 200
    assert sorted(r.json()) == ["engine", "nozzle", "pkg"]

    for gone in ("pkg", "engine", "nozzle"):
        assert _get(client, elements_url, gone, root_headers).status_code == 404
    feeds = _get(client, elements_url, "feeds", root_headers).json()
    assert feeds["source"] == "tank"
    assert feeds["target"] == "undefined"
    broken = feeds["custom"]["mbee"]["broken_relationships"]
    assert [(b["type"], b["element"], b["reason"]) for b in broken] == [("target", "nozzle", "Element deleted")]


def test_delete_validation(client, root_headers, elements_url):
    for root in ("model", "__mbee__", "holding_bin", "undefined"):
        assert client.delete(f"{elements_url}/{root}", headers=root_headers).status_code == 403
    assert client.delete(elements_url, params={"ids": "ghost"}, headers=root_headers).status_code == 404


def test_root_elements_cannot_be_moved(client, root_headers, elements_url):
    client.post(elements_url, json={"id": "box", "type": "Package"}, headers=root_headers)
    for root in ("model", "__mbee__", "holding_bin", "undefined"):
        r = client.patch(f"{elements_url}/{root}", json={"parent": "box"}, headers=root_headers)
        assert r.status_code == 403, root
    assert _get(client, elements_url, "__mbee__", root_headers).json()["parent"] == "model"
    assert client.delete(f"{elements_url}/box", headers=root_headers).json() == ["box"]


def test_delete_refuses_subtrees_holding_root_elements(client, root_headers, elements_url, db):
    client.post(elements_url, json={"id": "box", "type": "Package"}, headers=root_headers)
    mbee = db.get(models.Element, "acme:rocket:master:__mbee__")
    mbee.parent_id = "acme:rocket:master:box"
    db.commit()

    r = client.delete(elements_url, params={"ids": "box"}, headers=root_headers)
    assert r.status_code == 403
    assert "__mbee__" in r.json()["detail"]
    assert _get(client, elements_url, "undefined", root_headers).status_code == 200
    assert _get(client, elements_url, "box", root_headers).status_code == 200


def test_subtree_and_search(client, root_headers, elements_url):
    client.post(
        elements_url,
        json=[
            {"id": "stage1", "name": "First stage"},
            {"id": "engine", "parent": "stage1", "documentation": "Liquid fuel engine"},
            {"id": "other", "name": "Payload"},
        ],
        headers=root_headers,
    )
    r = _get(client, elements_url, "stage1", root_headers, subtree=True)
    assert [e["id"] for e in r.json()] == ["engine", "stage1"]

    hits = client.get(f"{elements_url}/search", params={"q": "FUEL"}, headers=root_headers).json()
    assert [e["id"] for e in hits] == ["engine"]
    hits = client.get(f"{elements_url}/search", params={"q": "stage"}, headers=root_headers).json()
    assert [e["id"] for e in hits] == ["stage1"]


def test_archived_elements(client, root_headers, elements_url):
    client.post(elements_url, json={"id": "engine"}, headers=root_headers)
    r = client.patch(f"{elements_url}/engine", json={"archived": True}, headers=root_headers)
    assert r.status_code == 200
    assert r.json()["archived_by"] == "root"

    assert _get(client, elements_url, "engine", root_headers).status_code == 404
    assert _get(client, elements_url, "engine", root_headers, include_archived=True).status_code == 200
    assert "engine" not in [e["id"] for e in client.get(elements_url, headers=root_headers).json()]
    assert client.patch(f"{elements_url}/engine", json={"name": "x"}, headers=root_headers).status_code == 403
    assert client.patch(f"{elements_url}/engine", json={"archived": False}, headers=root_headers).status_code == 200


def test_readers_can_only_read(client, root_headers, user_headers, org_factory, project_factory):
    alice = user_headers("alice")
    org_factory("acme", permissions={"alice": "read"})
    project_factory("acme", "rocket", visibility="internal")
    url = "/orgs/acme/projects/rocket/branches/master/elements"
    assert client.get(url, headers=alice).status_code == 200
    assert client.post(url, json={"id": "engine"}, headers=alice).status_code == 403
    assert client.delete(url, params={"ids": "model"}, headers=alice).status_code == 403


def test_element_events(client, root_headers, elements_url, captured_events):
    client.post(elements_url, json={"id": "engine"}, headers=root_headers)
    client.delete(f"{elements_url}/engine", headers=root_headers)
    names = [n for n, _p, _c in captured_events if n.startswith("elements-")]
    assert names == ["elements-created", "elements-deleted"]
    deleted = [(p, c) for n, p, c in captured_events if n == "elements-deleted"][0]
    assert deleted[0] == ["engine"]
    assert deleted[1].branch_id == "acme:rocket:master"
    assert deleted[1].project_id == "acme:rocket"
    assert deleted[1].organization_id == "acme"


def test_element_reads_support_keyed_and_nested_formats(client, root_headers, elements_url):
    url = elements_url
    client.post(url, json=[{"id": "box"}, {"id": "lid", "parent": "box"}], headers=root_headers)

    keyed = client.get(url, params={"ids": "box,lid", "format": "jmi2"}, headers=root_headers).json()
    assert sorted(keyed) == ["box", "lid"]
    assert keyed["lid"]["parent"] == "box"

    nested = client.get(f"{url}/box", params={"subtree": True, "format": "jmi3"}, headers=root_headers).json()
    assert list(nested) == ["box"]
    assert list(nested["box"]["contains"]) == ["lid"]

    assert client.get(url, params={"format": "xml"}, headers=root_headers).status_code == 422
