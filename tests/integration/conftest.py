import pytest

ROOT = {"x-auth-request-user": "root"}


@pytest.fixture
def root_headers():
    return dict(ROOT)


@pytest.fixture
def user_headers(client):
    """Provision proxy users on first sight and return their headers."""
    def _make(username: str) -> dict:
        headers = {"x-auth-request-user": username}
        r = client.get("/users/whoami", headers=headers)
        assert r.status_code == 200, r.text
        return headers
    return _make


@pytest.fixture
def org_factory(client, root_headers):
    def _create(org_id: str, name: str = None, permissions: dict = None) -> dict:
        body = {"id": org_id, "name": name or org_id.title()}
        if permissions:
            body["permissions"] = permissions
        r = client.post("/orgs", json=body, headers=root_headers)
        assert r.status_code == 201, r.text
        return r.json()[0]
    return _create


@pytest.fixture
def project_factory(client, root_headers):
    def _create(org_id: str, project_id: str, visibility: str = "private", headers: dict = None) -> dict:
        body = {"id": project_id, "name": project_id.title(), "visibility": visibility}
        r = client.post(f"/orgs/{org_id}/projects", json=body, headers=headers or root_headers)
        assert r.status_code == 201, r.text
        return r.json()[0]
    return _create


@pytest.fixture
def model_project(org_factory, project_factory):
    """An org 'acme' with project 'rocket' (master branch with root elements)."""
    org_factory("acme")
    project_factory("acme", "rocket")
    return "/orgs/acme/projects/rocket"
