import json

import requests

from mbee import events
from mbee.db import models
from mbee.db.repositories import webhooks as webhook_repo
from mbee.services import WebhookDeliveryConfig, WebhookService


class _Resp:
    def __init__(self, status_code=200):
        self.status_code = status_code


def _seed(db):
    org = models.Organization(id="acme", name="Acme", custom={})
    db.add(org)
    db.flush()
    server = webhook_repo.create_webhook(
        db, webhook_type="Outgoing", triggers=["elements-created"],
        responses=[{"url": "http://hooks.test/server", "method": "POST", "headers": {"Content-Type": "application/json"}}],
    )
    org_hook = webhook_repo.create_webhook(
        db, webhook_type="Outgoing", triggers=["elements-created", "orgs-updated"], organization_id="acme",
        responses=[{"url": "http://hooks.test/org", "method": "PUT", "headers": {}, "data": {"fixed": True},
                    "auth": {"username": "hook", "password": "pw"}}],
    )
    archived = webhook_repo.create_webhook(
        db, webhook_type="Outgoing", triggers=["elements-created"], organization_id="acme",
        responses=[{"url": "http://hooks.test/archived"}],
    )
    archived.mark_archived(True, None)
    db.commit()
    return server, org_hook


def test_dispatch_sends_each_matching_response(db, monkeypatch):
    _seed(db)
    sent = []

    def fake_request(self, method, url, **kwargs):
        sent.append((method, url, kwargs))
        return _Resp(200)

    monkeypatch.setattr(requests.Session, "request", fake_request)
    service = WebhookService(WebhookDeliveryConfig(timeout=3.0))
    ctx = events.EventContext(db=db, organization_id="acme", project_id="acme:rocket")
    results = service.dispatch("elements-created", [{"id": "engine"}], ctx)

    assert sorted(url for _m, url, _k in sent) == ["http://hooks.test/org", "http://hooks.test/server"]
    assert all(r.ok for r in results)
    by_url = {url: (method, kwargs) for method, url, kwargs in sent}
    method, kwargs = by_url["http://hooks.test/org"]
    assert method == "PUT"
    assert json.loads(kwargs["data"]) == {"fixed": True}
    assert kwargs["auth"] == ("hook", "pw")
    assert kwargs["timeout"] == 3.0
    method, kwargs = by_url["http://hooks.test/server"]
    assert method == "POST"
    assert json.loads(kwargs["data"]) == [{"id": "engine"}]


def test_dispatch_skips_other_scopes_and_triggers(db, monkeypatch):
    _seed(db)
    sent = []
    monkeypatch.setattr(requests.Session, "request", lambda self, m, u, **k: sent.append(u) or _Resp())
    service = WebhookService(WebhookDeliveryConfig())

    # Org-level hook must not fire for another org
    service.dispatch("elements-created", {}, events.EventContext(db=db, organization_id="other"))
    assert sent == ["http://hooks.test/server"]

    sent.clear()
    service.dispatch("orgs-deleted", {}, events.EventContext(db=db, organization_id="acme"))
    assert sent == []


def test_delivery_failures_are_reported_not_raised(db, monkeypatch, caplog):
    _seed(db)

    def failing(self, method, url, **kwargs):
        if url.endswith("/org"):
            raise requests.ConnectionError("unreachable")
        return _Resp(500)

    monkeypatch.setattr(requests.Session, "request", failing)
    service = WebhookService(WebhookDeliveryConfig())
    results = service.dispatch("elements-created", {}, events.EventContext(db=db, organization_id="acme"))

    assert len(results) == 2
    assert not any(r.ok for r in results)
    errored = [r for r in results if r.error]
    assert len(errored) == 1 and "unreachable" in errored[0].error
    assert any("webhook_delivery_failed" in r.getMessage() for r in caplog.records)
