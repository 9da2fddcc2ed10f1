import logging

from mbee import events


def _ctx():
    return events.EventContext(db=None, organization_id="acme")


def test_event_name_format():
    assert events.event_name("elements", "created") == "elements-created"


def test_emit_calls_specific_and_wildcard_listeners():
    calls = []

    def specific(event, payload, context):
        calls.append(("specific", event, payload))

    def wildcard(event, payload, context):
        calls.append(("wildcard", event, payload))

    events.on("orgs-created", specific)
    events.on(events.ALL_EVENTS, wildcard)
    try:
        count = events.emit("orgs-created", {"id": "acme"}, _ctx())
        events.emit("orgs-deleted", "acme", _ctx())
    finally:
        events.off("orgs-created", specific)
        events.off(events.ALL_EVENTS, wildcard)

    assert count >= 2
    assert ("specific", "orgs-created", {"id": "acme"}) in calls
    assert ("wildcard", "orgs-created", {"id": "acme"}) in calls
    assert ("wildcard", "orgs-deleted", "acme") in calls
    assert ("specific", "orgs-deleted", "acme") not in calls


def test_registering_twice_is_idempotent():
    calls = []

    def listener(event, payload, context):
        calls.append(event)

    events.on("custom-trigger", listener)
    events.on("custom-trigger", listener)
    try:
        events.emit("custom-trigger", None, _ctx())
    finally:
        events.off("custom-trigger", listener)
    assert calls == ["custom-trigger"]


def test_failing_listener_is_logged_and_isolated(caplog):
    calls = []

    def broken(event, payload, context):
        raise RuntimeError("boom")

    def healthy(event, payload, context):
        calls.append(event)

    events.on("x-event", broken)
    events.on("x-event", healthy)
    try:
        with caplog.at_level(logging.ERROR, logger="mbee.events"):
            events.emit("x-event", None, _ctx())
    finally:
        events.off("x-event", broken)
        events.off("x-event", healthy)

    assert calls == ["x-event"]
    assert any("event_listener_failed" in r.getMessage() for r in caplog.records)


def test_off_unknown_listener_is_noop():
    events.off("never-registered", lambda *a: None)
