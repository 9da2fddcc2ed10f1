import os

# Environment must be in place before any mbee module reads it
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ["MBEE_AUTH_STRATEGY"] = "proxy"
os.environ["MBEE_ADMIN_USERNAMES"] = "root"
os.environ.pop("MBEE_ADMIN_USERNAME", None)
os.environ.pop("MBEE_ALLOW_GUEST_WRITES", None)

import pytest
from fastapi.testclient import TestClient

from mbee import events
from mbee.config import refresh_config_cache
from mbee.db import models
from mbee.db.database import SessionLocal, engine, ensure_sqlite_schema
from mbee.services import reset_webhook_service_for_tests

refresh_config_cache()
ensure_sqlite_schema()


def _wipe_tables():
    with engine.begin() as conn:
        for table in reversed(models.Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(autouse=True)
def _fresh_database():
    """Every test starts from an empty database holding only the default org."""
    from mbee.api.main import initialize_server

    refresh_config_cache()
    reset_webhook_service_for_tests()
    _wipe_tables()
    initialize_server()
    yield
    refresh_config_cache()


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# Backwards compatibility: some tests expect a 'db' fixture name
@pytest.fixture
def db(db_session):
    return db_session


@pytest.fixture
def client():
    from mbee.api.main import app

    return TestClient(app)


@pytest.fixture
def captured_events():
    """Record every emitted event as (name, payload, context)."""
    seen = []

    def _listener(event, payload, context):
        seen.append((event, payload, context))

    events.on(events.ALL_EVENTS, _listener)
    yield seen
    events.off(events.ALL_EVENTS, _listener)
