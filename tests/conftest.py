"""Shared fixtures: in-memory database, seeded practice calls, provider stubs."""

import os

# Engines are created at import time; point them at SQLite before anything loads
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCORING_USE_CLAUDE", "false")

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.config.database import Base
from api.models import PracticeCall
from api.models.base import utc_now
from processor.call_store import PracticeCallStore
from processor.database import get_db
from processor.integrations.ringg import RinggClient

SAMPLE_TRANSCRIPT = (
    "I understand your concern, let's find a solution together. "
    "Based on our 12-class policy from Ebbinghaus research..."
)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def make_call(session_factory):
    """Insert a practice call and return its ID."""

    def _make(**fields) -> int:
        values = {"user_id": "trainee-1", "started_at": utc_now()}
        values.update(fields)
        db = session_factory()
        try:
            call = PracticeCall(**values)
            db.add(call)
            db.commit()
            return call.id
        finally:
            db.close()

    return _make


@pytest.fixture
def load_call(session_factory):
    """Read a practice call back through the store as a dict."""

    def _load(call_id: int):
        with get_db(session_factory) as db:
            return PracticeCallStore(db).get(call_id)

    return _load


@pytest.fixture
def ringg_client():
    """Build a RinggClient whose HTTP calls are answered by a handler."""
    def _build(handler) -> RinggClient:
        client = RinggClient(
            api_key="test-key",
            base_url="https://ringg.test/ca/api/v0",
            transport=httpx.MockTransport(handler),
        )
        return client

    return _build


def call_details(call_id: str = "call-1", **overrides) -> dict:
    """Provider call-details payload."""
    payload = {
        "id": call_id,
        "status": "completed",
        "duration": 95,
        "cost": 0.42,
        "participant": {"name": "Priya"},
    }
    payload.update(overrides)
    return payload


class FakeRegistry:
    """Records poll launches instead of running them."""

    def __init__(self):
        self.started = []
        self.active = {}

    def start(self, external_call_id, practice_call_id):
        if external_call_id in self.active:
            return None
        self.started.append((external_call_id, practice_call_id))
        return object()

    def is_active(self, external_call_id):
        return external_call_id in self.active

    def get_status(self):
        return {"active_polls": len(self.active)}

    async def shutdown(self):
        self.active.clear()
