"""
Fixtures comunes: una base SQLite en fichero por test, reloj fijo y un
registro de eventos emitidos.
"""
import os

# antes de importar flowgroups: que la app por defecto no toque ./flowgroups.db
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from flowgroups.core.clock import FixedClock
from flowgroups.core.database import Base, make_engine, make_session_factory
from flowgroups.core.security import create_access_token
from flowgroups.main import create_app
from flowgroups.services.container import build_lifecycle
from flowgroups.services.groups import ExpirationPolicy

T0 = datetime(2026, 1, 10, 12, 0, 0)


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event_type, payload):
        self.events.append((event_type, payload))

    def of(self, event_type):
        return [p for (t, p) in self.events if t == event_type]


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def lifecycle(session_factory, clock, recorder):
    return build_lifecycle(session_factory, clock=clock, emit=recorder, retention_days=30)


@pytest.fixture
def make_group(lifecycle, clock):
    def _make(creator="alice", name="Grupo", now=None, **policy):
        return lifecycle.groups.create_group(
            creator, name, policy=ExpirationPolicy(**policy), now=now or clock.now()
        )

    return _make


@pytest.fixture
def client(session_factory, clock):
    app = create_app(session_factory, clock=clock, scheduler_enabled=False)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth():
    def _headers(user_id):
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
