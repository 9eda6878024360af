"""Shared fixtures. The environment is set before any homepair import."""

import os
import tempfile
from datetime import datetime, timedelta

_DATA_DIR = tempfile.mkdtemp()
os.environ["HOMEPAIR_DATA_DIR"] = _DATA_DIR
os.environ["HOMEPAIR_DB_PATH"] = os.path.join(_DATA_DIR, "test.db")
os.environ["HOMEPAIR_JWT_SECRET"] = "test-secret-key-with-at-least-32-bytes!"
os.environ["HOMEPAIR_ADMIN_PASSWORD"] = "test-admin-pass"
os.environ["HOMEPAIR_DISCONNECT_GRACE_SECONDS"] = "0.05"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from homepair.config import Settings  # noqa: E402
from homepair.database import init_db, make_engine  # noqa: E402
from homepair.services.auth_gate import UnifiedAuthGate  # noqa: E402
from homepair.services.client_store import ClientStore  # noqa: E402
from homepair.services.notifications import NotificationRegistry  # noqa: E402
from homepair.services.pairing_service import PairingSessionManager  # noqa: E402
from homepair.services.token_service import TokenService  # noqa: E402
from homepair.utils.dates import utcnow  # noqa: E402

ADMIN_PASSWORD = os.environ["HOMEPAIR_ADMIN_PASSWORD"]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeConnection:
    """Records what the registry sends; stands in for a WebSocket."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.closed_with: tuple[int, str | None] | None = None
        self.fail = fail

    async def send_json(self, data) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = (code, reason)

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


@pytest.fixture
def test_settings():
    return Settings(
        notify_send_timeout_seconds=0.5,
        disconnect_grace_seconds=0.0,
    )


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'unit.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(engine):
    return ClientStore(engine)


@pytest.fixture
def tokens(store, test_settings, clock):
    return TokenService(store, test_settings, clock=clock)


@pytest.fixture
def registry(store, test_settings):
    return NotificationRegistry(store, test_settings)


@pytest.fixture
def pairing(store, tokens, registry, test_settings, clock):
    return PairingSessionManager(store, tokens, registry, test_settings, clock=clock)


@pytest.fixture
def gate(tokens, store, test_settings, clock):
    return UnifiedAuthGate(tokens, store, test_settings, clock=clock)


@pytest.fixture
def client():
    from homepair.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers(client):
    r = client.post("/api/v1/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}


def add_client(engine, name="Hall Panel", areas=None, device_type="tablet"):
    """Insert an active client directly, bypassing pairing."""
    from sqlmodel import Session

    from homepair.models.client import Client

    client = Client(name=name, device_type=device_type, assigned_areas=list(areas or []))
    with Session(engine, expire_on_commit=False) as session:
        session.add(client)
        session.commit()
    return client
