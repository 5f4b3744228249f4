"""
Pytest configuration and shared fixtures for hass_bridge tests.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from hass_bridge.core.config import BridgeSettings
from hass_bridge.core.session_store import SessionStore
from hass_bridge.core.state import ClientCounter, MemoryStatusStore
from hass_bridge.server import create_app
from hass_bridge.services.auth_flow import AuthFlowEngine

VIS_URL = "http://192.168.1.50:8082/vis/index.html"


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def make_settings(tmp_path, **overrides) -> BridgeSettings:
    options = {
        "vis_url": VIS_URL,
        "mdns_enabled": False,
        "service_dir": str(tmp_path / "avahi" / "services"),
    }
    options.update(overrides)
    return BridgeSettings(_env_file=None, **options)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_store(clock) -> SessionStore:
    return SessionStore(clock=clock)


@pytest.fixture
def status_store() -> MemoryStatusStore:
    return MemoryStatusStore()


@pytest.fixture
def client_counter() -> ClientCounter:
    return ClientCounter()


@pytest.fixture
def engine(session_store, client_counter, status_store) -> AuthFlowEngine:
    """Flow engine that accepts any credentials."""
    return AuthFlowEngine(session_store, client_counter, status_store, auth_required=False)


@pytest.fixture
def auth_engine(session_store, client_counter, status_store) -> AuthFlowEngine:
    """Flow engine that requires admin/x."""
    return AuthFlowEngine(
        session_store, client_counter, status_store, auth_required=True, username="admin", password="x"
    )


@pytest.fixture
def settings_factory(tmp_path):
    """Build settings rooted in the test's tmp_path."""

    def factory(**overrides) -> BridgeSettings:
        return make_settings(tmp_path, **overrides)

    return factory


@pytest.fixture
def bridge_settings(tmp_path) -> BridgeSettings:
    return make_settings(tmp_path)


@pytest.fixture
def auth_settings(tmp_path) -> BridgeSettings:
    return make_settings(tmp_path, auth_required=True, username="admin", password="x")


@pytest.fixture
def test_client(bridge_settings, session_store, status_store) -> Generator[TestClient, None, None]:
    """Gateway client with authentication disabled."""
    app = create_app(bridge_settings, sessions=session_store, status_store=status_store)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_client(auth_settings, session_store, status_store) -> Generator[TestClient, None, None]:
    """Gateway client requiring admin/x."""
    app = create_app(auth_settings, sessions=session_store, status_store=status_store)
    with TestClient(app) as client:
        yield client
