"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.scan.store import RoomRegistry, get_registry


class FakeClock:
    """Manually advanced clock returning epoch milliseconds."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def advance_seconds(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    """A fresh registry with default TTLs (5 min images, 30 min rooms)."""
    return RoomRegistry(image_ttl_seconds=300, room_ttl_seconds=1800, clock=clock)


@pytest.fixture
def api_client(registry):
    """Provide a TestClient for the main FastAPI app bound to *registry*."""
    app.dependency_overrides[get_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.pop(get_registry, None)
