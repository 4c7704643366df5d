import pytest
from fastapi.testclient import TestClient

from backend import RoomRegistry, room_registry


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def client():
    from app import app

    room_registry.clear()
    with TestClient(app) as test_client:
        yield test_client
    room_registry.clear()
