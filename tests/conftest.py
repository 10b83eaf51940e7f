"""
Pytest configuration and shared fixtures for the test suite.
"""

import os
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Set environment variables before importing app modules
os.environ["AAPS_WATCH_RUN_POLLER"] = "false"
os.environ["AAPS_WATCH_REQUEST_INITIAL_DATA"] = "false"

# 2023-11-14T22:13:20Z
NOW_S = 1_700_000_000.0
NOW_MS = int(NOW_S * 1000)
MINUTE_MS = 60 * 1000


class FakeClock:
    """Settable clock returning seconds since the epoch."""

    def __init__(self, now: float = NOW_S):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def mock_settings(tmp_path):
    """Create settings pointing at a temporary mailbox directory."""
    from aaps_watch.config import Settings, get_settings

    get_settings.cache_clear()

    return Settings(
        storage_dir=tmp_path / "storage",
        request_initial_data=False,
        run_poller=False,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state():
    from aaps_watch.state import WatchFaceState

    return WatchFaceState()


@pytest.fixture
def mailbox(mock_settings):
    from aaps_watch.mailbox import FileMailbox

    return FileMailbox(mock_settings.storage_dir)


@pytest.fixture
def mock_command_client():
    """Create a mock CommandClient that reports every send as delivered."""
    from aaps_watch.command_client import CommandClient, CommandStatistics

    client = MagicMock(spec=CommandClient)
    client.send.return_value = True
    client.send_command.return_value = True
    client.request_initial_data.return_value = True
    client.upload_heart_rate.return_value = True
    client.upload_steps.return_value = True
    client.stats = CommandStatistics()
    return client


@pytest.fixture
def poller(mock_settings, mailbox, mock_command_client, clock):
    """Create a poller with a fake clock and mocked command client."""
    from aaps_watch.poller import WatchFacePoller

    return WatchFacePoller(
        mock_settings,
        mailbox=mailbox,
        commands=mock_command_client,
        clock=clock,
    )


@pytest.fixture
def test_client(poller, mock_settings):
    """Create a test client with mocked dependencies."""
    from aaps_watch.config import get_settings
    from aaps_watch.main import app, get_poller, reset_poller

    reset_poller()
    app.dependency_overrides[get_poller] = lambda: poller
    app.dependency_overrides[get_settings] = lambda: mock_settings

    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()


@pytest.fixture
def status_record():
    """Current-status record as written by the phone."""
    return {
        "sgv": 120,
        "delta": 5,
        "trend": "FLAT",
        "iob": 1.25,
        "cob": 12.4,
        "basal": 0.8,
        "ts": NOW_MS - 2 * MINUTE_MS,
    }
