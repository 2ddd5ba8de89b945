"""
Unit test configuration for Teleportation.

Every test gets its own state directory, marker directory and config path,
and none of the relay environment variables leak in from the developer's
shell.
"""

import logging

import pytest

from teleportation.mocks import FakeClock, InlineTasks, MockRelay
from teleportation.settings import RelaySettings, Settings

RELAY_ENV_VARS = (
    "RELAY_API_URL",
    "RELAY_API_KEY",
    "TELEPORTATION_SESSION_ID",
    "TELEPORTATION_CONFIG",
    "TELEPORTATION_DEBUG",
    "TELEPORTATION_POLL_INTERVAL",
    "TELEPORTATION_HANDOFF",
    "TELEPORTATION_RELAY_TIMEOUT",
)

SESSION_ID = "3f2b9c1e-7a4d-4e1b-9c2a-5d6e7f8a9b0c"


@pytest.fixture(autouse=True)
def isolated_state_dir(tmp_path, monkeypatch):
    """Point all on-disk state at tmp_path."""
    for var in RELAY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    state_dir = tmp_path / "state"
    monkeypatch.setenv("TELEPORTATION_STATE_DIR", str(state_dir))
    monkeypatch.setenv("TELEPORTATION_MARKER_DIR", str(tmp_path / "markers"))
    monkeypatch.setattr("teleportation.config.CONFIG_PATH", state_dir / "config.yaml")
    yield state_dir


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("teleportation")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    logger.propagate = True


@pytest.fixture
def session_id():
    return SESSION_ID


@pytest.fixture
def relay():
    return MockRelay()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tasks():
    return InlineTasks()


@pytest.fixture
def configured_settings():
    return Settings(relay=RelaySettings(url="https://relay.test", api_key="test-key-123456"))
