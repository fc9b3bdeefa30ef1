"""
Pytest configuration and shared fixtures for chatsync tests.
"""

import pytest
from pathlib import Path

# Add src to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chatsync.sync.engine import SyncStateEngine
from chatsync.utils.config import ChatSyncConfig, SyncConfig

from tests.fixtures import FakeTransport


# Short timings so waits and debounces finish quickly.
TEST_SYNC_CONFIG = {
    "decryption_debounce_ms": 20,
    "room_wait_timeout_ms": 200,
    "room_wait_interval_ms": 10,
    "typing_idle_ms": 30,
}

TOKEN_LOGIN = {
    "base_url": "https://matrix.example.org",
    "user_id": "@alice:example.org",
    "access_token": "syt_token",
    "device_id": "DEVICE1",
}

PASSWORD_LOGIN = {
    "base_url": "https://matrix.example.org",
    "user_id": "alice",
    "password": "hunter2",
}


@pytest.fixture
def test_config() -> ChatSyncConfig:
    """Engine configuration with short timings."""
    return ChatSyncConfig(sync=SyncConfig(**TEST_SYNC_CONFIG))


@pytest.fixture
def transport() -> FakeTransport:
    """Session factory backed by FakeSession."""
    return FakeTransport()


@pytest.fixture
def engine(transport: FakeTransport, test_config: ChatSyncConfig) -> SyncStateEngine:
    """Engine wired to the fake transport, not logged in."""
    return SyncStateEngine(transport, config=test_config)


@pytest.fixture
def token_login() -> dict:
    return dict(TOKEN_LOGIN)


@pytest.fixture
def password_login() -> dict:
    return dict(PASSWORD_LOGIN)
