"""
Pytest configuration and fixtures for FieldLink tests.

This module provides shared fixtures for testing the notification client,
including temporary configuration files, mock API and Socket.IO clients,
principals and notification payloads.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from fieldlink.session import Principal


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def temp_config_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for client configuration files.

    Yields:
        Path to temporary configuration directory
    """
    with tempfile.TemporaryDirectory(prefix="fieldlink_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def portal_config() -> dict:
    """Sample client configuration."""
    return {
        "api_base_url": "https://portal.example.com/api/v1",
        "access_token": "tok_test_1234567890abcdef",
        "notification_limit": 10,
        "upcoming_window_days": 14,
        "log_level": "DEBUG",
    }


@pytest.fixture
def portal_config_file(temp_config_dir: Path, portal_config: dict) -> Path:
    """
    Create a temporary client configuration file.

    Returns:
        Path to the configuration file
    """
    config_path = temp_config_dir / "portal-config.yaml"
    with open(config_path, "w") as f:
        yaml.dump(portal_config, f)
    return config_path


@pytest.fixture
def clean_environment(monkeypatch) -> None:
    """
    Clean environment variables that might affect tests.
    """
    for var in (
        "FIELDLINK_API_BASE_URL",
        "FIELDLINK_ACCESS_TOKEN",
        "FIELDLINK_LOG_LEVEL",
        "FIELDLINK_CONFIG_PATH",
    ):
        monkeypatch.delenv(var, raising=False)


# ============================================================================
# Server Fixtures
# ============================================================================


@pytest.fixture
def mock_api_base_url() -> str:
    return "http://localhost:5000/api/v1"


@pytest.fixture
def mock_access_token() -> str:
    return "tok_test_1234567890abcdef1234567890abcdef"


# ============================================================================
# Principal Fixtures
# ============================================================================


@pytest.fixture
def admin_principal() -> Principal:
    return Principal(id="u1", role="admin")


@pytest.fixture
def worker_principal() -> Principal:
    return Principal(id="u2", role="worker")


# ============================================================================
# Notification Fixtures
# ============================================================================


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed reference time for clock-dependent tests."""
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_record(fixed_now: datetime) -> Callable[..., Dict[str, Any]]:
    """
    Factory for raw notification records as sent by the server.

    Usage:
        make_record("a", type="low-stock", data={"siteId": "s1"})
    """
    def factory(notification_id: str, minutes_ago: int = 0, **overrides: Any) -> Dict[str, Any]:
        record = {
            "_id": notification_id,
            "subject": f"Notification {notification_id}",
            "message": f"Message {notification_id}",
            "type": "task-assigned",
            "read": False,
            "createdAt": (fixed_now - timedelta(minutes=minutes_ago)).isoformat(),
            "data": None,
        }
        record.update(overrides)
        return record

    return factory


@pytest.fixture
def make_notification(make_record):
    """Factory for parsed Notification models."""
    from fieldlink.models import Notification

    def factory(notification_id: str, **overrides: Any) -> Notification:
        return Notification.model_validate(make_record(notification_id, **overrides))

    return factory


# ============================================================================
# Mock Client Fixtures
# ============================================================================


@pytest.fixture
def mock_api_client() -> MagicMock:
    """Create a mock PortalApiClient."""
    client = MagicMock()
    client.get_current_user = AsyncMock(return_value={"_id": "u1", "role": "admin"})
    client.get_notifications = AsyncMock(return_value=[])
    client.mark_as_read = AsyncMock(return_value=None)
    client.mark_all_as_read = AsyncMock(return_value=None)
    client.delete_notification = AsyncMock(return_value=None)
    client.get_sites = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


class FakeSocketClient:
    """
    Stand-in for socketio.AsyncClient.

    Records handlers registered with on() and lets tests fire events.
    """

    def __init__(self, **kwargs: Any):
        self.kwargs = kwargs
        self.handlers: Dict[str, Callable] = {}
        self.connected = False
        self.sid = "sid_test"
        self.connect = AsyncMock(side_effect=self._connect)
        self.emit = AsyncMock()
        self.disconnect = AsyncMock(side_effect=self._disconnect)

    def on(self, event: str, handler: Callable) -> None:
        self.handlers[event] = handler

    async def _connect(self, *args: Any, **kwargs: Any) -> None:
        self.connected = True

    async def _disconnect(self) -> None:
        self.connected = False

    async def fire(self, event: str, *args: Any) -> None:
        """Invoke the handler registered for ``event``."""
        await self.handlers[event](*args)


@pytest.fixture
def socket_clients() -> List[FakeSocketClient]:
    """Every FakeSocketClient created through socket_factory, in order."""
    return []


@pytest.fixture
def socket_factory(socket_clients: List[FakeSocketClient]) -> Callable[..., FakeSocketClient]:
    """Client factory for PushChannelManager that records created clients."""
    def factory(**kwargs: Any) -> FakeSocketClient:
        client = FakeSocketClient(**kwargs)
        socket_clients.append(client)
        return client

    return factory


# ============================================================================
# Site Fixtures
# ============================================================================


@pytest.fixture
def sample_sites(fixed_now: datetime) -> List[Dict[str, Any]]:
    """Sites with a spread of payment dates around fixed_now."""
    return [
        {
            "_id": "s_overdue_long",
            "name": "North Yard",
            "client": {"name": "Acme"},
            "paymentCycle": "quarterly",
            "nextPaymentDate": (fixed_now - timedelta(days=10)).isoformat(),
        },
        {
            "_id": "s_overdue_short",
            "name": "East Gate",
            "client": {"name": "Globex"},
            "paymentCycle": None,
            "nextPaymentDate": (fixed_now - timedelta(hours=2)).isoformat(),
        },
        {
            "_id": "s_today",
            "name": "Harbour",
            "client": None,
            "paymentCycle": "monthly",
            "nextPaymentDate": fixed_now.isoformat(),
        },
        {
            "_id": "s_ten_days",
            "name": "Hilltop",
            "client": {"name": "Initech"},
            "paymentCycle": "annual",
            "nextPaymentDate": (fixed_now + timedelta(days=10)).isoformat(),
        },
        {
            "_id": "s_far",
            "name": "Riverside",
            "client": {"name": "Umbrella"},
            "paymentCycle": "semi_annual",
            "nextPaymentDate": (fixed_now + timedelta(days=60)).isoformat(),
        },
        {
            "_id": "s_no_date",
            "name": "Warehouse",
            "client": {"name": "Acme"},
            "paymentCycle": "monthly",
            "nextPaymentDate": None,
        },
    ]
