"""Shared test fixtures for Google Cloud MCP tests."""

from datetime import datetime, timedelta, timezone

import pytest

from gcp_mcp.config import Settings
from gcp_mcp.context import ServerContext

# Variables the server reads or writes; each test starts without them.
_ISOLATED_ENV_VARS = [
    "GOOGLE_CLOUD_PROJECT",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "GOOGLE_CLIENT_EMAIL",
    "GOOGLE_PRIVATE_KEY",
    "LAZY_AUTH",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "ENVIRONMENT",
    "MCP_TRANSPORT",
    "MCP_HTTP_HOST",
    "MCP_HTTP_PORT",
    "MCP_ALLOWED_ORIGINS",
    "MCP_MAX_CONNECTIONS",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
]


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Clears server environment variables and restores them afterwards."""
    for name in _ISOLATED_ENV_VARS:
        # setenv first so monkeypatch records the original value for undo,
        # including for variables the code under test writes directly
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def context(settings, clock) -> ServerContext:
    """A fresh ServerContext with a controllable clock."""
    return ServerContext.create(settings, clock=clock)
