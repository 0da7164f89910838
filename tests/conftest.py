"""Pytest fixtures for the ops dashboard tests."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from ops_dashboard.config import (
    CalendarConfig,
    DashboardConfig,
    InstanceDirectoryConfig,
    PostgresConfig,
    RefreshConfig,
    VncConfig,
)
from ops_dashboard.models import Booking, Identity

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ENV_KEYS = [
    "INCUS_API_URL",
    "INCUS_API_KEY",
    "INCUS_SERVER",
    "IP_PREFIX",
    "CONTAINERS",
    "POSTGRES_HOST",
    "POSTGRES_PORT",
    "POSTGRES_DB",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "DATABASE_URL",
    "CALENDAR_VISIBLE_DAYS",
    "CALENDAR_DAY_START",
    "CALENDAR_DAY_END",
    "REFRESH_INTERVAL_SECONDS",
    "REFRESH_IDLE_SECONDS",
    "WEB_HOST",
    "WEB_PORT",
]

ANCHOR = datetime(2024, 10, 21, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's .env out of the tests."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def dashboard_config():
    """A fully populated configuration."""
    return DashboardConfig(
        instances=InstanceDirectoryConfig(
            api_url="https://incus.example.com/api/instances",
            api_key="secret",
            ip_prefix="10.225.44.",
        ),
        vnc=VncConfig(
            server="vnc.example.com",
            ip_prefix="10.225.44.",
            containers=["181", "182"],
        ),
        database=PostgresConfig(
            host="localhost", database="ops", user="ops", password="ops"
        ),
        calendar=CalendarConfig(),
        refresh=RefreshConfig(interval_seconds=30, idle_seconds=120),
    )


@pytest.fixture
def identities():
    return {
        "alice": Identity(id="id-alice", fullname="Alice Martin", company="Acme"),
        "bob": Identity(id="id-bob", fullname="bob Stone", company=""),
    }


@pytest.fixture
def make_booking():
    """Factory for bookings relative to the test anchor day."""

    def _make(
        booking_id: str,
        day: int = 0,
        hour: int = 9,
        minute: int = 0,
        duration: int = 30,
        identity: Optional[Identity] = None,
        **kwargs,
    ) -> Booking:
        start = ANCHOR + timedelta(days=day, hours=hour, minutes=minute)
        return Booking(
            id=booking_id,
            start=start,
            duration_minutes=duration,
            identity=identity,
            **kwargs,
        )

    return _make
