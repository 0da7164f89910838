"""Configuration handling for the operations dashboard."""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml  # type: ignore
from dotenv import load_dotenv

from ops_dashboard.timegrid.window import time_to_minutes

logger = logging.getLogger(__name__)


# Load environment variables from .env file if it exists
load_dotenv()


class ConfigurationError(ValueError):
    """Raised when required settings are absent.

    ``missing`` holds the environment variable names so callers can report
    exactly what has to be added to ``.env``.
    """

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            f"Missing environment variables: {', '.join(self.missing)}"
        )


def _setting(data: Dict[str, Any], key: str, env_name: str) -> Optional[str]:
    """Read a value from the config dict, falling back to the environment."""
    value = data.get(key)
    if value is None or value == "":
        value = os.environ.get(env_name)
    if value is None or value == "":
        return None
    return str(value)


def parse_container_list(raw: Optional[str]) -> List[str]:
    """Parse the CONTAINERS setting.

    Accepts a JSON array (``["181", "182"]``), a braced list
    (``{"181", "182"}``) or a plain comma-separated list (``181, 182``).
    """
    if not raw:
        return []
    text = raw.strip()
    values: List[str] = []
    if text.startswith("["):
        try:
            parsed = json.loads(text)
            if isinstance(parsed, list):
                values = [str(v) for v in parsed]
        except json.JSONDecodeError:
            values = [s.strip().strip("'\"") for s in text.strip("[]").split(",")]
    elif text.startswith("{"):
        values = re.findall(r'"([^"]+)"', text)
    else:
        values = [s.strip().replace("'", "").replace('"', "") for s in text.split(",")]
    return [v.strip() for v in values if v and v.strip()]


@dataclass
class InstanceDirectoryConfig:
    """Incus instance-listing API used by the containers grid."""

    api_url: Optional[str] = None
    api_key: Optional[str] = None
    ip_prefix: Optional[str] = None
    timeout_seconds: float = 30.0

    def missing_keys(self) -> List[str]:
        missing = []
        if not self.api_url:
            missing.append("INCUS_API_URL")
        if not self.api_key:
            missing.append("INCUS_API_KEY")
        if not self.ip_prefix:
            missing.append("IP_PREFIX")
        return missing

    def require(self) -> "InstanceDirectoryConfig":
        missing = self.missing_keys()
        if missing:
            raise ConfigurationError(missing)
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstanceDirectoryConfig":
        """Create instance directory configuration from dictionary."""
        return cls(
            api_url=_setting(data, "api_url", "INCUS_API_URL"),
            api_key=_setting(data, "api_key", "INCUS_API_KEY"),
            ip_prefix=_setting(data, "ip_prefix", "IP_PREFIX"),
            timeout_seconds=float(data.get("timeout_seconds", 30.0)),
        )


@dataclass
class VncConfig:
    """noVNC gateway settings and the optional static container list."""

    server: Optional[str] = None
    ip_prefix: Optional[str] = None
    containers: List[str] = field(default_factory=list)

    def missing_keys(self) -> List[str]:
        missing = []
        if not self.server:
            missing.append("INCUS_SERVER")
        if not self.ip_prefix:
            missing.append("IP_PREFIX")
        return missing

    def require(self) -> "VncConfig":
        missing = self.missing_keys()
        if missing:
            raise ConfigurationError(missing)
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VncConfig":
        """Create VNC configuration from dictionary."""
        containers = data.get("containers")
        if isinstance(containers, list):
            container_list = [str(c) for c in containers if str(c).strip()]
        else:
            container_list = parse_container_list(
                containers or os.environ.get("CONTAINERS")
            )
        return cls(
            server=_setting(data, "server", "INCUS_SERVER"),
            ip_prefix=_setting(data, "ip_prefix", "IP_PREFIX"),
            containers=container_list,
        )


@dataclass
class PostgresConfig:
    """PostgreSQL connection settings for the booking store."""

    host: Optional[str] = None
    port: int = 5432
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    dsn: Optional[str] = None

    @property
    def conninfo(self) -> str:
        if self.dsn:
            return self.dsn
        parts = [
            f"host={self.host}",
            f"port={self.port}",
            f"dbname={self.database}",
            f"user={self.user}",
        ]
        if self.password:
            parts.append(f"password={self.password}")
        return " ".join(parts)

    def missing_keys(self) -> List[str]:
        if self.dsn:
            return []
        missing = []
        if not self.host:
            missing.append("POSTGRES_HOST")
        if not self.database:
            missing.append("POSTGRES_DB")
        if not self.user:
            missing.append("POSTGRES_USER")
        return missing

    def require(self) -> "PostgresConfig":
        missing = self.missing_keys()
        if missing:
            raise ConfigurationError(missing)
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PostgresConfig":
        """Create PostgreSQL configuration from dictionary."""
        return cls(
            host=_setting(data, "host", "POSTGRES_HOST"),
            port=int(_setting(data, "port", "POSTGRES_PORT") or 5432),
            database=_setting(data, "database", "POSTGRES_DB"),
            user=_setting(data, "user", "POSTGRES_USER"),
            password=_setting(data, "password", "POSTGRES_PASSWORD"),
            dsn=_setting(data, "dsn", "DATABASE_URL"),
        )


_TIME_PATTERN = re.compile(r"^(([01]\d|2[0-3]):([0-5]\d)|24:00)$")


@dataclass
class CalendarConfig:
    """Time grid for the booking calendar. Days and minutes are UTC."""

    visible_days: int = 4
    day_start: str = "00:00"
    day_end: str = "24:00"
    slot_minutes: int = 30
    slot_height_px: float = 50
    min_event_height_px: float = 8
    column_gap_px: float = 4
    now_tick_seconds: int = 30

    def __post_init__(self):
        """Validate calendar configuration."""
        for label, value in (("day_start", self.day_start), ("day_end", self.day_end)):
            if not _TIME_PATTERN.match(value):
                raise ValueError(
                    f"{label} '{value}' must be in HH:MM format (e.g., 09:00)"
                )
        if self.start_minute >= self.end_minute:
            raise ValueError(
                f"Calendar day_start must be before day_end (start: {self.day_start}, end: {self.day_end})"
            )
        if self.visible_days < 1:
            raise ValueError("visible_days must be at least 1")
        if self.slot_minutes <= 0:
            raise ValueError("slot_minutes must be positive")

    @property
    def start_minute(self) -> int:
        return time_to_minutes(self.day_start)

    @property
    def end_minute(self) -> int:
        return time_to_minutes(self.day_end)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarConfig":
        """Create CalendarConfig from dictionary."""
        return cls(
            visible_days=int(_setting(data, "visible_days", "CALENDAR_VISIBLE_DAYS") or 4),
            day_start=_setting(data, "day_start", "CALENDAR_DAY_START") or "00:00",
            day_end=_setting(data, "day_end", "CALENDAR_DAY_END") or "24:00",
            slot_minutes=int(data.get("slot_minutes", 30)),
            slot_height_px=float(data.get("slot_height_px", 50)),
            min_event_height_px=float(data.get("min_event_height_px", 8)),
            column_gap_px=float(data.get("column_gap_px", 4)),
            now_tick_seconds=int(data.get("now_tick_seconds", 30)),
        )


@dataclass
class RefreshConfig:
    """Background refresh of the instance list."""

    interval_seconds: float = 30.0
    idle_seconds: float = 120.0

    def __post_init__(self):
        if self.interval_seconds <= 0:
            raise ValueError("refresh interval must be positive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefreshConfig":
        return cls(
            interval_seconds=float(
                _setting(data, "interval_seconds", "REFRESH_INTERVAL_SECONDS") or 30
            ),
            idle_seconds=float(
                _setting(data, "idle_seconds", "REFRESH_IDLE_SECONDS") or 120
            ),
        )


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    title: str = "Ops Dashboard"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebConfig":
        return cls(
            host=_setting(data, "host", "WEB_HOST") or "0.0.0.0",
            port=int(_setting(data, "port", "WEB_PORT") or 8080),
            title=data.get("title", "Ops Dashboard"),
        )


@dataclass
class DashboardConfig:
    """Top-level dashboard configuration."""

    instances: InstanceDirectoryConfig = field(default_factory=InstanceDirectoryConfig)
    vnc: VncConfig = field(default_factory=VncConfig)
    database: PostgresConfig = field(default_factory=PostgresConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    web: WebConfig = field(default_factory=WebConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DashboardConfig":
        """Create configuration from dictionary."""
        return cls(
            instances=InstanceDirectoryConfig.from_dict(data.get("instances") or {}),
            vnc=VncConfig.from_dict(data.get("vnc") or {}),
            database=PostgresConfig.from_dict(data.get("database") or {}),
            calendar=CalendarConfig.from_dict(data.get("calendar") or {}),
            refresh=RefreshConfig.from_dict(data.get("refresh") or {}),
            web=WebConfig.from_dict(data.get("web") or {}),
        )


def load_config(config_path: Optional[str] = None) -> DashboardConfig:
    """Load configuration from file and environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Dashboard configuration. Values absent from the file are taken from
        the environment; nothing here is mandatory, each service checks its
        own keys when it is first used.

    Raises:
        ValueError: If configuration is invalid
    """
    default_locations = [
        Path("/app/config/dashboard.yaml"),
        Path("config/dashboard.yaml"),
        Path("config/config.yaml"),
        Path("dashboard.yaml"),
        Path("~/.config/ops-dashboard/config.yaml"),
        Path("/etc/ops-dashboard/config.yaml"),
    ]

    config_data: Dict[str, Any] = {}

    if config_path:
        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {config_path}")
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {config_path}")
    else:
        for path in default_locations:
            expanded_path = path.expanduser()
            if expanded_path.exists():
                with open(expanded_path, "r") as f:
                    config_data = yaml.safe_load(f) or {}
                logger.info(f"Loaded configuration from {expanded_path}")
                break

    if not config_data:
        logger.info("No configuration file found, using environment variables")

    if not isinstance(config_data, dict):
        raise ValueError("Configuration file must contain a mapping")

    return DashboardConfig.from_dict(config_data)
