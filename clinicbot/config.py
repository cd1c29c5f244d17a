"""
Bot settings read from the environment (and a local ``.env`` file).

Database, sync bridge, clinic and session settings all live here. The bot
process and its tests read them through ``settings``.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

from clinicbot.logging_context import build_log_handler

load_dotenv()

logger = logging.getLogger(__name__)

SYNC_ROLES = ("hub", "relay")
INFINITE = "infinite"


T = TypeVar("T")


def _from_env(env_var: str, default: str, parse: Callable[[str], T], expected: str) -> T:
    """Read ``env_var`` and convert it; bad values name the variable."""
    raw = os.getenv(env_var, default)
    try:
        return parse(raw)
    except (ValueError, TypeError):
        raise ValueError(f"{env_var} must be {expected}, got {raw!r}") from None


def _parse_attempts(raw: str) -> Optional[int]:
    if raw.strip().lower() == INFINITE:
        return None
    return int(raw)


def _safe_int(env_var: str, default: str) -> int:
    return _from_env(env_var, default, int, "an integer")


def _safe_float(env_var: str, default: str) -> float:
    return _from_env(env_var, default, float, "a number")


def _csv(env_var: str) -> tuple[str, ...]:
    """Comma-separated list; empty entries are dropped."""
    return tuple(part.strip() for part in os.getenv(env_var, "").split(",") if part.strip())


def _safe_attempts(env_var: str, default: str) -> Optional[int]:
    """Reconnect attempt bound; ``infinite`` maps to None."""
    return _from_env(env_var, default, _parse_attempts, f"an integer or '{INFINITE}'")


@dataclass(frozen=True)
class DatabaseConfig:
    """Storage connection settings."""

    url: str = os.getenv("DATABASE_URL", "")
    dev_url: str = os.getenv("DEV_DATABASE_URL", "")
    ssl_mode: str = os.getenv("DATABASE_SSLMODE", "require")

    @property
    def effective_url(self) -> str:
        """The secondary (dev) URL wins whenever it is set."""
        return self.dev_url or self.url


@dataclass(frozen=True)
class SyncConfig:
    """Realtime bridge role, endpoints and reconnection bounds."""

    role: str = os.getenv("SYNC_ROLE", "hub").lower()
    hub_url: str = os.getenv("SYNC_HUB_URL", "ws://localhost:3002/")
    listen_host: str = os.getenv("SYNC_LISTEN_HOST", "0.0.0.0")
    listen_port: int = _safe_int("PORT", "3002")
    path: str = os.getenv("SYNC_PATH", "/")
    # Browser origins allowed to open the hub; empty allows any.
    allowed_origins: tuple[str, ...] = _csv("SYNC_ALLOWED_ORIGINS")
    max_reconnect_attempts: Optional[int] = _safe_attempts(
        "SYNC_MAX_RECONNECT_ATTEMPTS", INFINITE
    )
    reconnect_initial_delay: float = _safe_float("SYNC_RECONNECT_INITIAL_DELAY", "1.0")
    reconnect_max_delay: float = _safe_float("SYNC_RECONNECT_MAX_DELAY", "30.0")


@dataclass(frozen=True)
class ClinicConfig:
    """Clinic-facing texts and outbound addressing."""

    name: str = os.getenv("CLINIC_NAME", "Sonrisa Perfecta")
    address_suffix: str = os.getenv("TRANSPORT_ADDRESS_SUFFIX", "s.whatsapp.net")
    history_limit: int = _safe_int("HISTORY_LIMIT", "100")


@dataclass(frozen=True)
class SessionConfig:
    """In-memory conversation session policy."""

    idle_timeout_sec: float = _safe_float("SESSION_IDLE_TIMEOUT", "0")
    sweep_interval_sec: float = _safe_float("SESSION_SWEEP_INTERVAL", "60")


@dataclass(frozen=True)
class AppConfig:
    """All bot settings."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    clinic: ClinicConfig = field(default_factory=ClinicConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Raise ValueError naming the first variable that is out of range."""
    if config.sync.role not in SYNC_ROLES:
        raise ValueError(
            f"SYNC_ROLE must be one of {SYNC_ROLES}, got {config.sync.role!r}"
        )
    if not 0 < config.sync.listen_port < 65536:
        raise ValueError(f"PORT must be between 1 and 65535, got {config.sync.listen_port}")
    if not config.sync.path.startswith("/"):
        raise ValueError(f"SYNC_PATH must start with '/', got {config.sync.path!r}")
    if config.sync.max_reconnect_attempts is not None and config.sync.max_reconnect_attempts < 1:
        raise ValueError(
            "SYNC_MAX_RECONNECT_ATTEMPTS must be >= 1 or 'infinite', "
            f"got {config.sync.max_reconnect_attempts}"
        )
    if config.sync.reconnect_initial_delay <= 0:
        raise ValueError(
            "SYNC_RECONNECT_INITIAL_DELAY must be > 0, "
            f"got {config.sync.reconnect_initial_delay}"
        )
    if config.sync.reconnect_max_delay < config.sync.reconnect_initial_delay:
        raise ValueError(
            "SYNC_RECONNECT_MAX_DELAY must be >= SYNC_RECONNECT_INITIAL_DELAY, "
            f"got {config.sync.reconnect_max_delay}"
        )
    if config.clinic.history_limit < 1:
        raise ValueError(f"HISTORY_LIMIT must be >= 1, got {config.clinic.history_limit}")
    if config.session.idle_timeout_sec < 0:
        raise ValueError(
            f"SESSION_IDLE_TIMEOUT must be >= 0, got {config.session.idle_timeout_sec}"
        )
    if config.session.sweep_interval_sec <= 0:
        raise ValueError(
            f"SESSION_SWEEP_INTERVAL must be > 0, got {config.session.sweep_interval_sec}"
        )


def load_config() -> AppConfig:
    """Build the settings from the environment, validate them and set up logging."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        handlers=[build_log_handler()],
    )
    logger.info(
        "Configuration loaded for '%s' (sync role: %s)",
        config.clinic.name, config.sync.role,
    )
    return config


# Shared by every module that needs configuration.
settings = load_config()
