"""Load and validate application configuration from a YAML file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


SYNC_STRATEGIES = ("per_task", "atomic")
DEFAULT_CORS_ORIGINS = ("http://localhost:8000", "http://localhost:3000")


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _get_required(data: dict, key: str, context: str = "config") -> Any:
    """Get a required (dotted) key from a dict, raising ValueError with a clear message."""
    keys = key.split(".")
    current = data
    for k in keys:
        if not isinstance(current, dict) or k not in current:
            raise ValueError(f"Missing required key '{key}' in {context}")
        current = current[k]
    return current


def _validate_range(value: Any, name: str, minimum: int = 1, maximum: int | None = None) -> None:
    """Validate a numeric config value is within bounds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        raise ValueError(f"Config '{name}' must be >= {minimum}, got {value!r}")
    if maximum is not None and value > maximum:
        raise ValueError(f"Config '{name}' must be <= {maximum}, got {value!r}")


# ---------------------------------------------------------------------------
# Configuration sections
# ---------------------------------------------------------------------------


@dataclass
class SessionConfig:
    """Session cookie settings."""

    cookie_name: str = "kanbanflow_session"
    ttl_hours: int = 24 * 7
    secure_cookies: bool = False


@dataclass
class RateLimitConfig:
    """Failed sign-in throttling (per client IP)."""

    attempts: int = 10
    window: int = 60
    lockout: int = 300


@dataclass
class ClientConfig:
    """Settings for the board client."""

    base_url: str = "http://127.0.0.1:8000"
    sync_strategy: str = "per_task"
    timeout: float = 10.0


@dataclass
class AppConfig:
    """Top-level settings loaded from config/app.yaml."""

    app_name: str
    db_path: str
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    session: SessionConfig = field(default_factory=SessionConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    client: ClientConfig = field(default_factory=ClientConfig)


DEFAULT_CONFIG_YAML = """\
app_name: kanbanflow
database:
  path: data/kanbanflow.db
server:
  host: 127.0.0.1
  port: 8000
cors_origins:
  - http://localhost:8000
  - http://localhost:3000
session:
  cookie_name: kanbanflow_session
  ttl_hours: 168
  secure_cookies: false
rate_limit:
  attempts: 10
  window: 60
  lockout: 300
client:
  base_url: http://127.0.0.1:8000
  sync_strategy: per_task
  timeout: 10
"""


def load_app_config(path: Path, env: dict[str, str] | None = None) -> AppConfig:
    """Load application configuration from a YAML file.

    Parameters
    ----------
    path:
        Path to the YAML file (e.g. ``config/app.yaml``).
    env:
        Environment used for overrides; defaults to ``os.environ``.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If a required key is missing or a value is out of range.
    """
    if not path.exists():
        raise FileNotFoundError(f"App config not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return _build_config(data, env if env is not None else dict(os.environ), str(path))


def _build_config(data: dict, env: dict[str, str], context: str) -> AppConfig:
    server = data.get("server", {})
    session_raw = data.get("session", {})
    rate_raw = data.get("rate_limit", {})
    client_raw = data.get("client", {})

    config = AppConfig(
        app_name=_get_required(data, "app_name", context),
        db_path=str(Path(_get_required(data, "database.path", context)).expanduser()),
        host=server.get("host", "127.0.0.1"),
        port=server.get("port", 8000),
        cors_origins=list(data.get("cors_origins", DEFAULT_CORS_ORIGINS)),
        session=SessionConfig(
            cookie_name=session_raw.get("cookie_name", "kanbanflow_session"),
            ttl_hours=session_raw.get("ttl_hours", 24 * 7),
            secure_cookies=session_raw.get("secure_cookies", False),
        ),
        rate_limit=RateLimitConfig(
            attempts=rate_raw.get("attempts", 10),
            window=rate_raw.get("window", 60),
            lockout=rate_raw.get("lockout", 300),
        ),
        client=ClientConfig(
            base_url=client_raw.get("base_url", "http://127.0.0.1:8000"),
            sync_strategy=client_raw.get("sync_strategy", "per_task"),
            timeout=client_raw.get("timeout", 10.0),
        ),
    )

    _apply_env_overrides(config, env)

    _validate_range(config.port, "server.port", 1, 65535)
    _validate_range(config.session.ttl_hours, "session.ttl_hours", 1)
    _validate_range(config.rate_limit.attempts, "rate_limit.attempts", 0)
    _validate_range(config.rate_limit.window, "rate_limit.window", 1)
    _validate_range(config.rate_limit.lockout, "rate_limit.lockout", 1)
    _validate_range(config.client.timeout, "client.timeout", 1)
    if config.client.sync_strategy not in SYNC_STRATEGIES:
        raise ValueError(
            f"Config 'client.sync_strategy' must be one of {list(SYNC_STRATEGIES)}, "
            f"got {config.client.sync_strategy!r}"
        )
    return config


def _apply_env_overrides(config: AppConfig, env: dict[str, str]) -> None:
    if env.get("KANBANFLOW_DB_PATH"):
        config.db_path = str(Path(env["KANBANFLOW_DB_PATH"]).expanduser())
    if env.get("KANBANFLOW_HOST"):
        config.host = env["KANBANFLOW_HOST"]
    if env.get("KANBANFLOW_PORT"):
        try:
            config.port = int(env["KANBANFLOW_PORT"])
        except ValueError:
            raise ValueError(f"KANBANFLOW_PORT must be an integer, got {env['KANBANFLOW_PORT']!r}")
    if env.get("CORS_ORIGINS"):
        config.cors_origins = [
            origin.strip() for origin in env["CORS_ORIGINS"].split(",") if origin.strip()
        ]
    if env.get("KANBANFLOW_SYNC_STRATEGY"):
        config.client.sync_strategy = env["KANBANFLOW_SYNC_STRATEGY"]


def default_config(db_path: str = ":memory:") -> AppConfig:
    """Return a config with built-in defaults (used by tests and ``create_app``)."""
    return AppConfig(app_name="kanbanflow", db_path=db_path)


def write_default_config(path: Path) -> bool:
    """Write the default YAML config to *path* unless it already exists."""
    if path.exists():
        logger.info("Config already exists at %s", path)
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_YAML)
    return True
