from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getport(name: str) -> int | None:
    raw = _getenv(name, "")
    if not raw:
        return None
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if not 0 < port < 65536:
        raise ValueError(f"{name} must be between 1 and 65535 (got {raw!r})")
    return port


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    database_url: str | None
    redis_url: str | None
    numeric_tolerance: Decimal
    recheck_access_on_submit: bool
    deadline_poll_interval: float
    metrics_port: int | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    tolerance_raw = _getenv("NUMERIC_TOLERANCE", "0")
    poll_raw = _getenv("DEADLINE_POLL_INTERVAL", "1.0")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        numeric_tolerance = Decimal(tolerance_raw)
    except InvalidOperation:
        raise ValueError(
            f"NUMERIC_TOLERANCE must be a decimal number (got {tolerance_raw!r})"
        ) from None
    if not numeric_tolerance.is_finite() or numeric_tolerance < 0:
        raise ValueError(
            f"NUMERIC_TOLERANCE must be a finite number >= 0 (got {tolerance_raw!r})"
        )

    try:
        deadline_poll_interval = float(poll_raw)
    except ValueError:
        raise ValueError(
            f"DEADLINE_POLL_INTERVAL must be a number (got {poll_raw!r})"
        ) from None
    if deadline_poll_interval <= 0:
        raise ValueError(
            f"DEADLINE_POLL_INTERVAL must be positive (got {poll_raw!r})"
        )

    metrics_port = _getport("METRICS_PORT")

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        database_url=database_url,
        redis_url=redis_url,
        numeric_tolerance=numeric_tolerance,
        recheck_access_on_submit=_getbool("RECHECK_ACCESS_ON_SUBMIT", True),
        deadline_poll_interval=deadline_poll_interval,
        metrics_port=metrics_port,
    )


SETTINGS = load_settings()
