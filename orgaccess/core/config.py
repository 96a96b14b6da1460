from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]
PlanName = Literal["solo", "team", "business"]

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it's easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be true|false (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    redis_url: str | None
    app_url: str
    invitation_ttl_days: int
    default_plan: PlanName
    reserve_seats_for_pending: bool
    mail_webhook_url: str | None
    identity_public_key_file: str | None

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
    port_raw = _getenv("PORT", "8000")
    ttl_raw = _getenv("INVITATION_TTL_DAYS", "7")
    plan_raw = _getenv("DEFAULT_PLAN", "solo").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        invitation_ttl_days = int(ttl_raw)
    except ValueError:
        raise ValueError(
            f"INVITATION_TTL_DAYS must be an integer (got {ttl_raw!r})"
        ) from None
    if invitation_ttl_days < 1:
        raise ValueError(
            f"INVITATION_TTL_DAYS must be at least 1 (got {invitation_ttl_days})"
        )

    if plan_raw not in ("solo", "team", "business"):
        raise ValueError(
            f"DEFAULT_PLAN must be solo|team|business (got {plan_raw!r})"
        )

    app_url = (_getenv("APP_URL", "") or "https://workbeam.app").rstrip("/")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        redis_url=_getenv("REDIS_URL", "") or None,
        app_url=app_url,
        invitation_ttl_days=invitation_ttl_days,
        default_plan=plan_raw,
        reserve_seats_for_pending=_getbool("RESERVE_SEATS_FOR_PENDING", True),
        mail_webhook_url=_getenv("MAIL_WEBHOOK_URL", "") or None,
        identity_public_key_file=_getenv("IDENTITY_PUBLIC_KEY_FILE", "") or None,
    )


SETTINGS = load_settings()
