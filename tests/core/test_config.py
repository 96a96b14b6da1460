from __future__ import annotations

import pytest

from orgaccess.core.config import AppEnv, Settings, load_settings

_ENV_VARS = (
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "REDIS_URL",
    "APP_URL",
    "INVITATION_TTL_DAYS",
    "DEFAULT_PLAN",
    "RESERVE_SEATS_FOR_PENDING",
    "MAIL_WEBHOOK_URL",
    "IDENTITY_PUBLIC_KEY_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ---- valid values ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.port == 8000
    assert settings.redis_url is None
    assert settings.app_url == "https://workbeam.app"
    assert settings.invitation_ttl_days == 7
    assert settings.default_plan == "solo"
    assert settings.reserve_seats_for_pending is True
    assert settings.mail_webhook_url is None
    assert settings.identity_public_key_file is None


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("LOG_JSON", "yes")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("APP_URL", "https://app.example.com/")
    monkeypatch.setenv("INVITATION_TTL_DAYS", "14")
    monkeypatch.setenv("DEFAULT_PLAN", "team")
    monkeypatch.setenv("RESERVE_SEATS_FOR_PENDING", "off")
    monkeypatch.setenv("MAIL_WEBHOOK_URL", "http://mailer/send")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"
    assert settings.log_json is True
    assert settings.redis_url == "redis://cache:6379/0"
    assert settings.app_url == "https://app.example.com"
    assert settings.invitation_ttl_days == 14
    assert settings.default_plan == "team"
    assert settings.reserve_seats_for_pending is False
    assert settings.mail_webhook_url == "http://mailer/send"


def test_load_settings_normalizes_case(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "PROD")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DEFAULT_PLAN", "Business")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "debug"
    assert settings.default_plan == "business"


def test_load_settings_strips_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  test  ")
    monkeypatch.setenv("LOG_LEVEL", "  warning  ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "warning"


def test_empty_optional_urls_are_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIS_URL", "   ")
    monkeypatch.setenv("MAIL_WEBHOOK_URL", "")
    settings = load_settings()
    assert settings.redis_url is None
    assert settings.mail_webhook_url is None


# ---- invalid values ----


@pytest.mark.parametrize(
    "name,value,message",
    [
        ("APP_ENV", "staging", "APP_ENV must be dev|test|prod"),
        ("APP_ENV", "", "APP_ENV must be dev|test|prod"),
        ("LOG_LEVEL", "verbose", "LOG_LEVEL must be debug|info|warning|error"),
        ("PORT", "eighty", "PORT must be an integer"),
        ("INVITATION_TTL_DAYS", "soon", "INVITATION_TTL_DAYS must be an integer"),
        ("INVITATION_TTL_DAYS", "0", "INVITATION_TTL_DAYS must be at least 1"),
        ("DEFAULT_PLAN", "enterprise", "DEFAULT_PLAN must be solo|team|business"),
        ("LOG_JSON", "maybe", "LOG_JSON must be true|false"),
        ("RESERVE_SEATS_FOR_PENDING", "2", "RESERVE_SEATS_FOR_PENDING must be true|false"),
    ],
)
def test_load_settings_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str, message: str
) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError) as exc_info:
        load_settings()
    assert message in str(exc_info.value)


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        redis_url=None,
        app_url="https://workbeam.app",
        invitation_ttl_days=7,
        default_plan="solo",
        reserve_seats_for_pending=True,
        mail_webhook_url=None,
        identity_public_key_file=None,
    )


@pytest.mark.parametrize("env", ["dev", "test", "prod"])
def test_settings_env_flags(env: AppEnv) -> None:
    s = _make_settings(env)
    assert (s.is_dev, s.is_test, s.is_prod) == (env == "dev", env == "test", env == "prod")


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
