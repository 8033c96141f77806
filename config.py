"""Configuration loading: YAML file plus environment-variable overrides."""

from __future__ import annotations

import logging
import os
import secrets

import yaml

from config_models import (
    AppConfig,
    JwtConfig,
    LoggingConfig,
    SchedulerConfig,
    TelebirrConfig,
    TraccarConfig,
)

logger = logging.getLogger(__name__)


def _flag(env_name: str, section: dict, key: str, default: bool = False) -> bool:
    return os.environ.get(env_name, str(section.get(key, default))).lower() in (
        "true",
        "1",
        "yes",
    )


def _secret(env_name: str, section: dict, key: str, label: str) -> str:
    value = os.environ.get(env_name, section.get(key, ""))
    if not value or value == "change-me":
        value = secrets.token_hex(32)
        logger.warning(
            "Using auto-generated %s. Set %s env var or %s in config.yaml "
            "for stable values across restarts.",
            label,
            env_name,
            key,
        )
    return value


def load_config():
    """Load configuration from *config.yaml* with env-var overrides.

    Environment variables take precedence over config.yaml values.
    Returns (AppConfig, JwtConfig, TelebirrConfig, TraccarConfig,
    SchedulerConfig, LoggingConfig, database_uri).
    """
    config_path = os.environ.get("CONFIG_PATH", "config.yaml")
    raw: dict = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

    app_cfg = raw.get("app", {})
    jwt_cfg = raw.get("jwt", {})
    telebirr_cfg = raw.get("telebirr", {})
    traccar_cfg = raw.get("traccar", {})
    scheduler_cfg = raw.get("scheduler", {})
    logging_cfg = raw.get("logging", {})
    db_cfg = raw.get("database", {})

    return (
        AppConfig(
            name=app_cfg.get("name", "Traccar SaaS"),
            secret_key=_secret("APP_SECRET_KEY", app_cfg, "secret_key", "secret key"),
            currency=app_cfg.get("currency", "ETB"),
            default_plan_name=os.environ.get(
                "DEFAULT_PLAN_NAME", app_cfg.get("default_plan_name", "Free")
            ),
        ),
        JwtConfig(
            secret_key=_secret("JWT_SECRET", jwt_cfg, "secret_key", "JWT secret"),
            access_token_days=int(
                os.environ.get("JWT_ACCESS_TOKEN_DAYS", jwt_cfg.get("access_token_days", 7))
            ),
        ),
        TelebirrConfig(
            enabled=_flag("TELEBIRR_ENABLED", telebirr_cfg, "enabled"),
            api_base_url=os.environ.get(
                "TELEBIRR_API_BASE_URL", telebirr_cfg.get("api_base_url", "")
            ).rstrip("/"),
            app_key=os.environ.get("TELEBIRR_APP_KEY", telebirr_cfg.get("app_key", "")),
            app_secret=os.environ.get("TELEBIRR_APP_SECRET", telebirr_cfg.get("app_secret", "")),
            short_code=os.environ.get("TELEBIRR_SHORT_CODE", telebirr_cfg.get("short_code", "")),
            notify_url=os.environ.get("TELEBIRR_NOTIFY_URL", telebirr_cfg.get("notify_url", "")),
            return_url=os.environ.get("TELEBIRR_RETURN_URL", telebirr_cfg.get("return_url", "")),
            public_key=os.environ.get("TELEBIRR_PUBLIC_KEY", telebirr_cfg.get("public_key", "")),
            private_key=os.environ.get("TELEBIRR_PRIVATE_KEY", telebirr_cfg.get("private_key", "")),
            timeout=int(os.environ.get("TELEBIRR_TIMEOUT", telebirr_cfg.get("timeout", 30))),
        ),
        TraccarConfig(
            enabled=_flag("TRACCAR_ENABLED", traccar_cfg, "enabled"),
            api_url=os.environ.get(
                "TRACCAR_API_URL", traccar_cfg.get("api_url", "http://localhost:8082/api")
            ).rstrip("/"),
            username=os.environ.get("TRACCAR_USERNAME", traccar_cfg.get("username", "")),
            password=os.environ.get("TRACCAR_PASSWORD", traccar_cfg.get("password", "")),
            timeout=int(os.environ.get("TRACCAR_TIMEOUT", traccar_cfg.get("timeout", 15))),
        ),
        SchedulerConfig(
            timezone=os.environ.get(
                "SCHEDULER_TIMEZONE", scheduler_cfg.get("timezone", "Africa/Addis_Ababa")
            ),
            expiry_warning_days=int(
                os.environ.get(
                    "EXPIRY_WARNING_DAYS", scheduler_cfg.get("expiry_warning_days", 3)
                )
            ),
        ),
        LoggingConfig(
            level=os.environ.get("LOG_LEVEL", logging_cfg.get("level", "INFO")).upper(),
            directory=os.environ.get("LOG_DIR", logging_cfg.get("directory", "")),
        ),
        os.environ.get("DATABASE_URI", db_cfg.get("uri", "sqlite:///traccar_saas.db")),
    )


def enable_sqlite_fks(dbapi_conn, _connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
