from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


SUPPORTED_PUSH_PROVIDERS = {"mock", "fcm"}
SUPPORTED_AUDIT_BACKENDS = {"memory", "database"}


def _get_first_set(*env_names: str) -> str:
    for env_name in env_names:
        value = os.getenv(env_name, "").strip()
        if value:
            return value
    return ""


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _normalize_database_url(raw_url: str) -> str:
    if not raw_url:
        return raw_url
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg2://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return raw_url


def _build_database_url() -> str:
    explicit = _get_first_set("PUSH_DATABASE_URL", "DATABASE_URL")
    if explicit:
        return _normalize_database_url(explicit)

    # Local dev fallback when DATABASE_URL is not set.
    sqlite_file = Path(os.getenv("SQLITE_DB_PATH", "./push.db")).as_posix()
    if sqlite_file.startswith("/"):
        return f"sqlite:///{sqlite_file}"
    return f"sqlite:///./{sqlite_file.lstrip('./')}"


def _choice(name: str, default: str, supported: set[str]) -> str:
    raw = os.getenv(name, default).strip().lower() or default
    if raw not in supported:
        raise ValueError(f"Invalid {name}: {raw}. Supported values: {sorted(supported)}")
    return raw


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "push_dispatch")
    app_debug: bool = _env_flag("APP_DEBUG")
    app_host: str = os.getenv("APP_HOST", "0.0.0.0")
    app_port: int = int(os.getenv("APP_PORT", "8088"))

    database_url: str = _build_database_url()

    push_provider: str = _choice("PUSH_PROVIDER", "mock", SUPPORTED_PUSH_PROVIDERS)
    fcm_project_id: str = os.getenv("FCM_PROJECT_ID", "")
    fcm_service_account_key: str = os.getenv("FCM_SERVICE_ACCOUNT_KEY", "")
    fcm_http_timeout_seconds: float = float(os.getenv("FCM_HTTP_TIMEOUT_SECONDS", "30"))
    max_notification: int = int(os.getenv("MAX_NOTIFICATION", "100"))

    log_hide_token: bool = _env_flag("LOG_HIDE_TOKEN", "true")
    audit_log_backend: str = _choice("AUDIT_LOG_BACKEND", "memory", SUPPORTED_AUDIT_BACKENDS)
    audit_log_max_entries: int = int(os.getenv("AUDIT_LOG_MAX_ENTRIES", "10000"))


settings = Settings()


def get_settings() -> Settings:
    return settings
