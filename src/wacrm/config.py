"""Runtime configuration for the ingestion service.

Settings are read from the environment once, in the app factory, and passed
explicitly to the pipeline and the logging setup. ``wacrm.infra.db`` still
falls back to ``DATABASE_URL``/``DB_PASSWORD`` when called without a DSN,
which only scripts and the database tests do.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_SOURCE_TAG = "whatsapp_webhook"
DEFAULT_MEDIA_FETCH_TIMEOUT = 30.0
DEFAULT_MEDIA_MAX_BYTES = 16 * 1024 * 1024
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Ingestion settings.

    Attributes:
        database_url: psycopg2 DSN or URL. Empty disables the Postgres gateway.
        db_password: Password applied when the DSN carries none.
        media_store_url: Upload endpoint of the media store. Empty disables
                         media persistence (placeholder content, null URL).
        media_store_token: Bearer token for the media store.
        media_fetch_timeout: Seconds for each media download/upload request.
        media_max_bytes: Downloads larger than this are refused.
        filter_api_echoes: Drop messages the CRM itself sent through the API.
        filter_self_sent: Drop every fromMe message (inbound-only mirroring).
        contact_source_tag: Creation source stored on new contacts.
        log_level: Level for every ``wacrm.*`` logger.
    """

    database_url: str = ""
    db_password: str = ""
    media_store_url: str = ""
    media_store_token: str = ""
    media_fetch_timeout: float = DEFAULT_MEDIA_FETCH_TIMEOUT
    media_max_bytes: int = DEFAULT_MEDIA_MAX_BYTES
    filter_api_echoes: bool = True
    filter_self_sent: bool = False
    contact_source_tag: str = DEFAULT_SOURCE_TAG
    log_level: str = DEFAULT_LOG_LEVEL


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def _env_log_level(env: Mapping[str, str]) -> str:
    raw = env.get("LOG_LEVEL", "").strip().upper()
    if not raw:
        return DEFAULT_LOG_LEVEL
    if raw not in LOG_LEVELS:
        raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {raw!r}")
    return raw


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Args:
        env: Mapping to read from. Defaults to ``os.environ``.

    Raises:
        ValueError: If a variable is present but malformed.
    """
    if env is None:
        env = os.environ

    return Settings(
        database_url=env.get("DATABASE_URL", "").strip(),
        db_password=env.get("DB_PASSWORD", ""),
        media_store_url=env.get("MEDIA_STORE_URL", "").strip().rstrip("/"),
        media_store_token=env.get("MEDIA_STORE_TOKEN", ""),
        media_fetch_timeout=_env_float(
            env, "MEDIA_FETCH_TIMEOUT", DEFAULT_MEDIA_FETCH_TIMEOUT
        ),
        media_max_bytes=_env_int(env, "MEDIA_MAX_BYTES", DEFAULT_MEDIA_MAX_BYTES),
        filter_api_echoes=_env_bool(env, "FILTER_API_ECHOES", True),
        filter_self_sent=_env_bool(env, "FILTER_SELF_SENT", False),
        contact_source_tag=env.get("CONTACT_SOURCE_TAG", "").strip()
        or DEFAULT_SOURCE_TAG,
        log_level=_env_log_level(env),
    )
