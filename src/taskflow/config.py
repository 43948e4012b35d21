# src/taskflow/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time: without remote credentials the app runs
  in local-only mode.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKFLOW"

# Placeholder left in copied .env templates; treated as "not configured".
_PLACEHOLDER_URL_MARKER = "your-project-id"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_to_file: bool

    # ---- Local data (ignored by git) ----
    data_dir: Path
    cache_db_path: Path
    cache_prefix: str

    # ---- Remote store (Supabase / PostgREST) ----
    remote_url: str
    remote_anon_key: str
    remote_table: str
    request_timeout_seconds: float
    realtime_heartbeat_seconds: float

    # ---- UX ----
    undo_window_seconds: float
    list_limit: int

    @property
    def remote_configured(self) -> bool:
        url = self.remote_url.strip()
        return bool(url and self.remote_anon_key.strip()) and _PLACEHOLDER_URL_MARKER not in url

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskflow")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        log_to_file = _env_bool(_k("LOG_TO_FILE"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskflow"))
        cache_db_path = _env_path(_k("CACHE_DB_PATH"), data_dir / "cache.sqlite3")
        cache_prefix = _env(_k("CACHE_PREFIX"), "taskflow_")

        # Accept the plain Supabase names too, so an existing .env works unchanged.
        remote_url = (_first_env(_k("REMOTE_URL"), "SUPABASE_URL", default="") or "").strip()
        remote_anon_key = (_first_env(_k("REMOTE_ANON_KEY"), "SUPABASE_ANON_KEY", default="") or "").strip()
        remote_table = _env(_k("REMOTE_TABLE"), "tasks")
        request_timeout_seconds = _env_float(_k("REQUEST_TIMEOUT_SECONDS"), 10.0)
        realtime_heartbeat_seconds = _env_float(_k("REALTIME_HEARTBEAT_SECONDS"), 25.0)

        undo_window_seconds = _env_float(_k("UNDO_WINDOW_SECONDS"), 3.5)
        list_limit = _env_int(_k("LIST_LIMIT"), 50)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_to_file=log_to_file,
            data_dir=data_dir,
            cache_db_path=cache_db_path,
            cache_prefix=cache_prefix,
            remote_url=remote_url,
            remote_anon_key=remote_anon_key,
            remote_table=remote_table,
            request_timeout_seconds=request_timeout_seconds,
            realtime_heartbeat_seconds=realtime_heartbeat_seconds,
            undo_window_seconds=undo_window_seconds,
            list_limit=list_limit,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
