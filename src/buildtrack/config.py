# src/buildtrack/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time: the console works offline on a tasks file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "BUILDTRACK"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_optional_path(name: str) -> Path | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    selection_cache_path: Path

    # ---- Supabase ----
    supabase_url: str | None
    supabase_key: str | None
    remote_timeout_seconds: float
    selection_read_timeout_seconds: float

    # ---- Console defaults ----
    user_id: str | None
    tasks_file: Path | None

    @property
    def remote_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "buildtrack") or "buildtrack"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/buildtrack"))
        selection_cache_path = _env_path(_k("SELECTION_CACHE_PATH"), data_dir / "selection.json")

        supabase_url = _first_env(_k("SUPABASE_URL"), "SUPABASE_URL", default=None)
        supabase_key = _first_env(
            _k("SUPABASE_KEY"),
            "SUPABASE_SERVICE_ROLE_KEY",
            "SUPABASE_ANON_KEY",
            default=None,
        )

        user_id = (_first_env(_k("USER_ID"), default="") or "").strip() or None

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            selection_cache_path=selection_cache_path,
            supabase_url=supabase_url.strip() if supabase_url else None,
            supabase_key=supabase_key.strip() if supabase_key else None,
            remote_timeout_seconds=_env_float(_k("REMOTE_TIMEOUT_SECONDS"), 10.0),
            selection_read_timeout_seconds=_env_float(_k("SELECTION_READ_TIMEOUT_SECONDS"), 5.0),
            user_id=user_id,
            tasks_file=_env_optional_path(_k("TASKS_FILE")),
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env for secrets; use config_local.py only for safe overrides.
try:
    import config_local as _config_local  # type: ignore
except ImportError:
    _config_local = None

if _config_local is not None:
    if hasattr(_config_local, "USER_ID"):
        object.__setattr__(SETTINGS, "user_id", str(_config_local.USER_ID) or None)  # type: ignore[misc]
    if hasattr(_config_local, "TASKS_FILE"):
        object.__setattr__(SETTINGS, "tasks_file", Path(_config_local.TASKS_FILE))  # type: ignore[misc]
    if hasattr(_config_local, "LOG_LEVEL"):
        object.__setattr__(SETTINGS, "log_level", str(_config_local.LOG_LEVEL))  # type: ignore[misc]


def get_settings() -> Settings:
    return SETTINGS
