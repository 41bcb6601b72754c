from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    ai_api_key: Optional[str] = None
    ai_model: str = "gemini-2.5-flash"
    resync_after_checkout: bool = True
    db_timeout_seconds: float = 5.0


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "CafePOS") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "pos.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def _env_flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    api_key = (env.get("CAFEPOS_AI_API_KEY") or env.get("API_KEY") or "").strip() or None
    model = (env.get("CAFEPOS_AI_MODEL") or "").strip() or Settings.ai_model
    try:
        timeout = float(env.get("CAFEPOS_DB_TIMEOUT") or Settings.db_timeout_seconds)
    except ValueError:
        timeout = Settings.db_timeout_seconds

    return Settings(
        ai_api_key=api_key,
        ai_model=model,
        resync_after_checkout=_env_flag(env.get("CAFEPOS_RESYNC_AFTER_CHECKOUT"), True),
        db_timeout_seconds=timeout,
    )
