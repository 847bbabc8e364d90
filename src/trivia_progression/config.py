from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from trivia_progression.db_constants import DEFAULT_AUTO_SAVE_MINUTES
from trivia_progression.time_utils import DEFAULT_TZ

STORAGE_BACKENDS = {"sqlite", "json"}


@dataclass(frozen=True)
class Settings:
    database_path: Path
    storage_backend: str
    snapshot_path: Path
    tz: str
    auto_save_enabled: bool
    auto_save_minutes: int
    tick_seconds: int
    policy_config_path: Path
    log_level: str


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_positive_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_settings(env_file: Path = Path(".env")) -> Settings:
    _load_env_file(env_file)

    backend = os.getenv("STORAGE_BACKEND", "sqlite").strip().lower()
    if backend not in STORAGE_BACKENDS:
        backend = "sqlite"

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/progress.db")),
        storage_backend=backend,
        snapshot_path=Path(os.getenv("SNAPSHOT_PATH", "./data/progress.json")),
        tz=os.getenv("TZ", DEFAULT_TZ),
        auto_save_enabled=_parse_bool(os.getenv("AUTO_SAVE_ENABLED"), default=True),
        auto_save_minutes=_parse_positive_int(os.getenv("AUTO_SAVE_MINUTES"), DEFAULT_AUTO_SAVE_MINUTES),
        tick_seconds=_parse_positive_int(os.getenv("TICK_SECONDS"), 60),
        policy_config_path=Path(os.getenv("POLICY_CONFIG", "./progression.yaml")),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
