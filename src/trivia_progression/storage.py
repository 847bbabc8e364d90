from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from trivia_progression.db_constants import SNAPSHOT_SLOT
from trivia_progression.errors import CorruptSnapshotError, WriteFailure

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def read_snapshot(self) -> dict[str, Any] | None: ...

    def write_snapshot(self, payload: dict[str, Any]) -> None: ...

    def delete_snapshot(self) -> None: ...


def _parse_payload(raw: str, source: str) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CorruptSnapshotError(f"Snapshot in {source} is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise CorruptSnapshotError(f"Snapshot in {source} is not an object")
    return payload


class SqliteSnapshotStore:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE snapshots (
                        slot TEXT PRIMARY KEY,
                        schema_version INTEGER NOT NULL,
                        saved_at TEXT NOT NULL,
                        payload TEXT NOT NULL
                    );
                """,
                2: """
                    CREATE TABLE save_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        slot TEXT NOT NULL,
                        saved_at TEXT NOT NULL,
                        checksum TEXT
                    );

                    CREATE INDEX idx_save_log_slot ON save_log(slot, id);
                """,
            }

            now = datetime.now(timezone.utc).isoformat()
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )

    def read_snapshot(self) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM snapshots WHERE slot = ?",
                (SNAPSHOT_SLOT,),
            ).fetchone()
        if row is None:
            return None
        return _parse_payload(row["payload"], str(self.path))

    def write_snapshot(self, payload: dict[str, Any]) -> None:
        try:
            body = json.dumps(payload)
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO snapshots(slot, schema_version, saved_at, payload)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(slot) DO UPDATE SET
                        schema_version = excluded.schema_version,
                        saved_at = excluded.saved_at,
                        payload = excluded.payload
                    """,
                    (SNAPSHOT_SLOT, payload.get("schema_version"), payload.get("saved_at"), body),
                )
                conn.execute(
                    "INSERT INTO save_log(slot, saved_at, checksum) VALUES (?, ?, ?)",
                    (SNAPSHOT_SLOT, payload.get("saved_at"), payload.get("checksum")),
                )
        except (sqlite3.Error, OSError, TypeError, ValueError) as exc:
            raise WriteFailure(f"Could not write snapshot to {self.path}: {exc}") from exc

    def delete_snapshot(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM snapshots WHERE slot = ?", (SNAPSHOT_SLOT,))
                conn.execute("DELETE FROM save_log WHERE slot = ?", (SNAPSHOT_SLOT,))
        except sqlite3.Error as exc:
            raise WriteFailure(f"Could not delete snapshot from {self.path}: {exc}") from exc

    def save_count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS c FROM save_log WHERE slot = ?", (SNAPSHOT_SLOT,)).fetchone()
        return int(row["c"])


class JsonFileSnapshotStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    def read_snapshot(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        return _parse_payload(self.path.read_text(encoding="utf-8"), str(self.path))

    def write_snapshot(self, payload: dict[str, Any]) -> None:
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp.exists():
                tmp.unlink()
            raise WriteFailure(f"Could not write snapshot to {self.path}: {exc}") from exc

    def delete_snapshot(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise WriteFailure(f"Could not delete snapshot {self.path}: {exc}") from exc


def build_store(backend: str, database_path: Path, snapshot_path: Path) -> SnapshotStore:
    if backend == "json":
        return JsonFileSnapshotStore(snapshot_path)
    if backend != "sqlite":
        logger.warning("Unknown storage backend %r, using sqlite", backend)
    return SqliteSnapshotStore(database_path)
