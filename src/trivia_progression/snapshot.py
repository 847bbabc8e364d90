from __future__ import annotations

import hashlib
import json
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from trivia_progression.db_constants import SNAPSHOT_SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS
from trivia_progression.errors import CorruptSnapshotError
from trivia_progression.models import ProgressStats, SkillRating, TaskSet
from trivia_progression.time_utils import ensure_aware, parse_day_key


class SnapshotData(BaseModel):
    stats: ProgressStats
    task_set: TaskSet | None = None
    rating: SkillRating = Field(default_factory=SkillRating)
    archive: list[TaskSet] = Field(default_factory=list)


class SnapshotEnvelope(BaseModel):
    schema_version: int
    saved_at: datetime
    enabled: bool = True
    checksum: str | None = None
    data: SnapshotData


@dataclass(frozen=True)
class SaveSnapshot:
    stats: ProgressStats
    task_set: TaskSet | None
    rating: SkillRating
    saved_at: datetime
    enabled: bool = True
    archive: tuple[TaskSet, ...] = field(default_factory=tuple)
    schema_version: int = SNAPSHOT_SCHEMA_VERSION


def data_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def encode_snapshot(snapshot: SaveSnapshot) -> dict[str, Any]:
    data = SnapshotData(
        stats=snapshot.stats,
        task_set=snapshot.task_set,
        rating=snapshot.rating,
        archive=list(snapshot.archive),
    ).model_dump(mode="json")
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "saved_at": snapshot.saved_at.isoformat(),
        "enabled": snapshot.enabled,
        "checksum": data_checksum(data),
        "data": data,
    }


def _migrate_v1(payload: dict[str, Any]) -> dict[str, Any]:
    # v1 kept stats and task set at the top level, had no rating or archive,
    # and tracked neither a spendable balance nor grace bookkeeping days.
    stats = payload.get("stats")
    if isinstance(stats, dict):
        stats = dict(stats)
        stats.setdefault("points_balance", stats.get("total_points", 0))
        stats.setdefault("grace_covered_day", None)
        stats.setdefault("grace_granted_day", None)
    data = {
        "stats": stats,
        "task_set": payload.get("task_set"),
    }
    if "rating" in payload:
        data["rating"] = payload["rating"]
    migrated = {
        "schema_version": 2,
        "saved_at": payload.get("saved_at"),
        "enabled": payload.get("enabled", True),
        "checksum": None,
        "data": data,
    }
    return migrated


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _migrate_v1,
}


def _schema_version(payload: dict[str, Any]) -> int:
    raw = payload.get("schema_version")
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise CorruptSnapshotError(f"Missing or invalid schema version: {raw!r}")
    if raw not in SUPPORTED_SCHEMA_VERSIONS:
        raise CorruptSnapshotError(f"Unrecognized schema version: {raw}")
    return raw


def migrate_payload(payload: dict[str, Any]) -> dict[str, Any]:
    version = _schema_version(payload)
    while version < SNAPSHOT_SCHEMA_VERSION:
        payload = MIGRATIONS[version](payload)
        version = _schema_version(payload)
    return payload


def _require_fields(section: Any, name: str, model: type) -> None:
    if not isinstance(section, dict):
        raise CorruptSnapshotError(f"Snapshot section {name!r} is missing")
    missing = [f.name for f in fields(model) if f.name not in section]
    if missing:
        raise CorruptSnapshotError(f"Snapshot section {name!r} is missing fields: {', '.join(missing)}")


def _check_day_key(value: str | None, name: str) -> None:
    if value is None:
        return
    try:
        parse_day_key(value)
    except (TypeError, ValueError) as exc:
        raise CorruptSnapshotError(f"Snapshot field {name!r} is not a day key: {value!r}") from exc


def _check_consistency(data: SnapshotData) -> None:
    stats = data.stats
    _check_day_key(stats.last_completed_day, "stats.last_completed_day")
    _check_day_key(stats.grace_covered_day, "stats.grace_covered_day")
    _check_day_key(stats.grace_granted_day, "stats.grace_granted_day")
    if data.task_set is not None:
        _check_day_key(data.task_set.day_key, "task_set.day_key")
    for task_set in data.archive:
        _check_day_key(task_set.day_key, "archive.day_key")

    counters = ("total_tasks_completed", "total_xp", "total_points", "points_balance")
    negative = [name for name in counters if getattr(stats, name) < 0]
    if negative:
        raise CorruptSnapshotError(f"Snapshot counters are negative: {', '.join(negative)}")
    if not 0 <= stats.current_streak <= stats.longest_streak:
        raise CorruptSnapshotError(
            f"Snapshot streaks are inconsistent: current {stats.current_streak}, longest {stats.longest_streak}"
        )


def decode_snapshot(payload: Any) -> SaveSnapshot:
    if not isinstance(payload, dict):
        raise CorruptSnapshotError("Snapshot payload is not an object")

    migrated = migrate_payload(payload)
    checksum = migrated.get("checksum")
    data = migrated.get("data")
    if checksum is not None:
        if not isinstance(data, dict) or data_checksum(data) != checksum:
            raise CorruptSnapshotError("Snapshot checksum mismatch")
    if not isinstance(data, dict):
        raise CorruptSnapshotError("Snapshot has no data section")
    _require_fields(data.get("stats"), "stats", ProgressStats)
    if data.get("rating") is not None:
        _require_fields(data["rating"], "rating", SkillRating)

    try:
        envelope = SnapshotEnvelope.model_validate(migrated)
    except ValidationError as exc:
        raise CorruptSnapshotError(f"Snapshot failed validation: {exc.error_count()} error(s)") from exc
    _check_consistency(envelope.data)

    return SaveSnapshot(
        stats=envelope.data.stats,
        task_set=envelope.data.task_set,
        rating=envelope.data.rating,
        saved_at=ensure_aware(envelope.saved_at),
        enabled=envelope.enabled,
        archive=tuple(envelope.data.archive),
        schema_version=envelope.schema_version,
    )
