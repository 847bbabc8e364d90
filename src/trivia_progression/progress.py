from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from trivia_progression.errors import InvalidEventError
from trivia_progression.models import HIGH_WATER_KINDS, PlayEvent, RequirementKind, Task, TaskSet


@dataclass(frozen=True)
class ApplyResult:
    task_set: TaskSet
    newly_completed: list[Task]
    set_completed: bool


def normalize_kind(raw: RequirementKind | str) -> RequirementKind:
    if isinstance(raw, RequirementKind):
        return raw
    try:
        return RequirementKind(str(raw).strip().lower())
    except ValueError as exc:
        raise InvalidEventError(f"Unknown requirement kind: {raw!r}") from exc


def _matches(task: Task, kind: RequirementKind, qualifier: str | None) -> bool:
    if task.completed or task.kind != kind:
        return False
    if task.qualifier is None:
        return True
    return qualifier is not None and task.qualifier == qualifier.strip().lower()


def _advance(task: Task, kind: RequirementKind, magnitude: int, at: datetime) -> Task:
    if kind in HIGH_WATER_KINDS:
        progress = max(task.progress, magnitude)
    else:
        progress = task.progress + magnitude
    if progress >= task.target:
        return replace(task, progress=progress, completed=True, completed_at=at)
    return replace(task, progress=progress)


def apply_event(task_set: TaskSet, event: PlayEvent) -> ApplyResult:
    kind = normalize_kind(event.kind)
    try:
        magnitude = int(event.magnitude)
    except (TypeError, ValueError) as exc:
        raise InvalidEventError(f"Invalid magnitude: {event.magnitude!r}") from exc
    if magnitude < 0:
        raise InvalidEventError("Magnitude cannot be negative")

    newly_completed: list[Task] = []
    updated: list[Task] = []
    for task in task_set.tasks:
        if not _matches(task, kind, event.qualifier):
            updated.append(task)
            continue
        advanced = _advance(task, kind, magnitude, event.timestamp)
        if advanced.completed:
            newly_completed.append(advanced)
        updated.append(advanced)

    result_set = replace(task_set, tasks=tuple(updated))
    set_completed = False
    if not task_set.completed and updated and all(t.completed for t in updated):
        completion = task_set.completion_task
        if completion is not None and not completion.completed:
            completion = replace(completion, progress=completion.target, completed=True, completed_at=event.timestamp)
        result_set = replace(
            result_set,
            completed=True,
            completed_at=event.timestamp,
            completion_task=completion,
        )
        set_completed = True

    return ApplyResult(task_set=result_set, newly_completed=newly_completed, set_completed=set_completed)
