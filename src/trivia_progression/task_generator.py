from __future__ import annotations

import hashlib
import random
from collections.abc import Sequence
from dataclasses import replace

from trivia_progression.db_constants import (
    COMPLETION_TASK_DESCRIPTION,
    COMPLETION_TASK_ID,
    COMPLETION_TASK_TITLE,
    DEFAULT_TASK_TEMPLATES,
)
from trivia_progression.errors import InvalidPoolError, RerollError
from trivia_progression.models import Difficulty, RequirementKind, Task, TaskSet, TaskTemplate
from trivia_progression.policy import GenerationPolicy, RewardPolicy


def default_template_pool() -> list[TaskTemplate]:
    return [
        TaskTemplate(
            id=tid,
            title=title,
            description=description,
            kind=RequirementKind(kind),
            difficulty=Difficulty(difficulty),
            target_min=target_min,
            target_max=target_max,
            points_reward=points,
            qualifier=qualifier,
        )
        for tid, title, description, kind, difficulty, target_min, target_max, points, qualifier in DEFAULT_TASK_TEMPLATES
    ]


def seed_for_day(day_key: str, salt: str = "") -> int:
    digest = hashlib.sha256(f"{day_key}{salt}".encode("utf-8")).hexdigest()
    return int(digest[:16], 16)


def _instantiate(template: TaskTemplate, day_key: str, rng: random.Random, rewards: RewardPolicy) -> Task:
    low = max(1, min(template.target_min, template.target_max))
    high = max(low, template.target_max)
    target = rng.randint(low, high)
    return Task(
        id=f"{day_key}:{template.id}",
        title=template.title,
        description=template.description.replace("{target}", str(target)),
        kind=template.kind,
        difficulty=template.difficulty,
        target=target,
        xp_reward=rewards.base_xp_for(template.difficulty),
        points_reward=max(0, template.points_reward),
        qualifier=template.qualifier,
    )


def _select_templates(
    pool: Sequence[TaskTemplate],
    rng: random.Random,
    generation: GenerationPolicy,
) -> list[TaskTemplate]:
    if len(pool) < generation.subset_size:
        raise InvalidPoolError(
            f"Template pool has {len(pool)} entries, {generation.subset_size} required"
        )

    if not generation.difficulty_mix:
        return rng.sample(list(pool), generation.subset_size)

    selected: list[TaskTemplate] = []
    for difficulty in Difficulty:
        wanted = max(0, int(generation.difficulty_mix.get(difficulty.value, 0)))
        if wanted == 0:
            continue
        bucket = [t for t in pool if t.difficulty == difficulty]
        if len(bucket) < wanted:
            raise InvalidPoolError(
                f"Template pool has {len(bucket)} {difficulty.value} entries, {wanted} required"
            )
        selected.extend(rng.sample(bucket, wanted))
    return selected


def _completion_task(day_key: str, generation: GenerationPolicy) -> Task:
    return Task(
        id=f"{day_key}:{COMPLETION_TASK_ID}",
        title=COMPLETION_TASK_TITLE,
        description=COMPLETION_TASK_DESCRIPTION,
        kind=RequirementKind.ACHIEVEMENT,
        difficulty=Difficulty.HARD,
        target=1,
        xp_reward=max(0, generation.completion_task_xp),
        points_reward=max(0, generation.completion_task_points),
    )


def generate(
    day_key: str,
    template_pool: Sequence[TaskTemplate],
    seed: int | None = None,
    generation: GenerationPolicy | None = None,
    rewards: RewardPolicy | None = None,
) -> TaskSet:
    generation = generation or GenerationPolicy()
    rewards = rewards or RewardPolicy()
    rng = random.Random(seed_for_day(day_key) if seed is None else seed)

    templates = _select_templates(template_pool, rng, generation)
    tasks = tuple(_instantiate(t, day_key, rng, rewards) for t in templates)
    completion = _completion_task(day_key, generation) if generation.completion_task_enabled else None
    return TaskSet(day_key=day_key, tasks=tasks, completion_task=completion)


def reroll_task(
    task_set: TaskSet,
    task_id: str,
    template_pool: Sequence[TaskTemplate],
    generation: GenerationPolicy | None = None,
    rewards: RewardPolicy | None = None,
) -> TaskSet:
    generation = generation or GenerationPolicy()
    rewards = rewards or RewardPolicy()

    if task_set.rerolls_used >= generation.max_rerolls_per_day:
        raise RerollError("No rerolls left today")
    current = task_set.task_by_id(task_id)
    if current is None:
        raise RerollError(f"Unknown task: {task_id}")
    if current.completed or current.progress > 0:
        raise RerollError("Only untouched tasks can be rerolled")

    in_use = {t.id for t in task_set.tasks}
    candidates = [
        t
        for t in template_pool
        if t.difficulty == current.difficulty and f"{task_set.day_key}:{t.id}" not in in_use
    ]
    if not candidates:
        raise RerollError(f"No spare {current.difficulty.value} templates to reroll into")

    rng = random.Random(seed_for_day(task_set.day_key, salt=f":reroll:{task_set.rerolls_used}"))
    replacement = _instantiate(rng.choice(candidates), task_set.day_key, rng, rewards)
    tasks = tuple(replacement if t.id == task_id else t for t in task_set.tasks)
    return replace(task_set, tasks=tasks, rerolls_used=task_set.rerolls_used + 1)
