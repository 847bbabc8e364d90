from __future__ import annotations

from collections import Counter
from dataclasses import replace

import pytest

from trivia_progression.errors import InvalidPoolError, RerollError
from trivia_progression.models import Difficulty
from trivia_progression.policy import GenerationPolicy, RewardPolicy
from trivia_progression.task_generator import default_template_pool, generate, reroll_task, seed_for_day


def test_same_day_pool_and_seed_give_same_set() -> None:
    pool = default_template_pool()
    assert generate("2026-03-01", pool) == generate("2026-03-01", pool)
    assert generate("2026-03-01", pool, seed=7) == generate("2026-03-01", pool, seed=7)


def test_seed_for_day_differs_per_day() -> None:
    assert seed_for_day("2026-03-01") != seed_for_day("2026-03-02")
    assert seed_for_day("2026-03-01") == seed_for_day("2026-03-01")


def test_default_mix_and_completion_task() -> None:
    task_set = generate("2026-03-01", default_template_pool())
    counts = Counter(t.difficulty for t in task_set.tasks)
    assert counts == {Difficulty.EASY: 2, Difficulty.MEDIUM: 2, Difficulty.HARD: 1}
    assert len({t.id for t in task_set.tasks}) == 5
    assert all(t.progress == 0 and not t.completed for t in task_set.tasks)

    assert task_set.completion_task is not None
    assert task_set.completion_task.id == "2026-03-01:complete-all"
    assert task_set.completion_task.xp_reward == 300
    assert task_set.completion_task.points_reward == 100


def test_targets_and_rewards_follow_templates() -> None:
    pool = default_template_pool()
    by_id = {t.id: t for t in pool}
    rewards = RewardPolicy()
    task_set = generate("2026-03-14", pool)
    for task in task_set.tasks:
        template = by_id[task.id.split(":", 1)[1]]
        assert template.target_min <= task.target <= template.target_max
        assert task.xp_reward == rewards.base_xp_for(task.difficulty)
        assert "{target}" not in task.description
        assert str(task.target) in task.description


def test_small_pool_is_rejected() -> None:
    with pytest.raises(InvalidPoolError):
        generate("2026-03-01", default_template_pool()[:3])


def test_missing_difficulty_bucket_is_rejected() -> None:
    easy_only = [t for t in default_template_pool() if t.difficulty == Difficulty.EASY]
    with pytest.raises(InvalidPoolError):
        generate("2026-03-01", easy_only)


def test_flat_draw_without_mix() -> None:
    generation = GenerationPolicy(difficulty_mix={}, tasks_per_day=3, completion_task_enabled=False)
    task_set = generate("2026-03-01", default_template_pool(), generation=generation)
    assert len(task_set.tasks) == 3
    assert task_set.completion_task is None


def test_tasks_per_day_ignored_when_mix_is_set() -> None:
    generation = GenerationPolicy(tasks_per_day=9)
    task_set = generate("2026-03-01", default_template_pool(), generation=generation)
    assert len(task_set.tasks) == 5


def test_reroll_replaces_untouched_task_once() -> None:
    pool = default_template_pool()
    task_set = generate("2026-03-01", pool)
    old = task_set.tasks[0]

    rerolled = reroll_task(task_set, old.id, pool)
    new = rerolled.tasks[0]
    assert rerolled.rerolls_used == 1
    assert new.id != old.id
    assert new.difficulty == old.difficulty
    assert new.id not in {t.id for t in task_set.tasks}
    assert rerolled.tasks[1:] == task_set.tasks[1:]
    assert reroll_task(task_set, old.id, pool) == rerolled

    with pytest.raises(RerollError):
        reroll_task(rerolled, rerolled.tasks[1].id, pool)


def test_reroll_rejects_started_or_unknown_tasks() -> None:
    pool = default_template_pool()
    task_set = generate("2026-03-01", pool)
    started = replace(task_set, tasks=(replace(task_set.tasks[0], progress=1),) + task_set.tasks[1:])

    with pytest.raises(RerollError):
        reroll_task(started, started.tasks[0].id, pool)
    with pytest.raises(RerollError):
        reroll_task(task_set, "2026-03-01:nope", pool)
