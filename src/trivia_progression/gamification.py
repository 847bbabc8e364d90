from __future__ import annotations

import math
from dataclasses import dataclass

from trivia_progression.db_constants import DAILY_LEVELS
from trivia_progression.models import ProgressStats, Reward, Task, TaskSet
from trivia_progression.policy import RewardPolicy


@dataclass(frozen=True)
class LevelProgress:
    level: int
    title: str
    current_level_xp: int
    next_level_xp: int
    progress_ratio: float
    remaining_to_next: int


def streak_multiplier(streak_days: int, policy: RewardPolicy) -> float:
    """Step curve: +step_bonus for every full step_days of streak, capped."""
    streak = max(0, streak_days)
    step_days = max(1, policy.streak_step_days)
    step_bonus = max(0.0, policy.streak_step_bonus)
    cap = max(1.0, policy.streak_multiplier_cap)
    return min(cap, 1.0 + step_bonus * (streak // step_days))


def compute_reward(task: Task, stats: ProgressStats, policy: RewardPolicy) -> Reward:
    base = policy.base_xp_for(task.difficulty)
    # Round away float noise (70 * 1.4 == 97.999...) before flooring.
    xp = math.floor(round(base * streak_multiplier(stats.current_streak, policy), 6))
    # Points are not streak-scaled.
    return Reward(xp=max(0, xp), points=max(0, task.points_reward))


def completion_bonus(task_set: TaskSet, policy: RewardPolicy) -> Reward:
    bonus = Reward(xp=max(0, policy.completion_bonus))
    if task_set.completion_task is not None:
        bonus = bonus + Reward(
            xp=max(0, task_set.completion_task.xp_reward),
            points=max(0, task_set.completion_task.points_reward),
        )
    return bonus


def level_from_xp(total_xp: int) -> int:
    xp = max(0, total_xp)
    level = 1
    for idx, (required, _) in enumerate(DAILY_LEVELS, start=1):
        if xp >= required:
            level = idx
    return level


def get_title(level: int) -> str:
    if level >= len(DAILY_LEVELS):
        return DAILY_LEVELS[-1][1]
    return DAILY_LEVELS[max(1, level) - 1][1]


def level_progress(total_xp: int) -> LevelProgress:
    xp = max(0, total_xp)
    level = level_from_xp(xp)
    current_floor = DAILY_LEVELS[level - 1][0]
    if level >= len(DAILY_LEVELS):
        return LevelProgress(
            level=level,
            title=get_title(level),
            current_level_xp=xp - current_floor,
            next_level_xp=0,
            progress_ratio=1.0,
            remaining_to_next=0,
        )
    next_total = DAILY_LEVELS[level][0]
    span = max(next_total - current_floor, 1)
    current_level_xp = xp - current_floor
    return LevelProgress(
        level=level,
        title=get_title(level),
        current_level_xp=current_level_xp,
        next_level_xp=span,
        progress_ratio=current_level_xp / span,
        remaining_to_next=max(next_total - xp, 0),
    )
