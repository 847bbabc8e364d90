from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from trivia_progression.models import Difficulty

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewardPolicy:
    base_xp: dict[str, int] = field(default_factory=lambda: {"easy": 50, "medium": 100, "hard": 200})
    streak_step_days: int = 5
    streak_step_bonus: float = 0.1
    streak_multiplier_cap: float = 1.5
    completion_bonus: int = 50
    grace_period_cost: int = 100
    initial_grace_period: bool = True
    # 0 disables replenishment: one forgiven gap per streak lifetime.
    grace_replenish_days: int = 0

    def base_xp_for(self, difficulty: Difficulty | str) -> int:
        key = difficulty.value if isinstance(difficulty, Difficulty) else str(difficulty)
        return max(0, int(self.base_xp.get(key, self.base_xp.get("medium", 0))))


@dataclass(frozen=True)
class GenerationPolicy:
    difficulty_mix: dict[str, int] = field(default_factory=lambda: {"easy": 2, "medium": 2, "hard": 1})
    # Only used when difficulty_mix is empty.
    tasks_per_day: int = 5
    completion_task_enabled: bool = True
    completion_task_xp: int = 300
    completion_task_points: int = 100
    max_rerolls_per_day: int = 1
    archive_days: int = 7

    @property
    def subset_size(self) -> int:
        if self.difficulty_mix:
            return sum(max(0, int(n)) for n in self.difficulty_mix.values())
        return max(0, self.tasks_per_day)


@dataclass(frozen=True)
class RatingPolicy:
    starting_rating: int = 1200
    baseline_rating: int = 1200
    rating_floor: int = 400
    rating_ceiling: int = 2400
    k_provisional: int = 40
    k_default: int = 32
    k_established: int = 16
    provisional_games: int = 30
    established_games: int = 100
    win_threshold: float = 0.70
    draw_threshold: float = 0.50
    bands: tuple[tuple[int, str], ...] = (
        (400, "Novice"),
        (800, "Bronze"),
        (1000, "Silver"),
        (1200, "Gold"),
        (1400, "Platinum"),
        (1600, "Diamond"),
        (1800, "Master"),
        (2000, "Grandmaster"),
    )


@dataclass(frozen=True)
class ProgressionPolicy:
    rewards: RewardPolicy = field(default_factory=RewardPolicy)
    generation: GenerationPolicy = field(default_factory=GenerationPolicy)
    rating: RatingPolicy = field(default_factory=RatingPolicy)


def _coerce(default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, dict):
        if not isinstance(value, dict):
            raise TypeError("expected a mapping")
        return {str(k): int(v) for k, v in value.items()}
    if isinstance(default, tuple):
        if not isinstance(value, (list, dict)):
            raise TypeError("expected a list or mapping")
        items = value.items() if isinstance(value, dict) else value
        bands = tuple(sorted((int(low), str(label)) for low, label in items))
        if not bands:
            raise ValueError("bands cannot be empty")
        return bands
    return value


def _apply_section(base: Any, raw: Any, section: str) -> Any:
    if not isinstance(raw, dict):
        return base
    updates: dict[str, Any] = {}
    known = {f.name for f in fields(base)}
    for key, value in raw.items():
        if key not in known:
            logger.warning("Ignoring unknown policy key %s.%s", section, key)
            continue
        default = getattr(base, key)
        try:
            updates[key] = _coerce(default, value)
        except (TypeError, ValueError):
            logger.warning("Invalid value for %s.%s: %r, keeping default", section, key, value)
    return replace(base, **updates)


def load_policy(path: Path) -> ProgressionPolicy:
    defaults = ProgressionPolicy()
    if not path.exists():
        return defaults

    raw = yaml.safe_load(path.read_text()) or {}
    if not isinstance(raw, dict):
        logger.warning("Policy file %s is not a mapping, using defaults", path)
        return defaults

    return ProgressionPolicy(
        rewards=_apply_section(defaults.rewards, raw.get("rewards"), "rewards"),
        generation=_apply_section(defaults.generation, raw.get("generation"), "generation"),
        rating=_apply_section(defaults.rating, raw.get("rating"), "rating"),
    )
