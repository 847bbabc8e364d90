from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class RequirementKind(str, Enum):
    SCORE = "score"
    GAMES_PLAYED = "games-played"
    ACCURACY = "accuracy"
    STREAK = "streak"
    TIME = "time"
    CATEGORY_MATCH = "category-match"
    MODE_MATCH = "mode-match"
    ACHIEVEMENT = "achievement"


HIGH_WATER_KINDS = frozenset({RequirementKind.SCORE, RequirementKind.ACCURACY, RequirementKind.STREAK})


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class DayState(str, Enum):
    PENDING = "pending"
    COMPLETED_TODAY = "completed-today"
    MISSED_COVERED = "missed-covered"
    MISSED_LOST = "missed-lost"


class SchedulerState(str, Enum):
    IDLE = "idle"
    SAVE_IN_FLIGHT = "save-in-flight"
    LOAD_IN_FLIGHT = "load-in-flight"


@dataclass(frozen=True)
class TaskTemplate:
    id: str
    title: str
    description: str
    kind: RequirementKind
    difficulty: Difficulty
    target_min: int
    target_max: int
    points_reward: int
    qualifier: str | None = None


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    description: str
    kind: RequirementKind
    difficulty: Difficulty
    target: int
    xp_reward: int
    points_reward: int
    qualifier: str | None = None
    progress: int = 0
    completed: bool = False
    completed_at: datetime | None = None


@dataclass(frozen=True)
class TaskSet:
    day_key: str
    tasks: tuple[Task, ...]
    completion_task: Task | None = None
    completed: bool = False
    completed_at: datetime | None = None
    rerolls_used: int = 0

    def task_by_id(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    @property
    def completed_count(self) -> int:
        return sum(1 for task in self.tasks if task.completed)


@dataclass(frozen=True)
class ProgressStats:
    current_streak: int = 0
    longest_streak: int = 0
    total_tasks_completed: int = 0
    total_xp: int = 0
    total_points: int = 0
    points_balance: int = 0
    last_completed_day: str | None = None
    grace_period_used: bool = False
    grace_period_available: bool = True
    grace_covered_day: str | None = None
    grace_granted_day: str | None = None


@dataclass(frozen=True)
class SkillRating:
    rating: int = 1200
    peak_rating: int = 1200
    games_played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0


@dataclass(frozen=True)
class PlayEvent:
    kind: RequirementKind | str
    magnitude: int
    timestamp: datetime
    qualifier: str | None = None


@dataclass(frozen=True)
class SaveRequest:
    force: bool = False


@dataclass(frozen=True)
class SaveStatus:
    enabled: bool
    last_saved: datetime | None
    next_save: datetime | None
    state: SchedulerState


@dataclass(frozen=True)
class Reward:
    xp: int = 0
    points: int = 0

    def __add__(self, other: Reward) -> Reward:
        return Reward(xp=self.xp + other.xp, points=self.points + other.points)
