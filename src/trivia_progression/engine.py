from __future__ import annotations

import logging
import warnings
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path

from trivia_progression.db_constants import DEFAULT_AUTO_SAVE_MINUTES
from trivia_progression.errors import ClockSkewWarning, CorruptSnapshotError, WriteFailure
from trivia_progression.gamification import (
    LevelProgress,
    completion_bonus,
    compute_reward,
    level_from_xp,
    level_progress,
)
from trivia_progression.models import (
    DayState,
    PlayEvent,
    ProgressStats,
    Reward,
    SaveRequest,
    SaveStatus,
    SkillRating,
    Task,
    TaskSet,
    TaskTemplate,
)
from trivia_progression.persistence import PersistenceScheduler
from trivia_progression.policy import ProgressionPolicy
from trivia_progression.progress import apply_event
from trivia_progression.rating import RatingUpdate, rating_category, update_rating
from trivia_progression.snapshot import SaveSnapshot, encode_snapshot
from trivia_progression.storage import JsonFileSnapshotStore, SnapshotStore
from trivia_progression.streaks import (
    TransitionResult,
    classify_day,
    evaluate_day_transition,
    purchase_grace_period,
    record_set_completion,
)
from trivia_progression.task_generator import default_template_pool, generate, reroll_task
from trivia_progression.time_utils import DEFAULT_TZ, day_key_for, days_between, now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressOutcome:
    task_set: TaskSet
    stats: ProgressStats
    newly_completed: tuple[Task, ...]
    reward: Reward
    bonus: Reward
    set_completed: bool
    leveled_up: bool


class ProgressionEngine:
    """Owns one player's progression state.

    All mutation goes through this object: play events, day ticks, rating
    sessions, purchases and rerolls replace the frozen state records, and
    the persistence scheduler is the only path to durable storage.
    """

    def __init__(
        self,
        store: SnapshotStore,
        policy: ProgressionPolicy | None = None,
        template_pool: Sequence[TaskTemplate] | None = None,
        tz: str = DEFAULT_TZ,
        clock: Callable[[], datetime] = now_utc,
        auto_save_interval: timedelta = timedelta(minutes=DEFAULT_AUTO_SAVE_MINUTES),
        auto_save_enabled: bool = True,
    ) -> None:
        self._policy = policy or ProgressionPolicy()
        self._pool = list(template_pool) if template_pool is not None else default_template_pool()
        self._tz = tz
        self._clock = clock

        self._stats = self._fresh_stats()
        self._rating = self._fresh_rating()
        self._task_set: TaskSet | None = None
        self._archive: tuple[TaskSet, ...] = ()

        self._scheduler = PersistenceScheduler(
            store=store,
            source=self._build_snapshot,
            interval=auto_save_interval,
            enabled=auto_save_enabled,
            clock=clock,
        )

    @property
    def policy(self) -> ProgressionPolicy:
        return self._policy

    @property
    def scheduler(self) -> PersistenceScheduler:
        return self._scheduler

    def _fresh_stats(self) -> ProgressStats:
        return ProgressStats(grace_period_available=self._policy.rewards.initial_grace_period)

    def _fresh_rating(self) -> SkillRating:
        start = self._policy.rating.starting_rating
        return SkillRating(rating=start, peak_rating=start)

    def _reset_state(self, now: datetime | None = None) -> None:
        self._stats = self._fresh_stats()
        self._rating = self._fresh_rating()
        self._task_set = None
        self._archive = ()
        self.on_tick(now)

    def _build_snapshot(self, saved_at: datetime) -> SaveSnapshot:
        return SaveSnapshot(
            stats=self._stats,
            task_set=self._task_set,
            rating=self._rating,
            saved_at=saved_at,
            enabled=self._scheduler.enabled,
            archive=self._archive,
        )

    def _today_key(self) -> str:
        if self._task_set is not None:
            return self._task_set.day_key
        return day_key_for(self._clock(), self._tz)

    # Lifecycle

    async def start(self, now: datetime | None = None) -> None:
        await self.load(now)
        self._scheduler.start()
        logger.info("Progression engine started for day %s", self._today_key())

    async def stop(self, save: bool = True) -> None:
        await self._scheduler.stop()
        if not save:
            return
        try:
            await self._scheduler.force_save()
        except WriteFailure as exc:
            logger.error("Final save failed: %s", exc)

    def on_tick(self, now: datetime | None = None) -> TransitionResult | None:
        """Observe the clock and roll the day over when its key changed.

        Returns the streak transition when a new day was entered, None when
        the day is unchanged or the clock went backwards.
        """
        day_key = day_key_for(now or self._clock(), self._tz)
        current = self._task_set
        if current is not None:
            gap = days_between(current.day_key, day_key)
            if gap < 0:
                warnings.warn(
                    f"Day {day_key} is earlier than current day {current.day_key}",
                    ClockSkewWarning,
                    stacklevel=2,
                )
                logger.warning("Clock skew: tick for %s while on %s, ignoring", day_key, current.day_key)
                return None
            if gap == 0:
                return None

        result = evaluate_day_transition(self._stats, day_key, self._policy.rewards)

        generation = self._policy.generation
        archive = self._archive
        if current is not None:
            archive = archive + (current,)
            keep = max(0, generation.archive_days)
            archive = archive[-keep:] if keep else ()
        task_set = generate(day_key, self._pool, generation=generation, rewards=self._policy.rewards)

        self._stats, self._task_set, self._archive = result.stats, task_set, archive
        logger.info(
            "Entered day %s (streak %d%s%s)",
            day_key,
            result.stats.current_streak,
            ", grace consumed" if result.grace_consumed else "",
            ", streak lost" if result.streak_lost else "",
        )
        return result

    # Play

    def apply_play_event(self, event: PlayEvent) -> ProgressOutcome:
        self.on_tick(event.timestamp)
        task_set = self._task_set
        if task_set is None:
            raise RuntimeError("No task set for the current day")

        result = apply_event(task_set, event)
        rewards = self._policy.rewards
        before = self._stats

        earned = Reward()
        for task in result.newly_completed:
            # Multiplier uses the streak as it stood before this completion.
            earned = earned + compute_reward(task, before, rewards)

        stats = before
        bonus = Reward()
        if result.set_completed:
            stats = record_set_completion(stats, result.task_set.day_key)
            bonus = completion_bonus(result.task_set, rewards)
            logger.info("Daily set %s completed, streak %d", result.task_set.day_key, stats.current_streak)

        total = earned + bonus
        stats = replace(
            stats,
            total_tasks_completed=stats.total_tasks_completed + len(result.newly_completed),
            total_xp=stats.total_xp + total.xp,
            total_points=stats.total_points + total.points,
            points_balance=stats.points_balance + total.points,
        )

        self._task_set, self._stats = result.task_set, stats
        return ProgressOutcome(
            task_set=result.task_set,
            stats=stats,
            newly_completed=tuple(result.newly_completed),
            reward=earned,
            bonus=bonus,
            set_completed=result.set_completed,
            leveled_up=level_from_xp(stats.total_xp) > level_from_xp(before.total_xp),
        )

    def record_session(self, accuracy: float, baseline: int | None = None) -> RatingUpdate:
        update = update_rating(self._rating, accuracy, self._policy.rating, baseline=baseline)
        self._rating = update.rating
        return update

    def purchase_grace_period(self) -> bool:
        updated = purchase_grace_period(self._stats, self._policy.rewards, self._today_key())
        if updated is None:
            return False
        self._stats = updated
        logger.info("Grace period purchased, %d points left", updated.points_balance)
        return True

    def reroll_task(self, task_id: str) -> TaskSet:
        self.on_tick()
        if self._task_set is None:
            raise RuntimeError("No task set for the current day")
        self._task_set = reroll_task(
            self._task_set,
            task_id,
            self._pool,
            generation=self._policy.generation,
            rewards=self._policy.rewards,
        )
        return self._task_set

    # Persistence

    async def request_save(self, request: SaveRequest) -> datetime | None:
        if request.force:
            return await self._scheduler.force_save()
        return await self._scheduler.run_scheduled_save()

    def set_auto_save(self, enabled: bool) -> None:
        self._scheduler.set_enabled(enabled)

    async def load(self, now: datetime | None = None) -> bool:
        try:
            snapshot = await self._scheduler.load()
        except CorruptSnapshotError as exc:
            logger.warning("Unreadable snapshot, starting fresh: %s", exc)
            snapshot = None

        if snapshot is None:
            self._reset_state(now)
            return False

        self._stats = snapshot.stats
        self._rating = snapshot.rating
        self._task_set = snapshot.task_set
        self._archive = snapshot.archive
        self._scheduler.set_enabled(snapshot.enabled)
        logger.info("Loaded snapshot saved at %s", snapshot.saved_at.isoformat())
        self.on_tick(now)
        return True

    async def clear(self) -> None:
        await self._scheduler.clear(self._reset_state)

    def export_backup(self, path: Path) -> Path:
        payload = encode_snapshot(self._build_snapshot(self._clock()))
        JsonFileSnapshotStore(path).write_snapshot(payload)
        return path

    # Read accessors

    def get_task_set(self) -> TaskSet | None:
        return self._task_set

    def get_stats(self) -> ProgressStats:
        return self._stats

    def get_rating(self) -> SkillRating:
        return self._rating

    def get_rating_category(self) -> str:
        return rating_category(self._rating.rating, self._policy.rating)

    def get_level(self) -> LevelProgress:
        return level_progress(self._stats.total_xp)

    def get_archive(self) -> tuple[TaskSet, ...]:
        return self._archive

    def get_day_state(self, day_key: str | None = None) -> DayState:
        today = self._today_key()
        key = day_key or today
        task_set = self._task_set if self._task_set is not None and self._task_set.day_key == key else None
        if task_set is None:
            task_set = next((s for s in self._archive if s.day_key == key), None)
        return classify_day(self._stats, key, today, task_set)

    def get_save_status(self) -> SaveStatus:
        return self._scheduler.status()
