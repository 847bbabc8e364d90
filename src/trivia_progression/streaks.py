from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, replace

from trivia_progression.errors import ClockSkewWarning
from trivia_progression.models import DayState, ProgressStats, TaskSet
from trivia_progression.policy import RewardPolicy
from trivia_progression.time_utils import days_between, shift_day_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    stats: ProgressStats
    grace_consumed: bool = False
    streak_lost: bool = False
    clock_skew: bool = False


def _with_longest(stats: ProgressStats, current: int) -> ProgressStats:
    return replace(stats, current_streak=current, longest_streak=max(stats.longest_streak, current))


def _replenish(stats: ProgressStats, day_key: str, policy: RewardPolicy) -> ProgressStats:
    if stats.grace_period_available or policy.grace_replenish_days <= 0:
        return stats
    anchors = [d for d in (stats.grace_granted_day, stats.grace_covered_day) if d is not None]
    if anchors and days_between(max(anchors), day_key) < policy.grace_replenish_days:
        return stats
    logger.info("Grace period token replenished on %s", day_key)
    return replace(stats, grace_period_available=True, grace_granted_day=day_key)


def evaluate_day_transition(stats: ProgressStats, new_day_key: str, policy: RewardPolicy) -> TransitionResult:
    """Settle yesterday's outcome when a new day key is observed.

    A grace token covers exactly one missed day. Two or more missed days
    reset the streak and leave the token unspent.

    Safe to call any number of times for the same day: every decision is
    derived from `last_completed_day` and `grace_covered_day`, so a
    repeated call finds nothing left to do.
    """
    last = stats.last_completed_day
    if last is None:
        return TransitionResult(stats=_replenish(stats, new_day_key, policy))

    gap = days_between(last, new_day_key)
    if gap < 0:
        warnings.warn(
            f"Day {new_day_key} is earlier than last completed day {last}",
            ClockSkewWarning,
            stacklevel=2,
        )
        logger.warning("Clock skew: day %s observed after %s, ignoring", new_day_key, last)
        return TransitionResult(stats=stats, clock_skew=True)

    if gap == 0:
        return TransitionResult(stats=stats)

    if gap == 1:
        if stats.grace_period_used:
            stats = replace(stats, grace_period_used=False)
        return TransitionResult(stats=_replenish(stats, new_day_key, policy))

    missed_day = shift_day_key(new_day_key, -1)
    if gap == 2 and stats.grace_covered_day == missed_day:
        return TransitionResult(stats=stats)

    if gap == 2 and stats.grace_period_available:
        covered = replace(
            stats,
            grace_period_available=False,
            grace_period_used=True,
            grace_covered_day=missed_day,
        )
        logger.info("Grace period consumed for missed day %s (streak %d kept)", missed_day, stats.current_streak)
        return TransitionResult(stats=_replenish(covered, new_day_key, policy), grace_consumed=True)

    lost = _with_longest(replace(stats, grace_period_used=False), 0)
    if stats.current_streak > 0:
        logger.info("Streak of %d lost after %d missed day(s)", stats.current_streak, gap - 1)
    return TransitionResult(stats=_replenish(lost, new_day_key, policy), streak_lost=True)


def record_set_completion(stats: ProgressStats, day_key: str) -> ProgressStats:
    last = stats.last_completed_day
    if last == day_key:
        return stats

    if last is None:
        current = 1
    else:
        gap = days_between(last, day_key)
        if gap < 0:
            logger.warning("Ignoring completion for %s, earlier than %s", day_key, last)
            return stats
        covered = gap == 2 and stats.grace_covered_day == shift_day_key(day_key, -1)
        if gap == 1 or covered:
            current = stats.current_streak + 1
        else:
            current = 1

    return replace(_with_longest(stats, current), last_completed_day=day_key)


def purchase_grace_period(stats: ProgressStats, policy: RewardPolicy, day_key: str) -> ProgressStats | None:
    # Tokens do not stack.
    if stats.grace_period_available:
        return None
    cost = max(0, policy.grace_period_cost)
    if stats.points_balance < cost:
        return None
    return replace(
        stats,
        points_balance=stats.points_balance - cost,
        grace_period_available=True,
        grace_granted_day=day_key,
    )


def classify_day(stats: ProgressStats, day_key: str, today_key: str, task_set: TaskSet | None) -> DayState:
    if task_set is not None and task_set.completed:
        return DayState.COMPLETED_TODAY
    if stats.last_completed_day == day_key:
        return DayState.COMPLETED_TODAY
    if stats.grace_covered_day == day_key:
        return DayState.MISSED_COVERED
    if days_between(day_key, today_key) > 0:
        return DayState.MISSED_LOST
    return DayState.PENDING
