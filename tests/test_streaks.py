from __future__ import annotations

import random

import pytest

from trivia_progression.errors import ClockSkewWarning
from trivia_progression.models import DayState, ProgressStats
from trivia_progression.policy import RewardPolicy
from trivia_progression.streaks import (
    classify_day,
    evaluate_day_transition,
    purchase_grace_period,
    record_set_completion,
)
from trivia_progression.time_utils import shift_day_key

POLICY = RewardPolicy()


def _stats(**overrides) -> ProgressStats:
    base = {
        "current_streak": 4,
        "longest_streak": 4,
        "last_completed_day": "2026-03-04",
    }
    base.update(overrides)
    return ProgressStats(**base)


def test_completing_next_day_extends_streak() -> None:
    result = evaluate_day_transition(_stats(), "2026-03-05", POLICY)
    assert result.streak_lost is False
    stats = record_set_completion(result.stats, "2026-03-05")
    assert stats.current_streak == 5
    assert stats.longest_streak == 5


def test_missed_day_with_token_is_covered() -> None:
    result = evaluate_day_transition(_stats(), "2026-03-06", POLICY)
    assert result.grace_consumed is True
    assert result.stats.grace_period_available is False
    assert result.stats.grace_period_used is True
    assert result.stats.grace_covered_day == "2026-03-05"
    assert result.stats.current_streak == 4

    stats = record_set_completion(result.stats, "2026-03-06")
    assert stats.current_streak == 5


def test_reevaluating_covered_gap_is_a_no_op() -> None:
    first = evaluate_day_transition(_stats(), "2026-03-06", POLICY)
    again = evaluate_day_transition(first.stats, "2026-03-06", POLICY)
    assert again.grace_consumed is False
    assert again.streak_lost is False
    assert again.stats == first.stats


def test_missed_day_without_token_resets_streak() -> None:
    result = evaluate_day_transition(_stats(grace_period_available=False), "2026-03-06", POLICY)
    assert result.streak_lost is True
    assert result.stats.current_streak == 0
    assert result.stats.longest_streak == 4

    stats = record_set_completion(result.stats, "2026-03-06")
    assert stats.current_streak == 1
    assert stats.longest_streak == 4


def test_two_missed_days_are_never_covered() -> None:
    result = evaluate_day_transition(_stats(), "2026-03-07", POLICY)
    assert result.streak_lost is True
    assert result.stats.current_streak == 0
    assert result.stats.grace_period_available is True


def test_earlier_day_is_clock_skew() -> None:
    stats = _stats()
    with pytest.warns(ClockSkewWarning):
        result = evaluate_day_transition(stats, "2026-03-02", POLICY)
    assert result.clock_skew is True
    assert result.stats == stats


def test_grace_used_flag_clears_on_clean_transition() -> None:
    covered = evaluate_day_transition(_stats(), "2026-03-06", POLICY).stats
    completed = record_set_completion(covered, "2026-03-06")
    next_day = evaluate_day_transition(completed, "2026-03-07", POLICY)
    assert next_day.stats.grace_period_used is False
    assert next_day.stats.grace_period_available is False


def test_token_replenishes_on_cadence() -> None:
    policy = RewardPolicy(grace_replenish_days=7)
    stats = _stats(
        last_completed_day="2026-03-11",
        grace_period_available=False,
        grace_covered_day="2026-03-05",
    )
    early = evaluate_day_transition(stats, "2026-03-11", policy)
    assert early.stats.grace_period_available is False

    result = evaluate_day_transition(stats, "2026-03-12", policy)
    assert result.stats.grace_period_available is True
    assert result.stats.grace_granted_day == "2026-03-12"


def test_no_replenishment_by_default() -> None:
    stats = _stats(last_completed_day="2026-04-30", grace_period_available=False, grace_covered_day="2026-03-05")
    result = evaluate_day_transition(stats, "2026-05-01", POLICY)
    assert result.stats.grace_period_available is False


def test_completion_recorded_once_per_day() -> None:
    stats = record_set_completion(_stats(), "2026-03-05")
    assert record_set_completion(stats, "2026-03-05") == stats


def test_first_completion_starts_streak() -> None:
    stats = record_set_completion(ProgressStats(), "2026-03-01")
    assert stats.current_streak == 1
    assert stats.longest_streak == 1
    assert stats.last_completed_day == "2026-03-01"


def test_purchase_grace_period() -> None:
    stats = _stats(points_balance=150, grace_period_available=False)
    bought = purchase_grace_period(stats, POLICY, "2026-03-05")
    assert bought is not None
    assert bought.points_balance == 50
    assert bought.grace_period_available is True
    assert bought.grace_granted_day == "2026-03-05"

    assert purchase_grace_period(bought, POLICY, "2026-03-05") is None
    assert purchase_grace_period(_stats(points_balance=99, grace_period_available=False), POLICY, "2026-03-05") is None


def test_classify_day() -> None:
    covered = evaluate_day_transition(_stats(), "2026-03-06", POLICY).stats
    assert classify_day(covered, "2026-03-04", "2026-03-06", None) == DayState.COMPLETED_TODAY
    assert classify_day(covered, "2026-03-05", "2026-03-06", None) == DayState.MISSED_COVERED
    assert classify_day(covered, "2026-03-06", "2026-03-06", None) == DayState.PENDING
    assert classify_day(covered, "2026-03-03", "2026-03-06", None) == DayState.MISSED_LOST


def test_streak_never_exceeds_longest() -> None:
    rng = random.Random(11)
    policy = RewardPolicy(grace_replenish_days=10)
    stats = ProgressStats()
    day = "2026-01-01"
    for _ in range(200):
        day = shift_day_key(day, rng.choice([1, 1, 1, 2, 3]))
        stats = evaluate_day_transition(stats, day, policy).stats
        assert stats.current_streak <= stats.longest_streak
        if rng.random() < 0.8:
            stats = record_set_completion(stats, day)
            assert stats.current_streak <= stats.longest_streak
