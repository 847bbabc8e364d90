from __future__ import annotations

from dataclasses import dataclass, replace

from trivia_progression.models import SkillRating
from trivia_progression.policy import RatingPolicy


@dataclass(frozen=True)
class RatingUpdate:
    rating: SkillRating
    change: int
    expected_score: float
    actual_score: float
    k_factor: int


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def expected_score(rating: float, baseline: float) -> float:
    return 1.0 / (1.0 + 10 ** ((baseline - rating) / 400.0))


def outcome_from_accuracy(accuracy: float, policy: RatingPolicy) -> float:
    value = _clamp(float(accuracy), 0.0, 1.0)
    if value >= policy.win_threshold:
        return 1.0
    if value >= policy.draw_threshold:
        return 0.5
    return 0.0


def k_factor(games_played: int, policy: RatingPolicy) -> int:
    if games_played < policy.provisional_games:
        return policy.k_provisional
    if games_played > policy.established_games:
        return policy.k_established
    return policy.k_default


def clamp_rating(rating: float, policy: RatingPolicy) -> int:
    return int(round(_clamp(rating, policy.rating_floor, policy.rating_ceiling)))


def update_rating(
    current: SkillRating,
    accuracy: float,
    policy: RatingPolicy,
    baseline: int | None = None,
) -> RatingUpdate:
    """Paired-comparison update of one session against a baseline rating.

    `accuracy` is the session's share of correct answers in [0, 1]; values
    outside that range are clamped rather than rejected.
    """
    old = clamp_rating(current.rating, policy)
    opponent = policy.baseline_rating if baseline is None else baseline
    expected = expected_score(old, opponent)
    actual = outcome_from_accuracy(accuracy, policy)
    k = k_factor(current.games_played, policy)
    new = clamp_rating(old + k * (actual - expected), policy)

    updated = replace(
        current,
        rating=new,
        peak_rating=max(current.peak_rating, new),
        games_played=current.games_played + 1,
        wins=current.wins + (1 if actual == 1.0 else 0),
        draws=current.draws + (1 if actual == 0.5 else 0),
        losses=current.losses + (1 if actual == 0.0 else 0),
    )
    return RatingUpdate(
        rating=updated,
        change=new - old,
        expected_score=expected,
        actual_score=actual,
        k_factor=k,
    )


def rating_category(rating: int, policy: RatingPolicy) -> str:
    bands = sorted(policy.bands)
    label = bands[0][1]
    for low, name in bands:
        if rating >= low:
            label = name
    return label
