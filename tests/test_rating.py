from __future__ import annotations

import pytest

from trivia_progression.models import SkillRating
from trivia_progression.policy import RatingPolicy
from trivia_progression.rating import (
    expected_score,
    k_factor,
    outcome_from_accuracy,
    rating_category,
    update_rating,
)

POLICY = RatingPolicy()


def test_expected_score_is_symmetric() -> None:
    assert expected_score(1200, 1200) == 0.5
    assert expected_score(1400, 1200) + expected_score(1200, 1400) == pytest.approx(1.0)


def test_accuracy_thresholds() -> None:
    assert outcome_from_accuracy(0.70, POLICY) == 1.0
    assert outcome_from_accuracy(0.69, POLICY) == 0.5
    assert outcome_from_accuracy(0.50, POLICY) == 0.5
    assert outcome_from_accuracy(0.49, POLICY) == 0.0
    assert outcome_from_accuracy(1.7, POLICY) == 1.0
    assert outcome_from_accuracy(-1.0, POLICY) == 0.0


def test_k_factor_damps_after_provisional_period() -> None:
    assert k_factor(0, POLICY) == 40
    assert k_factor(29, POLICY) == 40
    assert k_factor(30, POLICY) == 32
    assert k_factor(100, POLICY) == 32
    assert k_factor(101, POLICY) == 16


def test_win_draw_loss_from_fresh_rating() -> None:
    win = update_rating(SkillRating(), 0.8, POLICY)
    assert win.rating.rating == 1220
    assert win.change == 20
    assert win.rating.peak_rating == 1220
    assert (win.rating.games_played, win.rating.wins) == (1, 1)

    draw = update_rating(SkillRating(), 0.6, POLICY)
    assert draw.rating.rating == 1200
    assert draw.rating.draws == 1

    loss = update_rating(SkillRating(), 0.2, POLICY)
    assert loss.rating.rating == 1180
    assert loss.rating.losses == 1
    assert loss.rating.peak_rating == 1200


def test_stronger_baseline_pays_more() -> None:
    update = update_rating(SkillRating(), 0.9, POLICY, baseline=1600)
    assert update.expected_score == pytest.approx(1 / 11)
    assert update.rating.rating == 1236


def test_rating_is_clamped() -> None:
    floor = update_rating(SkillRating(rating=400, peak_rating=400), 0.0, POLICY)
    assert floor.rating.rating == 400
    ceiling = update_rating(SkillRating(rating=2400, peak_rating=2400), 1.0, POLICY)
    assert ceiling.rating.rating == 2400


def test_rating_category_bands() -> None:
    assert rating_category(399, POLICY) == "Novice"
    assert rating_category(1200, POLICY) == "Gold"
    assert rating_category(1399, POLICY) == "Gold"
    assert rating_category(2100, POLICY) == "Grandmaster"
