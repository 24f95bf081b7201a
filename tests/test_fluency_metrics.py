from __future__ import annotations

import pytest

from fluentgym.orchestrator.metrics import (
    MetricsAggregator,
    estimate_hesitations,
    rate_latency,
    score_turn,
)


@pytest.mark.parametrize(
    "latency_ms,hesitations,expected",
    [
        (3500, 0, 50),
        (3500, 3, 35),
        (400, 0, 100),
        (1500, 1, 85),
        (2500, 0, 80),
        (999, 0, 100),
        (3000, 12, 0),
    ],
)
def test_turn_score_formula(latency_ms, hesitations, expected):
    assert score_turn(latency_ms, hesitations) == expected


def test_fast_bonus_applies_after_hesitation_penalty():
    # 100 - 10 + 10, clamped back into range.
    assert score_turn(450, 2) == 100
    assert score_turn(450, 4) == 90


def test_rating_bands():
    assert rate_latency(0) == "excellent"
    assert rate_latency(999) == "excellent"
    assert rate_latency(1000) == "good"
    assert rate_latency(1999) == "good"
    assert rate_latency(2000) == "okay"
    assert rate_latency(2999) == "okay"
    assert rate_latency(3000) == "slow"


def test_session_score_is_rounded_mean_of_turn_scores():
    aggregator = MetricsAggregator()
    scores = [aggregator.record_turn(*args).score for args in [(400, 0), (1500, 1), (3500, 0)]]
    assert scores == [100, 85, 50]
    metrics = aggregator.snapshot()
    assert metrics.fluency_score == 78
    assert metrics.turn_count == 3
    assert metrics.hesitation_total == 1
    assert metrics.average_latency_ms == pytest.approx((400 + 1500 + 3500) / 3)
    assert (metrics.ratings.excellent, metrics.ratings.good, metrics.ratings.okay, metrics.ratings.slow) == (1, 1, 0, 1)


def test_half_scores_round_up():
    aggregator = MetricsAggregator()
    aggregator.record_turn(2500, 1)  # 75
    aggregator.record_turn(2500, 0)  # 80
    assert aggregator.metrics.fluency_score == 78


def test_empty_session_reports_zero_baseline():
    metrics = MetricsAggregator().snapshot()
    assert metrics.turn_count == 0
    assert metrics.fluency_score == 0
    assert metrics.average_latency_ms == 0.0
    assert metrics.hesitation_total == 0


def test_frozen_aggregator_rejects_updates():
    aggregator = MetricsAggregator()
    aggregator.record_turn(800, 0)
    frozen = aggregator.freeze()
    with pytest.raises(RuntimeError):
        aggregator.record_turn(800, 0)
    assert frozen.turn_count == 1


def test_hesitations_estimated_from_speaking_rate():
    # 10 words in 10 s is 60 WPM: three steps of 20 below the 120 WPM target.
    assert estimate_hesitations(10_000, 10) == 3
    assert estimate_hesitations(3_000, 10) == 0
    assert estimate_hesitations(0, 10) == 0
