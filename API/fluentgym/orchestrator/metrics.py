from __future__ import annotations

import math

from fluentgym.schemas.session import Rating, SessionMetrics, TurnRating

EXPECTED_WORDS_PER_MINUTE = 120
WPM_PER_HESITATION = 20

# (minimum latency ms, penalty); first match wins.
_LATENCY_PENALTIES: list[tuple[float, int]] = [(3000, 50), (2000, 20), (1000, 10)]
_FAST_BONUS_BELOW_MS = 500
_FAST_BONUS = 10
_HESITATION_PENALTY = 5


def rate_latency(latency_ms: float) -> Rating:
    if latency_ms < 1000:
        return "excellent"
    if latency_ms < 2000:
        return "good"
    if latency_ms < 3000:
        return "okay"
    return "slow"


def score_turn(latency_ms: float, hesitation_count: int) -> int:
    score = 100
    for threshold, penalty in _LATENCY_PENALTIES:
        if latency_ms >= threshold:
            score -= penalty
            break
    score -= _HESITATION_PENALTY * hesitation_count
    if latency_ms < _FAST_BONUS_BELOW_MS:
        score += _FAST_BONUS
    return max(0, min(100, score))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_hesitations(speech_duration_ms: float, word_count: int) -> int:
    """Hesitations implied by speaking rate: one per 20 WPM below a 120 WPM learner target."""
    if speech_duration_ms <= 0 or word_count <= 0:
        return 0
    words_per_minute = word_count / (speech_duration_ms / 1000.0) * 60.0
    return max(0, math.floor((EXPECTED_WORDS_PER_MINUTE - words_per_minute) / WPM_PER_HESITATION))


class MetricsAggregator:
    """Running fluency metrics for one session; O(1) per recorded turn."""

    def __init__(self, metrics: SessionMetrics | None = None):
        self.metrics = metrics if metrics is not None else SessionMetrics()
        self._score_sum = 0
        self.frozen = False

    def record_turn(self, latency_ms: float, hesitation_count: int = 0) -> TurnRating:
        if self.frozen:
            raise RuntimeError("metrics are frozen")
        latency_ms = max(0.0, float(latency_ms))
        hesitation_count = max(0, int(hesitation_count))
        rating = rate_latency(latency_ms)
        score = score_turn(latency_ms, hesitation_count)

        m = self.metrics
        m.turn_count += 1
        m.average_latency_ms += (latency_ms - m.average_latency_ms) / m.turn_count
        m.hesitation_total += hesitation_count
        setattr(m.ratings, rating, getattr(m.ratings, rating) + 1)
        self._score_sum += score
        m.fluency_score = max(0, min(100, round_half_up(self._score_sum / m.turn_count)))
        return TurnRating(latency_ms=latency_ms, hesitation_count=hesitation_count, rating=rating, score=score)

    def freeze(self) -> SessionMetrics:
        self.frozen = True
        return self.snapshot()

    def snapshot(self) -> SessionMetrics:
        return self.metrics.model_copy(deep=True)
