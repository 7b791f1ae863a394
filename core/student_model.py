"""
Student Model - forgetting curves and spaced-repetition scheduling.

Features:
    - Ebbinghaus forgetting curve for predicted retention
    - SM-2 style review scheduling (ease factor + growing intervals)
    - Due-date and optimal-review-time calculation

Forgetting curve:
    retention = 100 * exp(-days / (retention_strength * base_half_life_days))
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from core.config import DEFAULT_CONFIG, EngineConfig
from core.errors import InvalidInput
from core.models import KnowledgeState, ensure_utc, utcnow

SECONDS_PER_DAY = 86400.0


class ReviewOutcome(str, Enum):
    """How a review went; quality is on the SM-2 0-5 scale."""
    FAILED = "failed"
    DIFFICULT = "difficult"
    GOOD = "good"
    EASY = "easy"

    @property
    def quality(self) -> int:
        return _QUALITY[self]

    @property
    def successful(self) -> bool:
        return self.quality >= 3


_QUALITY = {
    ReviewOutcome.FAILED: 1,
    ReviewOutcome.DIFFICULT: 3,
    ReviewOutcome.GOOD: 4,
    ReviewOutcome.EASY: 5,
}

# Retention strength growth per successful outcome
_STRENGTH_GROWTH = {
    ReviewOutcome.DIFFICULT: 1.1,
    ReviewOutcome.GOOD: 1.3,
    ReviewOutcome.EASY: 1.5,
}
_FAILURE_STRENGTH_DECAY = 0.7


def parse_outcome(outcome) -> ReviewOutcome:
    try:
        return ReviewOutcome(outcome)
    except ValueError:
        raise InvalidInput(f"Unknown review outcome: {outcome}") from None


def predict_retention(days: float, retention_strength: float = 1.0,
                      base_half_life_days: float = 10.0) -> float:
    """
    Predicted retention after `days` without review.

    Args:
        days: Elapsed days (negative values are treated as 0)
        retention_strength: Per-state multiplier, > 0
        base_half_life_days: Curve constant, > 0

    Returns:
        Percentage in [0, 100]; exactly 100 at 0 days
    """
    if retention_strength <= 0 or base_half_life_days <= 0:
        raise InvalidInput("retention_strength and base_half_life_days must be positive")
    days = max(0.0, days)
    return 100.0 * math.exp(-days / (retention_strength * base_half_life_days))


def days_between(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_DAY


@dataclass
class DecayPrediction:
    """Current memory state of one knowledge state."""
    concept_id: str
    predicted_retention: float  # percent
    days_since_review: float
    stability_days: float  # strength * half-life
    decay_rate: float  # fraction lost per day at this point

    def to_dict(self) -> Dict:
        return {
            "conceptId": self.concept_id,
            "predictedRetention": round(self.predicted_retention, 1),
            "daysSinceReview": round(self.days_since_review, 1),
            "stabilityDays": round(self.stability_days, 2),
            "decayRate": round(self.decay_rate, 4),
        }


@dataclass
class ReviewSchedule:
    """Result of scheduling the next review after an outcome."""
    concept_id: str
    outcome: ReviewOutcome
    interval_days: int
    next_review_date: datetime
    optimal_window_start: datetime
    optimal_window_end: datetime
    retention_strength: float
    ease_factor: float
    review_count: int

    def to_dict(self) -> Dict:
        return {
            "conceptId": self.concept_id,
            "outcome": self.outcome.value,
            "intervalDays": self.interval_days,
            "nextReviewDate": self.next_review_date.isoformat(),
            "optimalReviewWindow": {
                "start": self.optimal_window_start.isoformat(),
                "end": self.optimal_window_end.isoformat(),
            },
            "retentionStrength": round(self.retention_strength, 3),
            "easeFactor": round(self.ease_factor, 2),
            "reviewCount": self.review_count,
        }


class DecayModel:
    """
    Forgetting-curve model over stored KnowledgeStates.

    The curve starts at the last review (falling back to the last
    assessment, last access, then the last update of the state).
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG):
        self.config = config

    # ==================== Retention ====================

    def reference_time(self, state: KnowledgeState) -> datetime:
        return state.reference_time or state.updated_at

    def stability_days(self, state: KnowledgeState) -> float:
        return self._strength(state.retention_strength) * self.config.base_half_life_days

    def _strength(self, value: float) -> float:
        return min(self.config.max_retention_strength,
                   max(self.config.min_retention_strength, value))

    def retention(self, state: KnowledgeState, now: Optional[datetime] = None) -> float:
        return self.predict_decay(state, now).predicted_retention

    def predict_decay(self, state: KnowledgeState, now: Optional[datetime] = None) -> DecayPrediction:
        """
        Predict current retention for a knowledge state.

        Returns:
            DecayPrediction with retention as a 0-100 percentage
        """
        now = now or utcnow()
        elapsed = max(0.0, days_between(self.reference_time(state), now))
        stability = self.stability_days(state)
        retention = predict_retention(elapsed, self._strength(state.retention_strength),
                                      self.config.base_half_life_days)

        return DecayPrediction(
            concept_id=state.concept_id,
            predicted_retention=retention,
            days_since_review=elapsed,
            stability_days=stability,
            decay_rate=1.0 / stability,
        )

    def days_until_threshold(self, state: KnowledgeState, target: float = None,
                             now: Optional[datetime] = None) -> float:
        """
        Days from now until retention drops to target percent.

        target = 100 * exp(-t / stability)  =>  t = stability * ln(100 / target)

        Negative when the threshold was already crossed.
        """
        target = self.config.review_retention_trigger if target is None else target
        if not 0 < target < 100:
            raise InvalidInput(f"Target retention must be between 0 and 100: {target}")

        now = now or utcnow()
        crossing = self.stability_days(state) * math.log(100.0 / target)
        elapsed = days_between(self.reference_time(state), now)
        return crossing - elapsed

    # ==================== Scheduling ====================

    def next_due(self, state: KnowledgeState) -> Optional[datetime]:
        """Stored next_review, else last review + current interval."""
        if state.next_review is not None:
            return state.next_review
        if state.interval_days > 0:
            return self.reference_time(state) + timedelta(days=state.interval_days)
        return None

    def is_overdue(self, state: KnowledgeState, now: Optional[datetime] = None) -> bool:
        due = self.next_due(state)
        return due is not None and due <= (now or utcnow())

    def schedule_next_review(self, state: KnowledgeState,
                             outcome: ReviewOutcome = ReviewOutcome.GOOD,
                             reviewed_at: Optional[datetime] = None) -> ReviewSchedule:
        """
        SM-2 style schedule after a review.

        Failures reset the repetition count to zero, drop the interval to
        one day and shrink retention strength. Successes grow the interval
        (1 day, 3 days, then previous interval * ease factor) and the
        strength. Recall from a badly decayed memory halves the interval.

        Args:
            state: Knowledge state before the review
            outcome: How the review went
            reviewed_at: Review time (defaults to now)

        Returns:
            ReviewSchedule; the caller persists it
        """
        outcome = parse_outcome(outcome)
        reviewed_at = ensure_utc(reviewed_at or utcnow())
        cfg = self.config

        retention_before = self.retention(state, reviewed_at)

        q = outcome.quality
        ease = state.ease_factor + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ease = max(cfg.min_ease_factor, ease)

        if outcome.successful:
            count = state.review_count + 1
            if count == 1:
                interval = 1.0
            elif count == 2:
                interval = 3.0
            else:
                interval = max(state.interval_days, 1.0) * ease
            if retention_before < 50:
                interval *= 0.5
            strength = state.retention_strength * _STRENGTH_GROWTH[outcome]
        else:
            count = 0
            interval = 1.0
            strength = state.retention_strength * _FAILURE_STRENGTH_DECAY

        interval_days = int(min(cfg.max_interval_days, max(1, round(interval))))
        strength = self._strength(strength)

        next_review = reviewed_at + timedelta(days=interval_days)
        window = timedelta(days=interval_days * cfg.review_window_fraction)

        return ReviewSchedule(
            concept_id=state.concept_id,
            outcome=outcome,
            interval_days=interval_days,
            next_review_date=next_review,
            optimal_window_start=next_review - window,
            optimal_window_end=next_review + window,
            retention_strength=strength,
            ease_factor=ease,
            review_count=count,
        )
