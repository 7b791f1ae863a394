"""
Review Queue - spaced-repetition reviews ordered by urgency.

A learned concept (mastery >= review floor) enters the queue when its
predicted retention falls below the review trigger or its scheduled review
date has passed. Urgent items come first, then lowest retention.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from loguru import logger

from core.config import DEFAULT_CONFIG, EngineConfig
from core.errors import InvalidInput
from core.graph_db import EducationGraphDB
from core.mastery_store import MasteryStore
from core.models import ConceptNode, KnowledgeState, utcnow
from core.student_model import DecayModel, days_between


class ReviewPriority(str, Enum):
    URGENT = "urgent"
    NORMAL = "normal"
    LOW = "low"


PRIORITY_RANK = {ReviewPriority.URGENT: 0, ReviewPriority.NORMAL: 1, ReviewPriority.LOW: 2}


@dataclass
class ReviewItem:
    concept: ConceptNode
    priority: ReviewPriority
    mastery: float
    predicted_retention: float
    days_since_review: float
    next_review_date: Optional[datetime]
    overdue: bool
    reason: str

    @property
    def concept_id(self) -> str:
        return self.concept.concept_id

    def to_dict(self) -> Dict:
        return {
            "conceptId": self.concept_id,
            "name": self.concept.display_name,
            "priority": self.priority.value,
            "mastery": self.mastery,
            "predictedRetention": round(self.predicted_retention),
            "daysSinceReview": round(self.days_since_review, 1),
            "nextReviewDate": self.next_review_date.isoformat() if self.next_review_date else None,
            "overdue": self.overdue,
            "reason": self.reason,
        }


@dataclass
class ReviewQueueResult:
    user_id: str
    queue: List[ReviewItem]
    total_items: int
    urgent: int
    normal: int
    low: int
    overdue: int

    def stats(self) -> Dict[str, int]:
        return {
            "totalItems": self.total_items,
            "urgent": self.urgent,
            "normal": self.normal,
            "low": self.low,
            "overdue": self.overdue,
        }

    def to_dict(self) -> Dict:
        return {"queue": [item.to_dict() for item in self.queue], "stats": self.stats()}


class ReviewQueue:
    """
    Builds a learner's review queue from decay predictions and schedules.

    Usage:
        result = ReviewQueue(db).build("learner-1", limit=10)
    """

    def __init__(self, db: EducationGraphDB, mastery: Optional[MasteryStore] = None,
                 config: Optional[EngineConfig] = None):
        self.db = db
        self.config = config or db.config or DEFAULT_CONFIG
        self.mastery = mastery or MasteryStore(db.store, self.config)
        self.decay = DecayModel(self.config)

    def build(self, user_id: str, limit: Optional[int] = None, include_not_due: bool = False,
              now: Optional[datetime] = None) -> ReviewQueueResult:
        """
        Prioritized review queue.

        Args:
            user_id: Learner ID
            limit: Max items returned (stats count every eligible item)
            include_not_due: Also list learned concepts that are not due yet
            now: Reference time (default: now)
        """
        limit = self.config.default_review_limit if limit is None else limit
        if limit < 0:
            raise InvalidInput(f"limit must be >= 0: {limit}")
        self.db.require_learner(user_id)
        now = now or utcnow()

        items: List[ReviewItem] = []
        for state in self.mastery.get_learner_states(user_id):
            if state.mastery < self.config.review_mastery_floor:
                continue
            concept = self.db.get_concept(state.concept_id)
            if concept is None:
                logger.warning("Knowledge state {}:{} references a deleted concept; skipping",
                               user_id, state.concept_id)
                continue
            item = self._item(concept, state, now, include_not_due)
            if item is not None:
                items.append(item)

        items.sort(key=lambda i: (PRIORITY_RANK[i.priority], i.predicted_retention, i.concept_id))

        def count(priority: ReviewPriority) -> int:
            return sum(1 for i in items if i.priority == priority)

        return ReviewQueueResult(
            user_id=user_id,
            queue=items[:limit],
            total_items=len(items),
            urgent=count(ReviewPriority.URGENT),
            normal=count(ReviewPriority.NORMAL),
            low=count(ReviewPriority.LOW),
            overdue=sum(1 for i in items if i.overdue),
        )

    def _item(self, concept: ConceptNode, state: KnowledgeState, now: datetime,
              include_not_due: bool) -> Optional[ReviewItem]:
        cfg = self.config
        prediction = self.decay.predict_decay(state, now)
        retention = prediction.predicted_retention

        due = self.decay.next_due(state)
        overdue = due is not None and due <= now
        if not (include_not_due or overdue or retention < cfg.review_retention_trigger):
            return None

        misconceptions = len(state.active_misconceptions)
        days_overdue = days_between(due, now) if overdue else 0.0
        long_overdue = overdue and state.interval_days > 0 and days_overdue >= state.interval_days

        if retention < cfg.critical_retention or misconceptions or long_overdue:
            priority = ReviewPriority.URGENT
        elif retention < 60 or overdue:
            priority = ReviewPriority.NORMAL
        else:
            priority = ReviewPriority.LOW

        if overdue:
            reason = f"Overdue for review - retention at {retention:.0f}%"
        elif retention < 50:
            reason = f"Low retention ({retention:.0f}%) - review soon"
        elif misconceptions:
            reason = f"Has {misconceptions} misconception(s) to address"
        elif retention < cfg.review_retention_trigger:
            reason = f"Retention fading ({retention:.0f}%)"
        else:
            reason = "Scheduled review to maintain mastery"

        return ReviewItem(
            concept=concept,
            priority=priority,
            mastery=state.mastery,
            predicted_retention=retention,
            days_since_review=prediction.days_since_review,
            next_review_date=due,
            overdue=overdue,
            reason=reason,
        )
