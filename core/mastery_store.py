"""
Mastery Store - per-learner, per-concept knowledge states.

Key Structure:
    state:{user_id}:{concept_id} -> JSON (KnowledgeState)

Writes are plain read-modify-write upserts with last-writer-wins semantics;
no operation here spans more than one state.
"""

from datetime import datetime
from typing import List, Mapping, Optional, Union

from loguru import logger
from pydantic import ValidationError

from core.config import DEFAULT_CONFIG, EngineConfig
from core.errors import InvalidInput, NotFound
from core.graph_db import STATE_PREFIX, validate_record
from core.models import (
    InteractionType,
    KnowledgeState,
    LearningInteraction,
    Misconception,
    MisconceptionSeverity,
    ensure_utc,
    utcnow,
)
from core.student_model import DecayModel, ReviewOutcome, ReviewSchedule, parse_outcome
from redis_store import KeyValueStore, MemoryStore, state_key


class MasteryStore:
    def __init__(self, store: Optional[KeyValueStore] = None,
                 config: EngineConfig = DEFAULT_CONFIG):
        self.store = store if store is not None else MemoryStore()
        self.config = config
        self.decay = DecayModel(config)

    # ==================== Read ====================

    def get_knowledge_state(self, user_id: str, concept_id: str) -> Optional[KnowledgeState]:
        raw = self.store.get(state_key(user_id, concept_id))
        if raw is None:
            return None
        try:
            return KnowledgeState.model_validate(raw)
        except ValidationError as e:
            raise InvalidInput(f"Corrupt knowledge state {user_id}:{concept_id}: {e}") from e

    def require_knowledge_state(self, user_id: str, concept_id: str) -> KnowledgeState:
        state = self.get_knowledge_state(user_id, concept_id)
        if state is None:
            raise NotFound("KnowledgeState", f"{user_id}:{concept_id}")
        return state

    def get_learner_states(self, user_id: str) -> List[KnowledgeState]:
        """All knowledge states of one learner, ordered by concept ID."""
        states = []
        for key, raw in self.store.scan(f"{STATE_PREFIX}{user_id}:"):
            try:
                states.append(KnowledgeState.model_validate(raw))
            except ValidationError:
                logger.warning("Skipping corrupt knowledge state at {}", key)
        return states

    # ==================== Write ====================

    def set_knowledge_state(self, user_id: str, concept_id: str,
                            state: Optional[Union[KnowledgeState, Mapping]] = None,
                            touch: bool = True, **fields) -> KnowledgeState:
        """
        Upsert a knowledge state; given fields merge over the stored ones.

        Args:
            user_id: Learner ID
            concept_id: Concept ID
            state: Full or partial state
            touch: Stamp last_accessed with the current time
            **fields: Additional fields, e.g. mastery=85

        Returns:
            The stored state
        """
        updates = {}
        if isinstance(state, KnowledgeState):
            updates.update(state.model_dump())
        elif state is not None:
            updates.update(state)
        updates.update(fields)

        now = utcnow()
        existing = self.get_knowledge_state(user_id, concept_id)
        merged = existing.model_dump() if existing else {}
        merged.update(updates)
        merged["user_id"] = user_id
        merged["concept_id"] = concept_id

        if existing is None and not merged.get("first_seen"):
            merged["first_seen"] = now
        if touch:
            merged["last_accessed"] = now
        merged["updated_at"] = now

        stored = validate_record(KnowledgeState, merged)
        self.store.put(state_key(user_id, concept_id), stored.to_json_dict())
        return stored

    def delete_knowledge_state(self, user_id: str, concept_id: str) -> bool:
        return self.store.delete(state_key(user_id, concept_id))

    # ==================== Misconceptions ====================

    def add_misconception(self, user_id: str, concept_id: str, description: str,
                          severity: Union[str, MisconceptionSeverity] = MisconceptionSeverity.MODERATE
                          ) -> Misconception:
        state = self.require_knowledge_state(user_id, concept_id)
        misconception = validate_record(Misconception, {
            "description": description,
            "severity": severity,
        })
        self.set_knowledge_state(
            user_id, concept_id,
            misconceptions=state.misconceptions + [misconception],
        )
        return misconception

    def resolve_misconception(self, user_id: str, concept_id: str, misconception_id: str,
                              resolved_at: Optional[datetime] = None) -> Misconception:
        state = self.require_knowledge_state(user_id, concept_id)
        for i, m in enumerate(state.misconceptions):
            if m.id == misconception_id:
                resolved = m.model_copy(update={"resolved": ensure_utc(resolved_at or utcnow())})
                updated = list(state.misconceptions)
                updated[i] = resolved
                self.set_knowledge_state(user_id, concept_id, misconceptions=updated)
                return resolved
        raise NotFound("Misconception", misconception_id)

    # ==================== Interactions ====================

    def record_interaction(self, user_id: str, concept_id: str,
                           type: Union[str, InteractionType], duration: float = 0,
                           score: Optional[float] = None, bloom_level: Optional[int] = None,
                           notes: Optional[str] = None,
                           timestamp: Optional[datetime] = None) -> KnowledgeState:
        """
        Append an interaction; scored quizzes and reviews also update mastery.

        Mastery moves to a 70/30 blend of the old value and the score, and the
        highest demonstrated Bloom level is kept. The first score on a state
        with no mastery yet (unscored lessons only) is taken as-is.
        """
        interaction = validate_record(LearningInteraction, {
            "timestamp": timestamp or utcnow(),
            "type": type,
            "duration": duration,
            "score": score,
            "bloom_level": bloom_level,
            "notes": notes,
        })

        existing = self.get_knowledge_state(user_id, concept_id)
        updates = {
            "interactions": (existing.interactions if existing else []) + [interaction],
        }

        if interaction.score is not None and interaction.type in (InteractionType.QUIZ, InteractionType.REVIEW):
            if _has_assessed_mastery(existing):
                updates["mastery"] = round(0.7 * existing.mastery + 0.3 * interaction.score, 2)
            else:
                updates["mastery"] = interaction.score
            updates["last_assessed"] = interaction.timestamp

        if interaction.bloom_level is not None:
            current = existing.bloom_level if existing else 1
            updates["bloom_level"] = max(current, interaction.bloom_level)

        return self.set_knowledge_state(user_id, concept_id, **updates)

    def record_review(self, user_id: str, concept_id: str,
                      outcome: Union[str, ReviewOutcome] = ReviewOutcome.GOOD,
                      reviewed_at: Optional[datetime] = None) -> ReviewSchedule:
        """Apply the spaced-repetition schedule for a review and persist it."""
        state = self.require_knowledge_state(user_id, concept_id)
        reviewed_at = ensure_utc(reviewed_at or utcnow())
        schedule = self.decay.schedule_next_review(state, parse_outcome(outcome), reviewed_at)

        self.set_knowledge_state(
            user_id, concept_id,
            last_reviewed=reviewed_at,
            next_review=schedule.next_review_date,
            interval_days=schedule.interval_days,
            ease_factor=schedule.ease_factor,
            retention_strength=schedule.retention_strength,
            review_count=schedule.review_count,
        )
        logger.debug("Review {}:{} {} -> next in {}d", user_id, concept_id,
                     schedule.outcome.value, schedule.interval_days)
        return schedule


def _has_assessed_mastery(state: Optional[KnowledgeState]) -> bool:
    """True once a state carries mastery from a score or an explicit seed."""
    if state is None:
        return False
    if state.mastery > 0:
        return True
    return any(i.score is not None for i in state.interactions)
