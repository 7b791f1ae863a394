"""
Gap Detector - four categories of knowledge gaps for one learner.

Gap types:
    missing        no knowledge state, but the prerequisites are satisfied
    partial        knowledge state with mastery below the partial threshold
    forgotten      was mastered, predicted retention has since decayed
    misconceptions unresolved misconceptions recorded on the state

Detection is best-effort over a scope: states that point at deleted
concepts are skipped with a warning.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from loguru import logger

from core.config import DEFAULT_CONFIG, EngineConfig
from core.errors import InvalidInput
from core.graph_db import EducationGraphDB
from core.knowledge_graph import KnowledgeGraph
from core.mastery_store import MasteryStore
from core.models import ConceptNode, KnowledgeState, Misconception, MisconceptionSeverity, utcnow
from core.student_model import DecayModel


class GapType(str, Enum):
    MISSING = "missing"
    PARTIAL = "partial"
    FORGOTTEN = "forgotten"
    MISCONCEPTIONS = "misconceptions"


class GapSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SEVERITY_RANK = {GapSeverity.LOW: 0, GapSeverity.MEDIUM: 1, GapSeverity.HIGH: 2}

ALL = "all"


def parse_gap_type(value: Union[str, GapType, None]) -> Optional[GapType]:
    """None / "all" means every type."""
    if value is None or value == ALL:
        return None
    try:
        return GapType(value)
    except ValueError:
        raise InvalidInput(f"Unknown gap type: {value}") from None


# ==================== Gap Records ====================

@dataclass
class KnowledgeGap:
    concept: ConceptNode
    gap_type: GapType
    severity: GapSeverity
    reason: str

    @property
    def concept_id(self) -> str:
        return self.concept.concept_id

    def to_dict(self) -> Dict:
        return {
            "conceptId": self.concept_id,
            "name": self.concept.display_name,
            "type": self.gap_type.value,
            "severity": self.severity.value,
            "reason": self.reason,
        }


@dataclass
class MissingGap(KnowledgeGap):
    blocks: List[str] = field(default_factory=list)  # transitive dependents

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data["blocks"] = list(self.blocks)
        return data


@dataclass
class PartialGap(KnowledgeGap):
    mastery: float = 0.0
    root_cause: Optional[str] = None  # earliest weak prerequisite

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data["mastery"] = self.mastery
        if self.root_cause:
            data["rootCause"] = self.root_cause
        return data


@dataclass
class ForgottenGap(KnowledgeGap):
    mastery: float = 0.0
    predicted_retention: float = 0.0
    days_since_review: float = 0.0

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data.update({
            "mastery": self.mastery,
            "predictedRetention": round(self.predicted_retention, 1),
            "daysSinceReview": round(self.days_since_review, 1),
        })
        return data


@dataclass
class MisconceptionGap(KnowledgeGap):
    misconceptions: List[Misconception] = field(default_factory=list)

    @property
    def descriptions(self) -> List[str]:
        return [m.description for m in self.misconceptions]

    @property
    def max_severity(self) -> MisconceptionSeverity:
        order = list(MisconceptionSeverity)
        return max((m.severity for m in self.misconceptions), key=order.index,
                   default=MisconceptionSeverity.MINOR)

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data["misconceptions"] = [
            {"id": m.id, "description": m.description, "severity": m.severity.value}
            for m in self.misconceptions
        ]
        return data


@dataclass
class GapReport:
    user_id: str
    missing: List[MissingGap] = field(default_factory=list)
    partial: List[PartialGap] = field(default_factory=list)
    forgotten: List[ForgottenGap] = field(default_factory=list)
    misconceptions: List[MisconceptionGap] = field(default_factory=list)
    critical_retention: float = 40.0

    @property
    def total(self) -> int:
        return len(self.missing) + len(self.partial) + len(self.forgotten) + len(self.misconceptions)

    @property
    def critical(self) -> int:
        """Badly decayed memories plus concepts carrying a major misconception."""
        decayed = sum(1 for g in self.forgotten if g.predicted_retention < self.critical_retention)
        major = sum(1 for g in self.misconceptions if g.max_severity == MisconceptionSeverity.MAJOR)
        return decayed + major

    def by_type(self) -> Dict[str, int]:
        return {
            GapType.MISSING.value: len(self.missing),
            GapType.PARTIAL.value: len(self.partial),
            GapType.FORGOTTEN.value: len(self.forgotten),
            GapType.MISCONCEPTIONS.value: len(self.misconceptions),
        }

    def all_gaps(self) -> List[KnowledgeGap]:
        return [*self.misconceptions, *self.missing, *self.partial, *self.forgotten]

    def summary(self) -> Dict:
        return {"total": self.total, "critical": self.critical, "byType": self.by_type()}

    def to_dict(self) -> Dict:
        return {
            "missing": [g.to_dict() for g in self.missing],
            "partial": [g.to_dict() for g in self.partial],
            "forgotten": [g.to_dict() for g in self.forgotten],
            "misconceptions": [g.to_dict() for g in self.misconceptions],
            "summary": self.summary(),
        }


# ==================== Detector ====================

class GapDetector:
    """
    Finds missing, partial, forgotten and misconceived knowledge.

    Usage:
        report = GapDetector(db).detect_gaps("learner-1")
        report.summary()  # {"total": ..., "critical": ..., "byType": {...}}
    """

    def __init__(self, db: EducationGraphDB, mastery: Optional[MasteryStore] = None,
                 config: Optional[EngineConfig] = None):
        self.db = db
        self.config = config or db.config or DEFAULT_CONFIG
        self.mastery = mastery or MasteryStore(db.store, self.config)
        self.decay = DecayModel(self.config)

    def detect_gaps(self, user_id: str, gap_type: Union[str, GapType, None] = ALL,
                    scope: Optional[Iterable[str]] = None, domain: Optional[str] = None,
                    now: Optional[datetime] = None,
                    graph: Optional[KnowledgeGraph] = None) -> GapReport:
        """
        Detect knowledge gaps for a learner.

        Args:
            user_id: Learner ID
            gap_type: One type, or "all"
            scope: Concept IDs to analyse (default: every concept)
            domain: Only concepts in this domain
            now: Reference time for decay (default: now)
            graph: Pre-built graph to reuse

        Returns:
            GapReport; summary total always equals the sum of the four lists
        """
        wanted = parse_gap_type(gap_type)
        self.db.require_learner(user_id)
        now = now or utcnow()
        graph = graph or KnowledgeGraph.from_db(self.db, self.config)

        states: Dict[str, KnowledgeState] = {}
        for state in self.mastery.get_learner_states(user_id):
            if state.concept_id not in graph:
                logger.warning("Knowledge state {}:{} references a deleted concept; skipping",
                               user_id, state.concept_id)
                continue
            states[state.concept_id] = state

        concept_ids = self._scope(graph, scope, domain)
        report = GapReport(user_id=user_id, critical_retention=self.config.critical_retention)

        def want(t: GapType) -> bool:
            return wanted is None or wanted == t

        for cid in concept_ids:
            concept = graph.concepts[cid]
            state = states.get(cid)

            if state is None:
                if want(GapType.MISSING):
                    gap = self._missing(graph, concept, states)
                    if gap is not None:
                        report.missing.append(gap)
                continue

            if want(GapType.PARTIAL) and state.mastery < self.config.partial_threshold:
                report.partial.append(self._partial(graph, concept, state, states))

            if want(GapType.FORGOTTEN) and state.mastery >= self.config.forgotten_mastery_floor:
                gap = self._forgotten(concept, state, now)
                if gap is not None:
                    report.forgotten.append(gap)

            if want(GapType.MISCONCEPTIONS):
                active = state.active_misconceptions
                if active:
                    report.misconceptions.append(MisconceptionGap(
                        concept=concept,
                        gap_type=GapType.MISCONCEPTIONS,
                        severity=GapSeverity.HIGH,
                        reason=f"Has {len(active)} unresolved misconception(s) that may impede learning",
                        misconceptions=active,
                    ))

        report.forgotten.sort(key=lambda g: (g.predicted_retention, g.concept_id))
        logger.debug("Gaps for {}: {}", user_id, report.by_type())
        return report

    def _scope(self, graph: KnowledgeGraph, scope: Optional[Iterable[str]],
               domain: Optional[str]) -> List[str]:
        if scope is None:
            ids = graph.concept_ids()
        else:
            ids = []
            for cid in sorted(set(scope)):
                if cid not in graph:
                    logger.warning("Gap scope names unknown concept {}; skipping", cid)
                    continue
                ids.append(cid)
        if domain is not None:
            ids = [cid for cid in ids if graph.concepts[cid].domain == domain]
        return graph.dependency_order(ids)

    # ==================== Per-Type Rules ====================

    def _missing(self, graph: KnowledgeGraph, concept: ConceptNode,
                 states: Dict[str, KnowledgeState]) -> Optional[MissingGap]:
        cid = concept.concept_id
        prereqs = graph.direct_prerequisites(cid)
        threshold = self.config.prerequisite_mastery_threshold

        if states:
            unmet = [p for p in prereqs if p not in states or states[p].mastery < threshold]
            if unmet:
                return None
            reason = ("No prerequisites - ready to start" if not prereqs
                      else "Prerequisites are mastered but this concept has not been started")
        else:
            # Nothing learned yet: the whole graph is a gap
            reason = "Not started yet"

        blocks = graph.dependency_order(graph.descendants(cid))
        return MissingGap(
            concept=concept,
            gap_type=GapType.MISSING,
            severity=GapSeverity.HIGH,
            reason=reason,
            blocks=blocks,
        )

    def _partial(self, graph: KnowledgeGraph, concept: ConceptNode, state: KnowledgeState,
                 states: Dict[str, KnowledgeState]) -> PartialGap:
        cfg = self.config
        severity = GapSeverity.HIGH if state.mastery < cfg.partial_high_severity_below else GapSeverity.MEDIUM

        mastery_map = {cid: s.mastery for cid, s in states.items()}
        root = graph.trace_root_cause(concept.concept_id, mastery_map)

        return PartialGap(
            concept=concept,
            gap_type=GapType.PARTIAL,
            severity=severity,
            reason=(f"Partially mastered at {state.mastery:g}% - needs reinforcement "
                    f"to reach {cfg.partial_threshold:g}%"),
            mastery=state.mastery,
            root_cause=root if root != concept.concept_id else None,
        )

    def _forgotten(self, concept: ConceptNode, state: KnowledgeState,
                   now: datetime) -> Optional[ForgottenGap]:
        prediction = self.decay.predict_decay(state, now)
        retention = prediction.predicted_retention
        if retention >= self.config.forgotten_retention_threshold:
            return None

        days = prediction.days_since_review
        if retention < 30 or days >= 60:
            severity = GapSeverity.HIGH
        elif retention < 45:
            severity = GapSeverity.MEDIUM
        else:
            severity = GapSeverity.LOW

        return ForgottenGap(
            concept=concept,
            gap_type=GapType.FORGOTTEN,
            severity=severity,
            reason=f"Last reviewed {days:.0f} days ago - predicted retention is {retention:.0f}%",
            mastery=state.mastery,
            predicted_retention=retention,
            days_since_review=days,
        )
