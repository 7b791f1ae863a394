"""
Remediation Engine - the treatment plan for a learner's knowledge gaps.

Diagnosis (GapDetector) -> Treatment plan (ordered steps) -> Follow-up (review queue)

Ordering policy:
    tier 0  misconceptions, and missing concepts that block many dependents
    tier 1  partial mastery
    tier 2  forgotten knowledge
    tier 3  other missing concepts

Within the plan a concept's step never precedes the steps for its own
prerequisites, whatever their tier.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import networkx as nx
from loguru import logger

from core.config import DEFAULT_CONFIG, EngineConfig
from core.errors import GraphInconsistency, InvalidInput
from core.graph_db import EducationGraphDB
from core.knowledge_graph import KnowledgeGraph
from core.mastery_store import MasteryStore
from core.models import ConceptNode, MisconceptionSeverity
from engines.gap_detector import (
    SEVERITY_RANK,
    ForgottenGap,
    GapDetector,
    GapReport,
    GapSeverity,
    GapType,
    KnowledgeGap,
    MisconceptionGap,
    MissingGap,
    PartialGap,
    parse_gap_type,
)
from engines.zpd_engine import PsychometricAdjustments, ScaffoldingStrategy, ScaffoldingType, ZPDEngine


class StepType(str, Enum):
    """What the learner does in a remediation step."""
    CORRECT_MISCONCEPTION = "correct_misconception"
    REVIEW = "review"
    RELEARN = "relearn"
    NEW_LEARNING = "new_learning"


_MISCONCEPTION_WEIGHT = {
    MisconceptionSeverity.MINOR: 1,
    MisconceptionSeverity.MODERATE: 2,
    MisconceptionSeverity.MAJOR: 3,
}

PRIORITY_FOCUS = {
    GapType.MISCONCEPTIONS: "Addressing misconceptions first to prevent learning interference",
    GapType.FORGOTTEN: "Recovering forgotten knowledge before it decays further",
    GapType.PARTIAL: "Strengthening partial mastery to complete understanding",
    GapType.MISSING: "Building on prerequisites with new concepts",
}
NO_GAPS_FOCUS = "No significant gaps detected - maintain through spaced review"

# Tie-break when two gap types are equally dominant
_FOCUS_PRECEDENCE = [GapType.MISCONCEPTIONS, GapType.FORGOTTEN, GapType.PARTIAL, GapType.MISSING]


@dataclass
class RemediationStep:
    order: int
    concept: ConceptNode
    gap_type: GapType
    step_type: StepType
    action: str
    estimated_time: int  # minutes
    priority: float
    tier: int
    severity: GapSeverity
    scaffolding: List[ScaffoldingStrategy] = field(default_factory=list)

    @property
    def concept_id(self) -> str:
        return self.concept.concept_id

    @property
    def key(self) -> Tuple[str, str]:
        return self.concept_id, self.gap_type.value

    def to_dict(self) -> Dict:
        return {
            "order": self.order,
            "conceptId": self.concept_id,
            "name": self.concept.display_name,
            "gapType": self.gap_type.value,
            "type": self.step_type.value,
            "action": self.action,
            "estimatedTime": self.estimated_time,
            "priority": round(self.priority, 2),
            "severity": self.severity.value,
            "scaffolding": [s.to_dict() for s in self.scaffolding],
        }


@dataclass
class RemediationPlan:
    steps: List[RemediationStep]
    priority_focus: str

    @property
    def estimated_total_time(self) -> int:
        return sum(step.estimated_time for step in self.steps)

    def to_dict(self) -> Dict:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "estimatedTotalTime": self.estimated_total_time,
            "priorityFocus": self.priority_focus,
        }


@dataclass
class RemediationResult:
    user_id: str
    plan: RemediationPlan
    gaps: GapReport

    def to_dict(self) -> Dict:
        return {"plan": self.plan.to_dict(), "gaps": self.gaps.summary()}


class RemediationPlanner:
    """
    Turns a gap report into an ordered, prerequisite-respecting plan.

    Think of it as a doctor:
    1. Examine symptoms (gap detection)
    2. Prioritize treatment (tiers, severity)
    3. Respect dependencies (prerequisites first)
    4. Estimate the course of treatment (minutes per step)
    """

    def __init__(self, db: EducationGraphDB, mastery: Optional[MasteryStore] = None,
                 config: Optional[EngineConfig] = None):
        self.db = db
        self.config = config or db.config or DEFAULT_CONFIG
        self.mastery = mastery or MasteryStore(db.store, self.config)
        self.detector = GapDetector(db, self.mastery, self.config)
        self.zpd = ZPDEngine(db, self.mastery, self.config)

    def generate_plan(self, user_id: str, max_steps: int = 10,
                      focus: Union[str, GapType, None] = None,
                      now: Optional[datetime] = None) -> RemediationResult:
        """
        Generate a remediation plan for a learner's gaps.

        Args:
            user_id: Learner ID
            max_steps: Max steps in the plan
            focus: Restrict the plan to one gap type
            now: Reference time for decay

        Returns:
            RemediationResult with the plan and the full gap report
        """
        if max_steps < 0:
            raise InvalidInput(f"max_steps must be >= 0: {max_steps}")
        focus_type = parse_gap_type(focus)
        profile = self.db.require_learner(user_id)

        graph = KnowledgeGraph.from_db(self.db, self.config)
        graph.assert_acyclic()

        gaps = self.detector.detect_gaps(user_id, now=now, graph=graph)
        adjustments = self.zpd.adjust_for_psychometrics(profile)

        steps = [
            self._step(gap, adjustments)
            for gap in gaps.all_gaps()
            if focus_type is None or gap.gap_type == focus_type
        ]
        ordered = self._order(steps, graph)[:max_steps]
        for i, step in enumerate(ordered, start=1):
            step.order = i

        plan = RemediationPlan(steps=ordered, priority_focus=self._priority_focus(ordered))
        logger.debug("Remediation plan for {}: {} steps, {} min", user_id,
                     len(ordered), plan.estimated_total_time)
        return RemediationResult(user_id=user_id, plan=plan, gaps=gaps)

    # ==================== Steps ====================

    def _step(self, gap: KnowledgeGap, adjustments: PsychometricAdjustments) -> RemediationStep:
        concept = gap.concept
        difficulty = concept.difficulty.absolute
        top = adjustments.scaffolding_strategies[:3]

        if isinstance(gap, MisconceptionGap):
            weight = max(_MISCONCEPTION_WEIGHT[m.severity] for m in gap.misconceptions)
            return self._make(gap, StepType.CORRECT_MISCONCEPTION, tier=0,
                              priority=100 + weight * 10,
                              minutes=15 + weight * 10,
                              action=(f"Address {len(gap.misconceptions)} misconception(s): "
                                      + "; ".join(gap.descriptions)),
                              scaffolding=top)

        if isinstance(gap, PartialGap):
            progress = min(1.0, gap.mastery / self.config.partial_threshold)
            return self._make(gap, StepType.RELEARN, tier=1,
                              priority=60 + (1 - progress) * 20,
                              minutes=max(1, round(difficulty * 5 * (1 - progress))),
                              action=(f"Strengthen mastery from {gap.mastery:g}% "
                                      f"to {self.config.partial_threshold:g}%"),
                              scaffolding=top)

        if isinstance(gap, ForgottenGap):
            repetition = ScaffoldingStrategy(ScaffoldingType.REPETITION, "Reinforce fading memory", 9)
            rest = [s for s in adjustments.scaffolding_strategies if s.type != ScaffoldingType.REPETITION]
            return self._make(gap, StepType.REVIEW, tier=2,
                              priority=80 + (100 - gap.predicted_retention) / 10,
                              minutes=10 + round(difficulty * 2),
                              action=(f"Review to restore retention from {gap.predicted_retention:.0f}% "
                                      f"to {self.config.prerequisite_mastery_threshold:g}%"),
                              scaffolding=[repetition] + rest[:2])

        if isinstance(gap, MissingGap):
            high_impact = len(gap.blocks) >= self.config.high_blocking_impact
            action = "Learn new concept - prerequisites are ready"
            if high_impact:
                action += f" (unblocks {len(gap.blocks)} concepts)"
            return self._make(gap, StepType.NEW_LEARNING, tier=0 if high_impact else 3,
                              priority=(90 + len(gap.blocks)) if high_impact else 40 - difficulty,
                              minutes=self.zpd.estimate_mastery_time(concept, adjustments),
                              action=action,
                              scaffolding=self.zpd.strategies_for_concept(concept, adjustments))

        raise InvalidInput(f"Unknown gap record: {type(gap).__name__}")

    def _make(self, gap: KnowledgeGap, step_type: StepType, tier: int, priority: float,
              minutes: int, action: str, scaffolding: List[ScaffoldingStrategy]) -> RemediationStep:
        return RemediationStep(
            order=0,
            concept=gap.concept,
            gap_type=gap.gap_type,
            step_type=step_type,
            action=action,
            estimated_time=int(minutes),
            priority=priority,
            tier=tier,
            severity=gap.severity,
            scaffolding=list(scaffolding),
        )

    # ==================== Ordering ====================

    def _order(self, steps: List[RemediationStep], graph: KnowledgeGraph) -> List[RemediationStep]:
        """Tier/priority order, constrained so prerequisites' steps come first."""
        by_key = {step.key: step for step in steps}
        dag = nx.DiGraph()
        dag.add_nodes_from(by_key)

        by_concept: Dict[str, List[RemediationStep]] = {}
        for step in steps:
            by_concept.setdefault(step.concept_id, []).append(step)

        for concept_id, dependents in by_concept.items():
            for ancestor in graph.ancestors(concept_id):
                for before in by_concept.get(ancestor, []):
                    for after in dependents:
                        dag.add_edge(before.key, after.key)

        def sort_key(k: Tuple[str, str]):
            step = by_key[k]
            return step.tier, -step.priority, step.concept_id, step.gap_type.value

        try:
            order = list(nx.lexicographical_topological_sort(dag, key=sort_key))
        except nx.NetworkXUnfeasible:
            raise GraphInconsistency("Remediation steps form a dependency cycle") from None
        return [by_key[k] for k in order]

    def _priority_focus(self, steps: List[RemediationStep]) -> str:
        if not steps:
            return NO_GAPS_FOCUS

        counts: Dict[GapType, int] = {}
        worst: Dict[GapType, int] = {}
        for step in steps:
            counts[step.gap_type] = counts.get(step.gap_type, 0) + 1
            worst[step.gap_type] = max(worst.get(step.gap_type, 0), SEVERITY_RANK[step.severity])

        dominant = max(counts, key=lambda t: (counts[t], worst[t], -_FOCUS_PRECEDENCE.index(t)))
        return PRIORITY_FOCUS[dominant]
