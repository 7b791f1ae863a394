"""
ZPD Engine - Zone of Proximal Development recommendations.

Features:
    - Readiness scoring from prerequisite mastery and relative difficulty
    - Zone partition: too_easy / zpd (with a flagged stretch band) / too_hard
    - Psychometric adjustments (difficulty, pace, scaffolding, presentation)
    - Ranked recommendations with time estimates and reasons
    - Topologically valid suggested learning path

Readiness for concept C:
    prereq_met  = share of direct required/recommended prerequisites mastered
    norm_diff   = (difficulty - mastered_ceiling + span) / (2 * span), clamped
    readiness   = 0.6 * prereq_met + 0.4 * (1 - norm_diff) + 0.2 * difficulty_modifier
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional

from loguru import logger

from core.config import DEFAULT_CONFIG, EngineConfig
from core.errors import InvalidInput
from core.graph_db import EducationGraphDB
from core.knowledge_graph import KnowledgeGraph
from core.mastery_store import MasteryStore
from core.models import (
    AttentionSpan,
    CapacityLevel,
    CognitiveProfile,
    ConceptNode,
    KnowledgeState,
    LearnerProfile,
    LearningModality,
    LearningStyle,
    ProcessingSpeed,
    PsychometricDomain,
    utcnow,
)
from core.psychometrics import derive_learning_style, estimate_cognitive_profile, normalize_scores

D = PsychometricDomain


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class Zone(str, Enum):
    TOO_EASY = "too_easy"
    ZPD = "zpd"
    TOO_HARD = "too_hard"


class PaceRecommendation(str, Enum):
    SLOWER = "slower"
    NORMAL = "normal"
    FASTER = "faster"


class PresentationStyle(str, Enum):
    VISUAL = "visual"
    VERBAL = "verbal"
    HANDS_ON = "hands_on"
    MIXED = "mixed"


class ScaffoldingType(str, Enum):
    WORKED_EXAMPLE = "worked_example"
    GUIDED_PRACTICE = "guided_practice"
    HINTS = "hints"
    VISUAL_AIDS = "visual_aids"
    CHUNKING = "chunking"
    PEER_DISCUSSION = "peer_discussion"
    ANALOGY = "analogy"
    REPETITION = "repetition"


CATALOG_ORDER = {t: i for i, t in enumerate(ScaffoldingType)}

_PRESENTATION = {
    LearningModality.VISUAL: PresentationStyle.VISUAL,
    LearningModality.AUDITORY: PresentationStyle.VERBAL,
    LearningModality.KINESTHETIC: PresentationStyle.HANDS_ON,
}

_PACE_FACTOR = {
    PaceRecommendation.SLOWER: 1.3,
    PaceRecommendation.NORMAL: 1.0,
    PaceRecommendation.FASTER: 0.8,
}


# ==================== Result Types ====================

@dataclass
class ScaffoldingStrategy:
    type: ScaffoldingType
    reason: str
    priority: int  # 1-10, higher first

    def to_dict(self) -> Dict:
        return {"type": self.type.value, "reason": self.reason, "priority": self.priority}


@dataclass
class PsychometricAdjustments:
    difficulty_modifier: float = 0.0  # [-0.5, 0.5]
    pace_recommendation: PaceRecommendation = PaceRecommendation.NORMAL
    scaffolding_strategies: List[ScaffoldingStrategy] = field(default_factory=list)
    presentation_style: PresentationStyle = PresentationStyle.MIXED
    attention_considerations: List[str] = field(default_factory=list)

    @property
    def presentation_summary(self) -> str:
        return f"{self.presentation_style.value} presentation, {self.pace_recommendation.value} pace"

    def to_dict(self) -> Dict:
        return {
            "difficultyModifier": round(self.difficulty_modifier, 3),
            "paceRecommendation": self.pace_recommendation.value,
            "scaffoldingStrategies": [s.to_dict() for s in self.scaffolding_strategies],
            "presentationStyle": self.presentation_style.value,
            "presentationSummary": self.presentation_summary,
            "attentionConsiderations": list(self.attention_considerations),
        }


@dataclass
class ZonedConcept:
    """One concept's zone assignment for one learner."""
    concept: ConceptNode
    zone: Zone
    readiness: float  # 0-1
    prerequisites_met: float  # 0-1
    missing_prerequisites: List[str]
    mastery: float
    reason: str
    stretch: bool = False  # zpd by the 0.3-0.5 readiness band

    @property
    def concept_id(self) -> str:
        return self.concept.concept_id

    def to_dict(self) -> Dict:
        return {
            "conceptId": self.concept_id,
            "name": self.concept.display_name,
            "zone": self.zone.value,
            "band": "stretch" if self.stretch else self.zone.value,
            "readiness": round(self.readiness * 100, 1),
            "prerequisitesMet": round(self.prerequisites_met, 3),
            "missingPrerequisites": list(self.missing_prerequisites),
            "mastery": self.mastery,
            "difficulty": self.concept.difficulty.absolute,
            "reason": self.reason,
        }


@dataclass
class ZPDRecommendation:
    concept: ConceptNode
    readiness_score: float  # 0-1
    estimated_mastery_time: int  # minutes
    psychometric_match: float  # 0-1
    scaffolding_strategies: List[ScaffoldingStrategy]
    reasons: List[str]
    prerequisite_chain: List[str]
    stretch: bool = False

    @property
    def concept_id(self) -> str:
        return self.concept.concept_id

    def to_dict(self) -> Dict:
        return {
            "conceptId": self.concept_id,
            "name": self.concept.display_name,
            "readinessScore": round(self.readiness_score * 100, 1),
            "estimatedMasteryTime": self.estimated_mastery_time,
            "psychometricMatch": round(self.psychometric_match, 3),
            "scaffoldingStrategies": [s.to_dict() for s in self.scaffolding_strategies],
            "reasons": list(self.reasons),
            "prerequisiteChain": list(self.prerequisite_chain),
            "stretch": self.stretch,
        }


@dataclass
class LearningPathStep:
    order: int
    concept_id: str
    name: str
    zone: Zone
    readiness: float
    estimated_duration: int  # minutes
    prerequisites: List[str]
    scaffolding: List[ScaffoldingStrategy]
    milestones: List[str]

    def to_dict(self) -> Dict:
        return {
            "order": self.order,
            "conceptId": self.concept_id,
            "name": self.name,
            "zone": self.zone.value,
            "readiness": round(self.readiness * 100, 1),
            "estimatedDuration": self.estimated_duration,
            "prerequisites": list(self.prerequisites),
            "scaffolding": [s.to_dict() for s in self.scaffolding],
            "milestones": list(self.milestones),
        }


@dataclass
class ZPDResult:
    user_id: str
    computed_at: str
    computation_time_ms: float
    too_easy: List[ZonedConcept]
    zpd: List[ZonedConcept]
    too_hard: List[ZonedConcept]
    recommendations: List[ZPDRecommendation]
    psychometric_adjustments: PsychometricAdjustments
    suggested_path: List[str]

    def zone_of(self, concept_id: str) -> Optional[Zone]:
        for bucket in (self.too_easy, self.zpd, self.too_hard):
            for zc in bucket:
                if zc.concept_id == concept_id:
                    return zc.zone
        return None

    def to_dict(self) -> Dict:
        return {
            "userId": self.user_id,
            "computedAt": self.computed_at,
            "computationTimeMs": round(self.computation_time_ms, 2),
            "tooEasy": [z.to_dict() for z in self.too_easy],
            "zpd": [z.to_dict() for z in self.zpd],
            "tooHard": [z.to_dict() for z in self.too_hard],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "psychometricAdjustments": self.psychometric_adjustments.to_dict(),
            "suggestedPath": list(self.suggested_path),
        }


@dataclass
class _LearnerContext:
    """Everything one computation reads, loaded once."""
    profile: LearnerProfile
    graph: KnowledgeGraph
    states: Dict[str, KnowledgeState]
    style: LearningStyle
    cognitive: CognitiveProfile
    adjustments: PsychometricAdjustments
    zoned: Dict[str, ZonedConcept]

    def mastery(self, concept_id: str) -> float:
        state = self.states.get(concept_id)
        return state.mastery if state else 0.0


# ==================== Engine ====================

class ZPDEngine:
    """
    Partitions a learner's concepts into zones and ranks what to learn next.

    Usage:
        engine = ZPDEngine(db)
        result = engine.compute_zpd("learner-1", limit=5)
    """

    def __init__(self, db: EducationGraphDB, mastery: Optional[MasteryStore] = None,
                 config: Optional[EngineConfig] = None):
        self.db = db
        self.config = config or db.config or DEFAULT_CONFIG
        self.mastery = mastery or MasteryStore(db.store, self.config)

    def compute_zpd(self, user_id: str, limit: Optional[int] = None,
                    goal: Optional[str] = None) -> ZPDResult:
        """
        Compute zones, recommendations and a suggested path for a learner.

        Args:
            user_id: Learner ID
            limit: Max recommendations and path length (default from config)
            goal: Optional target concept; the path then leads to it

        Returns:
            ZPDResult; every concept appears in exactly one zone

        Raises:
            NotFound: unknown learner or goal concept
            GraphInconsistency: the prerequisite graph has a cycle
        """
        started = time.perf_counter()
        limit = self._check_limit(limit)
        ctx = self._load_context(user_id)

        buckets: Dict[Zone, List[ZonedConcept]] = {z: [] for z in Zone}
        for zc in ctx.zoned.values():
            buckets[zc.zone].append(zc)

        buckets[Zone.TOO_EASY].sort(key=lambda z: z.concept_id)
        for zone in (Zone.ZPD, Zone.TOO_HARD):
            buckets[zone].sort(key=lambda z: (-z.readiness, z.concept_id))

        candidates = [
            zc for zc in buckets[Zone.ZPD]
            if not zc.stretch or self.config.include_stretch_in_recommendations
        ]
        recommendations = [self._recommend(ctx, zc) for zc in candidates]
        recommendations.sort(key=lambda r: (
            -self._rank_score(r),
            r.concept.difficulty.absolute,
            r.concept_id,
        ))

        path = self._suggested_path(ctx, limit, goal)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug("ZPD for {}: {} easy / {} zpd / {} hard in {:.1f}ms", user_id,
                     len(buckets[Zone.TOO_EASY]), len(buckets[Zone.ZPD]),
                     len(buckets[Zone.TOO_HARD]), elapsed_ms)

        return ZPDResult(
            user_id=user_id,
            computed_at=utcnow().isoformat(),
            computation_time_ms=elapsed_ms,
            too_easy=buckets[Zone.TOO_EASY],
            zpd=buckets[Zone.ZPD],
            too_hard=buckets[Zone.TOO_HARD],
            recommendations=recommendations[:limit],
            psychometric_adjustments=ctx.adjustments,
            suggested_path=path,
        )

    def generate_learning_path(self, user_id: str, max_concepts: Optional[int] = None,
                               goal: Optional[str] = None) -> List[LearningPathStep]:
        """
        Ordered learning path with durations, scaffolding and milestones.

        Never places a concept before its unmastered prerequisites.
        """
        limit = self._check_limit(max_concepts)
        ctx = self._load_context(user_id)

        steps = []
        for order, concept_id in enumerate(self._suggested_path(ctx, limit, goal), start=1):
            zc = ctx.zoned[concept_id]
            concept = zc.concept
            steps.append(LearningPathStep(
                order=order,
                concept_id=concept_id,
                name=concept.display_name,
                zone=zc.zone,
                readiness=zc.readiness,
                estimated_duration=self.estimate_mastery_time(concept, ctx.adjustments),
                prerequisites=ctx.graph.dependency_order(ctx.graph.direct_prerequisites(concept_id)),
                scaffolding=self.strategies_for_concept(concept, ctx.adjustments),
                milestones=self._milestones(concept),
            ))
        return steps

    def _check_limit(self, limit: Optional[int]) -> int:
        limit = self.config.default_limit if limit is None else limit
        if limit < 0:
            raise InvalidInput(f"limit must be >= 0: {limit}")
        return limit

    def _load_context(self, user_id: str) -> _LearnerContext:
        profile = self.db.require_learner(user_id)
        graph = KnowledgeGraph.from_db(self.db, self.config)
        graph.assert_acyclic()

        states: Dict[str, KnowledgeState] = {}
        for state in self.mastery.get_learner_states(user_id):
            if state.concept_id not in graph:
                logger.warning("Knowledge state {}:{} references a deleted concept; skipping",
                               user_id, state.concept_id)
                continue
            states[state.concept_id] = state

        style = profile.learning_style or derive_learning_style(profile.psychometric_scores)
        cognitive = profile.cognitive_profile or estimate_cognitive_profile(profile.psychometric_scores)
        adjustments = self._adjust(profile.psychometric_scores, style, cognitive)

        ctx = _LearnerContext(profile, graph, states, style, cognitive, adjustments, {})
        ceiling = self._mastered_ceiling(ctx)
        for concept_id in graph.concept_ids():
            ctx.zoned[concept_id] = self._classify(ctx, graph.concepts[concept_id], ceiling)
        return ctx

    # ==================== Zone Classification ====================

    def _mastered_ceiling(self, ctx: _LearnerContext) -> float:
        """Hardest difficulty the learner has already mastered (0 if none)."""
        mastered = [
            ctx.graph.concepts[cid].difficulty.absolute
            for cid, s in ctx.states.items()
            if s.mastery >= self.config.mastered_threshold
        ]
        return max(mastered, default=0.0)

    def readiness(self, prerequisites_met: float, difficulty: float, ceiling: float,
                  difficulty_modifier: float = 0.0) -> float:
        """Monotone in prerequisite satisfaction and in ease."""
        cfg = self.config
        span = cfg.difficulty_span
        norm_diff = clamp((difficulty - ceiling + span) / (2 * span))
        base = cfg.prerequisite_weight * prerequisites_met + cfg.ease_weight * (1 - norm_diff)
        return clamp(base + difficulty_modifier * cfg.psychometric_readiness_scale)

    def _classify(self, ctx: _LearnerContext, concept: ConceptNode, ceiling: float) -> ZonedConcept:
        cfg = self.config
        cid = concept.concept_id
        mastery = ctx.mastery(cid)

        prereqs = ctx.graph.direct_prerequisites(cid)
        missing = [p for p in prereqs if ctx.mastery(p) < cfg.prerequisite_mastery_threshold]
        met = (len(prereqs) - len(missing)) / len(prereqs) if prereqs else 1.0

        readiness = self.readiness(met, concept.difficulty.absolute, ceiling,
                                   ctx.adjustments.difficulty_modifier)

        stretch = False
        if mastery >= cfg.mastered_threshold:
            zone, reason = Zone.TOO_EASY, f"Already mastered ({mastery:g}% mastery)"
        elif met < cfg.min_prerequisites_met:
            shown = ", ".join(missing[:3]) + ("..." if len(missing) > 3 else "")
            zone, reason = Zone.TOO_HARD, f"Missing {len(missing)} prerequisite(s): {shown}"
        elif readiness > cfg.too_easy_readiness:
            zone, reason = Zone.TOO_EASY, f"High readiness ({readiness:.0%}) - well within reach"
        elif readiness >= cfg.zpd_readiness:
            zone = Zone.ZPD
            reason = ("All prerequisites mastered - ready to learn" if met == 1
                      else f"Most prerequisites met ({met:.0%}) - good candidate for learning")
        elif readiness >= cfg.stretch_readiness:
            zone, stretch = Zone.ZPD, True
            reason = f"Stretch ({readiness:.0%} readiness) - reachable with support"
        else:
            zone, reason = Zone.TOO_HARD, f"Low readiness ({readiness:.0%}) - build foundation first"

        return ZonedConcept(concept, zone, readiness, met, missing, mastery, reason, stretch)

    # ==================== Psychometric Adjustments ====================

    def adjust_for_psychometrics(self, profile: LearnerProfile) -> PsychometricAdjustments:
        """Difficulty, pace, scaffolding and presentation for a learner."""
        style = profile.learning_style or derive_learning_style(profile.psychometric_scores)
        cognitive = profile.cognitive_profile or estimate_cognitive_profile(profile.psychometric_scores)
        return self._adjust(profile.psychometric_scores, style, cognitive)

    def _adjust(self, scores: Mapping, style: LearningStyle,
                cognitive: CognitiveProfile) -> PsychometricAdjustments:
        scores = normalize_scores(scores)

        def score(domain: PsychometricDomain) -> Optional[float]:
            entry = scores.get(domain)
            return entry.score if entry is not None else None

        openness = score(D.BIG_FIVE_OPENNESS)
        conscientiousness = score(D.BIG_FIVE_CONSCIENTIOUSNESS)
        extraversion = score(D.BIG_FIVE_EXTRAVERSION)
        neuroticism = score(D.BIG_FIVE_NEUROTICISM)
        self_efficacy = score(D.SELF_EFFICACY)
        stress_coping = score(D.STRESS_COPING)
        sensory = score(D.SENSORY_PROCESSING)

        modifier = 0.0
        notes: List[str] = []

        if openness is not None:
            if openness > 70:
                modifier += 0.2
            elif openness < 30:
                modifier -= 0.1
        if neuroticism is not None and neuroticism > 70:
            modifier -= 0.2
            notes.append("Keep encouragement high, minimize failure scenarios")
        if self_efficacy is not None:
            if self_efficacy > 70:
                modifier += 0.1
            elif self_efficacy < 30:
                modifier -= 0.1
        if stress_coping is not None and stress_coping < 30:
            modifier -= 0.1
            notes.append("Build in breaks during demanding material")

        if conscientiousness is not None and conscientiousness < 30:
            notes.append("May need more structure and checkpoints")
        if extraversion is not None:
            if extraversion > 70:
                notes.append("Benefits from collaborative learning")
            elif extraversion < 30:
                notes.append("Prefers solo study, may be overwhelmed by group work")
        if cognitive.attention_span == AttentionSpan.SHORT:
            notes.append("Short attention span: keep sessions brief")
        if cognitive.working_memory_capacity == CapacityLevel.LOW:
            notes.append("Limited working memory: introduce one idea at a time")
        if sensory is not None and sensory > 70:
            notes.append("Sensitive to stimulation: minimize distractions")

        return PsychometricAdjustments(
            difficulty_modifier=clamp(modifier, -0.5, 0.5),
            pace_recommendation=self._pace(cognitive, conscientiousness),
            scaffolding_strategies=self.select_scaffolding_strategies(scores, cognitive, style),
            presentation_style=_PRESENTATION.get(style.primary, PresentationStyle.MIXED),
            attention_considerations=notes,
        )

    def _pace(self, cognitive: CognitiveProfile,
              conscientiousness: Optional[float]) -> PaceRecommendation:
        speed = cognitive.processing_speed
        memory = cognitive.working_memory_capacity
        if speed == ProcessingSpeed.SLOW or memory == CapacityLevel.LOW:
            return PaceRecommendation.SLOWER
        if speed == ProcessingSpeed.FAST:
            return PaceRecommendation.FASTER
        if conscientiousness is not None:
            if conscientiousness > 70:
                return PaceRecommendation.FASTER
            if conscientiousness < 30:
                return PaceRecommendation.SLOWER
        return PaceRecommendation.NORMAL

    def select_scaffolding_strategies(self, scores: Mapping, cognitive: CognitiveProfile,
                                      style: LearningStyle) -> List[ScaffoldingStrategy]:
        """
        Learner-level scaffolding, deduplicated by type and sorted by priority.

        Each signal proposes candidates; when two signals propose the same
        type, the higher priority (and its reason) wins.
        """
        scores = normalize_scores(scores)

        def score(domain: PsychometricDomain) -> Optional[float]:
            entry = scores.get(domain)
            return entry.score if entry is not None else None

        S = ScaffoldingType
        candidates = [
            ScaffoldingStrategy(S.WORKED_EXAMPLE, "Universal foundation for learning new concepts", 8),
        ]

        if style.primary == LearningModality.VISUAL:
            candidates.append(ScaffoldingStrategy(S.VISUAL_AIDS, "Primary learning modality is visual", 9))
        if style.primary == LearningModality.KINESTHETIC:
            candidates.append(ScaffoldingStrategy(S.GUIDED_PRACTICE, "Hands-on practice matches learning style", 9))

        neuroticism = score(D.BIG_FIVE_NEUROTICISM)
        if neuroticism is not None and neuroticism > 60:
            candidates.append(ScaffoldingStrategy(S.GUIDED_PRACTICE, "Reduces anxiety through step-by-step guidance", 8))
            candidates.append(ScaffoldingStrategy(S.HINTS, "Provides a safety net when struggling", 7))

        self_efficacy = score(D.SELF_EFFICACY)
        if self_efficacy is not None and self_efficacy < 40:
            candidates.append(ScaffoldingStrategy(S.WORKED_EXAMPLE, "Early success experiences build confidence", 9))

        if cognitive.working_memory_capacity == CapacityLevel.LOW:
            candidates.append(ScaffoldingStrategy(S.CHUNKING, "Accommodates limited working memory capacity", 9))

        extraversion = score(D.BIG_FIVE_EXTRAVERSION)
        if extraversion is not None and extraversion > 70:
            candidates.append(ScaffoldingStrategy(S.PEER_DISCUSSION, "Leverages social learning preference", 6))

        openness = score(D.BIG_FIVE_OPENNESS)
        if openness is not None and openness < 40:
            candidates.append(ScaffoldingStrategy(S.ANALOGY, "Connects new concepts to familiar ones", 7))

        if cognitive.attention_span == AttentionSpan.SHORT:
            candidates.append(ScaffoldingStrategy(S.REPETITION, "Reinforces learning with a shorter attention span", 7))

        best: Dict[ScaffoldingType, ScaffoldingStrategy] = {}
        for strategy in candidates:
            current = best.get(strategy.type)
            if current is None or strategy.priority > current.priority:
                best[strategy.type] = strategy

        return sorted(best.values(), key=lambda s: (-s.priority, CATALOG_ORDER[s.type]))

    # ==================== Recommendations ====================

    def strategies_for_concept(self, concept: ConceptNode,
                               adjustments: PsychometricAdjustments) -> List[ScaffoldingStrategy]:
        """Learner strategies reordered by relevance to this concept's profile."""
        difficulty = concept.difficulty
        boost = {t: 0 for t in ScaffoldingType}
        if difficulty.cognitive_load > 0.7:
            boost[ScaffoldingType.CHUNKING] += 2
            boost[ScaffoldingType.WORKED_EXAMPLE] += 1
        if difficulty.abstractness > 0.7:
            boost[ScaffoldingType.ANALOGY] += 2
            boost[ScaffoldingType.VISUAL_AIDS] += 1
        if difficulty.absolute >= 7:
            boost[ScaffoldingType.GUIDED_PRACTICE] += 1
            boost[ScaffoldingType.HINTS] += 1

        ranked = [
            ScaffoldingStrategy(s.type, s.reason, min(10, s.priority + boost[s.type]))
            for s in adjustments.scaffolding_strategies
        ]
        ranked.sort(key=lambda s: (-s.priority, CATALOG_ORDER[s.type]))
        return ranked[:self.config.strategies_per_recommendation]

    def estimate_mastery_time(self, concept: ConceptNode,
                              adjustments: PsychometricAdjustments) -> int:
        """Minutes to basic mastery, scaled by cognitive load and pace."""
        estimates = concept.time_estimates
        if estimates is not None and estimates.basic_mastery > 0:
            base = estimates.basic_mastery
        else:
            base = concept.difficulty.absolute * self.config.minutes_per_difficulty_point
        load_factor = 0.75 + 0.5 * concept.difficulty.cognitive_load
        return int(round(base * load_factor * _PACE_FACTOR[adjustments.pace_recommendation]))

    def psychometric_match(self, concept: ConceptNode, ctx: _LearnerContext) -> float:
        """How well the concept's demands fit the learner (0-1, 0.5 neutral)."""
        difficulty = concept.difficulty
        match = 0.5

        openness = ctx.profile.psychometric_scores.get(D.BIG_FIVE_OPENNESS)
        if openness is not None and difficulty.abstractness > 0.7:
            if openness.score > 60:
                match += 0.2
            elif openness.score < 40:
                match -= 0.2

        if difficulty.cognitive_load > 0.7:
            if ctx.cognitive.working_memory_capacity == CapacityLevel.HIGH:
                match += 0.15
            elif ctx.cognitive.working_memory_capacity == CapacityLevel.LOW:
                match -= 0.15

        adjusted = difficulty.absolute + ctx.adjustments.difficulty_modifier * 10
        if 4 <= adjusted <= 7:
            match += 0.1

        return clamp(match)

    def _rank_score(self, rec: ZPDRecommendation) -> float:
        return (self.config.readiness_rank_weight * rec.readiness_score
                + self.config.match_rank_weight * rec.psychometric_match)

    def _recommend(self, ctx: _LearnerContext, zc: ZonedConcept) -> ZPDRecommendation:
        concept = zc.concept
        match = self.psychometric_match(concept, ctx)
        prereqs = ctx.graph.dependency_order(ctx.graph.direct_prerequisites(zc.concept_id))

        reasons = []
        if not prereqs:
            reasons.append("No prerequisites required")
        elif zc.prerequisites_met == 1:
            reasons.append("All prerequisites are mastered")
        else:
            reasons.append(f"{zc.prerequisites_met:.0%} of prerequisites are mastered")
        if zc.stretch:
            reasons.append("Stretch goal - reachable with extra support")
        elif zc.readiness >= 0.7:
            reasons.append("High readiness score - optimal timing")
        if match > 0.7:
            reasons.append("Good match with your learning profile")
        if 0 < zc.mastery < self.config.mastered_threshold:
            reasons.append(f"Already {zc.mastery:g}% of the way there")
        if concept.difficulty.absolute <= 5 and ctx.adjustments.difficulty_modifier < 0:
            reasons.append("Appropriate difficulty level for your profile")

        return ZPDRecommendation(
            concept=concept,
            readiness_score=zc.readiness,
            estimated_mastery_time=self.estimate_mastery_time(concept, ctx.adjustments),
            psychometric_match=match,
            scaffolding_strategies=self.strategies_for_concept(concept, ctx.adjustments),
            reasons=reasons,
            prerequisite_chain=[ctx.graph.concepts[p].display_name for p in prereqs],
            stretch=zc.stretch,
        )

    # ==================== Learning Path ====================

    def _suggested_path(self, ctx: _LearnerContext, limit: int,
                        goal: Optional[str] = None) -> List[str]:
        """
        Unmastered concepts in prerequisite order, best candidates first.

        With a goal, only the goal and its unmastered ancestors are included.
        """
        mastered = self.config.mastered_threshold
        if goal is not None:
            ctx.graph.require(goal)
            pool = ctx.graph.ancestors(goal) | {goal}
        else:
            pool = set(ctx.zoned)
        nodes = [cid for cid in pool if ctx.mastery(cid) < mastered]

        zone_rank = {Zone.ZPD: 0, Zone.TOO_EASY: 1, Zone.TOO_HARD: 2}

        def priority(cid: str):
            zc = ctx.zoned[cid]
            return zone_rank[zc.zone], -round(zc.readiness, 6), cid

        return ctx.graph.topological_order(nodes, key=priority)[:limit]

    def _milestones(self, concept: ConceptNode) -> List[str]:
        objectives = concept.bloom_objectives
        if objectives is not None:
            milestones = objectives.understand[:2] + objectives.apply[:1]
            if milestones:
                return milestones
        name = concept.display_name
        return [f"Explain {name} in your own words", f"Apply {name} to a practice problem"]
