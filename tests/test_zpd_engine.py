"""Tests for engines/zpd_engine.py"""

import pytest

from core.errors import GraphInconsistency, InvalidInput, NotFound
from core.models import (
    AttentionSpan,
    CapacityLevel,
    CognitiveProfile,
    LearnerProfile,
    LearningModality,
    LearningStyle,
)
from engines.zpd_engine import (
    PaceRecommendation,
    PresentationStyle,
    ScaffoldingType,
    Zone,
    ZPDEngine,
)


@pytest.fixture
def engine(db, mastery):
    return ZPDEngine(db, mastery)


@pytest.fixture
def three_chain(db):
    for cid, difficulty in (("a", 2), ("b", 4), ("c", 6)):
        db.add_concept({"concept_id": cid, "name": cid.upper(), "difficulty": {"absolute": difficulty}})
    db.add_edge("a", "b", strength="required")
    db.add_edge("b", "c", strength="required")
    return db


def learner_profile(user_id="x", **scores):
    return LearnerProfile(user_id=user_id,
                          psychometric_scores={d: {"score": s} for d, s in scores.items()})


def zone_ids(bucket):
    return [zc.concept_id for zc in bucket]


# ==================== Zones ====================

def test_mastered_basics_and_partial_intermediate(engine, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=95)
    mastery.set_knowledge_state("learner-1", "intermediate", mastery=45)

    result = engine.compute_zpd("learner-1")

    assert result.zone_of("basics") == Zone.TOO_EASY
    assert result.zone_of("intermediate") == Zone.ZPD
    assert result.zone_of("advanced") == Zone.TOO_HARD
    assert result.zone_of("expert") == Zone.TOO_HARD

    intermediate = result.zpd[0]
    assert intermediate.readiness == pytest.approx(0.76)
    assert intermediate.prerequisites_met == 1.0
    assert result.too_hard[0].missing_prerequisites == ["intermediate"]


def test_zones_partition_concepts(engine, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=75)
    mastery.set_knowledge_state("learner-1", "advanced", mastery=20)

    result = engine.compute_zpd("learner-1")
    ids = zone_ids(result.too_easy) + zone_ids(result.zpd) + zone_ids(result.too_hard)

    assert sorted(ids) == ["advanced", "basics", "expert", "intermediate"]
    assert len(ids) == len(set(ids))


def test_mastered_concept_is_too_easy_regardless_of_prerequisites(engine, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "expert", mastery=85)

    result = engine.compute_zpd("learner-1")

    assert result.zone_of("expert") == Zone.TOO_EASY
    assert all(r.concept_id != "expert" for r in result.recommendations)
    assert "expert" not in result.suggested_path


def test_empty_learner_recommends_only_roots(engine, three_chain, learner):
    result = engine.compute_zpd("learner-1")

    assert zone_ids(result.zpd) == ["a"]
    assert zone_ids(result.too_hard) == ["b", "c"]
    assert [r.concept_id for r in result.recommendations] == ["a"]
    assert result.suggested_path == ["a", "b", "c"]


def test_stretch_band(db, mastery, config, learner):
    db.add_concept({"concept_id": "p1", "difficulty": {"absolute": 2}})
    db.add_concept({"concept_id": "p2", "difficulty": {"absolute": 3}})
    db.add_concept({"concept_id": "combo", "difficulty": {"absolute": 8}})
    db.add_edge("p1", "combo", strength="required")
    db.add_edge("p2", "combo", strength="required")
    mastery.set_knowledge_state("learner-1", "p1", mastery=90)

    result = ZPDEngine(db, mastery).compute_zpd("learner-1")

    combo = next(zc for zc in result.zpd if zc.concept_id == "combo")
    assert combo.stretch
    assert combo.readiness == pytest.approx(0.38)
    assert combo.to_dict()["band"] == "stretch"
    assert [r.concept_id for r in result.recommendations] == ["p2", "combo"]
    assert result.recommendations[1].stretch

    strict = ZPDEngine(db, mastery, config.with_overrides(include_stretch_in_recommendations=False))
    assert [r.concept_id for r in strict.compute_zpd("learner-1").recommendations] == ["p2"]


def test_readiness_is_monotone(engine):
    assert engine.readiness(1.0, 4, 2) > engine.readiness(0.5, 4, 2)
    assert engine.readiness(1.0, 3, 2) > engine.readiness(1.0, 6, 2)
    assert 0 <= engine.readiness(0.0, 10, 0, -0.5) <= engine.readiness(1.0, 1, 10, 0.5) <= 1


# ==================== Recommendations ====================

def test_recommendation_details(engine, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=95)
    mastery.set_knowledge_state("learner-1", "intermediate", mastery=45)

    rec = engine.compute_zpd("learner-1").recommendations[0]

    assert rec.concept_id == "intermediate"
    assert rec.estimated_mastery_time == 60
    assert rec.psychometric_match == pytest.approx(0.6)
    assert rec.prerequisite_chain == ["Basics"]
    assert "All prerequisites are mastered" in rec.reasons
    assert "Already 45% of the way there" in rec.reasons
    assert [s.type for s in rec.scaffolding_strategies] == [ScaffoldingType.WORKED_EXAMPLE]

    data = rec.to_dict()
    assert data["readinessScore"] == 76.0
    assert data["prerequisiteChain"] == ["Basics"]


def test_recommendations_ranked_and_limited(db, mastery, learner):
    db.add_concept({"concept_id": "easy-root", "difficulty": {"absolute": 2}})
    db.add_concept({"concept_id": "hard-root", "difficulty": {"absolute": 5}})
    engine = ZPDEngine(db, mastery)

    result = engine.compute_zpd("learner-1")
    assert [r.concept_id for r in result.recommendations] == ["easy-root", "hard-root"]

    limited = engine.compute_zpd("learner-1", limit=1)
    assert [r.concept_id for r in limited.recommendations] == ["easy-root"]
    assert limited.suggested_path == ["easy-root"]


def test_time_estimate_uses_concept_estimates_and_pace(db, engine):
    concept = db.add_concept({
        "concept_id": "heavy",
        "difficulty": {"absolute": 6, "cognitive_load": 0.9},
        "time_estimates": {"basic_mastery": 90},
    })
    normal = engine.adjust_for_psychometrics(LearnerProfile(user_id="x"))
    slower = engine.adjust_for_psychometrics(learner_profile(executive_functions=20, cognitive_abilities=20))

    assert engine.estimate_mastery_time(concept, normal) == 108
    assert engine.estimate_mastery_time(concept, slower) == 140


# ==================== Psychometric Adjustments ====================

def test_neutral_adjustments(engine):
    adjustments = engine.adjust_for_psychometrics(LearnerProfile(user_id="x"))

    assert adjustments.difficulty_modifier == 0
    assert adjustments.pace_recommendation == PaceRecommendation.NORMAL
    assert adjustments.presentation_style == PresentationStyle.MIXED
    assert adjustments.attention_considerations == []
    assert [s.type for s in adjustments.scaffolding_strategies] == [ScaffoldingType.WORKED_EXAMPLE]


def test_difficulty_modifier(engine):
    confident = engine.adjust_for_psychometrics(learner_profile(big_five_openness=80, self_efficacy=80))
    assert confident.difficulty_modifier == pytest.approx(0.3)

    struggling = engine.adjust_for_psychometrics(learner_profile(
        big_five_openness=20, big_five_neuroticism=80, self_efficacy=20, stress_coping=20))
    assert struggling.difficulty_modifier == pytest.approx(-0.5)
    assert "Keep encouragement high, minimize failure scenarios" in struggling.attention_considerations
    assert "Build in breaks during demanding material" in struggling.attention_considerations


def test_low_working_memory(engine):
    adjustments = engine.adjust_for_psychometrics(learner_profile(executive_functions=20, cognitive_abilities=20))

    assert adjustments.pace_recommendation == PaceRecommendation.SLOWER
    types = [s.type for s in adjustments.scaffolding_strategies]
    assert types[0] == ScaffoldingType.CHUNKING
    assert ScaffoldingType.REPETITION in types
    assert any("working memory" in note for note in adjustments.attention_considerations)


def test_stored_style_and_profile_take_precedence(engine):
    profile = LearnerProfile(
        user_id="x",
        learning_style=LearningStyle(primary=LearningModality.KINESTHETIC),
        cognitive_profile=CognitiveProfile(attention_span=AttentionSpan.SHORT),
    )
    adjustments = engine.adjust_for_psychometrics(profile)

    assert adjustments.presentation_style == PresentationStyle.HANDS_ON
    assert adjustments.presentation_summary == "hands_on presentation, normal pace"
    assert ScaffoldingType.GUIDED_PRACTICE in [s.type for s in adjustments.scaffolding_strategies]


def test_scaffolding_dedupes_by_highest_priority(engine):
    strategies = engine.select_scaffolding_strategies(
        {"big_five_neuroticism": 70, "self_efficacy": 30},
        CognitiveProfile(working_memory_capacity=CapacityLevel.MEDIUM),
        LearningStyle(primary=LearningModality.VISUAL),
    )

    assert [s.type for s in strategies] == [
        ScaffoldingType.WORKED_EXAMPLE,
        ScaffoldingType.VISUAL_AIDS,
        ScaffoldingType.GUIDED_PRACTICE,
        ScaffoldingType.HINTS,
    ]
    assert strategies[0].priority == 9
    assert strategies[0].reason == "Early success experiences build confidence"


# ==================== Learning Path ====================

def test_learning_path_respects_prerequisites(engine, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=95)

    steps = engine.generate_learning_path("learner-1")

    assert [s.concept_id for s in steps] == ["intermediate", "advanced", "expert"]
    assert [s.order for s in steps] == [1, 2, 3]
    seen = {"basics"}
    for step in steps:
        assert set(step.prerequisites) <= seen
        seen.add(step.concept_id)
    assert steps[0].milestones == ["Explain Intermediate in your own words",
                                   "Apply Intermediate to a practice problem"]


def test_learning_path_milestones_from_bloom_objectives(db, engine, learner):
    db.add_concept({"concept_id": "fractions", "bloom_objectives": {
        "understand": ["Explain numerators", "Explain denominators", "Compare fractions"],
        "apply": ["Add fractions"],
    }})

    step = engine.generate_learning_path("learner-1")[0]
    assert step.milestones == ["Explain numerators", "Explain denominators", "Add fractions"]


def test_goal_limits_the_path(engine, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=95)

    result = engine.compute_zpd("learner-1", goal="advanced")
    assert result.suggested_path == ["intermediate", "advanced"]

    with pytest.raises(NotFound):
        engine.compute_zpd("learner-1", goal="ghost")


# ==================== Errors ====================

def test_unknown_learner(engine, chain_db):
    with pytest.raises(NotFound):
        engine.compute_zpd("ghost")


def test_negative_limit(engine, learner):
    with pytest.raises(InvalidInput):
        engine.compute_zpd("learner-1", limit=-1)


def test_cycle_is_reported(engine, chain_db, learner):
    chain_db.add_edge("expert", "basics", strength="required")
    with pytest.raises(GraphInconsistency):
        engine.compute_zpd("learner-1")


def test_states_for_deleted_concepts_are_skipped(engine, chain_db, mastery, learner, log_messages):
    mastery.set_knowledge_state("learner-1", "ghost", mastery=90)

    result = engine.compute_zpd("learner-1")

    assert result.zone_of("ghost") is None
    assert any("deleted concept" in m for m in log_messages)


def test_result_to_dict(engine, chain_db, learner):
    data = engine.compute_zpd("learner-1").to_dict()

    assert set(data) == {"userId", "computedAt", "computationTimeMs", "tooEasy", "zpd",
                         "tooHard", "recommendations", "psychometricAdjustments", "suggestedPath"}
    assert data["userId"] == "learner-1"
    assert data["computationTimeMs"] >= 0
