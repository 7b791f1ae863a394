"""Tests for core/graph_db.py"""

import pytest

from core.errors import InvalidInput, NotFound
from core.models import (
    CapacityLevel,
    EdgeStrength,
    LearningModality,
    PsychometricDomain,
)


# ==================== Learners ====================

def test_create_and_update_learner(db):
    created = db.set_learner_profile("u1", name="Ada")
    assert created.user_id == "u1"
    assert created.psychometric_scores == {}

    updated = db.set_learner_profile("u1", email="ada@example.com")
    assert updated.name == "Ada"
    assert updated.email == "ada@example.com"
    assert updated.created_at == created.created_at


def test_learner_profile_rejects_bad_input(db):
    with pytest.raises(InvalidInput):
        db.set_learner_profile("u1", psychometric_scores={"not_a_domain": 50})
    with pytest.raises(InvalidInput):
        db.set_learner_profile("bad:id")
    assert db.get_learner_profile("u1") is None


def test_require_learner(db):
    with pytest.raises(NotFound, match="Learner not found: ghost"):
        db.require_learner("ghost")


def test_psychometric_updates_merge(db, learner):
    db.update_psychometric_score("learner-1", "big_five_openness", 80, confidence=0.9)
    db.update_psychometric_scores("learner-1", {"self_efficacy": 30})

    scores = db.get_psychometric_scores("learner-1")
    assert scores[PsychometricDomain.BIG_FIVE_OPENNESS].score == 80
    assert scores[PsychometricDomain.BIG_FIVE_OPENNESS].confidence == 0.9
    assert scores[PsychometricDomain.SELF_EFFICACY].score == 30


def test_psychometric_update_out_of_range(db, learner):
    with pytest.raises(InvalidInput):
        db.update_psychometric_score("learner-1", "big_five_openness", 150)


def test_compute_and_store_derived_profiles(db, learner):
    db.update_psychometric_scores("learner-1", {
        "learning_styles": 80,
        "big_five_openness": 75,
        "executive_functions": 20,
        "cognitive_abilities": 20,
    })

    profile = db.compute_and_store_derived_profiles("learner-1")

    assert profile.learning_style.primary == LearningModality.VISUAL
    assert profile.cognitive_profile.working_memory_capacity == CapacityLevel.LOW
    stored = db.get_learner_profile("learner-1")
    assert stored.learning_style == profile.learning_style


def test_delete_learner_cascades_to_states(db, mastery, chain_db, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=90)
    mastery.set_knowledge_state("learner-1", "intermediate", mastery=40)
    db.set_learner_profile("learner-10")
    mastery.set_knowledge_state("learner-10", "basics", mastery=50)

    assert db.delete_learner_profile("learner-1") is True
    assert db.get_learner_profile("learner-1") is None
    assert mastery.get_learner_states("learner-1") == []
    assert len(mastery.get_learner_states("learner-10")) == 1
    assert db.delete_learner_profile("learner-1") is False


def test_list_learner_profiles(db):
    for uid in ("b", "a", "c"):
        db.set_learner_profile(uid)
    assert [p.user_id for p in db.list_learner_profiles()] == ["a", "b", "c"]
    assert len(db.list_learner_profiles(limit=2)) == 2


# ==================== Concepts ====================

def test_add_and_get_concept(db):
    node = db.add_concept({"concept_id": "limits", "name": "Limits", "domain": "calculus",
                           "difficulty": {"absolute": 4, "cognitive_load": 0.6}})

    stored = db.get_concept("limits")
    assert stored == node
    assert stored.difficulty.absolute == 4
    assert db.get_concept("missing") is None


def test_concept_validation(db):
    with pytest.raises(InvalidInput):
        db.add_concept({"concept_id": "x", "difficulty": {"absolute": 11}})
    with pytest.raises(InvalidInput):
        db.add_concept({"concept_id": "", "name": "Empty"})


def test_replacing_concept_keeps_created_at_and_moves_index(db):
    first = db.add_concept({"concept_id": "limits", "domain": "calculus"})
    second = db.add_concept({"concept_id": "limits", "domain": "analysis"})

    assert second.created_at == first.created_at
    assert db.list_concepts_by_domain("calculus") == []
    assert [c.concept_id for c in db.list_concepts_by_domain("analysis")] == ["limits"]


def test_domain_listing_is_exact_for_colon_domains(db):
    db.add_concept({"concept_id": "c1", "domain": "math:algebra"})
    db.add_concept({"concept_id": "c2", "domain": "math"})

    assert [c.concept_id for c in db.list_concepts_by_domain("math")] == ["c2"]
    assert [c.concept_id for c in db.list_concepts_by_domain("math:algebra")] == ["c1"]


def test_concept_queries(chain_db):
    db = chain_db
    db.add_concept({"concept_id": "poetry", "name": "Poetry", "domain": "literature",
                    "difficulty": {"absolute": 3}, "tags": ["verse"],
                    "bloom_objectives": {"apply": ["Write a sonnet"]}})

    assert [c.concept_id for c in db.list_concepts()] == ["advanced", "basics", "expert", "intermediate", "poetry"]
    assert [c.concept_id for c in db.list_concepts_by_domain("literature")] == ["poetry"]
    assert [c.concept_id for c in db.list_concepts_by_difficulty(3, 6)] == ["poetry", "intermediate", "advanced"]
    assert [c.concept_id for c in db.list_concepts_by_bloom_level("apply")] == ["poetry"]
    assert db.list_concepts_by_bloom_level("create") == []


def test_search_concepts_ranking(db):
    db.add_concept({"concept_id": "c1", "name": "Limits of functions"})
    db.add_concept({"concept_id": "c2", "name": "Limits"})
    db.add_concept({"concept_id": "c3", "name": "Continuity", "description": "Uses limits"})
    db.add_concept({"concept_id": "c4", "name": "Vectors"})

    assert [c.concept_id for c in db.search_concepts("limits")] == ["c2", "c1", "c3"]
    assert [c.concept_id for c in db.search_concepts("LIMITS", limit=1)] == ["c2"]
    assert db.search_concepts("   ") == []


def test_delete_concept_cascades_edges(chain_db):
    db = chain_db
    db.add_related_edge("intermediate", "expert", "extends")

    assert db.delete_concept("intermediate") is True

    assert db.get_concept("intermediate") is None
    assert [(e.from_concept, e.to_concept) for e in db.list_edges()] == [("advanced", "expert")]
    assert db.list_related_edges() == []
    assert db.list_concepts_by_domain("math")[0].concept_id == "advanced"
    assert db.delete_concept("intermediate") is False


# ==================== Edges ====================

def test_edges(chain_db):
    db = chain_db
    edge = db.get_edge("basics", "intermediate")
    assert edge.strength == EdgeStrength.REQUIRED
    assert edge.edge_id == "basics:intermediate"

    assert [e.to_concept for e in db.edges_from("basics")] == ["intermediate"]
    assert [e.from_concept for e in db.edges_to("expert")] == ["advanced"]
    assert len(db.list_edges()) == 3

    assert db.delete_edge("basics", "intermediate") is True
    assert db.get_edge("basics", "intermediate") is None


def test_edge_default_strength(chain_db):
    edge = chain_db.add_edge("basics", "expert")
    assert edge.strength == EdgeStrength.RECOMMENDED


def test_edge_validation(chain_db):
    with pytest.raises(InvalidInput):
        chain_db.add_edge("basics", "basics")
    with pytest.raises(NotFound):
        chain_db.add_edge("basics", "ghost")
    with pytest.raises(InvalidInput):
        chain_db.add_edge("basics", "expert", strength="mandatory")


def test_related_edges(chain_db):
    db = chain_db
    db.add_related_edge("basics", "advanced", "similar")
    db.add_related_edge("intermediate", "basics", "contrasts", bidirectional=False)

    assert [e.relationship for e in db.get_related_edges("basics")] == ["similar"]
    assert [e.relationship for e in db.get_related_edges("advanced")] == ["similar"]
    assert [e.relationship for e in db.get_related_edges("intermediate")] == ["contrasts"]

    assert db.delete_related_edge("basics:advanced:similar") is True
    assert len(db.list_related_edges()) == 1

    with pytest.raises(NotFound):
        db.add_related_edge("basics", "ghost", "similar")


def test_get_stats(chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=50)
    chain_db.add_related_edge("basics", "expert", "similar")

    assert chain_db.get_stats() == {
        "learnerCount": 1,
        "conceptCount": 4,
        "edgeCount": 3,
        "relatedEdgeCount": 1,
        "stateCount": 1,
    }


def test_corrupt_records_are_skipped_in_listings(db, store, log_messages):
    db.add_concept({"concept_id": "good"})
    store.put("concept:bad", {"concept_id": "bad", "difficulty": {"absolute": 99}})

    assert [c.concept_id for c in db.list_concepts()] == ["good"]
    assert any("concept:bad" in m for m in log_messages)
    with pytest.raises(InvalidInput):
        db.get_concept("bad")
