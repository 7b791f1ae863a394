"""Tests for engines/gap_detector.py"""

from datetime import timedelta

import pytest

from core.errors import InvalidInput, NotFound
from core.models import utcnow
from engines.gap_detector import GapDetector, GapSeverity, GapType, parse_gap_type


@pytest.fixture
def detector(db, mastery):
    return GapDetector(db, mastery)


def ids(gaps):
    return [g.concept_id for g in gaps]


def test_parse_gap_type():
    assert parse_gap_type(None) is None
    assert parse_gap_type("all") is None
    assert parse_gap_type("forgotten") == GapType.FORGOTTEN
    with pytest.raises(InvalidInput):
        parse_gap_type("everything")


def test_forgotten_after_thirty_days(detector, chain_db, mastery, learner):
    now = utcnow()
    mastery.set_knowledge_state("learner-1", "basics", mastery=80,
                                last_reviewed=now - timedelta(days=30))

    report = detector.detect_gaps("learner-1", now=now)

    assert ids(report.forgotten) == ["basics"]
    gap = report.forgotten[0]
    assert gap.predicted_retention < 80
    assert gap.predicted_retention == pytest.approx(4.98, abs=0.01)
    assert gap.days_since_review == pytest.approx(30)
    assert gap.severity == GapSeverity.HIGH
    assert report.critical == 1


def test_forgotten_severity_bands(detector, db, mastery, learner):
    now = utcnow()
    for cid, days in (("six", 6), ("ten", 10), ("fresh", 1)):
        db.add_concept({"concept_id": cid})
        mastery.set_knowledge_state("learner-1", cid, mastery=90,
                                    last_reviewed=now - timedelta(days=days))

    report = detector.detect_gaps("learner-1", gap_type="forgotten", now=now)

    # Lowest retention first
    assert ids(report.forgotten) == ["ten", "six"]
    assert [g.severity for g in report.forgotten] == [GapSeverity.MEDIUM, GapSeverity.LOW]


def test_low_mastery_is_never_forgotten(detector, db, mastery, learner):
    now = utcnow()
    db.add_concept({"concept_id": "shaky"})
    mastery.set_knowledge_state("learner-1", "shaky", mastery=50,
                                last_reviewed=now - timedelta(days=90))

    report = detector.detect_gaps("learner-1", now=now)

    assert report.forgotten == []
    assert ids(report.partial) == ["shaky"]


def test_two_misconceptions_on_one_concept(detector, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=75)
    mastery.add_misconception("learner-1", "basics", "Confuses area and perimeter", severity="major")
    mastery.add_misconception("learner-1", "basics", "Thinks zero is not a number")

    report = detector.detect_gaps("learner-1")

    assert ids(report.misconceptions) == ["basics"]
    gap = report.misconceptions[0]
    assert gap.descriptions == ["Confuses area and perimeter", "Thinks zero is not a number"]
    assert gap.severity == GapSeverity.HIGH
    assert report.critical == 1
    assert len(gap.to_dict()["misconceptions"]) == 2


def test_resolved_misconceptions_are_ignored(detector, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=75)
    m = mastery.add_misconception("learner-1", "basics", "Old mistake")
    mastery.resolve_misconception("learner-1", "basics", m.id)

    assert detector.detect_gaps("learner-1").misconceptions == []


def test_empty_learner_everything_missing(detector, db, learner):
    for cid in ("a", "b", "c"):
        db.add_concept({"concept_id": cid})
    db.add_edge("a", "b", strength="required")
    db.add_edge("b", "c", strength="required")

    report = detector.detect_gaps("learner-1")

    assert ids(report.missing) == ["a", "b", "c"]
    assert report.missing[0].blocks == ["b", "c"]
    assert report.missing[2].blocks == []
    assert report.summary() == {
        "total": 3,
        "critical": 0,
        "byType": {"missing": 3, "partial": 0, "forgotten": 0, "misconceptions": 0},
    }


def test_missing_requires_mastered_prerequisites(detector, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=90)

    report = detector.detect_gaps("learner-1")

    # advanced and expert are blocked by the unstarted intermediate
    assert ids(report.missing) == ["intermediate"]
    assert report.missing[0].blocks == ["advanced", "expert"]


def test_partial_with_root_cause(detector, chain_db, mastery, learner):
    mastery.set_knowledge_state("learner-1", "basics", mastery=40)
    mastery.set_knowledge_state("learner-1", "intermediate", mastery=60)

    report = detector.detect_gaps("learner-1", gap_type=GapType.PARTIAL)

    assert ids(report.partial) == ["basics", "intermediate"]
    basics, intermediate = report.partial
    assert basics.severity == GapSeverity.HIGH
    assert basics.root_cause is None
    assert intermediate.severity == GapSeverity.MEDIUM
    assert intermediate.root_cause == "basics"
    assert intermediate.to_dict()["rootCause"] == "basics"
    assert report.missing == []


def test_scope_and_domain(detector, chain_db, log_messages, learner):
    chain_db.add_concept({"concept_id": "poem", "domain": "literature"})

    scoped = detector.detect_gaps("learner-1", scope=["poem", "basics", "ghost"])
    assert ids(scoped.missing) == ["basics", "poem"]
    assert any("ghost" in m for m in log_messages)

    by_domain = detector.detect_gaps("learner-1", domain="literature")
    assert ids(by_domain.missing) == ["poem"]


def test_total_is_sum_of_lists(detector, chain_db, mastery, learner):
    now = utcnow()
    mastery.set_knowledge_state("learner-1", "basics", mastery=85,
                                last_reviewed=now - timedelta(days=20))
    mastery.set_knowledge_state("learner-1", "intermediate", mastery=55)
    mastery.add_misconception("learner-1", "intermediate", "Sign errors")

    report = detector.detect_gaps("learner-1", now=now)

    assert report.total == (len(report.missing) + len(report.partial)
                            + len(report.forgotten) + len(report.misconceptions))
    assert report.summary()["total"] == report.total
    assert len(report.all_gaps()) == report.total
    assert report.to_dict()["summary"]["byType"]["forgotten"] == 1


def test_states_for_deleted_concepts_are_skipped(detector, chain_db, mastery, learner, log_messages):
    mastery.set_knowledge_state("learner-1", "ghost", mastery=20)

    report = detector.detect_gaps("learner-1")

    assert "ghost" not in ids(report.all_gaps())
    assert any("deleted concept" in m for m in log_messages)


def test_unknown_learner(detector, chain_db):
    with pytest.raises(NotFound):
        detector.detect_gaps("ghost")
