"""Tests for core/knowledge_graph.py"""

import pytest

from core.config import EngineConfig
from core.errors import ComputationLimitExceeded, GraphInconsistency, NotFound
from core.knowledge_graph import ChainLink, KnowledgeGraph
from core.models import ConceptNode, EdgeStrength, PrerequisiteEdge


def build(edges, nodes=None, config=None, strength="required"):
    """Graph from (from, to) pairs; nodes default to every endpoint."""
    ids = set(nodes or [])
    for a, b in edges:
        ids.update((a, b))
    concepts = [ConceptNode(concept_id=c, name=c.title()) for c in sorted(ids)]
    prereqs = [PrerequisiteEdge(from_concept=a, to_concept=b, strength=strength) for a, b in edges]
    return KnowledgeGraph(concepts, prereqs, config or EngineConfig())


def test_from_db(chain_db):
    graph = KnowledgeGraph.from_db(chain_db)

    assert len(graph) == 4
    assert "advanced" in graph
    assert graph.edge_strength("basics", "intermediate") == EdgeStrength.REQUIRED
    assert graph.edge_strength("basics", "expert") is None


def test_prerequisite_chain():
    graph = build([("basics", "intermediate"), ("intermediate", "advanced"), ("advanced", "expert")])

    chain = graph.get_prerequisites("expert")
    assert chain == [ChainLink("advanced", 1), ChainLink("intermediate", 2), ChainLink("basics", 3)]
    assert graph.get_prerequisites("expert", direct=True) == [ChainLink("advanced", 1)]
    assert graph.get_prerequisites("expert", depth=2) == chain[:2]
    assert graph.get_prerequisites("basics") == []


def test_dependents_chain():
    graph = build([("basics", "intermediate"), ("intermediate", "advanced"), ("advanced", "expert")])

    assert [l.concept_id for l in graph.get_dependents("basics")] == ["intermediate", "advanced", "expert"]
    assert graph.descendants("advanced") == {"expert"}


def test_diamond_reports_minimum_depth_once():
    # a -> b -> d, a -> c -> d, a -> d
    graph = build([("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"), ("a", "d")])

    chain = graph.get_prerequisites("d")
    assert chain == [ChainLink("a", 1), ChainLink("b", 1), ChainLink("c", 1)]


def test_cycle_terminates(log_messages):
    graph = build([("a", "b"), ("b", "c"), ("c", "a")])

    chain = graph.get_prerequisites("a")

    assert [l.concept_id for l in chain] == ["c", "b"]
    assert len({l.concept_id for l in chain}) == len(chain)
    assert any("Cycle through a" in m for m in log_messages)


def test_unknown_concept():
    graph = build([("a", "b")])
    with pytest.raises(NotFound):
        graph.get_prerequisites("zzz")
    with pytest.raises(NotFound):
        graph.get_dependents("zzz")


def test_depth_beyond_limit():
    graph = build([("a", "b")], config=EngineConfig(max_traversal_depth=5))
    with pytest.raises(ComputationLimitExceeded):
        graph.get_prerequisites("b", depth=6)


def test_graph_size_limit():
    with pytest.raises(ComputationLimitExceeded):
        build([("a", "b"), ("b", "c")], config=EngineConfig(max_graph_size=4))


def test_dangling_edges_are_skipped(log_messages):
    concepts = [ConceptNode(concept_id="a")]
    edges = [PrerequisiteEdge(from_concept="a", to_concept="ghost")]

    graph = KnowledgeGraph(concepts, edges)

    assert graph.graph.number_of_edges() == 0
    assert any("dangling edge a -> ghost" in m for m in log_messages)


def test_direct_prerequisites_filters_by_strength():
    concepts = [ConceptNode(concept_id=c) for c in ("a", "b", "c", "d")]
    edges = [
        PrerequisiteEdge(from_concept="a", to_concept="d", strength="required"),
        PrerequisiteEdge(from_concept="b", to_concept="d", strength="recommended"),
        PrerequisiteEdge(from_concept="c", to_concept="d", strength="helpful"),
    ]
    graph = KnowledgeGraph(concepts, edges)

    assert graph.direct_prerequisites("d") == ["a", "b"]
    assert graph.direct_prerequisites("d", strengths=[EdgeStrength.HELPFUL]) == ["c"]


def test_find_cycle_and_assert_acyclic():
    dag = build([("a", "b"), ("b", "c")])
    assert dag.find_cycle() is None
    dag.assert_acyclic()

    cyclic = build([("a", "b"), ("b", "c"), ("c", "a")])
    assert set(cyclic.find_cycle()) == {"a", "b", "c"}
    with pytest.raises(GraphInconsistency, match="cycle"):
        cyclic.assert_acyclic()


def test_topological_order():
    graph = build([("b", "c"), ("a", "c"), ("c", "d")], nodes=["e"])

    order = graph.topological_order()
    assert order == ["a", "b", "c", "d", "e"]
    assert graph.topological_order(["d", "a"]) == ["a", "d"]


def test_topological_order_with_key():
    graph = build([("a", "c")], nodes=["b"])
    order = graph.topological_order(key=lambda c: {"a": 2, "b": 1, "c": 0}[c])
    assert order == ["b", "a", "c"]


def test_topological_order_on_cycle():
    graph = build([("a", "b"), ("b", "a")])
    with pytest.raises(GraphInconsistency):
        graph.topological_order()


def test_dependency_order():
    graph = build([("basics", "intermediate"), ("intermediate", "advanced")])
    assert graph.dependency_order(["advanced", "basics", "intermediate"]) == ["basics", "intermediate", "advanced"]


def test_trace_root_cause():
    graph = build([("basics", "intermediate"), ("intermediate", "advanced"), ("advanced", "expert")])

    mastery = {"basics": 40, "intermediate": 50, "advanced": 90}
    assert graph.trace_root_cause("expert", mastery) == "basics"

    mastery = {"basics": 90, "intermediate": 50, "advanced": 90}
    assert graph.trace_root_cause("expert", mastery) == "intermediate"

    mastery = {"basics": 90, "intermediate": 90, "advanced": 90}
    assert graph.trace_root_cause("expert", mastery) == "expert"
