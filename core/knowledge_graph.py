"""
Knowledge Graph - read-side index over concepts and prerequisite edges.

Features:
    - networkx DiGraph built once per computation (forward + reverse adjacency)
    - Depth-limited prerequisite / dependent chains (iterative BFS, visited set)
    - Cycle detection and topological ordering with stable tie-breaks
    - Root cause tracing for learning gaps

Edges point from prerequisite to dependent: basics -> intermediate.
"""

from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

import networkx as nx
from loguru import logger

from core.config import DEFAULT_CONFIG, EngineConfig
from core.errors import ComputationLimitExceeded, GraphInconsistency, NotFound
from core.models import DEPENDENCY_STRENGTHS, ConceptNode, EdgeStrength, PrerequisiteEdge


@dataclass(frozen=True)
class ChainLink:
    """One concept reached by a traversal, at its minimum depth."""
    concept_id: str
    depth: int

    def to_dict(self) -> Dict:
        return {"conceptId": self.concept_id, "depth": self.depth}


class KnowledgeGraph:
    """
    Directed graph of concepts with prerequisite edges.

    Built from storage with `KnowledgeGraph.from_db(db)`; edges that point at
    missing concepts are skipped with a warning.
    """

    def __init__(self, concepts: Iterable[ConceptNode], edges: Iterable[PrerequisiteEdge],
                 config: EngineConfig = DEFAULT_CONFIG):
        self.config = config
        self.graph = nx.DiGraph()
        self.concepts: Dict[str, ConceptNode] = {}
        self._topo_index: Optional[Dict[str, int]] = None

        for concept in concepts:
            self.concepts[concept.concept_id] = concept
            self.graph.add_node(concept.concept_id)

        skipped = 0
        for edge in edges:
            if edge.from_concept not in self.concepts or edge.to_concept not in self.concepts:
                logger.warning("Skipping dangling edge {} -> {}", edge.from_concept, edge.to_concept)
                skipped += 1
                continue
            self.graph.add_edge(edge.from_concept, edge.to_concept,
                                strength=edge.strength, reason=edge.reason)

        size = self.graph.number_of_nodes() + self.graph.number_of_edges()
        if size > config.max_graph_size:
            raise ComputationLimitExceeded(
                f"Graph has {size} nodes+edges, limit is {config.max_graph_size}")

        logger.debug("Knowledge graph built: {} concepts, {} edges ({} skipped)",
                     self.graph.number_of_nodes(), self.graph.number_of_edges(), skipped)

    @classmethod
    def from_db(cls, db, config: Optional[EngineConfig] = None) -> "KnowledgeGraph":
        """Load every concept and prerequisite edge from an EducationGraphDB."""
        return cls(db.list_concepts(), db.list_edges(), config or db.config)

    # ==================== Query Methods ====================

    def __contains__(self, concept_id: str) -> bool:
        return concept_id in self.concepts

    def __len__(self) -> int:
        return len(self.concepts)

    def get_concept(self, concept_id: str) -> Optional[ConceptNode]:
        return self.concepts.get(concept_id)

    def require(self, concept_id: str) -> ConceptNode:
        concept = self.concepts.get(concept_id)
        if concept is None:
            raise NotFound("Concept", concept_id)
        return concept

    def concept_ids(self) -> List[str]:
        return sorted(self.concepts)

    def edge_strength(self, from_id: str, to_id: str) -> Optional[EdgeStrength]:
        data = self.graph.get_edge_data(from_id, to_id)
        return data["strength"] if data else None

    def direct_prerequisites(self, concept_id: str,
                             strengths: Sequence[EdgeStrength] = DEPENDENCY_STRENGTHS) -> List[str]:
        """Immediate prerequisites whose edge strength is in `strengths`."""
        self.require(concept_id)
        return sorted(
            p for p in self.graph.predecessors(concept_id)
            if self.graph[p][concept_id]["strength"] in strengths
        )

    # ==================== Traversal ====================

    def get_prerequisites(self, concept_id: str, depth: Optional[int] = None,
                          direct: bool = False) -> List[ChainLink]:
        """
        Prerequisite chain, walking edges backwards.

        Args:
            concept_id: Concept to start from (not included in the result)
            depth: Maximum depth (None = unlimited up to the safety bound)
            direct: Only depth-1 prerequisites

        Returns:
            Each ancestor once at its minimum depth, ordered by (depth, id)
        """
        return self._walk(concept_id, self.graph.predecessors, 1 if direct else depth)

    def get_dependents(self, concept_id: str, depth: Optional[int] = None) -> List[ChainLink]:
        """Dependent chain, walking edges forwards."""
        return self._walk(concept_id, self.graph.successors, depth)

    def ancestors(self, concept_id: str) -> Set[str]:
        return {link.concept_id for link in self.get_prerequisites(concept_id)}

    def descendants(self, concept_id: str) -> Set[str]:
        return {link.concept_id for link in self.get_dependents(concept_id)}

    def _walk(self, start: str, neighbors: Callable[[str], Iterable[str]],
              depth: Optional[int]) -> List[ChainLink]:
        self.require(start)
        limit = self.config.max_traversal_depth
        if depth is not None and depth > limit:
            raise ComputationLimitExceeded(f"Traversal depth {depth} exceeds limit {limit}")
        max_depth = limit if depth is None else depth

        visited = {start}
        found: List[ChainLink] = []
        queue = deque([(start, 0)])
        cycle_logged = False

        while queue:
            node, d = queue.popleft()
            if d >= max_depth:
                continue
            for nxt in neighbors(node):
                if nxt == start and not cycle_logged:
                    logger.warning("Cycle through {} detected during traversal", start)
                    cycle_logged = True
                if nxt in visited:
                    continue
                visited.add(nxt)
                found.append(ChainLink(nxt, d + 1))
                queue.append((nxt, d + 1))

        found.sort(key=lambda link: (link.depth, link.concept_id))
        return found

    # ==================== Ordering ====================

    def find_cycle(self) -> Optional[List[str]]:
        """Nodes of one prerequisite cycle, or None for a DAG."""
        try:
            edges = nx.find_cycle(self.graph)
        except nx.NetworkXNoCycle:
            return None
        return [u for u, _ in edges]

    def assert_acyclic(self):
        cycle = self.find_cycle()
        if cycle:
            path = " -> ".join(cycle + [cycle[0]])
            raise GraphInconsistency(f"Prerequisite cycle detected: {path}")

    def topological_order(self, nodes: Optional[Iterable[str]] = None,
                          key: Optional[Callable[[str], object]] = None) -> List[str]:
        """
        Prerequisites-first order over the whole graph, filtered to `nodes`.

        Sorting the full graph keeps transitive constraints between the
        selected nodes even when the concepts linking them are left out.
        Among available concepts, the one with the smallest key goes first.
        """
        try:
            order = list(nx.lexicographical_topological_sort(self.graph, key=key or str))
        except nx.NetworkXUnfeasible:
            self.assert_acyclic()
            raise GraphInconsistency("Prerequisite graph is not a DAG")

        if nodes is None:
            return order
        wanted = set(nodes)
        return [n for n in order if n in wanted]

    def dependency_order(self, concept_ids: Iterable[str]) -> List[str]:
        """Stable prerequisites-first order of the given IDs."""
        if self._topo_index is None:
            self._topo_index = {c: i for i, c in enumerate(self.topological_order())}
        return sorted(set(concept_ids), key=lambda c: (self._topo_index.get(c, len(self._topo_index)), c))

    # ==================== Root Cause Analysis ====================

    def trace_root_cause(self, concept_id: str, mastery: Dict[str, float],
                         threshold: Optional[float] = None) -> str:
        """
        Find the root cause of a weak concept by tracing back through prerequisites.

        Returns the EARLIEST weak ancestor in dependency order, or the
        concept itself when every ancestor is above threshold.
        """
        threshold = self.config.prerequisite_mastery_threshold if threshold is None else threshold
        ancestors = self.ancestors(concept_id)
        for ancestor in self.dependency_order(ancestors):
            if mastery.get(ancestor, 0.0) < threshold:
                return ancestor
        return concept_id
