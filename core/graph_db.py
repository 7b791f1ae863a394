"""
Education Graph DB - learners, concepts and prerequisite edges over a key-value store.

Features:
    - Learner profile CRUD with sparse psychometric scores
    - Derived learning style / cognitive profile persistence
    - Concept CRUD with a domain index
    - Prerequisite and related edges (both ends must exist)
    - Search and difficulty queries

Every record is validated with pydantic on the way in and on the way out;
validation failures surface as InvalidInput.
"""

from typing import Dict, List, Mapping, Optional, Type, TypeVar, Union

from loguru import logger
from pydantic import BaseModel, ValidationError

from core.config import DEFAULT_CONFIG, EngineConfig
from core.errors import InvalidInput, NotFound
from core.models import (
    ConceptNode,
    EdgeStrength,
    LearnerProfile,
    PrerequisiteEdge,
    PsychometricDomain,
    PsychometricScore,
    RelatedEdge,
    utcnow,
)
from core.psychometrics import (
    derive_learning_style,
    estimate_cognitive_profile,
    normalize_scores,
)
from redis_store import (
    KeyValueStore,
    MemoryStore,
    concept_key,
    domain_index_key,
    learner_key,
    prereq_edge_key,
    related_edge_key,
)

M = TypeVar("M", bound=BaseModel)

LEARNER_PREFIX = "learner:"
CONCEPT_PREFIX = "concept:"
PREREQ_PREFIX = "edge:prereq:"
RELATED_PREFIX = "edge:related:"
STATE_PREFIX = "state:"
DOMAIN_INDEX_PREFIX = "index:domain:"


def validate_record(model: Type[M], data: Union[M, Mapping]) -> M:
    """Build a model from user input, turning ValidationError into InvalidInput."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        raise InvalidInput(f"Invalid {model.__name__}: {e}") from e


class EducationGraphDB:
    """
    Storage boundary for the knowledge graph and learner profiles.

    Knowledge states live in MasteryStore, which shares the same store.
    """

    def __init__(self, store: Optional[KeyValueStore] = None,
                 config: EngineConfig = DEFAULT_CONFIG):
        self.store = store if store is not None else MemoryStore()
        self.config = config

    def _load(self, model: Type[M], key: str) -> Optional[M]:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise InvalidInput(f"Corrupt record at {key}: {e}") from e

    def _load_prefix(self, model: Type[M], prefix: str) -> List[M]:
        records = []
        for key, raw in self.store.scan(prefix):
            try:
                records.append(model.model_validate(raw))
            except ValidationError:
                logger.warning("Skipping corrupt record at {}", key)
        return records

    # ==================== Learner Profiles ====================

    def set_learner_profile(self, user_id: str,
                            profile: Optional[Union[LearnerProfile, Mapping]] = None,
                            **fields) -> LearnerProfile:
        """
        Create or update a learner profile (fields merge over the stored one).

        Args:
            user_id: Learner ID
            profile: Full or partial profile fields
            **fields: Additional fields, e.g. name="Ada"

        Returns:
            The stored profile
        """
        updates: Dict = {}
        if isinstance(profile, LearnerProfile):
            updates.update(profile.model_dump(exclude={"created_at"}))
        elif profile is not None:
            updates.update(profile)
        updates.update(fields)

        if "psychometric_scores" in updates:
            updates["psychometric_scores"] = normalize_scores(updates["psychometric_scores"])

        existing = self.get_learner_profile(user_id)
        merged = existing.model_dump() if existing else {}
        merged.update(updates)
        merged["user_id"] = user_id
        merged["updated_at"] = utcnow()

        stored = validate_record(LearnerProfile, merged)
        self.store.put(learner_key(user_id), stored.to_json_dict())
        return stored

    def get_learner_profile(self, user_id: str) -> Optional[LearnerProfile]:
        return self._load(LearnerProfile, learner_key(user_id))

    def require_learner(self, user_id: str) -> LearnerProfile:
        profile = self.get_learner_profile(user_id)
        if profile is None:
            raise NotFound("Learner", user_id)
        return profile

    def delete_learner_profile(self, user_id: str) -> bool:
        """Delete a learner and all of their knowledge states."""
        existed = self.store.exists(learner_key(user_id))
        ops = [("delete", learner_key(user_id))]
        ops += [("delete", key) for key, _ in self.store.scan(f"{STATE_PREFIX}{user_id}:")]
        self.store.batch(ops)
        if existed:
            logger.info("Deleted learner {} ({} knowledge states)", user_id, len(ops) - 1)
        return existed

    def list_learner_profiles(self, limit: Optional[int] = None) -> List[LearnerProfile]:
        profiles = self._load_prefix(LearnerProfile, LEARNER_PREFIX)
        return profiles[:limit] if limit else profiles

    # ==================== Psychometrics ====================

    def update_psychometric_score(self, user_id: str, domain: Union[str, PsychometricDomain],
                                  score: float, confidence: float = 0.5,
                                  source: Optional[str] = None) -> LearnerProfile:
        return self.update_psychometric_scores(
            user_id, {domain: {"score": score, "confidence": confidence, "source": source}})

    def update_psychometric_scores(self, user_id: str, scores: Mapping) -> LearnerProfile:
        """Merge a sparse score map into the learner's profile."""
        profile = self.require_learner(user_id)
        incoming = normalize_scores(scores)

        merged: Dict[PsychometricDomain, PsychometricScore] = dict(profile.psychometric_scores)
        merged.update(incoming)
        return self.set_learner_profile(user_id, psychometric_scores=merged)

    def get_psychometric_scores(self, user_id: str) -> Dict[PsychometricDomain, PsychometricScore]:
        return dict(self.require_learner(user_id).psychometric_scores)

    def compute_and_store_derived_profiles(self, user_id: str) -> LearnerProfile:
        """Recompute learning style + cognitive profile and persist them."""
        profile = self.require_learner(user_id)
        return self.set_learner_profile(
            user_id,
            learning_style=derive_learning_style(profile.psychometric_scores),
            cognitive_profile=estimate_cognitive_profile(profile.psychometric_scores),
        )

    # ==================== Concepts ====================

    def add_concept(self, concept: Union[ConceptNode, Mapping]) -> ConceptNode:
        """Create or replace a concept; created_at survives replacement."""
        node = validate_record(ConceptNode, concept)
        existing = self.get_concept(node.concept_id)

        ops = []
        if existing is not None:
            node = node.model_copy(update={"created_at": existing.created_at, "updated_at": utcnow()})
            if existing.domain != node.domain:
                ops.append(("delete", domain_index_key(existing.domain, node.concept_id)))

        ops.append(("put", concept_key(node.concept_id), node.to_json_dict()))
        ops.append(("put", domain_index_key(node.domain, node.concept_id), node.concept_id))
        self.store.batch(ops)
        return node

    def get_concept(self, concept_id: str) -> Optional[ConceptNode]:
        return self._load(ConceptNode, concept_key(concept_id))

    def require_concept(self, concept_id: str) -> ConceptNode:
        concept = self.get_concept(concept_id)
        if concept is None:
            raise NotFound("Concept", concept_id)
        return concept

    def delete_concept(self, concept_id: str) -> bool:
        """Delete a concept together with every edge touching it."""
        concept = self.get_concept(concept_id)
        if concept is None:
            return False

        ops = [
            ("delete", concept_key(concept_id)),
            ("delete", domain_index_key(concept.domain, concept_id)),
        ]
        for edge in self.edges_from(concept_id) + self.edges_to(concept_id):
            ops.append(("delete", prereq_edge_key(edge.from_concept, edge.to_concept)))
        for edge in self.list_related_edges():
            if concept_id in (edge.concept_a, edge.concept_b):
                ops.append(("delete", related_edge_key(edge.edge_id)))

        self.store.batch(ops)
        logger.info("Deleted concept {} ({} linked keys)", concept_id, len(ops) - 2)
        return True

    def list_concepts(self, limit: Optional[int] = None) -> List[ConceptNode]:
        concepts = self._load_prefix(ConceptNode, CONCEPT_PREFIX)
        return concepts[:limit] if limit else concepts

    def list_concepts_by_domain(self, domain: str) -> List[ConceptNode]:
        concepts = []
        for key, concept_id in self.store.scan(f"{DOMAIN_INDEX_PREFIX}{domain}:"):
            concept = self.get_concept(concept_id)
            if concept is None:
                logger.warning("Domain index {} points at missing concept", key)
                continue
            # "math" is also a key prefix of "math:algebra"
            if concept.domain != domain:
                continue
            concepts.append(concept)
        return concepts

    def list_concepts_by_difficulty(self, min_difficulty: float = 1,
                                    max_difficulty: float = 10) -> List[ConceptNode]:
        matches = [
            c for c in self.list_concepts()
            if min_difficulty <= c.difficulty.absolute <= max_difficulty
        ]
        return sorted(matches, key=lambda c: (c.difficulty.absolute, c.concept_id))

    def list_concepts_by_bloom_level(self, level: str) -> List[ConceptNode]:
        """Concepts that carry objectives at a Bloom level ("apply", "analyze", ...)."""
        return [
            c for c in self.list_concepts()
            if c.bloom_objectives is not None and getattr(c.bloom_objectives, level, None)
        ]

    def search_concepts(self, query: str, limit: Optional[int] = None) -> List[ConceptNode]:
        """
        Case-insensitive search over name, description, ID, domain and tags.

        Exact name matches rank first, then name matches, then the rest.
        """
        q = query.strip().lower()
        if not q:
            return []

        def haystack(c: ConceptNode) -> List[str]:
            return [c.name, c.description, c.concept_id, c.domain] + list(c.tags)

        matches = [c for c in self.list_concepts()
                   if any(q in field.lower() for field in haystack(c))]
        matches.sort(key=lambda c: (c.name.lower() != q, q not in c.name.lower(), c.concept_id))
        return matches[:limit] if limit else matches

    # ==================== Prerequisite Edges ====================

    def add_edge(self, from_concept: str, to_concept: str,
                 strength: Union[str, EdgeStrength] = EdgeStrength.RECOMMENDED,
                 reason: Optional[str] = None) -> PrerequisiteEdge:
        """
        Add "from_concept must be learned before to_concept".

        Raises:
            InvalidInput: self-loop or unknown strength
            NotFound: either concept does not exist
        """
        if from_concept == to_concept:
            raise InvalidInput(f"Concept cannot be its own prerequisite: {from_concept}")
        self.require_concept(from_concept)
        self.require_concept(to_concept)

        edge = validate_record(PrerequisiteEdge, {
            "from_concept": from_concept,
            "to_concept": to_concept,
            "strength": strength,
            "reason": reason,
        })
        self.store.put(prereq_edge_key(from_concept, to_concept), edge.to_json_dict())
        return edge

    def get_edge(self, from_concept: str, to_concept: str) -> Optional[PrerequisiteEdge]:
        return self._load(PrerequisiteEdge, prereq_edge_key(from_concept, to_concept))

    def delete_edge(self, from_concept: str, to_concept: str) -> bool:
        return self.store.delete(prereq_edge_key(from_concept, to_concept))

    def list_edges(self) -> List[PrerequisiteEdge]:
        return self._load_prefix(PrerequisiteEdge, PREREQ_PREFIX)

    def edges_from(self, concept_id: str) -> List[PrerequisiteEdge]:
        """Edges leaving concept_id (concept_id is the prerequisite)."""
        return self._load_prefix(PrerequisiteEdge, f"{PREREQ_PREFIX}{concept_id}:")

    def edges_to(self, concept_id: str) -> List[PrerequisiteEdge]:
        """Edges entering concept_id (its direct prerequisites)."""
        return [e for e in self.list_edges() if e.to_concept == concept_id]

    # ==================== Related Edges ====================

    def add_related_edge(self, concept_a: str, concept_b: str, relationship: str,
                         bidirectional: bool = True) -> RelatedEdge:
        self.require_concept(concept_a)
        self.require_concept(concept_b)
        edge = validate_record(RelatedEdge, {
            "concept_a": concept_a,
            "concept_b": concept_b,
            "relationship": relationship,
            "bidirectional": bidirectional,
        })
        self.store.put(related_edge_key(edge.edge_id), edge.to_json_dict())
        return edge

    def get_related_edges(self, concept_id: str) -> List[RelatedEdge]:
        return [
            e for e in self.list_related_edges()
            if e.concept_a == concept_id or (e.bidirectional and e.concept_b == concept_id)
        ]

    def delete_related_edge(self, edge_id: str) -> bool:
        return self.store.delete(related_edge_key(edge_id))

    def list_related_edges(self) -> List[RelatedEdge]:
        return self._load_prefix(RelatedEdge, RELATED_PREFIX)

    # ==================== Statistics ====================

    def get_stats(self) -> Dict[str, int]:
        def count(prefix: str) -> int:
            return sum(1 for _ in self.store.scan(prefix))

        return {
            "learnerCount": count(LEARNER_PREFIX),
            "conceptCount": count(CONCEPT_PREFIX),
            "edgeCount": count(PREREQ_PREFIX),
            "relatedEdgeCount": count(RELATED_PREFIX),
            "stateCount": count(STATE_PREFIX),
        }
