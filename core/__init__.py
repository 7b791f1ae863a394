"""
Core module - Data model, psychometrics, knowledge graph and mastery storage.

Components:
    - models: pydantic records (concepts, edges, learners, knowledge states)
    - psychometrics: 39-domain catalogue, learning style + cognitive profile
    - graph_db: Learner / concept / edge storage over a key-value store
    - mastery_store: Per-learner knowledge states, misconceptions, reviews
    - knowledge_graph: networkx index with cycle-safe traversal
    - student_model: Forgetting curves + spaced-repetition scheduling
    - config / errors: Shared thresholds and exception hierarchy
"""

from .errors import LearnGraphError, NotFound, InvalidInput, GraphInconsistency, ComputationLimitExceeded
from .config import EngineConfig, DEFAULT_CONFIG
from .models import (
    ConceptNode,
    PrerequisiteEdge,
    RelatedEdge,
    LearnerProfile,
    KnowledgeState,
    Misconception,
    PsychometricDomain,
    PsychometricScore,
    LearningStyle,
    CognitiveProfile,
)
from .psychometrics import derive_learning_style, estimate_cognitive_profile
from .student_model import DecayModel, ReviewOutcome, predict_retention
from .knowledge_graph import KnowledgeGraph
from .graph_db import EducationGraphDB
from .mastery_store import MasteryStore

__all__ = [
    "LearnGraphError",
    "NotFound",
    "InvalidInput",
    "GraphInconsistency",
    "ComputationLimitExceeded",
    "EngineConfig",
    "DEFAULT_CONFIG",
    "ConceptNode",
    "PrerequisiteEdge",
    "RelatedEdge",
    "LearnerProfile",
    "KnowledgeState",
    "Misconception",
    "PsychometricDomain",
    "PsychometricScore",
    "LearningStyle",
    "CognitiveProfile",
    "derive_learning_style",
    "estimate_cognitive_profile",
    "DecayModel",
    "ReviewOutcome",
    "predict_retention",
    "KnowledgeGraph",
    "EducationGraphDB",
    "MasteryStore",
]
