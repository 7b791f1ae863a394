"""
Data model - learners, concepts, prerequisite edges and knowledge states.

Stored records are pydantic models so that every value crossing the storage
boundary is range-checked (mastery 0-100, difficulty 1-10, known domain IDs).

Key entities:
    - ConceptNode / PrerequisiteEdge / RelatedEdge: the knowledge graph
    - LearnerProfile: sparse psychometric scores + derived profiles
    - KnowledgeState: one learner's mastery of one concept
"""

import uuid
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so arithmetic never mixes kinds."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# IDs are embedded in colon-separated store keys
ID_PATTERN = r"^[^:]+$"


# ==================== Enumerations ====================

class PsychometricDomain(str, Enum):
    """The closed set of 39 psychometric domain IDs."""
    # Big Five Personality
    BIG_FIVE_OPENNESS = "big_five_openness"
    BIG_FIVE_CONSCIENTIOUSNESS = "big_five_conscientiousness"
    BIG_FIVE_EXTRAVERSION = "big_five_extraversion"
    BIG_FIVE_AGREEABLENESS = "big_five_agreeableness"
    BIG_FIVE_NEUROTICISM = "big_five_neuroticism"
    # Dark Triad
    DARK_TRIAD_NARCISSISM = "dark_triad_narcissism"
    DARK_TRIAD_MACHIAVELLIANISM = "dark_triad_machiavellianism"
    DARK_TRIAD_PSYCHOPATHY = "dark_triad_psychopathy"
    # Emotional Intelligence
    EMOTIONAL_EMPATHY = "emotional_empathy"
    EMOTIONAL_INTELLIGENCE = "emotional_intelligence"
    ATTACHMENT_STYLE = "attachment_style"
    LOVE_LANGUAGES = "love_languages"
    # Communication & Social
    COMMUNICATION_STYLE = "communication_style"
    SOCIAL_SUPPORT = "social_support"
    # Decision Making & Risk
    RISK_TOLERANCE = "risk_tolerance"
    DECISION_STYLE = "decision_style"
    TIME_ORIENTATION = "time_orientation"
    LOCUS_OF_CONTROL = "locus_of_control"
    # Motivation & Achievement
    ACHIEVEMENT_MOTIVATION = "achievement_motivation"
    SELF_EFFICACY = "self_efficacy"
    GROWTH_MINDSET = "growth_mindset"
    AUTHENTICITY = "authenticity"
    # Values & Interests
    PERSONAL_VALUES = "personal_values"
    INTERESTS = "interests"
    LIFE_SATISFACTION = "life_satisfaction"
    # Coping & Wellbeing
    STRESS_COPING = "stress_coping"
    # Cognitive
    COGNITIVE_ABILITIES = "cognitive_abilities"
    CREATIVITY = "creativity"
    LEARNING_STYLES = "learning_styles"
    INFORMATION_PROCESSING = "information_processing"
    METACOGNITION = "metacognition"
    EXECUTIVE_FUNCTIONS = "executive_functions"
    # Social Cognition
    SOCIAL_COGNITION = "social_cognition"
    # Worldview
    POLITICAL_IDEOLOGY = "political_ideology"
    CULTURAL_VALUES = "cultural_values"
    MORAL_REASONING = "moral_reasoning"
    # Work & Lifestyle
    WORK_CAREER_STYLE = "work_career_style"
    SENSORY_PROCESSING = "sensory_processing"
    AESTHETIC_PREFERENCES = "aesthetic_preferences"


class BloomLevel(IntEnum):
    REMEMBER = 1
    UNDERSTAND = 2
    APPLY = 3
    ANALYZE = 4
    EVALUATE = 5
    CREATE = 6


class EdgeStrength(str, Enum):
    REQUIRED = "required"
    RECOMMENDED = "recommended"
    HELPFUL = "helpful"


# Edges that gate readiness and path ordering
DEPENDENCY_STRENGTHS = (EdgeStrength.REQUIRED, EdgeStrength.RECOMMENDED)


class LearningModality(str, Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    READING = "reading"


class SocialPreference(str, Enum):
    SOLO = "solo"
    COLLABORATIVE = "collaborative"
    MIXED = "mixed"


class PacePreference(str, Enum):
    SELF_PACED = "self-paced"
    STRUCTURED = "structured"
    INTENSIVE = "intensive"


class FeedbackPreference(str, Enum):
    IMMEDIATE = "immediate"
    DELAYED = "delayed"
    ON_REQUEST = "on-request"


class CapacityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AttentionSpan(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class ProcessingSpeed(str, Enum):
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"


class AbstractThinking(str, Enum):
    CONCRETE = "concrete"
    MIXED = "mixed"
    ABSTRACT = "abstract"


class MisconceptionSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"


class InteractionType(str, Enum):
    LESSON = "lesson"
    QUIZ = "quiz"
    PRACTICE = "practice"
    REVIEW = "review"


# ==================== Base Record ====================

class Record(BaseModel):
    """Base for stored records: validated on assignment, UTC timestamps."""

    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_timestamps(cls, value):
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value

    def to_json_dict(self) -> dict:
        """Serialize for the key-value store."""
        return self.model_dump(mode="json")


# ==================== Learner Model ====================

class PsychometricScore(Record):
    """One domain score; confidence is trust in the source, not the score."""
    score: float = Field(ge=0, le=100)
    confidence: float = Field(default=0.5, ge=0, le=1)
    last_updated: datetime = Field(default_factory=utcnow)
    source: Optional[str] = None


class LearningStyle(Record):
    primary: LearningModality
    secondary: Optional[LearningModality] = None
    social_preference: SocialPreference = SocialPreference.MIXED
    pace_preference: PacePreference = PacePreference.SELF_PACED
    feedback_preference: FeedbackPreference = FeedbackPreference.ON_REQUEST


class CognitiveProfile(Record):
    working_memory_capacity: CapacityLevel = CapacityLevel.MEDIUM
    attention_span: AttentionSpan = AttentionSpan.MEDIUM
    processing_speed: ProcessingSpeed = ProcessingSpeed.MEDIUM
    abstract_thinking: AbstractThinking = AbstractThinking.MIXED


class LearnerProfile(Record):
    user_id: str = Field(min_length=1, pattern=ID_PATTERN)
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Sparse: 0 to 39 domains set
    psychometric_scores: Dict[PsychometricDomain, PsychometricScore] = Field(default_factory=dict)

    learning_style: Optional[LearningStyle] = None
    cognitive_profile: Optional[CognitiveProfile] = None

    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


# ==================== Knowledge Model ====================

class ConceptDifficulty(Record):
    absolute: float = Field(default=5, ge=1, le=10)
    cognitive_load: float = Field(default=0.5, ge=0, le=1)
    abstractness: float = Field(default=0.5, ge=0, le=1)


class BloomObjectives(Record):
    remember: List[str] = Field(default_factory=list)
    understand: List[str] = Field(default_factory=list)
    apply: List[str] = Field(default_factory=list)
    analyze: List[str] = Field(default_factory=list)
    evaluate: List[str] = Field(default_factory=list)
    create: List[str] = Field(default_factory=list)


class TimeEstimates(Record):
    """Minutes to reach each stage of mastery."""
    introduction: float = Field(default=0, ge=0)
    basic_mastery: float = Field(default=0, ge=0)
    deep_mastery: float = Field(default=0, ge=0)


class ConceptNode(Record):
    concept_id: str = Field(min_length=1, pattern=ID_PATTERN)
    name: str = ""
    domain: str = "general"
    subdomain: Optional[str] = None
    description: str = ""
    difficulty: ConceptDifficulty = Field(default_factory=ConceptDifficulty)
    bloom_level: Optional[BloomLevel] = None
    bloom_objectives: Optional[BloomObjectives] = None
    time_estimates: Optional[TimeEstimates] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        return self.name or self.concept_id


class PrerequisiteEdge(Record):
    """from_concept must be learned before to_concept."""
    from_concept: str = Field(min_length=1)
    to_concept: str = Field(min_length=1)
    strength: EdgeStrength = EdgeStrength.RECOMMENDED
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def edge_id(self) -> str:
        return f"{self.from_concept}:{self.to_concept}"


class RelatedEdge(Record):
    """Non-prerequisite relationship ("similar", "contrasts", "extends")."""
    concept_a: str = Field(min_length=1)
    concept_b: str = Field(min_length=1)
    relationship: str = Field(min_length=1)
    bidirectional: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def edge_id(self) -> str:
        return f"{self.concept_a}:{self.concept_b}:{self.relationship}"


# ==================== Knowledge State ====================

class Misconception(Record):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    description: str = Field(min_length=1)
    severity: MisconceptionSeverity = MisconceptionSeverity.MODERATE
    identified: datetime = Field(default_factory=utcnow)
    resolved: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved is not None


class LearningInteraction(Record):
    timestamp: datetime = Field(default_factory=utcnow)
    type: InteractionType
    duration: float = Field(default=0, ge=0)  # minutes
    score: Optional[float] = Field(default=None, ge=0, le=100)
    bloom_level: Optional[BloomLevel] = None
    notes: Optional[str] = None


class KnowledgeState(Record):
    """Mastery of one concept by one learner, keyed by (user_id, concept_id)."""
    user_id: str = Field(min_length=1, pattern=ID_PATTERN)
    concept_id: str = Field(min_length=1, pattern=ID_PATTERN)

    mastery: float = Field(default=0, ge=0, le=100)
    bloom_level: BloomLevel = BloomLevel.REMEMBER

    first_seen: Optional[datetime] = None
    last_accessed: Optional[datetime] = None
    last_assessed: Optional[datetime] = None
    last_reviewed: Optional[datetime] = None
    next_review: Optional[datetime] = None

    # Spaced repetition
    retention_strength: float = Field(default=1.0, gt=0)
    review_count: int = Field(default=0, ge=0)
    interval_days: float = Field(default=0, ge=0)
    ease_factor: float = Field(default=2.5, ge=1.0)

    misconceptions: List[Misconception] = Field(default_factory=list)
    interactions: List[LearningInteraction] = Field(default_factory=list)

    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def active_misconceptions(self) -> List[Misconception]:
        return [m for m in self.misconceptions if not m.is_resolved]

    @property
    def reference_time(self) -> Optional[datetime]:
        """Timestamp the forgetting curve starts from."""
        return self.last_reviewed or self.last_assessed or self.last_accessed
