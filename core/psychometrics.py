"""
Psychometric Model - 39 scored domains and the profiles derived from them.

Features:
    - Domain catalogue with interpretation bands and educational relevance
    - Validation of sparse score maps against the closed domain set
    - Learning style derivation (modality, social, pace, feedback)
    - Cognitive profile estimation (working memory, attention, speed, abstraction)

Both derivations are ordered rule tables: the first matching row wins, and a
domain that was never measured reads as the neutral midpoint (50).
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

from pydantic import ValidationError

from core.errors import InvalidInput
from core.models import (
    AbstractThinking,
    AttentionSpan,
    CapacityLevel,
    CognitiveProfile,
    FeedbackPreference,
    LearningModality,
    LearningStyle,
    PacePreference,
    ProcessingSpeed,
    PsychometricDomain,
    PsychometricScore,
    SocialPreference,
)

D = PsychometricDomain

NEUTRAL_SCORE = 50.0


@dataclass(frozen=True)
class DomainMetadata:
    """Display information for one psychometric domain."""
    domain: PsychometricDomain
    name: str
    category: str
    description: str
    low: str  # 0-33
    mid: str  # 34-66
    high: str  # 67-100
    educational_relevance: str


# ==================== Domain Catalogue ====================

DOMAIN_CATEGORIES: Tuple[str, ...] = (
    "Big Five Personality",
    "Dark Triad",
    "Emotional Intelligence",
    "Communication & Social",
    "Decision Making & Risk",
    "Motivation & Achievement",
    "Values & Interests",
    "Coping & Wellbeing",
    "Cognitive",
    "Social Cognition",
    "Worldview",
    "Work & Lifestyle",
)

_CATALOGUE = [
    # Big Five Personality
    (D.BIG_FIVE_OPENNESS, "Openness to Experience", "Big Five Personality",
     "Curiosity, creativity and preference for novelty",
     "Prefers routine and conventional approaches",
     "Balanced between tradition and novelty",
     "Curious, enjoys abstract thinking and new ideas",
     "High openness suits theoretical content and interdisciplinary links"),
    (D.BIG_FIVE_CONSCIENTIOUSNESS, "Conscientiousness", "Big Five Personality",
     "Organization, self-discipline and goal-directed behavior",
     "Flexible and spontaneous, may struggle with structure",
     "Moderate organization and planning",
     "Organized, disciplined, achievement-oriented",
     "High conscientiousness benefits from structured curricula and deadlines"),
    (D.BIG_FIVE_EXTRAVERSION, "Extraversion", "Big Five Personality",
     "Sociability, assertiveness and stimulation seeking",
     "Reserved and reflective, prefers solitary work",
     "Flexible between social and solo activities",
     "Outgoing, seeks social interaction",
     "High extraversion thrives in group work; low prefers independent study"),
    (D.BIG_FIVE_AGREEABLENESS, "Agreeableness", "Big Five Personality",
     "Cooperation, trust and consideration for others",
     "Competitive and skeptical",
     "Balanced cooperation and assertiveness",
     "Cooperative, trusting and helpful",
     "High agreeableness suits peer tutoring; low suits competitive challenges"),
    (D.BIG_FIVE_NEUROTICISM, "Neuroticism", "Big Five Personality",
     "Tendency towards anxiety and negative affect",
     "Emotionally stable and resilient",
     "Moderate emotional reactivity",
     "Prone to anxiety and stress",
     "High neuroticism needs supportive feedback and low-stakes practice"),
    # Dark Triad
    (D.DARK_TRIAD_NARCISSISM, "Narcissism", "Dark Triad",
     "Self-importance and need for admiration",
     "Modest, low need for recognition",
     "Healthy self-esteem",
     "Strong need for recognition",
     "Motivated by visible achievements and leaderboards"),
    (D.DARK_TRIAD_MACHIAVELLIANISM, "Machiavellianism", "Dark Triad",
     "Strategic, pragmatic focus on self-interest",
     "Straightforward, values fairness",
     "Balanced pragmatism",
     "Strategic and outcome-focused",
     "Motivated by practical applications and clear payoff"),
    (D.DARK_TRIAD_PSYCHOPATHY, "Psychopathy", "Dark Triad",
     "Boldness and reduced emotional reactivity",
     "Empathetic and risk-averse",
     "Moderate fearlessness",
     "Bold and emotionally detached",
     "Unfazed by failure, may need explicit ethical framing"),
    # Emotional Intelligence
    (D.EMOTIONAL_EMPATHY, "Empathy", "Emotional Intelligence",
     "Understanding and sharing the feelings of others",
     "Difficulty reading emotional cues",
     "Moderate emotional attunement",
     "Highly attuned to others' emotions",
     "High empathy benefits from case studies; low prefers data-driven content"),
    (D.EMOTIONAL_INTELLIGENCE, "Emotional Intelligence", "Emotional Intelligence",
     "Perceiving, understanding and managing emotions",
     "May struggle with emotional self-regulation",
     "Developing emotional awareness",
     "Strong emotional awareness and regulation",
     "Low emotional intelligence may need more emotional scaffolding"),
    (D.ATTACHMENT_STYLE, "Attachment Style", "Emotional Intelligence",
     "Pattern of relating to others in close relationships",
     "Avoidant, prefers independence",
     "Secure, comfortable with closeness and autonomy",
     "Anxious, worries about rejection",
     "Affects mentor relationships and help-seeking behavior"),
    (D.LOVE_LANGUAGES, "Love Languages", "Emotional Intelligence",
     "Preferred ways of receiving appreciation",
     "Less responsive to expressed appreciation",
     "Mixed appreciation preferences",
     "Highly responsive to expressed appreciation",
     "Informs the tone of feedback"),
    # Communication & Social
    (D.COMMUNICATION_STYLE, "Communication Style", "Communication & Social",
     "Preferred mode and style of communication",
     "Reserved, indirect communication",
     "Adaptable communication style",
     "Direct, assertive communication",
     "Affects preference for written or verbal, direct or exploratory instruction"),
    (D.SOCIAL_SUPPORT, "Social Support", "Communication & Social",
     "Perceived support from social networks",
     "Limited support network",
     "Moderate support availability",
     "Strong support network",
     "Low support may benefit from peer matching"),
    # Decision Making & Risk
    (D.RISK_TOLERANCE, "Risk Tolerance", "Decision Making & Risk",
     "Willingness to accept uncertainty",
     "Risk-averse, prefers certainty",
     "Moderate risk tolerance",
     "Comfortable with uncertainty",
     "High tolerance is open to hard problems; low needs safe practice"),
    (D.DECISION_STYLE, "Decision Style", "Decision Making & Risk",
     "Intuitive versus analytical decision making",
     "Intuitive, gut-feeling decisions",
     "Mixed decision approach",
     "Analytical, data-driven decisions",
     "Analytical learners want evidence; intuitive learners want examples"),
    (D.TIME_ORIENTATION, "Time Orientation", "Decision Making & Risk",
     "Focus on past, present or future",
     "Past-focused, values experience",
     "Present-focused",
     "Future-focused, plans ahead",
     "Future orientation responds to long-term goals"),
    (D.LOCUS_OF_CONTROL, "Locus of Control", "Decision Making & Risk",
     "Belief about control over outcomes",
     "External, outcomes feel outside one's control",
     "Balanced attribution",
     "Internal, believes in personal control",
     "External locus may need more guidance and attribution retraining"),
    # Motivation & Achievement
    (D.ACHIEVEMENT_MOTIVATION, "Achievement Motivation", "Motivation & Achievement",
     "Drive to accomplish challenging goals",
     "Content with current abilities",
     "Moderate achievement drive",
     "Strong drive to excel",
     "Responds to challenges, mastery goals and progress tracking"),
    (D.SELF_EFFICACY, "Self-Efficacy", "Motivation & Achievement",
     "Belief in one's ability to succeed",
     "Low confidence, avoids challenges",
     "Moderate self-belief",
     "Strong belief in ability to succeed",
     "Low self-efficacy needs scaffolding and early success experiences"),
    (D.GROWTH_MINDSET, "Growth Mindset", "Motivation & Achievement",
     "Belief that abilities develop through effort",
     "Fixed mindset",
     "Mixed beliefs about ability",
     "Growth mindset",
     "Fixed mindset may avoid difficulty"),
    (D.AUTHENTICITY, "Authenticity", "Motivation & Achievement",
     "Self-awareness and genuine self-expression",
     "May suppress true self",
     "Moderate self-expression",
     "Strong self-awareness",
     "High authenticity sets self-directed goals"),
    # Values & Interests
    (D.PERSONAL_VALUES, "Personal Values", "Values & Interests",
     "Core beliefs and priorities",
     "Practical, security-focused values",
     "Balanced value system",
     "Idealistic, self-transcendent values",
     "Linking material to personal values raises engagement"),
    (D.INTERESTS, "Interests", "Values & Interests",
     "Areas of curiosity and preferred activities",
     "Narrow, specialized interests",
     "Moderate interest breadth",
     "Broad, diverse interests",
     "Interest mapping drives personalized examples"),
    (D.LIFE_SATISFACTION, "Life Satisfaction", "Values & Interests",
     "Overall contentment with life",
     "Dissatisfied, may be seeking change",
     "Moderately satisfied",
     "Highly satisfied",
     "Affects how motivation should be framed"),
    # Coping & Wellbeing
    (D.STRESS_COPING, "Stress Coping", "Coping & Wellbeing",
     "Strategies for managing stress and adversity",
     "Avoidant or maladaptive coping",
     "Mixed coping strategies",
     "Effective, adaptive coping",
     "Poor coping needs breaks and lower cognitive load under stress"),
    # Cognitive
    (D.COGNITIVE_ABILITIES, "Cognitive Abilities", "Cognitive",
     "General reasoning and problem-solving",
     "Needs more scaffolding and concrete examples",
     "Average cognitive processing",
     "Strong reasoning and problem-solving",
     "Affects pace, complexity and abstraction level"),
    (D.CREATIVITY, "Creativity", "Cognitive",
     "Generating novel and useful ideas",
     "Prefers established approaches",
     "Moderate creative tendencies",
     "Divergent thinker",
     "High creativity suits open-ended projects"),
    (D.LEARNING_STYLES, "Learning Styles", "Cognitive",
     "Preferred modality for acquiring information",
     "Reading/writing preference",
     "Multimodal learner",
     "Visual/kinesthetic preference",
     "Selects content format: video, text or hands-on"),
    (D.INFORMATION_PROCESSING, "Information Processing", "Cognitive",
     "How information is encoded and retrieved",
     "Sequential, step-by-step",
     "Mixed processing style",
     "Holistic, big-picture",
     "Sequential suits linear curricula; holistic suits overviews first"),
    (D.METACOGNITION, "Metacognition", "Cognitive",
     "Awareness and control of one's own thinking",
     "Limited awareness of own learning",
     "Developing metacognitive skills",
     "Strong awareness of learning processes",
     "Low metacognition needs explicit strategy instruction"),
    (D.EXECUTIVE_FUNCTIONS, "Executive Functions", "Cognitive",
     "Planning, focus and task management",
     "Struggles with planning and focus",
     "Adequate executive function",
     "Strong planning and focus",
     "Low executive function needs external structure and chunked tasks"),
    # Social Cognition
    (D.SOCIAL_COGNITION, "Social Cognition", "Social Cognition",
     "Understanding social situations and mental states",
     "May miss social cues",
     "Adequate social understanding",
     "Strong theory of mind",
     "Affects group work and interpretation of feedback"),
    # Worldview
    (D.POLITICAL_IDEOLOGY, "Political Ideology", "Worldview",
     "Political beliefs and values orientation",
     "Tradition-preserving",
     "Centrist views",
     "Change-oriented",
     "Affects framing of social topics"),
    (D.CULTURAL_VALUES, "Cultural Values", "Worldview",
     "Collectivism versus individualism",
     "Collectivist",
     "Balanced orientation",
     "Individualist",
     "Collectivist learners favor group work"),
    (D.MORAL_REASONING, "Moral Reasoning", "Worldview",
     "Ethical framework and moral development",
     "Rule and punishment focused",
     "Social norms and duty",
     "Principled reasoning",
     "Affects ethical discussions and case study interpretation"),
    # Work & Lifestyle
    (D.WORK_CAREER_STYLE, "Work/Career Style", "Work & Lifestyle",
     "Work preferences and career orientation",
     "Prefers stability and clear roles",
     "Balanced work preferences",
     "Entrepreneurial, autonomy-seeking",
     "Shapes learning goals: practical, theoretical or entrepreneurial"),
    (D.SENSORY_PROCESSING, "Sensory Processing", "Work & Lifestyle",
     "Sensitivity to sensory stimulation",
     "Low sensitivity, seeks stimulation",
     "Moderate sensory processing",
     "High sensitivity, easily overwhelmed",
     "High sensitivity needs calm, low-distraction material"),
    (D.AESTHETIC_PREFERENCES, "Aesthetic Preferences", "Work & Lifestyle",
     "Preferences for visual style and design",
     "Functional, minimal",
     "Moderate aesthetic awareness",
     "Strong aesthetic preferences",
     "Presentation quality matters to high scorers"),
]

DOMAIN_METADATA: Dict[PsychometricDomain, DomainMetadata] = {
    row[0]: DomainMetadata(*row) for row in _CATALOGUE
}


def domains_in_category(category: str) -> List[PsychometricDomain]:
    if category not in DOMAIN_CATEGORIES:
        raise InvalidInput(f"Unknown domain category: {category}")
    return [d for d in PsychometricDomain if DOMAIN_METADATA[d].category == category]


def get_domain_metadata(domain: Union[str, PsychometricDomain]) -> DomainMetadata:
    return DOMAIN_METADATA[parse_domain(domain)]


def parse_domain(domain: Union[str, PsychometricDomain]) -> PsychometricDomain:
    try:
        return PsychometricDomain(domain)
    except ValueError:
        raise InvalidInput(f"Unknown psychometric domain: {domain}") from None


def interpret_score(domain: Union[str, PsychometricDomain], score: float) -> str:
    """Low / mid / high interpretation text for a score."""
    if not 0 <= score <= 100:
        raise InvalidInput(f"Score out of range 0-100: {score}")
    meta = get_domain_metadata(domain)
    if score <= 33:
        return meta.low
    if score <= 66:
        return meta.mid
    return meta.high


# ==================== Score Validation ====================

ScoreInput = Union[PsychometricScore, Mapping, float, int]


def normalize_scores(scores: Optional[Mapping]) -> Dict[PsychometricDomain, PsychometricScore]:
    """
    Validate a sparse score map.

    Accepts PsychometricScore objects, dicts with score/confidence fields,
    or bare numbers. Unknown domains and out-of-range values raise
    InvalidInput; nothing invalid is silently defaulted.
    """
    normalized: Dict[PsychometricDomain, PsychometricScore] = {}
    for key, value in (scores or {}).items():
        domain = parse_domain(key)
        normalized[domain] = _to_score(domain, value)
    return normalized


def _to_score(domain: PsychometricDomain, value: ScoreInput) -> PsychometricScore:
    if isinstance(value, PsychometricScore):
        return value
    try:
        if isinstance(value, bool):
            raise InvalidInput(f"{domain.value}: score must be numeric")
        if isinstance(value, (int, float)):
            return PsychometricScore(score=value)
        if isinstance(value, Mapping):
            return PsychometricScore.model_validate(dict(value))
    except ValidationError as e:
        raise InvalidInput(f"{domain.value}: {e.errors()[0]['msg']}") from e
    raise InvalidInput(f"{domain.value}: unsupported score value {value!r}")


def _score_reader(scores: Optional[Mapping]) -> Callable[[PsychometricDomain], float]:
    normalized = normalize_scores(scores)

    def read(domain: PsychometricDomain) -> float:
        entry = normalized.get(domain)
        return entry.score if entry is not None else NEUTRAL_SCORE

    return read


# ==================== Rule Tables ====================

T = TypeVar("T")
Rule = Tuple[Callable[[Dict[str, float]], bool], T]


def _first_match(rules: Sequence[Rule], values: Dict[str, float]):
    for condition, outcome in rules:
        if condition(values):
            return outcome
    raise AssertionError("rule table has no fallback row")


_ALWAYS = lambda v: True  # noqa: E731

# (primary, secondary); keyed on the learning_styles composite first
MODALITY_RULES: List[Rule] = [
    (lambda v: v["learning_styles"] >= 70 and v["openness"] > 60,
     (LearningModality.VISUAL, LearningModality.KINESTHETIC)),
    (lambda v: v["learning_styles"] >= 70,
     (LearningModality.KINESTHETIC, LearningModality.VISUAL)),
    (lambda v: v["learning_styles"] <= 30 and v["conscientiousness"] > 60,
     (LearningModality.READING, LearningModality.VISUAL)),
    (lambda v: v["learning_styles"] <= 30,
     (LearningModality.READING, LearningModality.AUDITORY)),
    (lambda v: v["openness"] > 60 and v["information_processing"] > 60,
     (LearningModality.VISUAL, LearningModality.KINESTHETIC)),
    (lambda v: v["extraversion"] > 60,
     (LearningModality.AUDITORY, LearningModality.VISUAL)),
    (_ALWAYS, (LearningModality.READING, LearningModality.VISUAL)),
]

SOCIAL_RULES: List[Rule] = [
    (lambda v: v["extraversion"] >= 65, SocialPreference.COLLABORATIVE),
    (lambda v: v["extraversion"] <= 35, SocialPreference.SOLO),
    (_ALWAYS, SocialPreference.MIXED),
]

PACE_RULES: List[Rule] = [
    (lambda v: v["conscientiousness"] >= 65 and v["achievement_motivation"] >= 75,
     PacePreference.INTENSIVE),
    (lambda v: v["conscientiousness"] >= 65, PacePreference.STRUCTURED),
    (_ALWAYS, PacePreference.SELF_PACED),
]

FEEDBACK_RULES: List[Rule] = [
    (lambda v: v["neuroticism"] >= 60 or v["self_efficacy"] <= 40, FeedbackPreference.IMMEDIATE),
    (lambda v: v["conscientiousness"] >= 65, FeedbackPreference.DELAYED),
    (_ALWAYS, FeedbackPreference.ON_REQUEST),
]


def _three_way(high, low, middle, high_at: float = 65, low_at: float = 35):
    """Rule table for an averaged score split at >= high_at / <= low_at."""
    return [
        (lambda v: v["average"] >= high_at, high),
        (lambda v: v["average"] <= low_at, low),
        (_ALWAYS, middle),
    ]


WORKING_MEMORY_RULES = _three_way(CapacityLevel.HIGH, CapacityLevel.LOW, CapacityLevel.MEDIUM)
ATTENTION_RULES = _three_way(AttentionSpan.LONG, AttentionSpan.SHORT, AttentionSpan.MEDIUM)
PROCESSING_RULES = _three_way(ProcessingSpeed.FAST, ProcessingSpeed.SLOW, ProcessingSpeed.MEDIUM)
ABSTRACTION_RULES = _three_way(AbstractThinking.ABSTRACT, AbstractThinking.CONCRETE, AbstractThinking.MIXED)


# ==================== Derivations ====================

def derive_learning_style(scores: Optional[Mapping] = None) -> LearningStyle:
    """
    Derive a learning style from psychometric scores.

    Args:
        scores: Sparse map of domain ID -> score (may be empty)

    Returns:
        LearningStyle; an empty map yields the default buckets
    """
    read = _score_reader(scores)
    values = {
        "openness": read(D.BIG_FIVE_OPENNESS),
        "conscientiousness": read(D.BIG_FIVE_CONSCIENTIOUSNESS),
        "extraversion": read(D.BIG_FIVE_EXTRAVERSION),
        "neuroticism": read(D.BIG_FIVE_NEUROTICISM),
        "learning_styles": read(D.LEARNING_STYLES),
        "information_processing": read(D.INFORMATION_PROCESSING),
        "self_efficacy": read(D.SELF_EFFICACY),
        "achievement_motivation": read(D.ACHIEVEMENT_MOTIVATION),
    }

    primary, secondary = _first_match(MODALITY_RULES, values)
    return LearningStyle(
        primary=primary,
        secondary=secondary,
        social_preference=_first_match(SOCIAL_RULES, values),
        pace_preference=_first_match(PACE_RULES, values),
        feedback_preference=_first_match(FEEDBACK_RULES, values),
    )


def estimate_cognitive_profile(scores: Optional[Mapping] = None) -> CognitiveProfile:
    """Estimate the cognitive profile from averaged pairs of domain scores."""
    read = _score_reader(scores)

    def averaged(a: PsychometricDomain, b: PsychometricDomain) -> Dict[str, float]:
        return {"average": (read(a) + read(b)) / 2}

    return CognitiveProfile(
        working_memory_capacity=_first_match(
            WORKING_MEMORY_RULES, averaged(D.EXECUTIVE_FUNCTIONS, D.COGNITIVE_ABILITIES)),
        attention_span=_first_match(
            ATTENTION_RULES, averaged(D.EXECUTIVE_FUNCTIONS, D.BIG_FIVE_CONSCIENTIOUSNESS)),
        processing_speed=_first_match(
            PROCESSING_RULES, averaged(D.COGNITIVE_ABILITIES, D.METACOGNITION)),
        abstract_thinking=_first_match(
            ABSTRACTION_RULES, averaged(D.BIG_FIVE_OPENNESS, D.INFORMATION_PROCESSING)),
    )


_MODALITY_TEXT = {
    LearningModality.VISUAL: "visual learner who prefers diagrams, charts, and videos",
    LearningModality.AUDITORY: "auditory learner who benefits from lectures and discussions",
    LearningModality.KINESTHETIC: "hands-on learner who learns by doing and experimenting",
    LearningModality.READING: "reading/writing learner who prefers text-based materials",
}

_SOCIAL_TEXT = {
    SocialPreference.SOLO: "prefers independent study",
    SocialPreference.COLLABORATIVE: "thrives in group settings",
    SocialPreference.MIXED: "is flexible between solo and group work",
}

_PACE_TEXT = {
    PacePreference.SELF_PACED: "at their own pace",
    PacePreference.STRUCTURED: "with clear schedules and deadlines",
    PacePreference.INTENSIVE: "in focused, intensive sessions",
}


def describe_learning_style(style: LearningStyle) -> str:
    return (
        f"A {_MODALITY_TEXT[style.primary]} who {_SOCIAL_TEXT[style.social_preference]} "
        f"and learns best {_PACE_TEXT[style.pace_preference]}."
    )
