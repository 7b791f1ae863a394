"""
Engine configuration - every tunable threshold in one place.

Uses Pydantic Settings, so values can be overridden from the environment (or
a .env file) with LEARNGRAPH_<FIELD_NAME_UPPERCASE>, e.g.
LEARNGRAPH_BASE_HALF_LIFE_DAYS=14. Every field is range-checked.
"""

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import InvalidInput

ENV_PREFIX = "LEARNGRAPH_"


class EngineConfig(BaseSettings):
    """Thresholds shared by the ZPD engine and the gap/decay engine."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ========================================
    # Mastery thresholds (0-100)
    # ========================================
    prerequisite_mastery_threshold: float = Field(default=70.0, ge=0, le=100)  # prereq counts as met
    mastered_threshold: float = Field(default=80.0, ge=0, le=100)  # forces too_easy
    partial_threshold: float = Field(default=70.0, ge=0, le=100)  # below this -> partial gap
    partial_high_severity_below: float = Field(default=50.0, ge=0, le=100)
    forgotten_mastery_floor: float = Field(default=70.0, ge=0, le=100)  # must have been learned to be forgotten
    review_mastery_floor: float = Field(default=40.0, ge=0, le=100)  # not really "learned" below this

    # ========================================
    # Zone thresholds on readiness (0-1)
    # ========================================
    too_easy_readiness: float = Field(default=0.8, ge=0, le=1)
    zpd_readiness: float = Field(default=0.5, ge=0, le=1)
    stretch_readiness: float = Field(default=0.3, ge=0, le=1)
    include_stretch_in_recommendations: bool = True
    min_prerequisites_met: float = Field(default=0.5, ge=0, le=1)  # below this -> too_hard unless mastered

    # Readiness weighting
    prerequisite_weight: float = Field(default=0.6, ge=0, le=1)
    ease_weight: float = Field(default=0.4, ge=0, le=1)
    difficulty_span: float = Field(default=10.0, gt=0)  # difficulty points mapped onto [0, 1]
    psychometric_readiness_scale: float = Field(default=0.2, ge=0, le=1)

    # Recommendation ranking
    readiness_rank_weight: float = Field(default=0.7, ge=0, le=1)
    match_rank_weight: float = Field(default=0.3, ge=0, le=1)
    strategies_per_recommendation: int = Field(default=3, ge=0)
    minutes_per_difficulty_point: float = Field(default=15.0, ge=0)

    # ========================================
    # Forgetting curve
    # ========================================
    base_half_life_days: float = Field(default=10.0, gt=0)
    forgotten_retention_threshold: float = Field(default=60.0, ge=0, le=100)  # percent
    critical_retention: float = Field(default=40.0, ge=0, le=100)  # percent

    # Spaced repetition
    review_retention_trigger: float = Field(default=70.0, ge=0, le=100)  # percent
    initial_ease_factor: float = Field(default=2.5, gt=0)
    min_ease_factor: float = Field(default=1.3, gt=0)
    min_retention_strength: float = Field(default=0.2, gt=0)
    max_retention_strength: float = Field(default=20.0, gt=0)
    max_interval_days: int = Field(default=180, ge=1)
    review_window_fraction: float = Field(default=0.2, ge=0, le=1)

    # Remediation
    high_blocking_impact: int = Field(default=2, ge=1)  # missing concept blocking this many dependents

    # ========================================
    # Safety bounds
    # ========================================
    max_traversal_depth: int = Field(default=64, ge=1)
    max_graph_size: int = Field(default=50_000, ge=1)

    # Defaults for list-returning operations
    default_limit: int = Field(default=10, ge=1)
    default_review_limit: int = Field(default=20, ge=1)

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        """Build a config from LEARNGRAPH_* variables; keyword overrides win."""
        try:
            return cls(**overrides)
        except ValidationError as e:
            raise InvalidInput(f"Invalid engine configuration: {e}") from e

    def with_overrides(self, **changes) -> "EngineConfig":
        """Validated copy with some fields replaced; the environment is not re-read."""
        try:
            return type(self).model_validate({**self.model_dump(), **changes})
        except ValidationError as e:
            raise InvalidInput(f"Invalid engine configuration: {e}") from e


# Built-in defaults, without environment lookup
DEFAULT_CONFIG = EngineConfig.model_construct()
