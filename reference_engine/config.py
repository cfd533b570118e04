"""Application configuration for the reference engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reference_engine.core.models import DuplicateHandling
from reference_engine.exceptions import ConfigError


class SimilarityWeights(BaseModel):
    """Weights of the content-similarity score."""

    text: float = Field(0.4, ge=0.0, le=1.0)
    keyword: float = Field(0.3, ge=0.0, le=1.0)
    topic: float = Field(0.3, ge=0.0, le=1.0)


class RelevanceWeights(BaseModel):
    """Weights combining similarity, quality and recency into relevance."""

    similarity: float = Field(0.5, ge=0.0, le=1.0)
    quality: float = Field(0.3, ge=0.0, le=1.0)
    recency: float = Field(0.2, ge=0.0, le=1.0)


class QualityWeights(BaseModel):
    citation: float = Field(0.3, ge=0.0, le=1.0)
    recency: float = Field(0.2, ge=0.0, le=1.0)
    author_authority: float = Field(0.25, ge=0.0, le=1.0)
    journal_quality: float = Field(0.25, ge=0.0, le=1.0)


class ConfidenceAdjustments(BaseModel):
    """Bonuses and penalties applied on top of the content confidence."""

    doi_bonus: float = Field(0.1, ge=0.0, le=1.0)
    citation_bonus: float = Field(0.1, ge=0.0, le=1.0)
    citation_bonus_threshold: int = Field(10, ge=0)
    academic_domain_bonus: float = Field(0.1, ge=0.0, le=1.0)
    old_publication_penalty: float = Field(0.2, ge=0.0, le=1.0)
    old_publication_year: int = 2000
    missing_abstract_penalty: float = Field(0.1, ge=0.0, le=1.0)
    floor: float = Field(0.1, ge=0.0, le=1.0)
    ceiling: float = Field(1.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ConfidenceAdjustments":
        if self.floor > self.ceiling:
            raise ValueError("confidence floor must not exceed the ceiling")
        return self


class DuplicateSettings(BaseModel):
    title_similarity_threshold: float = Field(0.85, ge=0.0, le=1.0)
    require_author_match: bool = True
    match_on_doi: bool = True
    match_on_url: bool = True
    url_match_confidence: float = Field(0.95, ge=0.0, le=1.0)


class ManagerSettings(BaseModel):
    """Defaults for :class:`AddReferenceOptions`."""

    min_confidence: float = Field(0.5, ge=0.0, le=1.0)
    duplicate_handling: DuplicateHandling = DuplicateHandling.PROMPT_USER
    check_duplicates: bool = True
    auto_populate_metadata: bool = True


class StoreSettings(BaseModel):
    backend: Literal["memory", "supabase"] = "memory"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    table: str = "references"
    request_timeout_s: float = Field(10.0, gt=0.0)

    @model_validator(mode="after")
    def _require_supabase_credentials(self) -> "StoreSettings":
        if self.backend == "supabase" and not (self.supabase_url and self.supabase_key):
            raise ValueError("supabase backend requires supabase_url and supabase_key")
        return self


class ReferenceEngineConfig(BaseSettings):  # type: ignore[misc]
    """Scoring weights, duplicate thresholds, manager defaults and store selection.

    Every field can be overridden from the environment, e.g.
    ``REFERENCE_ENGINE_RELEVANCE__SIMILARITY=0.6`` or
    ``REFERENCE_ENGINE_STORE__BACKEND=supabase``.
    """

    similarity: SimilarityWeights = Field(default_factory=SimilarityWeights)
    relevance: RelevanceWeights = Field(default_factory=RelevanceWeights)
    quality: QualityWeights = Field(default_factory=QualityWeights)
    confidence: ConfidenceAdjustments = Field(default_factory=ConfidenceAdjustments)
    duplicates: DuplicateSettings = Field(default_factory=DuplicateSettings)
    manager: ManagerSettings = Field(default_factory=ManagerSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)

    model_config = SettingsConfigDict(
        env_prefix="REFERENCE_ENGINE_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def load_config() -> ReferenceEngineConfig:
    """Load and cache configuration from the environment and ``.env``."""

    try:
        return ReferenceEngineConfig()
    except ValidationError as exc:
        raise ConfigError(f"Invalid reference engine configuration: {exc}") from exc
