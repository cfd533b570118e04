from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from reference_engine.exceptions import ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from reference_engine.storage.models import ReferenceRecord, ReferenceType


def clamp(value: Any, low: float = 0.0, high: float = 1.0, *, default: float = 0.0) -> float:
    """Clamp ``value`` into ``[low, high]``; non-numeric or NaN input becomes ``default``."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(low, min(high, number))


def _as_tuple(values: Any) -> Tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(str(value) for value in values if value is not None)


def _as_citation_count(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        count = int(value)
    except (TypeError, ValueError):
        return None
    return count if count >= 0 else None


class _AliasedEnum(str, Enum):
    """String enum that also accepts the underscore spelling of its values."""

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            lookup = value.strip().lower().replace("_", "-")
            for member in cls:
                if member.value == lookup:
                    return member
        return None


class MergeStrategy(_AliasedEnum):
    """Heuristic that produced a duplicate grouping."""

    TITLE_AUTHOR = "title-author"
    URL = "url"
    DOI = "doi"


class GroupMergeStrategy(_AliasedEnum):
    """How :class:`ResultMergeService` collapses a duplicate group."""

    KEEP_HIGHEST_QUALITY = "keep-highest-quality"
    KEEP_MOST_COMPLETE = "keep-most-complete"
    MANUAL_REVIEW = "manual-review"


class Recommendation(_AliasedEnum):
    """Per-field resolution proposed for a duplicate conflict."""

    KEEP_EXISTING = "keep-existing"
    USE_NEW = "use-new"
    MERGE = "merge"
    MANUAL_REVIEW = "manual-review"


class ResolutionPolicy(_AliasedEnum):
    """Policy applied by :meth:`ConflictResolutionService.apply_resolution`."""

    MERGE = "merge"
    USE_NEW = "use-new"
    KEEP_EXISTING = "keep-existing"


class DuplicateHandling(_AliasedEnum):
    """What the reference manager does when a candidate duplicates a stored reference."""

    SKIP = "skip"
    MERGE = "merge"
    ADD_ANYWAY = "add-anyway"
    PROMPT_USER = "prompt-user"


@dataclass(frozen=True)
class SearchResult:
    """A structured result delivered by the search provider.

    Results are immutable. ``confidence`` and ``relevance_score`` are clamped into
    ``[0, 1]`` on construction and list-valued fields are stored as tuples.
    """

    title: str
    authors: Tuple[str, ...] = ()
    year: Optional[int] = None
    journal: Optional[str] = None
    publisher: Optional[str] = None
    url: Optional[str] = None
    doi: Optional[str] = None
    abstract: Optional[str] = None
    keywords: Tuple[str, ...] = ()
    citation_count: Optional[int] = None
    confidence: float = 0.0
    relevance_score: float = 0.0
    publication_date: Optional[str] = None
    reference_type: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "title", self.title if isinstance(self.title, str) else "")
        object.__setattr__(self, "authors", _as_tuple(self.authors))
        object.__setattr__(self, "keywords", _as_tuple(self.keywords))
        object.__setattr__(self, "citation_count", _as_citation_count(self.citation_count))
        object.__setattr__(self, "confidence", clamp(self.confidence))
        object.__setattr__(self, "relevance_score", clamp(self.relevance_score))
        if self.year is not None:
            try:
                object.__setattr__(self, "year", int(self.year))
            except (TypeError, ValueError):
                object.__setattr__(self, "year", None)


@dataclass(frozen=True)
class ReferenceMetadata:
    """Metadata-only reference shape, as produced by suggestion ranking."""

    title: str
    authors: Tuple[str, ...] = ()
    publication_date: Optional[str] = None
    journal: Optional[str] = None
    publisher: Optional[str] = None
    url: Optional[str] = None
    doi: Optional[str] = None
    abstract: Optional[str] = None
    keywords: Tuple[str, ...] = ()
    citation_count: Optional[int] = None
    confidence: float = 0.8
    reference_type: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "title", self.title if isinstance(self.title, str) else "")
        object.__setattr__(self, "authors", _as_tuple(self.authors))
        object.__setattr__(self, "keywords", _as_tuple(self.keywords))
        object.__setattr__(self, "citation_count", _as_citation_count(self.citation_count))
        object.__setattr__(self, "confidence", clamp(self.confidence))

    @property
    def year(self) -> Optional[int]:
        if not self.publication_date:
            return None
        try:
            return int(str(self.publication_date)[:4])
        except ValueError:
            return None


@dataclass
class ExtractedContent:
    """The research content suggestions are ranked against."""

    content: str = ""
    keywords: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    title: Optional[str] = None
    confidence: float = 0.5


@dataclass(frozen=True)
class SimilarityScore:
    text_similarity: float
    keyword_match: float
    topic_overlap: float
    overall: float


@dataclass(frozen=True)
class QualityMetrics:
    citation_score: float
    recency_score: float
    author_authority: float
    journal_quality: float
    overall: float


@dataclass
class DuplicateGroup:
    """A cluster of results judged to describe the same publication.

    ``primary`` is never repeated in ``duplicates``. ``group_confidence`` is the
    weakest pairwise match confidence inside the cluster.
    """

    primary: SearchResult
    duplicates: List[SearchResult]
    group_confidence: float
    merge_strategy: MergeStrategy = MergeStrategy.TITLE_AUTHOR
    primary_index: int = 0
    duplicate_indices: List[int] = field(default_factory=list)

    @property
    def members(self) -> List[SearchResult]:
        return [self.primary, *self.duplicates]

    @property
    def indices(self) -> List[int]:
        return [self.primary_index, *self.duplicate_indices]


@dataclass
class MergedResult:
    """A duplicate group collapsed into one result."""

    result: SearchResult
    merged_from: List[int]
    merge_confidence: float
    conflicting_fields: List[str] = field(default_factory=list)


@dataclass
class FieldConflict:
    field: str
    existing_value: Any
    new_value: Any
    recommendation: Recommendation


@dataclass
class ConflictResolution:
    """Per-field differences between a stored reference and a duplicate candidate."""

    existing_reference: "ReferenceRecord"
    candidate_reference: Dict[str, Any]
    conflicts: List[FieldConflict] = field(default_factory=list)

    def conflict_for(self, field_name: str) -> Optional[FieldConflict]:
        for conflict in self.conflicts:
            if conflict.field == field_name:
                return conflict
        return None


@dataclass
class AddReferenceOptions:
    check_duplicates: bool = True
    duplicate_handling: DuplicateHandling = DuplicateHandling.PROMPT_USER
    min_confidence: float = 0.5
    auto_populate_metadata: bool = True

    def __post_init__(self) -> None:
        try:
            self.duplicate_handling = DuplicateHandling(self.duplicate_handling)
        except ValueError:
            raise ValidationError(
                f"Invalid duplicate handling: {self.duplicate_handling!r}"
            ) from None
        if isinstance(self.min_confidence, bool):
            raise ValidationError(f"Invalid minimum confidence: {self.min_confidence!r}")
        try:
            min_confidence = float(self.min_confidence)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid minimum confidence: {self.min_confidence!r}") from None
        if not 0.0 <= min_confidence <= 1.0:
            raise ValidationError(f"Minimum confidence must be within [0, 1], got {min_confidence}")
        self.min_confidence = min_confidence


@dataclass
class AddReferenceResult:
    success: bool
    reference: Optional["ReferenceRecord"] = None
    is_duplicate: bool = False
    duplicate_reference: Optional["ReferenceRecord"] = None
    merge_options: Optional[ConflictResolution] = None
    error: Optional[str] = None


@dataclass
class SuggestionRanking:
    relevance: float
    recency: float
    citations: float
    author_authority: float
    overall: float


@dataclass
class ReferenceSuggestion:
    reference: ReferenceMetadata
    relevance_score: float
    confidence: float
    reasoning: str
    is_duplicate: bool = False
    ranking: Optional[SuggestionRanking] = None


@dataclass
class SuggestionCriteria:
    min_score: Optional[float] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    exclude_duplicates: bool = False
    min_citations: Optional[int] = None


__all__ = [
    "AddReferenceOptions",
    "AddReferenceResult",
    "ConflictResolution",
    "DuplicateGroup",
    "DuplicateHandling",
    "ExtractedContent",
    "FieldConflict",
    "GroupMergeStrategy",
    "MergeStrategy",
    "MergedResult",
    "QualityMetrics",
    "Recommendation",
    "ReferenceMetadata",
    "ReferenceSuggestion",
    "ResolutionPolicy",
    "SearchResult",
    "SimilarityScore",
    "SuggestionCriteria",
    "SuggestionRanking",
    "clamp",
]
