"""Quality, relevance and confidence scoring for search results."""

from __future__ import annotations

import logging
import math
import re
from datetime import date
from typing import Callable, Optional, Sequence

from reference_engine.config import (
    ConfidenceAdjustments,
    QualityWeights,
    ReferenceEngineConfig,
    RelevanceWeights,
)
from reference_engine.core.identifiers import extract_domain
from reference_engine.core.models import ExtractedContent, QualityMetrics, SearchResult, clamp
from reference_engine.services.similarity_service import SimilarityService

logger = logging.getLogger(__name__)

ACADEMIC_DOMAINS = frozenset(
    {
        "scholar.google.com",
        "pubmed.ncbi.nlm.nih.gov",
        "ieee.org",
        "acm.org",
        "springer.com",
        "wiley.com",
        "elsevier.com",
        "nature.com",
        "science.org",
        "jstor.org",
    }
)

HIGH_IMPACT_JOURNALS = frozenset(
    {
        "Nature",
        "Science",
        "Cell",
        "The Lancet",
        "New England Journal of Medicine",
        "JAMA",
        "Proceedings of the National Academy of Sciences",
        "Journal of the American Chemical Society",
        "Physical Review Letters",
    }
)

REPUTABLE_PUBLISHER_MARKERS = ("ieee", "acm")
COMMERCIAL_PUBLISHER_MARKERS = ("springer", "wiley", "elsevier")
UNIVERSITY_MARKERS = ("university", "press")
GENERIC_VENUE_MARKERS = ("journal", "proceedings")

# (max age in years, score), checked in order.
RECENCY_TIERS = ((2, 1.0), (5, 0.8), (10, 0.6), (20, 0.4))
RECENCY_OLDEST = 0.2
RECENCY_UNKNOWN = 0.3

_ACADEMIC_TITLE_PATTERN = re.compile(r"\b(prof|dr|phd|md)\b", re.IGNORECASE)


def _current_year() -> int:
    return date.today().year


class ResultScoringService:
    """Score search results for display ranking.

    All scores are floats in ``[0, 1]`` and missing metadata degrades to the
    neutral defaults below instead of raising. Weights come from
    :class:`~reference_engine.config.ReferenceEngineConfig`.
    """

    def __init__(
        self,
        *,
        config: ReferenceEngineConfig | None = None,
        similarity_service: SimilarityService | None = None,
        clock: Callable[[], int] = _current_year,
    ) -> None:
        config = config or ReferenceEngineConfig()
        self.relevance_weights: RelevanceWeights = config.relevance
        self.quality_weights: QualityWeights = config.quality
        self.confidence_adjustments: ConfidenceAdjustments = config.confidence
        self.similarity_service = similarity_service or SimilarityService(config.similarity)
        self._clock = clock

    def score(self, result: SearchResult, content: ExtractedContent) -> float:
        """Overall relevance of ``result`` to ``content``."""

        similarity = self.similarity_service.content_similarity(result, content)
        quality = self.quality(result)
        weights = self.relevance_weights
        relevance = (
            similarity.overall * weights.similarity
            + quality.overall * weights.quality
            + quality.recency_score * weights.recency
        )
        logger.debug(
            "Scored result",
            extra={
                "title": result.title,
                "similarity": similarity.overall,
                "quality": quality.overall,
                "relevance": relevance,
            },
        )
        return clamp(relevance)

    def quality(self, result: SearchResult) -> QualityMetrics:
        citation = self.citation_score(result.citation_count)
        recency = self.recency_score(result.year)
        authority = self.author_authority(result.authors)
        journal = self.journal_quality(result.journal)
        weights = self.quality_weights
        overall = (
            citation * weights.citation
            + recency * weights.recency
            + authority * weights.author_authority
            + journal * weights.journal_quality
        )
        return QualityMetrics(
            citation_score=citation,
            recency_score=recency,
            author_authority=authority,
            journal_quality=journal,
            overall=clamp(overall),
        )

    @staticmethod
    def citation_score(citations: Optional[int]) -> float:
        if not citations or citations < 0:
            return 0.0
        return clamp(math.log10(citations + 1) / 3)

    def recency_score(self, year: Optional[int]) -> float:
        if not year:
            return RECENCY_UNKNOWN
        age = self._clock() - year
        for max_age, score in RECENCY_TIERS:
            if age <= max_age:
                return score
        return RECENCY_OLDEST

    @staticmethod
    def author_authority(authors: Optional[Sequence[str]]) -> float:
        names = [author for author in (authors or ()) if isinstance(author, str)]
        if not names:
            return 0.0

        score = 0.5
        if len(names) > 3:
            score += 0.2
        elif len(names) == 1:
            score -= 0.1
        if any(_ACADEMIC_TITLE_PATTERN.search(name) for name in names):
            score += 0.2
        return clamp(score)

    @staticmethod
    def journal_quality(journal: Optional[str]) -> float:
        if not journal or not journal.strip():
            return 0.3
        if journal.strip() in HIGH_IMPACT_JOURNALS:
            return 1.0

        lowered = journal.lower()
        if any(marker in lowered for marker in REPUTABLE_PUBLISHER_MARKERS):
            return 0.8
        if any(marker in lowered for marker in COMMERCIAL_PUBLISHER_MARKERS):
            return 0.7
        if any(marker in lowered for marker in UNIVERSITY_MARKERS):
            return 0.6
        if any(marker in lowered for marker in GENERIC_VENUE_MARKERS):
            return 0.5
        return 0.4

    def confidence(self, result: SearchResult, content: ExtractedContent) -> float:
        """Metadata trustworthiness, starting from the content confidence.

        Never drops below the configured floor: a result is low confidence, never
        impossible.
        """

        adjust = self.confidence_adjustments
        value = clamp(content.confidence, default=0.5)
        if result.doi:
            value += adjust.doi_bonus
        if result.citation_count is not None and result.citation_count > adjust.citation_bonus_threshold:
            value += adjust.citation_bonus
        if extract_domain(result.url) in ACADEMIC_DOMAINS:
            value += adjust.academic_domain_bonus
        if result.year and result.year < adjust.old_publication_year:
            value -= adjust.old_publication_penalty
        if not result.abstract:
            value -= adjust.missing_abstract_penalty
        return clamp(value, adjust.floor, adjust.ceiling)
