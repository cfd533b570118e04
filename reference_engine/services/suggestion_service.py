from __future__ import annotations

import logging
from datetime import date
from typing import Callable, List, Optional, Sequence, Set

from reference_engine.adapters import to_reference_metadata
from reference_engine.core.identifiers import normalize_author, normalize_title
from reference_engine.core.models import (
    ExtractedContent,
    ReferenceSuggestion,
    SearchResult,
    SuggestionCriteria,
    SuggestionRanking,
)
from reference_engine.services.scoring_service import ResultScoringService

logger = logging.getLogger(__name__)

DEFAULT_MAX_SUGGESTIONS = 10
RECENT_PUBLICATION_YEARS = 5

RELEVANCE_BANDS = (
    (0.8, "Highly relevant to your research topic"),
    (0.6, "Relevant to your research topic"),
    (0.4, "Somewhat related to your research"),
)
FALLBACK_REASON = "May contain useful background information"


class SuggestionService:
    """Rank search results as reference suggestions for a piece of writing."""

    def __init__(
        self,
        scoring_service: ResultScoringService | None = None,
        *,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.scoring_service = scoring_service or ResultScoringService()
        self._clock = clock or (lambda: date.today().year)

    def generate_suggestions(
        self,
        results: Sequence[SearchResult],
        original_content: ExtractedContent,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
    ) -> List[ReferenceSuggestion]:
        suggestions: List[ReferenceSuggestion] = []
        for result in results:
            relevance = self.scoring_service.score(result, original_content)
            suggestions.append(
                ReferenceSuggestion(
                    reference=to_reference_metadata(result),
                    relevance_score=relevance,
                    confidence=self.scoring_service.confidence(result, original_content),
                    reasoning=self.reasoning(result, relevance),
                    ranking=self.suggestion_ranking(result, relevance),
                )
            )

        self._mark_duplicates(suggestions)
        # sort() is stable, so equal scores keep input order.
        suggestions.sort(key=lambda suggestion: suggestion.relevance_score, reverse=True)
        limit = max(max_suggestions, 0)
        logger.info(
            "Generated suggestions",
            extra={"results": len(results), "returned": min(limit, len(suggestions))},
        )
        return suggestions[:limit]

    def filter_suggestions(
        self,
        suggestions: Sequence[ReferenceSuggestion],
        criteria: SuggestionCriteria,
    ) -> List[ReferenceSuggestion]:
        return filter_suggestions(suggestions, criteria)

    def suggestion_ranking(self, result: SearchResult, relevance: float) -> SuggestionRanking:
        quality = self.scoring_service.quality(result)
        return SuggestionRanking(
            relevance=relevance,
            recency=quality.recency_score,
            citations=quality.citation_score,
            author_authority=quality.author_authority,
            overall=quality.overall,
        )

    def reasoning(self, result: SearchResult, relevance: float) -> str:
        reasons = [next((text for floor, text in RELEVANCE_BANDS if relevance > floor), FALLBACK_REASON)]

        citations = result.citation_count or 0
        if citations > 50:
            reasons.append("Highly cited paper")
        elif citations > 10:
            reasons.append("Well-cited paper")
        if result.year and result.year > self._clock() - RECENT_PUBLICATION_YEARS:
            reasons.append("Recent publication")
        if result.doi:
            reasons.append("Has DOI for easy access")
        return ". ".join(reasons) + "."

    @staticmethod
    def _mark_duplicates(suggestions: Sequence[ReferenceSuggestion]) -> None:
        seen: Set[tuple[str, str]] = set()
        for suggestion in suggestions:
            reference = suggestion.reference
            first_author = reference.authors[0] if reference.authors else ""
            key = (normalize_title(reference.title), normalize_author(first_author))
            if key in seen:
                suggestion.is_duplicate = True
            else:
                seen.add(key)


def filter_suggestions(
    suggestions: Sequence[ReferenceSuggestion],
    criteria: SuggestionCriteria,
) -> List[ReferenceSuggestion]:
    """Keep suggestions meeting ``criteria``; an unknown year passes year bounds."""

    kept: List[ReferenceSuggestion] = []
    for suggestion in suggestions:
        if criteria.min_score is not None and suggestion.relevance_score < criteria.min_score:
            continue
        if criteria.exclude_duplicates and suggestion.is_duplicate:
            continue
        if criteria.min_citations is not None and (
            suggestion.reference.citation_count or 0
        ) < criteria.min_citations:
            continue
        year: Optional[int] = suggestion.reference.year
        if year is not None:
            if criteria.min_year is not None and year < criteria.min_year:
                continue
            if criteria.max_year is not None and year > criteria.max_year:
                continue
        kept.append(suggestion)
    return kept
