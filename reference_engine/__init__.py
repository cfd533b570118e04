"""Reference deduplication, ranking and library management for thesis writing."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from .api import ReferenceClient
from .core.models import (
    AddReferenceOptions,
    AddReferenceResult,
    DuplicateGroup,
    ExtractedContent,
    ReferenceSuggestion,
    SearchResult,
    SuggestionCriteria,
)

_default_client: Optional[ReferenceClient] = None


def get_default_client() -> ReferenceClient:
    """Return the default ``ReferenceClient`` instance, creating it lazily."""

    global _default_client
    if _default_client is None:
        _default_client = ReferenceClient()
    return _default_client


async def add_reference_from_search_result(
    result: Any,
    conversation_id: str,
    options: AddReferenceOptions | Mapping[str, Any] | None = None,
) -> AddReferenceResult:
    """Add one search result to a conversation's library."""

    return await get_default_client().add_reference_from_search_result(
        result, conversation_id, options
    )


async def add_multiple_references_from_search_results(
    results: Iterable[Any],
    conversation_id: str,
    options: AddReferenceOptions | Mapping[str, Any] | None = None,
) -> List[AddReferenceResult]:
    """Add a batch of search results, collapsing in-batch duplicates first."""

    return await get_default_client().add_multiple_references_from_search_results(
        results, conversation_id, options
    )


def generate_suggestions(
    results: Iterable[Any],
    original_content: ExtractedContent | Mapping[str, Any],
    max_suggestions: int = 10,
) -> List[ReferenceSuggestion]:
    """Rank search results against the originating research content."""

    return get_default_client().generate_suggestions(results, original_content, max_suggestions)


def detect_duplicates(results: Iterable[Any]) -> List[DuplicateGroup]:
    return get_default_client().detect_duplicates(results)


def remove_duplicates(results: Iterable[Any]) -> List[SearchResult]:
    """Replace each duplicate group with one merged result."""

    return get_default_client().remove_duplicates(results)


def filter_suggestions(
    suggestions: Iterable[ReferenceSuggestion],
    criteria: SuggestionCriteria | Mapping[str, Any],
) -> List[ReferenceSuggestion]:
    return ReferenceClient.filter_suggestions(suggestions, criteria)


__all__ = [
    "ReferenceClient",
    "add_multiple_references_from_search_results",
    "add_reference_from_search_result",
    "detect_duplicates",
    "filter_suggestions",
    "generate_suggestions",
    "get_default_client",
    "remove_duplicates",
]
