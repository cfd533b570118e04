from __future__ import annotations

from collections import Counter
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from reference_engine.core.identifiers import (
    is_valid_doi,
    normalize_author,
    normalize_doi,
    normalize_title,
    normalize_url,
)
from reference_engine.core.models import (
    DuplicateGroup,
    GroupMergeStrategy,
    MergedResult,
    SearchResult,
)

EARLIEST_PLAUSIBLE_YEAR = 1900

REVIEW_FIELDS = ("title", "authors", "journal", "year", "doi", "url", "abstract", "citation_count")
COMPLETENESS_FIELDS = ("doi", "url", "abstract", "journal", "year")


class ResultMergeService:
    """Collapse a duplicate group into one enriched search result."""

    def __init__(
        self,
        *,
        strategy: GroupMergeStrategy | str = GroupMergeStrategy.KEEP_HIGHEST_QUALITY,
    ) -> None:
        self.strategy = GroupMergeStrategy(strategy)

    def merge(
        self,
        group: DuplicateGroup,
        strategy: GroupMergeStrategy | str | None = None,
    ) -> MergedResult:
        chosen = GroupMergeStrategy(strategy) if strategy is not None else self.strategy
        members = group.members
        conflicting: List[str] = []

        if chosen is GroupMergeStrategy.KEEP_HIGHEST_QUALITY:
            merged = self._merge_by_quality(members)
        elif chosen is GroupMergeStrategy.KEEP_MOST_COMPLETE:
            merged = self._merge_by_completeness(members)
        else:
            merged = group.primary
            conflicting = self.conflicting_fields(members)

        return MergedResult(
            result=merged,
            merged_from=group.indices,
            merge_confidence=group.group_confidence,
            conflicting_fields=conflicting,
        )

    def _merge_by_quality(self, members: Sequence[SearchResult]) -> SearchResult:
        primary = members[0]
        valid_doi = next((m.doi for m in members if is_valid_doi(m.doi)), None)
        abstract = max(
            (m.abstract for m in members if self._is_non_empty(m.abstract)),
            key=len,
            default=primary.abstract,
        )
        years = [m.year for m in members if m.year]
        return replace(
            primary,
            doi=valid_doi or primary.doi,
            citation_count=self._max_citations(members),
            year=select_best_year(years) if years else primary.year,
            abstract=abstract,
            journal=self._first_non_empty(m.journal for m in members) or primary.journal,
            authors=tuple(merge_authors(m.authors for m in members)),
            keywords=tuple(self._union(m.keywords for m in members)),
            confidence=sum(m.confidence for m in members) / len(members),
            relevance_score=sum(m.relevance_score for m in members) / len(members),
        )

    def _merge_by_completeness(self, members: Sequence[SearchResult]) -> SearchResult:
        primary = members[0]
        updates: Dict[str, Any] = {}
        for field_name in COMPLETENESS_FIELDS:
            value = self._first_non_empty(getattr(m, field_name) for m in members)
            if value is not None:
                updates[field_name] = value
        return replace(
            primary,
            **updates,
            citation_count=self._max_citations(members),
            keywords=tuple(self._union(m.keywords for m in members)),
            authors=tuple(merge_authors(m.authors for m in members)),
        )

    def conflicting_fields(self, members: Sequence[SearchResult]) -> List[str]:
        """Fields where at least two members carry different non-empty values."""

        conflicts: List[str] = []
        for field_name in REVIEW_FIELDS:
            keys = {
                self._value_key(field_name, value)
                for value in (getattr(m, field_name) for m in members)
                if value is not None and value != "" and value != ()
            }
            if len(keys) > 1:
                conflicts.append(field_name)
        return conflicts

    @staticmethod
    def _value_key(field_name: str, value: Any) -> Any:
        if isinstance(value, tuple):
            return tuple(sorted(normalize_author(item) for item in value))
        if field_name == "title":
            return normalize_title(value)
        if field_name == "doi":
            return normalize_doi(value)
        if field_name == "url":
            return normalize_url(value)
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @staticmethod
    def _max_citations(members: Sequence[SearchResult]) -> Optional[int]:
        counts = [m.citation_count for m in members if m.citation_count is not None]
        return max(counts) if counts else None

    @staticmethod
    def _union(collections: Iterable[Iterable[str]]) -> List[str]:
        seen: Dict[str, None] = {}
        for collection in collections:
            for item in collection:
                seen.setdefault(item, None)
        return list(seen)

    @classmethod
    def _first_non_empty(cls, values: Iterable[Any]) -> Any:
        return next((value for value in values if cls._is_non_empty(value)), None)

    @staticmethod
    def _is_non_empty(value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            return bool(value.strip())
        return True


def merge_authors(author_lists: Iterable[Iterable[str]]) -> List[str]:
    """Union of author lists, de-duplicated by normalized name, first spelling kept."""

    merged: Dict[str, str] = {}
    for authors in author_lists:
        for author in authors or ():
            if not isinstance(author, str) or not author.strip():
                continue
            merged.setdefault(normalize_author(author), author.strip())
    return list(merged.values())


def select_best_year(years: Sequence[int], *, current_year: int | None = None) -> int:
    """Most common plausible year, the most recent one on ties.

    Plausible years fall in ``1900..current_year + 1``. When none are
    plausible the first year is returned unchanged.
    """

    if not years:
        raise ValueError("Cannot select a year from an empty collection")
    latest = (current_year or date.today().year) + 1
    plausible = [year for year in years if EARLIEST_PLAUSIBLE_YEAR <= year <= latest]
    if not plausible:
        return years[0]
    counts = Counter(plausible)
    top = max(counts.values())
    return max(year for year, count in counts.items() if count == top)
