import pytest

from reference_engine.core.models import DuplicateGroup, GroupMergeStrategy, SearchResult
from reference_engine.services.result_merge_service import (
    ResultMergeService,
    merge_authors,
    select_best_year,
)


def _group() -> DuplicateGroup:
    primary = SearchResult(
        title="Analytical Engines",
        authors=("Ada Lovelace",),
        year=2020,
        abstract="short",
        citation_count=5,
        keywords=("a",),
        confidence=0.6,
        relevance_score=0.4,
    )
    duplicate = SearchResult(
        title="analytical engines.",
        authors=("ada lovelace", "Charles Babbage"),
        year=2021,
        doi="10.1234/abcd",
        journal="Nature",
        abstract="a much longer abstract",
        citation_count=12,
        keywords=("a", "b"),
        confidence=0.8,
        relevance_score=0.6,
    )
    return DuplicateGroup(
        primary=primary,
        duplicates=[duplicate],
        group_confidence=0.9,
        primary_index=2,
        duplicate_indices=[5],
    )


def test_keep_highest_quality_combines_best_values():
    merged = ResultMergeService().merge(_group())

    result = merged.result
    assert result.title == "Analytical Engines"
    assert result.doi == "10.1234/abcd"
    assert result.citation_count == 12
    assert result.year == 2021
    assert result.abstract == "a much longer abstract"
    assert result.journal == "Nature"
    assert result.authors == ("Ada Lovelace", "Charles Babbage")
    assert result.keywords == ("a", "b")
    assert result.confidence == pytest.approx(0.7)
    assert result.relevance_score == pytest.approx(0.5)
    assert merged.merged_from == [2, 5]
    assert merged.merge_confidence == 0.9
    assert merged.conflicting_fields == []


def test_keep_most_complete_fills_gaps_from_first_non_empty_value():
    merged = ResultMergeService().merge(_group(), GroupMergeStrategy.KEEP_MOST_COMPLETE)

    result = merged.result
    assert result.doi == "10.1234/abcd"
    assert result.journal == "Nature"
    assert result.abstract == "short"
    assert result.year == 2020
    assert result.citation_count == 12
    assert result.authors == ("Ada Lovelace", "Charles Babbage")


def test_manual_review_keeps_primary_and_lists_conflicts():
    group = _group()

    merged = ResultMergeService(strategy="manual_review").merge(group)

    assert merged.result is group.primary
    assert merged.conflicting_fields == ["authors", "year", "abstract", "citation_count"]


def test_select_best_year_prefers_most_common_then_most_recent():
    assert select_best_year([2019, 2020, 2020], current_year=2024) == 2020
    assert select_best_year([2018, 2021], current_year=2024) == 2021
    assert select_best_year([1850, 2500], current_year=2024) == 1850
    with pytest.raises(ValueError):
        select_best_year([])


def test_merge_authors_dedupes_by_normalized_name():
    assert merge_authors([["A. Smith"], ["a. smith", "B. Jones"], []]) == ["A. Smith", "B. Jones"]


def test_identifier_spelling_differences_are_not_conflicts():
    members = [
        SearchResult(title="Paper", doi="https://doi.org/10.1234/ABC", url="https://www.example.org/p/"),
        SearchResult(title="Paper", doi="10.1234/abc", url="http://example.org/p"),
    ]

    assert ResultMergeService().conflicting_fields(members) == []
