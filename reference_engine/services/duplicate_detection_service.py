from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from reference_engine.config import DuplicateSettings
from reference_engine.core.identifiers import normalize_doi, normalize_url, normalized_author_list
from reference_engine.core.matching import title_similarity
from reference_engine.core.models import (
    DuplicateGroup,
    GroupMergeStrategy,
    MergeStrategy,
    SearchResult,
)
from reference_engine.services.result_merge_service import ResultMergeService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairMatch:
    """Why two results were judged to be the same publication."""

    confidence: float
    strategy: MergeStrategy


class _DisjointSet:
    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, item: int) -> int:
        while self.parent[item] != item:
            self.parent[item] = self.parent[self.parent[item]]
            item = self.parent[item]
        return item

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            # Lower index stays the root so group order follows input order.
            self.parent[max(root_a, root_b)] = min(root_a, root_b)


class DuplicateDetectionService:
    """Cluster search results that describe the same publication.

    Two results match when their normalized DOIs are equal. Otherwise, unless
    they carry different DOIs, they match on equal normalized URLs, or when
    their author lists are equal after lowercasing,
    trimming and sorting, and their normalized titles are at least
    ``title_similarity_threshold`` similar. Matching is transitive.
    """

    def __init__(
        self,
        settings: DuplicateSettings | None = None,
        *,
        merge_service: ResultMergeService | None = None,
    ) -> None:
        self.settings = settings or DuplicateSettings()
        self.merge_service = merge_service or ResultMergeService()

    def records_match(self, a: SearchResult, b: SearchResult) -> Optional[PairMatch]:
        doi_a = normalize_doi(a.doi)
        doi_b = normalize_doi(b.doi)
        if doi_a and doi_b:
            if self.settings.match_on_doi and doi_a == doi_b:
                return PairMatch(confidence=1.0, strategy=MergeStrategy.DOI)
            if doi_a != doi_b:
                return None

        if self.settings.match_on_url:
            url_a = normalize_url(a.url)
            if url_a and url_a == normalize_url(b.url):
                return PairMatch(
                    confidence=self.settings.url_match_confidence,
                    strategy=MergeStrategy.URL,
                )

        if self.settings.require_author_match:
            authors_a = normalized_author_list(a.authors)
            authors_b = normalized_author_list(b.authors)
            if not authors_a or not authors_b or authors_a != authors_b:
                return None

        similarity = title_similarity(a.title, b.title)
        if similarity < self.settings.title_similarity_threshold:
            return None
        return PairMatch(confidence=(similarity + 1.0) / 2, strategy=MergeStrategy.TITLE_AUTHOR)

    def detect_duplicates(self, results: Sequence[SearchResult]) -> List[DuplicateGroup]:
        """Return one :class:`DuplicateGroup` per cluster of two or more results."""

        if not results:
            return []

        clusters = _DisjointSet(len(results))
        edges: List[Tuple[int, int, PairMatch]] = []
        for i in range(len(results)):
            for j in range(i + 1, len(results)):
                match = self.records_match(results[i], results[j])
                if match is None:
                    continue
                logger.debug(
                    "Results matched",
                    extra={"left": i, "right": j, "strategy": match.strategy.value},
                )
                edges.append((i, j, match))
                clusters.union(i, j)

        members: Dict[int, List[int]] = {}
        for index in range(len(results)):
            members.setdefault(clusters.find(index), []).append(index)

        groups: List[DuplicateGroup] = []
        for root in sorted(members):
            indices = members[root]
            if len(indices) < 2:
                continue
            group_edges = [match for i, _, match in edges if clusters.find(i) == root]
            groups.append(self._build_group(results, indices, group_edges))

        if groups:
            logger.info(
                "Detected duplicate groups",
                extra={"groups": len(groups), "results": len(results)},
            )
        return groups

    def remove_duplicates(
        self,
        results: Sequence[SearchResult],
        strategy: GroupMergeStrategy | str = GroupMergeStrategy.KEEP_HIGHEST_QUALITY,
    ) -> List[SearchResult]:
        """Merged group representatives first, then every result that had no duplicate."""

        groups = self.detect_duplicates(results)
        grouped = {index for group in groups for index in group.indices}
        merged = [self.merge_service.merge(group, strategy).result for group in groups]
        return merged + [result for index, result in enumerate(results) if index not in grouped]

    @staticmethod
    def _build_group(
        results: Sequence[SearchResult],
        indices: List[int],
        edges: List[PairMatch],
    ) -> DuplicateGroup:
        primary_index = min(indices, key=lambda index: (-results[index].relevance_score, index))
        duplicate_indices = [index for index in indices if index != primary_index]
        used = {edge.strategy for edge in edges}
        # Weakest heuristic in the group names it.
        strategy = next(
            candidate
            for candidate in (MergeStrategy.TITLE_AUTHOR, MergeStrategy.URL, MergeStrategy.DOI)
            if candidate in used
        )
        return DuplicateGroup(
            primary=results[primary_index],
            duplicates=[results[index] for index in duplicate_indices],
            group_confidence=min(edge.confidence for edge in edges),
            merge_strategy=strategy,
            primary_index=primary_index,
            duplicate_indices=duplicate_indices,
        )
