"""High-level reference API used by route handlers and the CLI.

This module exposes the :class:`ReferenceClient` facade and backs the
functional helpers defined in :mod:`reference_engine.__init__`. Inputs may be
:class:`SearchResult` objects, suggestion metadata or plain mappings in the
search provider's camelCase shape; they are normalized once on entry.

Example: rank and save suggestions
----------------------------------
```python
import asyncio

from reference_engine.api import ReferenceClient
from reference_engine.core.models import ExtractedContent

client = ReferenceClient()
content = ExtractedContent(content="Protein folding with deep learning", keywords=["protein"])
suggestions = client.generate_suggestions(results, content, max_suggestions=5)
outcome = asyncio.run(
    client.add_reference_from_search_result(results[0], "conversation-1", {"duplicateHandling": "merge"})
)
```
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

import requests

from .adapters import to_search_result
from .config import ReferenceEngineConfig, load_config
from .core.models import (
    AddReferenceOptions,
    AddReferenceResult,
    DuplicateGroup,
    ExtractedContent,
    GroupMergeStrategy,
    ReferenceSuggestion,
    SearchResult,
    SuggestionCriteria,
)
from .services.conflict_resolution_service import ConflictResolutionService
from .services.duplicate_detection_service import DuplicateDetectionService
from .services.reference_manager import SuggestionReferenceManager
from .services.result_merge_service import ResultMergeService
from .services.scoring_service import ResultScoringService
from .services.similarity_service import SimilarityService
from .services.suggestion_service import SuggestionService, filter_suggestions
from .storage.base import ReferenceStore
from .storage.memory import InMemoryReferenceStore
from .storage.supabase import SupabaseReferenceStore

Options = Optional[AddReferenceOptions | Mapping[str, Any]]


def build_store(
    config: ReferenceEngineConfig, *, session: Optional[requests.Session] = None
) -> ReferenceStore:
    """Instantiate the store selected by ``config.store.backend``."""

    if config.store.backend == "supabase":
        return SupabaseReferenceStore.from_settings(config.store, session=session)
    return InMemoryReferenceStore()


class ReferenceClient:
    """Facade wiring the scoring, duplicate and persistence services together.

    Every collaborator can be injected; anything omitted is built from
    ``config`` (or :func:`load_config` when no config is given).
    """

    def __init__(
        self,
        config: Optional[ReferenceEngineConfig] = None,
        *,
        store: Optional[ReferenceStore] = None,
        session: Optional[requests.Session] = None,
        scoring_service: Optional[ResultScoringService] = None,
        duplicate_service: Optional[DuplicateDetectionService] = None,
        conflict_service: Optional[ConflictResolutionService] = None,
    ) -> None:
        self.config = config or load_config()
        self.store = store if store is not None else build_store(self.config, session=session)

        similarity_service = SimilarityService(self.config.similarity)
        self.scoring_service = scoring_service or ResultScoringService(
            config=self.config, similarity_service=similarity_service
        )
        self.suggestion_service = SuggestionService(self.scoring_service)
        self.duplicate_service = duplicate_service or DuplicateDetectionService(
            self.config.duplicates, merge_service=ResultMergeService()
        )
        self.manager = SuggestionReferenceManager(
            self.store,
            duplicate_service=self.duplicate_service,
            conflict_service=conflict_service or ConflictResolutionService(),
            defaults=self.config.manager,
        )

    async def add_reference_from_search_result(
        self, result: Any, conversation_id: str, options: Options = None
    ) -> AddReferenceResult:
        return await self.manager.add_from_search_result(result, conversation_id, options)

    async def add_multiple_references_from_search_results(
        self, results: Iterable[Any], conversation_id: str, options: Options = None
    ) -> List[AddReferenceResult]:
        return await self.manager.add_multiple_from_search_results(
            list(results), conversation_id, options
        )

    def generate_suggestions(
        self,
        results: Iterable[Any],
        original_content: ExtractedContent | Mapping[str, Any],
        max_suggestions: int = 10,
    ) -> List[ReferenceSuggestion]:
        content = (
            original_content
            if isinstance(original_content, ExtractedContent)
            else ExtractedContent(**dict(original_content))
        )
        return self.suggestion_service.generate_suggestions(
            self._normalize(results), content, max_suggestions
        )

    def detect_duplicates(self, results: Iterable[Any]) -> List[DuplicateGroup]:
        return self.duplicate_service.detect_duplicates(self._normalize(results))

    def remove_duplicates(
        self,
        results: Iterable[Any],
        strategy: GroupMergeStrategy | str = GroupMergeStrategy.KEEP_HIGHEST_QUALITY,
    ) -> List[SearchResult]:
        return self.duplicate_service.remove_duplicates(self._normalize(results), strategy)

    @staticmethod
    def filter_suggestions(
        suggestions: Iterable[ReferenceSuggestion],
        criteria: SuggestionCriteria | Mapping[str, Any],
    ) -> List[ReferenceSuggestion]:
        if not isinstance(criteria, SuggestionCriteria):
            criteria = SuggestionCriteria(**dict(criteria))
        return filter_suggestions(list(suggestions), criteria)

    @staticmethod
    def _normalize(results: Iterable[Any]) -> List[SearchResult]:
        return [to_search_result(result) for result in results]
