"""Add search results to a conversation's reference library.

The manager owns the decision flow: confidence gate, duplicate lookup against
the stored library, the configured duplicate policy, and the final store call.
Store failures never escape; they come back as ``AddReferenceResult`` values.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence

from reference_engine.adapters import (
    reference_to_search_result,
    search_result_to_reference_input,
    to_search_result,
)
from reference_engine.config import ManagerSettings
from reference_engine.core.models import (
    AddReferenceOptions,
    AddReferenceResult,
    DuplicateHandling,
    ResolutionPolicy,
    SearchResult,
)
from reference_engine.exceptions import ValidationError
from reference_engine.services.conflict_resolution_service import ConflictResolutionService
from reference_engine.services.duplicate_detection_service import DuplicateDetectionService
from reference_engine.storage.base import ReferenceStore
from reference_engine.storage.models import ReferenceInput, ReferenceRecord

logger = logging.getLogger(__name__)

SKIP_MESSAGE = "Reference already exists and duplicate handling is set to skip"
PROMPT_MESSAGE = "Duplicate reference found - user intervention required"

_OPTION_ALIASES = {
    "checkDuplicates": "check_duplicates",
    "duplicateHandling": "duplicate_handling",
    "minConfidence": "min_confidence",
    "autoPopulateMetadata": "auto_populate_metadata",
}


class ConversationLocks:
    """One ``asyncio.Lock`` per conversation and event loop.

    Holding the lock across the duplicate lookup and the following write keeps
    two concurrent adds for the same conversation from both passing a stale
    "no duplicate" check. Locks nobody holds or waits on are dropped.
    """

    def __init__(self) -> None:
        self._locks: MutableMapping[
            asyncio.AbstractEventLoop, MutableMapping[str, asyncio.Lock]
        ] = weakref.WeakKeyDictionary()

    def lock_for(self, conversation_id: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        per_loop = self._locks.get(loop)
        if per_loop is None:
            per_loop = self._locks[loop] = weakref.WeakValueDictionary()
        lock = per_loop.get(conversation_id)
        if lock is None:
            lock = per_loop[conversation_id] = asyncio.Lock()
        return lock


class SuggestionReferenceManager:
    def __init__(
        self,
        store: ReferenceStore,
        *,
        duplicate_service: DuplicateDetectionService | None = None,
        conflict_service: ConflictResolutionService | None = None,
        defaults: ManagerSettings | None = None,
        locks: ConversationLocks | None = None,
    ) -> None:
        self.store = store
        self.duplicate_service = duplicate_service or DuplicateDetectionService()
        self.conflict_service = conflict_service or ConflictResolutionService()
        self.defaults = defaults or ManagerSettings()
        self.locks = locks or ConversationLocks()

    def resolve_options(
        self, options: AddReferenceOptions | Mapping[str, Any] | None = None
    ) -> AddReferenceOptions:
        """Overlay caller options on the configured defaults.

        Mappings may use snake_case or the camelCase keys of the web client.
        """

        if isinstance(options, AddReferenceOptions):
            return options
        values: Dict[str, Any] = {
            "check_duplicates": self.defaults.check_duplicates,
            "duplicate_handling": self.defaults.duplicate_handling,
            "min_confidence": self.defaults.min_confidence,
            "auto_populate_metadata": self.defaults.auto_populate_metadata,
        }
        for key, value in (options or {}).items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in values:
                raise ValidationError(f"Unknown option: {key}")
            if value is not None:
                values[name] = value
        return AddReferenceOptions(**values)

    async def add_from_search_result(
        self,
        result: Any,
        conversation_id: str,
        options: AddReferenceOptions | Mapping[str, Any] | None = None,
    ) -> AddReferenceResult:
        try:
            opts = self.resolve_options(options)
            candidate = to_search_result(result)
        except (ValidationError, ValueError) as exc:
            return AddReferenceResult(success=False, error=str(exc))

        if candidate.confidence < opts.min_confidence:
            logger.info(
                "Rejected low-confidence reference",
                extra={
                    "conversation_id": conversation_id,
                    "title": candidate.title,
                    "confidence": candidate.confidence,
                    "min_confidence": opts.min_confidence,
                },
            )
            return AddReferenceResult(
                success=False,
                error=(
                    f"Reference confidence ({candidate.confidence}) "
                    f"below minimum threshold ({opts.min_confidence})"
                ),
            )

        try:
            reference_input = search_result_to_reference_input(
                candidate,
                conversation_id,
                auto_populate_metadata=opts.auto_populate_metadata,
            )
        except ValidationError as exc:
            return AddReferenceResult(success=False, error=str(exc))

        async with self.locks.lock_for(conversation_id):
            try:
                return await self._add_locked(candidate, reference_input, conversation_id, opts)
            except Exception as exc:
                logger.warning(
                    "Reference store operation failed",
                    extra={"conversation_id": conversation_id, "error": str(exc)},
                    exc_info=True,
                )
                return AddReferenceResult(success=False, error=str(exc) or type(exc).__name__)

    async def add_multiple_from_search_results(
        self,
        results: Sequence[Any],
        conversation_id: str,
        options: AddReferenceOptions | Mapping[str, Any] | None = None,
    ) -> List[AddReferenceResult]:
        """Collapse in-batch duplicates to their primaries, then add each survivor.

        Outcomes follow input order of the surviving items. Entries that cannot
        be read as search results yield a failed outcome in their position.
        """

        candidates: List[SearchResult] = []
        positions: List[int] = []
        failures: Dict[int, AddReferenceResult] = {}
        for position, raw in enumerate(results):
            try:
                candidates.append(to_search_result(raw))
                positions.append(position)
            except ValidationError as exc:
                failures[position] = AddReferenceResult(success=False, error=str(exc))

        skipped = {
            positions[index]
            for group in self.duplicate_service.detect_duplicates(candidates)
            for index in group.duplicate_indices
        }
        if skipped:
            logger.info(
                "Collapsed in-batch duplicates",
                extra={"conversation_id": conversation_id, "skipped": len(skipped)},
            )

        by_position = dict(zip(positions, candidates))
        outcomes: List[AddReferenceResult] = []
        for position in range(len(results)):
            if position in failures:
                outcomes.append(failures[position])
            elif position not in skipped:
                outcomes.append(
                    await self.add_from_search_result(by_position[position], conversation_id, options)
                )
        return outcomes

    async def find_existing_duplicate(
        self, candidate: SearchResult, conversation_id: str
    ) -> Optional[ReferenceRecord]:
        """Return the stored reference ``candidate`` duplicates, if any.

        A stored reference matching the candidate directly wins; otherwise the
        first stored reference sharing its duplicate group is returned.
        """

        response = await self.store.get_references_for_conversation(conversation_id)
        if not response.success:
            logger.warning(
                "Could not load existing references; skipping duplicate check",
                extra={"conversation_id": conversation_id, "error": response.error},
            )
            return None
        references = response.references
        if not references:
            return None

        combined = [candidate, *(reference_to_search_result(ref) for ref in references)]
        for group in self.duplicate_service.detect_duplicates(combined):
            indices = group.indices
            if 0 not in indices:
                continue
            others = sorted(index for index in indices if index != 0)
            direct = [
                index
                for index in others
                if self.duplicate_service.records_match(candidate, combined[index]) is not None
            ]
            return references[(direct or others)[0] - 1]
        return None

    async def _add_locked(
        self,
        candidate: SearchResult,
        reference_input: ReferenceInput,
        conversation_id: str,
        opts: AddReferenceOptions,
    ) -> AddReferenceResult:
        if opts.check_duplicates:
            existing = await self.find_existing_duplicate(candidate, conversation_id)
            if existing is not None:
                logger.info(
                    "Duplicate reference detected",
                    extra={
                        "conversation_id": conversation_id,
                        "existing_id": existing.id,
                        "handling": opts.duplicate_handling.value,
                    },
                )
                handled = await self._handle_duplicate(existing, reference_input, opts)
                if handled is not None:
                    return handled

        created = await self.store.create_reference(reference_input)
        logger.info(
            "Created reference",
            extra={"conversation_id": conversation_id, "reference_id": created.id},
        )
        return AddReferenceResult(success=True, reference=created)

    async def _handle_duplicate(
        self,
        existing: ReferenceRecord,
        reference_input: ReferenceInput,
        opts: AddReferenceOptions,
    ) -> Optional[AddReferenceResult]:
        handling = opts.duplicate_handling
        if handling is DuplicateHandling.ADD_ANYWAY:
            return None
        if handling is DuplicateHandling.SKIP:
            return AddReferenceResult(
                success=False,
                is_duplicate=True,
                duplicate_reference=existing,
                error=SKIP_MESSAGE,
            )

        resolution = self.conflict_service.propose_resolution(existing, reference_input)
        if handling is DuplicateHandling.MERGE:
            patch = self.conflict_service.apply_resolution(resolution, ResolutionPolicy.MERGE)
            reference = existing
            if patch:
                reference = await self.store.update_reference(existing.id, patch)
            return AddReferenceResult(
                success=True,
                reference=reference,
                is_duplicate=True,
                duplicate_reference=existing,
                merge_options=resolution,
            )

        return AddReferenceResult(
            success=False,
            is_duplicate=True,
            duplicate_reference=existing,
            merge_options=resolution,
            error=PROMPT_MESSAGE,
        )
