"""Process-local reference store, used by default and in tests."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from reference_engine.exceptions import ReferenceNotFoundError, StoreError
from reference_engine.storage.base import ReferenceListResponse
from reference_engine.storage.models import ReferenceInput, ReferenceRecord, apply_patch


class InMemoryReferenceStore:
    """Keeps references in a dict keyed by id.

    Listings are newest first, mirroring the ``created_at desc`` ordering of the
    hosted store. Callers always receive copies, never the stored objects.
    """

    def __init__(self) -> None:
        self._records: Dict[str, ReferenceRecord] = {}

    async def create_reference(self, data: ReferenceInput) -> ReferenceRecord:
        now = datetime.now(timezone.utc)
        record = ReferenceRecord(
            **data.model_dump(),
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
        )
        self._records[record.id] = record
        return record.model_copy(deep=True)

    async def update_reference(self, reference_id: str, patch: Mapping[str, Any]) -> ReferenceRecord:
        existing = self._records.get(reference_id)
        if existing is None:
            raise ReferenceNotFoundError(f"Reference {reference_id} not found")
        try:
            updated = apply_patch(existing, patch)
        except ValueError as exc:
            raise StoreError(f"Invalid update for reference {reference_id}: {exc}") from exc
        updated = updated.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        self._records[reference_id] = updated
        return updated.model_copy(deep=True)

    async def get_references_for_conversation(self, conversation_id: str) -> ReferenceListResponse:
        matches: List[ReferenceRecord] = [
            record.model_copy(deep=True)
            for record in reversed(list(self._records.values()))
            if record.conversation_id == conversation_id
        ]
        return ReferenceListResponse(success=True, references=matches)

    def __len__(self) -> int:
        return len(self._records)
