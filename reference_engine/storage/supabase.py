"""Reference store backed by a Supabase (PostgREST) ``references`` table."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional

import requests
from pydantic import ValidationError

from reference_engine.exceptions import ReferenceNotFoundError, StoreError
from reference_engine.storage.base import ReferenceListResponse
from reference_engine.storage.models import ReferenceInput, ReferenceRecord
from reference_engine.storage.rest import ClientError, PostgrestClient

logger = logging.getLogger(__name__)


def _to_row(payload: Mapping[str, Any]) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for key, value in payload.items():
        if key == "authors":
            row[key] = json.dumps(list(value or []))
        elif hasattr(value, "isoformat"):
            row[key] = value.isoformat()
        elif hasattr(value, "value"):
            row[key] = value.value
        else:
            row[key] = value
    return row


class SupabaseReferenceStore:
    """Async store wrapper running the blocking REST client in worker threads."""

    def __init__(self, client: PostgrestClient) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: Any, *, session: Optional[requests.Session] = None) -> "SupabaseReferenceStore":
        client = PostgrestClient(
            settings.supabase_url,
            settings.supabase_key,
            table=settings.table,
            session=session,
            timeout=settings.request_timeout_s,
        )
        return cls(client)

    async def create_reference(self, data: ReferenceInput) -> ReferenceRecord:
        row = _to_row(data.model_dump(exclude_none=True))
        try:
            created = await asyncio.to_thread(self.client.insert, row)
        except ClientError as exc:
            raise StoreError(f"Failed to create reference: {exc}") from exc
        return ReferenceRecord.model_validate(created)

    async def update_reference(self, reference_id: str, patch: Mapping[str, Any]) -> ReferenceRecord:
        try:
            updated = await asyncio.to_thread(self.client.update, reference_id, _to_row(patch))
        except ReferenceNotFoundError:
            raise ReferenceNotFoundError(f"Reference {reference_id} not found") from None
        except ClientError as exc:
            raise StoreError(f"Failed to update reference {reference_id}: {exc}") from exc
        return ReferenceRecord.model_validate(updated)

    async def get_references_for_conversation(self, conversation_id: str) -> ReferenceListResponse:
        try:
            rows = await asyncio.to_thread(
                self.client.select,
                conversation_id=f"eq.{conversation_id}",
                order="created_at.desc",
            )
        except ClientError as exc:
            logger.warning(
                "Failed to load references",
                extra={"conversation_id": conversation_id, "error": str(exc)},
            )
            return ReferenceListResponse(success=False, error=str(exc))
        try:
            references = [ReferenceRecord.model_validate(row) for row in rows]
        except ValidationError as exc:
            logger.warning(
                "Store returned a malformed reference row",
                extra={"conversation_id": conversation_id, "error": str(exc)},
            )
            return ReferenceListResponse(success=False, error=f"Malformed reference row: {exc}")
        return ReferenceListResponse(success=True, references=references)
