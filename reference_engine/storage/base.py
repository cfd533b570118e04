from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Protocol, runtime_checkable

from reference_engine.storage.models import ReferenceInput, ReferenceRecord


@dataclass
class ReferenceListResponse:
    success: bool
    references: List[ReferenceRecord] = field(default_factory=list)
    error: Optional[str] = None


@runtime_checkable
class ReferenceStore(Protocol):
    """The three operations the reference manager needs from persistence.

    Implementations raise :class:`~reference_engine.exceptions.StoreError` (or a
    subclass) from ``create_reference`` and ``update_reference`` when the write
    fails. ``get_references_for_conversation`` reports failure through the
    returned :class:`ReferenceListResponse`.
    """

    async def create_reference(self, data: ReferenceInput) -> ReferenceRecord:
        ...

    async def update_reference(self, reference_id: str, patch: Mapping[str, Any]) -> ReferenceRecord:
        ...

    async def get_references_for_conversation(self, conversation_id: str) -> ReferenceListResponse:
        ...
