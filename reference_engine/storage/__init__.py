from reference_engine.storage.base import ReferenceListResponse, ReferenceStore
from reference_engine.storage.memory import InMemoryReferenceStore
from reference_engine.storage.models import ReferenceInput, ReferenceRecord, ReferenceType

__all__ = [
    "InMemoryReferenceStore",
    "ReferenceInput",
    "ReferenceListResponse",
    "ReferenceRecord",
    "ReferenceStore",
    "ReferenceType",
]
