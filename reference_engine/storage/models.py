"""Pydantic models representing reference-store entities."""

from __future__ import annotations

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReferenceType(str, Enum):
    """Reference kinds inferred when a search result is saved."""

    JOURNAL_ARTICLE = "journal_article"
    BOOK = "book"
    WEBSITE = "website"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> "ReferenceType | None":
        if isinstance(value, str):
            lookup = value.strip().lower().replace("-", "_")
            for member in cls:
                if member.value == lookup:
                    return member
        return None


# Fields a merge patch may touch. ``conversation_id`` and store-assigned fields are excluded.
PATCHABLE_FIELDS = frozenset(
    {
        "type",
        "title",
        "authors",
        "publication_date",
        "journal",
        "publisher",
        "url",
        "doi",
        "volume",
        "issue",
        "pages",
        "notes",
        "tags",
        "metadata_confidence",
    }
)


class ReferenceInput(BaseModel):
    """Payload accepted by :meth:`ReferenceStore.create_reference`."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=False)

    conversation_id: str
    type: ReferenceType = ReferenceType.JOURNAL_ARTICLE
    title: str
    authors: List[str] = Field(default_factory=list)
    publication_date: date | None = None
    journal: str | None = None
    publisher: str | None = None
    url: str | None = None
    doi: str | None = None
    volume: str | None = None
    issue: str | None = None
    pages: str | None = None
    notes: str | None = None
    tags: List[str] = Field(default_factory=list)
    metadata_confidence: float = Field(1.0, ge=0.0, le=1.0)

    @field_validator("authors", mode="before")
    @classmethod
    def _coerce_authors(cls, value: Any) -> List[str]:
        # The hosted references table stores authors as JSON text.
        if value is None:
            return []
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return [value] if value.strip() else []
        if isinstance(value, Mapping):
            value = [value]
        authors: List[str] = []
        for author in value:
            if isinstance(author, Mapping):
                name = " ".join(
                    part for part in (author.get("firstName"), author.get("lastName")) if part
                )
            else:
                name = str(author) if author is not None else ""
            if name.strip():
                authors.append(name.strip())
        return authors

    @field_validator("tags", mode="before")
    @classmethod
    def _dedupe_tags(cls, value: Any) -> List[str]:
        if not value:
            return []
        seen: Dict[str, None] = {}
        for tag in value:
            if isinstance(tag, str) and tag.strip():
                seen.setdefault(tag.strip(), None)
        return list(seen)

    @field_validator("publication_date", mode="before")
    @classmethod
    def _parse_publication_date(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return None
            return stripped[:10]
        return value


class ReferenceRecord(ReferenceInput):
    """A persisted reference owned by the reference store."""

    id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def year(self) -> int | None:
        return self.publication_date.year if self.publication_date else None


def apply_patch(record: ReferenceRecord, patch: Mapping[str, Any]) -> ReferenceRecord:
    """Return a validated copy of ``record`` with ``patch`` applied."""

    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot patch fields: {', '.join(sorted(unknown))}")

    payload = record.model_dump()
    payload.update(patch)
    return ReferenceRecord.model_validate(payload)


__all__ = [
    "PATCHABLE_FIELDS",
    "ReferenceInput",
    "ReferenceRecord",
    "ReferenceType",
    "apply_patch",
]
