"""Adapters between provider records, suggestion metadata and stored references.

Every service works on :class:`SearchResult`. Inputs in any other shape are
converted here, once, at the boundary.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from reference_engine.core.models import ReferenceMetadata, SearchResult
from reference_engine.exceptions import ValidationError
from reference_engine.storage.models import ReferenceInput, ReferenceRecord, ReferenceType


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _author_names(authors: Any) -> List[str]:
    if not authors:
        return []
    if isinstance(authors, str):
        return [authors]
    names: List[str] = []
    for author in authors:
        if isinstance(author, Mapping):
            name = " ".join(
                str(part)
                for part in (
                    _pick(author, "firstName", "first_name", "given"),
                    _pick(author, "lastName", "last_name", "family"),
                )
                if part
            ) or str(author.get("name") or "")
        elif author is None:
            continue
        else:
            name = str(author)
        if name.strip():
            names.append(name.strip())
    return names


def _year_from_date(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, date):
        return value.year
    try:
        return int(str(value)[:4])
    except ValueError:
        return None


def to_search_result(raw: Any) -> SearchResult:
    """Normalize a provider record, suggestion metadata or stored reference.

    Mappings may use either camelCase or snake_case keys. Authors may be plain
    strings or ``{"firstName", "lastName"}`` objects.
    """

    if isinstance(raw, SearchResult):
        return raw
    if isinstance(raw, ReferenceRecord):
        return reference_to_search_result(raw)
    if isinstance(raw, ReferenceMetadata):
        return SearchResult(
            title=raw.title,
            authors=raw.authors,
            year=raw.year,
            journal=raw.journal,
            publisher=raw.publisher,
            url=raw.url,
            doi=raw.doi,
            abstract=raw.abstract,
            keywords=raw.keywords,
            citation_count=raw.citation_count,
            confidence=raw.confidence,
            publication_date=raw.publication_date,
            reference_type=raw.reference_type,
        )
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Unsupported search result shape: {type(raw).__name__}")

    publication_date = _pick(raw, "publication_date", "publicationDate")
    year = _pick(raw, "year")
    if year is None:
        year = _year_from_date(publication_date)
    confidence = _pick(raw, "confidence")

    return SearchResult(
        title=raw.get("title") or "",
        authors=tuple(_author_names(raw.get("authors"))),
        year=year,
        journal=_pick(raw, "journal", "venue"),
        publisher=raw.get("publisher"),
        url=raw.get("url"),
        doi=raw.get("doi"),
        abstract=raw.get("abstract"),
        keywords=raw.get("keywords"),
        citation_count=_pick(raw, "citation_count", "citationCount", "citations"),
        # The metadata-only shape carries no confidence and defaults to 0.8.
        confidence=0.8 if confidence is None else confidence,
        relevance_score=_pick(raw, "relevance_score", "relevanceScore") or 0.0,
        publication_date=str(publication_date) if publication_date is not None else None,
        reference_type=_pick(raw, "reference_type", "type"),
    )


def to_reference_metadata(result: SearchResult) -> ReferenceMetadata:
    publication_date = result.publication_date
    if publication_date is None and result.year is not None:
        publication_date = f"{result.year:04d}-01-01"
    return ReferenceMetadata(
        title=result.title,
        authors=result.authors,
        publication_date=publication_date,
        journal=result.journal,
        publisher=result.publisher,
        url=result.url,
        doi=result.doi,
        abstract=result.abstract,
        keywords=result.keywords,
        citation_count=result.citation_count,
        confidence=result.confidence,
        reference_type=result.reference_type,
    )


def infer_reference_type(result: SearchResult) -> ReferenceType:
    """Explicit type first, then journal, publisher, url; journal article otherwise."""

    if result.reference_type:
        try:
            return ReferenceType(result.reference_type)
        except ValueError:
            pass
    if result.journal:
        return ReferenceType.JOURNAL_ARTICLE
    if result.publisher:
        return ReferenceType.BOOK
    if result.url:
        return ReferenceType.WEBSITE
    return ReferenceType.JOURNAL_ARTICLE


def _publication_date(result: SearchResult) -> Optional[str]:
    if result.publication_date and _year_from_date(result.publication_date) == result.year:
        return result.publication_date
    if result.year is not None and 1 <= result.year <= 9999:
        return f"{result.year:04d}-01-01"
    return None


def search_result_to_reference_input(
    result: SearchResult,
    conversation_id: str,
    *,
    auto_populate_metadata: bool = True,
) -> ReferenceInput:
    """Map ``result`` onto the store input shape.

    With ``auto_populate_metadata`` disabled only the title, authors, inferred
    type and confidence are carried over.
    """

    payload: Dict[str, Any] = {
        "conversation_id": conversation_id,
        "type": infer_reference_type(result),
        "title": result.title,
        "authors": list(result.authors),
        "metadata_confidence": result.confidence,
    }
    if auto_populate_metadata:
        payload.update(
            journal=result.journal,
            publisher=result.publisher,
            url=result.url,
            doi=result.doi,
            publication_date=_publication_date(result),
        )
    try:
        return ReferenceInput.model_validate(payload)
    except ValueError as exc:
        raise ValidationError(f"Search result cannot be stored: {exc}") from exc


def reference_to_search_result(record: ReferenceRecord) -> SearchResult:
    return SearchResult(
        title=record.title,
        authors=tuple(record.authors),
        year=record.year,
        journal=record.journal,
        publisher=record.publisher,
        url=record.url,
        doi=record.doi,
        confidence=record.metadata_confidence,
        publication_date=record.publication_date.isoformat() if record.publication_date else None,
        reference_type=record.type.value,
    )
