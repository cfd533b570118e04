from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List
from urllib.parse import urlsplit

_DOI_PREFIX_PATTERN = re.compile(r"^(https?://)?(dx\.)?doi\.org/", re.IGNORECASE)
_DOI_SHAPE_PATTERN = re.compile(r"^10\.\d{4,}/\S+$")
_NON_WORD_PATTERN = re.compile(r"[^\w\s]")


def normalize_doi(doi: str | None) -> str | None:
    """Normalize a DOI string into a canonical lowercase form.

    The normalization removes leading DOI prefixes (e.g., ``https://doi.org/`` or
    ``doi:``), trims whitespace, and lowercases the remaining identifier. Empty
    or missing values return ``None``.
    """

    if not doi or not isinstance(doi, str):
        return None

    cleaned = doi.strip()
    cleaned = _DOI_PREFIX_PATTERN.sub("", cleaned)
    if cleaned.lower().startswith("doi:"):
        cleaned = cleaned.split(":", 1)[1]
    cleaned = cleaned.strip().lower()

    return cleaned or None


def is_valid_doi(doi: str | None) -> bool:
    """Return ``True`` when ``doi`` normalizes to a ``10.NNNN/suffix`` identifier."""

    normalized = normalize_doi(doi)
    return bool(normalized and _DOI_SHAPE_PATTERN.match(normalized))


def normalize_title(title: str | None) -> str:
    """Normalize a title for comparison.

    Unicode is NFKC-normalized, punctuation becomes whitespace, whitespace is
    collapsed and the result is lowercased.
    """

    if not title or not isinstance(title, str):
        return ""

    normalized = unicodedata.normalize("NFKC", title).lower()
    normalized = _NON_WORD_PATTERN.sub(" ", normalized)
    return " ".join(normalized.split())


def normalize_author(author: str | None) -> str:
    """Lowercase and trim an author display string."""

    if not author or not isinstance(author, str):
        return ""
    return " ".join(unicodedata.normalize("NFKC", author).split()).lower()


def normalized_author_list(authors: Iterable[str] | None) -> List[str]:
    """Return the sorted, normalized author list used for equality checks."""

    if not authors:
        return []
    return sorted(normalize_author(author) for author in authors)


def normalize_url(url: str | None) -> str:
    """Strip scheme, ``www.`` and a trailing slash, then lowercase."""

    if not url or not isinstance(url, str):
        return ""

    cleaned = url.strip().lower()
    cleaned = re.sub(r"^https?://", "", cleaned)
    cleaned = cleaned.replace("www.", "", 1)
    return cleaned.rstrip("/")


def extract_domain(url: str | None) -> str:
    """Return the lowercase hostname of ``url`` or an empty string."""

    if not url or not isinstance(url, str):
        return ""
    try:
        hostname = urlsplit(url.strip()).hostname
    except ValueError:
        return ""
    return (hostname or "").lower()
