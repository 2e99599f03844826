"""
Canonicalize heterogeneous article metadata into ``Article`` objects.

Upstream shapes vary: PubMed esummary records, article dicts posted back
by the frontend (camelCase), and hand-built dicts in the CLI. Authors in
particular arrive as a comma-separated string, a single object, a wrapper
object with an ``authors`` list, or a list of strings/objects.
"""

import html
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from scientific_query.constants import GENERIC_TITLES, MIN_TITLE_LENGTH, TITLE_PLACEHOLDER
from scientific_query.models.model_article import Article, Author
from scientific_query.models.model_icite import Bibliometrics

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Text cleanup
# ---------------------------------------------------------------------------


def strip_html(text: str | None) -> str:
    """Remove tags, decode entities, and collapse whitespace."""
    if not text:
        return ""
    cleaned = _TAG_RE.sub("", str(text))
    cleaned = html.unescape(cleaned)
    return _WS_RE.sub(" ", cleaned).strip()


def is_generic_title(title: str) -> bool:
    key = title.strip().rstrip(".").lower()
    return not key or key in GENERIC_TITLES or len(key) < MIN_TITLE_LENGTH


def sanitize_title(raw: str | None) -> str:
    """Return a clean title, or the placeholder when it carries no information."""
    title = strip_html(raw)
    if is_generic_title(title):
        if title:
            logger.debug("Generic title replaced by placeholder: %r", title)
        return TITLE_PLACEHOLDER
    return title


# ---------------------------------------------------------------------------
# Authors
# ---------------------------------------------------------------------------


class AuthorsShape(str, Enum):
    MISSING = "missing"
    TEXT = "text"  # "Smith J, Doe A"
    RECORD = "record"  # {"name": ..., "authtype": ...} or {"authors": [...]}
    SEQUENCE = "sequence"  # ["Smith J", {"name": "Doe A"}]


@dataclass(frozen=True)
class AuthorsRaw:
    """An authors value tagged with the shape it arrived in."""

    shape: AuthorsShape
    value: Any

    @classmethod
    def of(cls, value: Any) -> "AuthorsRaw":
        if not value:
            return cls(AuthorsShape.MISSING, None)
        if isinstance(value, str):
            return cls(AuthorsShape.TEXT, value)
        if isinstance(value, dict):
            return cls(AuthorsShape.RECORD, value)
        if isinstance(value, (list, tuple)):
            return cls(AuthorsShape.SEQUENCE, list(value))
        return cls(AuthorsShape.TEXT, str(value))


def _author_from_record(record: dict) -> list[Author]:
    if isinstance(record.get("authors"), list):
        return normalize_authors(record["authors"])
    name = record.get("name")
    if name:
        role = record.get("authtype") or record.get("role") or "author"
        return [Author(name=strip_html(name), role=role)]
    # Last resort: any string value under a name-like key
    return [
        Author(name=strip_html(value))
        for key, value in record.items()
        if isinstance(value, str) and ("name" in key or "author" in key or "autor" in key)
    ]


def normalize_authors(value: Any) -> list[Author]:
    """Coerce any supported authors shape into an ordered list of ``Author``."""
    raw = AuthorsRaw.of(value)

    if raw.shape is AuthorsShape.MISSING:
        authors: list[Author] = []
    elif raw.shape is AuthorsShape.TEXT:
        authors = [Author(name=strip_html(part)) for part in raw.value.split(",")]
    elif raw.shape is AuthorsShape.RECORD:
        authors = _author_from_record(raw.value)
    else:
        authors = []
        for item in raw.value:
            if isinstance(item, Author):
                authors.append(item)
            elif isinstance(item, dict):
                authors.extend(_author_from_record(item))
            elif item:
                authors.append(Author(name=strip_html(str(item))))

    return [a for a in authors if a.name.strip()]


# ---------------------------------------------------------------------------
# Articles
# ---------------------------------------------------------------------------


def extract_doi(article_ids: list[dict] | None) -> str | None:
    """Pull the DOI out of an esummary ``articleids`` list."""
    for entry in article_ids or []:
        if entry.get("idtype") == "doi" and entry.get("value"):
            return entry["value"]
    return None


def normalize_summary(pmid: str, meta: dict[str, Any]) -> Article:
    """Build an ``Article`` from one record of an esummary ``result`` map."""
    return Article(
        pmid=str(meta.get("uid") or pmid),
        doi=extract_doi(meta.get("articleids")),
        title=sanitize_title(meta.get("title")),
        authors=normalize_authors(meta.get("authors")),
        publication_date=meta.get("pubdate") or meta.get("epubdate") or None,
        journal=meta.get("fulljournalname") or meta.get("source") or None,
    )


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_article(data: dict[str, Any] | Article) -> Article:
    """Build an ``Article`` from a loosely shaped dict (client payloads, fixtures)."""
    if isinstance(data, Article):
        return data

    pmid = _first(data, "pmid", "uid")
    icite = _first(data, "iCite", "icite")
    mesh = _first(data, "meshTerms", "mesh_terms") or []

    return Article(
        pmid=str(pmid) if pmid is not None else None,
        doi=_first(data, "doi") or extract_doi(data.get("articleids")),
        title=sanitize_title(data.get("title")),
        authors=normalize_authors(data.get("authors")),
        publication_date=_first(data, "publicationDate", "publication_date", "pubdate"),
        journal=_first(data, "journal", "source"),
        abstract=strip_html(data.get("abstract")),
        mesh_terms=[strip_html(term) for term in mesh if term],
        icite=Bibliometrics.model_validate(icite) if isinstance(icite, dict) else None,
    )
