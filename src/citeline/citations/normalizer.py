"""Citation normalizer: any "sources" payload → deduplicated ``Source`` list.

Never raises. An unparseable payload yields an empty list and entries that
cannot be mapped are skipped individually.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote, urlsplit

from citeline.citations.parsers import extract_records
from citeline.config import DEFAULT_FAVICON_TEMPLATE
from citeline.errors import MalformedSourcePayload
from citeline.models import Source

logger = logging.getLogger(__name__)

_PUBLISHED_KEYS = ("published_at", "publishedAt", "published", "date")


def extract_domain(url: str) -> str:
    """Hostname of *url* with a leading ``www.`` stripped.

    Falls back to the raw url when no hostname can be parsed.
    """
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        host = None
    if not host:
        return url
    return host[4:] if host.startswith("www.") else host


def favicon_url(domain: str, template: str = DEFAULT_FAVICON_TEMPLATE) -> str:
    return template.format(domain=quote(domain, safe=".-:"))


def _parse_published(entry: dict) -> datetime | None:
    for key in _PUBLISHED_KEYS:
        value = entry.get(key)
        if isinstance(value, datetime):
            return value
        if isinstance(value, str) and value.strip():
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                return datetime.fromisoformat(text)
            except ValueError:
                continue
    return None


def _optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def to_source(entry: Any, favicon_template: str = DEFAULT_FAVICON_TEMPLATE) -> Source | None:
    """Map one raw record to a ``Source``; None when it has no usable url."""
    if not isinstance(entry, dict):
        return None
    url = _optional_text(entry.get("url"))
    if url is None:
        return None

    domain = extract_domain(url)
    return Source(
        url=url,
        title=_optional_text(entry.get("title")) or domain,
        domain=domain,
        description=_optional_text(entry.get("description")) or _optional_text(entry.get("snippet")),
        favicon=_optional_text(entry.get("favicon")) or favicon_url(domain, favicon_template),
        published_at=_parse_published(entry),
    )


def dedupe_by_domain(sources: list[Source]) -> list[Source]:
    """Keep the first ``Source`` seen for each domain."""
    seen: set[str] = set()
    unique: list[Source] = []
    for source in sources:
        if source.domain in seen:
            continue
        seen.add(source.domain)
        unique.append(source)
    return unique


def normalize(
    raw: Any,
    max_sources: int | None = None,
    *,
    favicon_template: str = DEFAULT_FAVICON_TEMPLATE,
) -> list[Source]:
    """Convert a sources payload of any known dialect into citations.

    Args:
        raw: Payload as returned by a search tool (list, dict or text).
        max_sources: Maximum number of citations returned; None keeps all.
        favicon_template: Favicon service URL with a ``{domain}`` placeholder.

    Returns:
        Sources deduplicated by domain in first-seen order.
    """
    if raw is None:
        return []
    try:
        records = extract_records(raw)
    except (MalformedSourcePayload, TypeError, ValueError) as exc:
        logger.debug("Ignoring sources payload: %s", exc)
        return []

    sources: list[Source] = []
    for entry in records:
        try:
            source = to_source(entry, favicon_template)
        except (TypeError, ValueError, KeyError, IndexError) as exc:
            logger.debug("Skipping source entry %r: %s", entry, exc)
            continue
        if source is not None:
            sources.append(source)

    unique = dedupe_by_domain(sources)
    if max_sources is not None:
        unique = unique[: max(max_sources, 0)]
    logger.debug("Normalized %d record(s) into %d source(s)", len(records), len(unique))
    return unique
