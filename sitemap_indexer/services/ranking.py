"""URL deduplication and recency ranking."""

import re
from datetime import datetime, timezone
from typing import Iterable, List, TypeVar

from pydantic import BaseModel

from sitemap_indexer.constants import MAX_CRAWL_LENGTH

T = TypeVar("T", bound=BaseModel)

# Unparsable dates rank below every real date
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)

# W3C reduced-precision forms: YYYY and YYYY-MM
_YEAR_RE = re.compile(r"\d{4}")
_YEAR_MONTH_RE = re.compile(r"\d{4}-\d{2}")


def dedupe(items: Iterable[T]) -> List[T]:
    """Keep the first item for each url, preserving input order."""
    seen: set[str] = set()
    out: List[T] = []
    for item in items:
        if item.url in seen:
            continue
        seen.add(item.url)
        out.append(item)
    return out


def parse_lastmod(value: str | None) -> datetime | None:
    """
    Parse a sitemap lastmod (W3C datetime) into an aware datetime.

    Year-only and year-month values mean the start of that period.
    Date-only and naive values are taken as UTC.

    Returns:
        Parsed datetime, or None if the value is missing or malformed
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    if _YEAR_RE.fullmatch(text):
        text += "-01-01"
    elif _YEAR_MONTH_RE.fullmatch(text):
        text += "-01"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def select(items: Iterable[T], max_count: int = MAX_CRAWL_LENGTH) -> List[T]:
    """
    Rank items newest-first by lastmod and keep the first max_count.

    The sort is stable, so items with equal lastmod keep their input order.
    """
    if max_count <= 0:
        return []
    ranked = sorted(
        items,
        key=lambda item: parse_lastmod(item.lastmod) or _EARLIEST,
        reverse=True,
    )
    return ranked[:max_count]
