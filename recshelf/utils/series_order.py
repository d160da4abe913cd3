"""
Series ordering.

Orders come from markers in the title ("#3", "Book 3", "Vol. 3"). When the
markers do not give every item a distinct position, the whole set is ordered
by publication date instead.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable, List, Optional

from .book_utils import normalize_date

logger = logging.getLogger(__name__)

ORDER_PATTERNS = (
    re.compile(r"#\s*(\d+)", re.IGNORECASE),
    re.compile(r"\bBook\s+(\d+)", re.IGNORECASE),
    re.compile(r"\bVol\.?\s+(\d+)", re.IGNORECASE),
)

SEQUENCE_SENTINEL = 9999.0


def extract_order(title: Optional[str]) -> Optional[int]:
    """Return the series position embedded in a title, or None."""
    if not title:
        return None
    for pattern in ORDER_PATTERNS:
        m = pattern.search(title)
        if m:
            return int(m.group(1))
    return None


def parse_published_date(value: Optional[str]) -> Optional[date]:
    """Best-effort publication date; a bare year counts as Jan 1."""
    iso = normalize_date(value)
    if not iso:
        return None
    try:
        return date.fromisoformat(iso)
    except ValueError:
        m = re.match(r"(\d{4})", iso)
        return date(int(m.group(1)), 1, 1) if m and int(m.group(1)) >= 1 else None


def parse_sequence(text: Optional[str]) -> float:
    """Numeric value of a series sequence like "2" or "1.5"; unparseable sorts last."""
    if text is None:
        return SEQUENCE_SENTINEL
    try:
        return float(str(text).strip())
    except ValueError:
        return SEQUENCE_SENTINEL


def format_sequence(order: float) -> str:
    return f"{order:g}"


def resolve_series_order(items: Iterable) -> bool:
    """Assign ``series_order`` to every item.

    Returns True when title markers were ambiguous and the date fallback ran.
    """
    items = list(items)
    if not items:
        return False

    for item in items:
        extracted = extract_order(item.title)
        if extracted is not None:
            item.series_order = extracted

    orders = [item.series_order for item in items if item.series_order and item.series_order > 0]
    incomplete = len(orders) < len(items)
    duplicated = len(set(orders)) < len(orders)
    if not (incomplete or duplicated):
        return False

    logger.debug(
        f"[SERIES_ORDER] Falling back to date order for {len(items)} items "
        f"(incomplete={incomplete}, duplicated={duplicated})"
    )
    ordered = sort_by_published_date(items)
    for position, item in enumerate(ordered, start=1):
        item.series_order = position
    return True


def sort_by_published_date(items: Iterable) -> List:
    """Stable sort by parsed publication date, undated items last."""
    return sorted(items, key=lambda item: parse_published_date(item.published_date) or date.max)
