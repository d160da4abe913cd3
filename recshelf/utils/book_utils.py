"""Small text helpers shared by the adapters, the merge engine and the importers."""

from __future__ import annotations

import html
import re
from typing import Any, Optional

from bs4 import BeautifulSoup

_WS_RE = re.compile(r"\s+")

_MONTHS = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4, 'may': 5, 'june': 6,
    'july': 7, 'august': 8, 'september': 9, 'october': 10, 'november': 11, 'december': 12,
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'jun': 6, 'jul': 7, 'aug': 8,
    'sep': 9, 'sept': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}


def is_blank(value: Any) -> bool:
    """True for None, whitespace-only strings and zero numbers."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 0
    return False


def clean_html_text(value: Optional[str]) -> Optional[str]:
    """Decode entities, drop markup and collapse whitespace. Returns None for empty input."""
    if value is None:
        return None
    text = html.unescape(str(value))
    if '<' in text and '>' in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    text = _WS_RE.sub(" ", text).strip()
    return text or None


def titles_match(candidate: Optional[str], target: Optional[str]) -> bool:
    """Case-insensitive containment in either direction."""
    if not candidate or not target:
        return False
    a = candidate.strip().lower()
    b = target.strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def normalize_date(val: Optional[str]) -> Optional[str]:
    """Normalize a date string to ISO (YYYY-MM-DD).

    Handles common formats:
    - YYYY-MM-DD (optionally followed by a time part)
    - YYYY or YYYY-MM (pads to the first day)
    - MM/DD/YYYY or M/D/YYYY
    - Month D, YYYY and D Month YYYY
    Any other string containing a four digit year becomes Jan 1 of that year.
    Returns None if input is falsy or has no year.
    """
    if not val:
        return None

    s = str(val).strip()
    if not s:
        return None

    m = re.match(r"(\d{4})-(\d{2})-(\d{2})(?:$|[T ])", s)
    if m:
        return f"{m.group(1)}-{m.group(2)}-{m.group(3)}"

    m = re.fullmatch(r"(\d{4})(?:-(\d{1,2}))?", s)
    if m:
        month = int(m.group(2)) if m.group(2) else 1
        return f"{int(m.group(1)):04d}-{month:02d}-01"

    m = re.fullmatch(r"(\d{1,2})[/-](\d{1,2})[/-](\d{4})", s)
    if m:
        return f"{int(m.group(3)):04d}-{int(m.group(1)):02d}-{int(m.group(2)):02d}"

    m = re.fullmatch(r"([A-Za-z]+)\.?\s+(\d{1,2}),?\s*(\d{4})", s)
    if m and m.group(1).lower() in _MONTHS:
        return f"{int(m.group(3)):04d}-{_MONTHS[m.group(1).lower()]:02d}-{int(m.group(2)):02d}"

    m = re.fullmatch(r"(\d{1,2})\s+([A-Za-z]+)\.?,?\s+(\d{4})", s)
    if m and m.group(2).lower() in _MONTHS:
        return f"{int(m.group(3)):04d}-{_MONTHS[m.group(2).lower()]:02d}-{int(m.group(1)):02d}"

    m = re.search(r"(\d{4})", s)
    if m:
        return f"{int(m.group(1)):04d}-01-01"

    return None


def to_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None
