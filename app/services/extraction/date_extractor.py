"""Regex-based date scanning and ISO-8601 normalisation."""

import re
from datetime import date
from typing import List, Optional

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)

DATE_PATTERNS = [
    # March 7, 2024
    re.compile(rf"\b(?:{_MONTHS})\s+\d{{1,2}},?\s+\d{{4}}\b", re.IGNORECASE),
    # 3/7/2024 or 03-07-24
    re.compile(r"\b\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"),
    # 2024-03-07
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    # on or about March 7 / approximately March 7
    re.compile(rf"\b(?:on or about|approximately)\s+(?:{_MONTHS})\s+\d{{1,2}}\b", re.IGNORECASE),
]

MONTH_NUMBERS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

_QUALIFIER = re.compile(r"^(?:on or about|approximately|about|circa)\s+", re.IGNORECASE)
_ISO = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$")
_MONTH_DAY_YEAR = re.compile(
    r"^([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})$"
)
_DAY_MONTH_YEAR = re.compile(r"^(\d{1,2})\s+([A-Za-z]+)\.?,?\s+(\d{4})$")
_NUMERIC = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2}|\d{4})$")

# Two-digit years below this pivot are read as 20xx, others as 19xx
TWO_DIGIT_YEAR_PIVOT = 50


def extract_dates(text: str) -> List[str]:
    """Find literal date-like substrings in ``text``.

    Args:
        text: Sentence or region to scan

    Returns:
        Matched substrings in pattern order, deduplicated
    """
    found: List[str] = []
    if not text:
        return found

    for pattern in DATE_PATTERNS:
        for match in pattern.finditer(text):
            raw = match.group(0)
            if raw not in found:
                found.append(raw)
    return found


def parse_date(raw: Optional[str]) -> Optional[str]:
    """Normalise a date string to ``YYYY-MM-DD``.

    Returns ``None`` for anything ambiguous or unparseable (including a
    month and day with no year); never raises.
    """
    if not raw or not isinstance(raw, str):
        return None

    value = _QUALIFIER.sub("", raw.strip())

    try:
        match = _ISO.match(value)
        if match:
            year, month, day = (int(g) for g in match.groups())
            return _to_iso(year, month, day)

        match = _MONTH_DAY_YEAR.match(value)
        if match:
            month = MONTH_NUMBERS.get(match.group(1).lower())
            if month is None:
                return None
            return _to_iso(int(match.group(3)), month, int(match.group(2)))

        match = _DAY_MONTH_YEAR.match(value)
        if match:
            month = MONTH_NUMBERS.get(match.group(2).lower())
            if month is None:
                return None
            return _to_iso(int(match.group(3)), month, int(match.group(1)))

        match = _NUMERIC.match(value)
        if match:
            first, second, year = (int(g) for g in match.groups())
            if len(match.group(3)) == 2:
                year += 2000 if year < TWO_DIGIT_YEAR_PIVOT else 1900
            month, day = first, second
            # US order unless the first field cannot be a month
            if first > 12 >= second:
                month, day = second, first
            return _to_iso(year, month, day)
    except (TypeError, ValueError) as e:
        LOGGER.debug(f"Unparseable date {raw!r}: {e}")
        return None

    return None


def _to_iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None
