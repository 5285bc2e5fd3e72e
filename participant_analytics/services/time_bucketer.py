"""
Time bucketing helpers.

Month keys ("YYYY-MM") and year keys ("YYYY") are the only map keys used by
the series folds. Components are always zero padded, so lexicographic order
equals chronological order and keys can be sorted as plain strings.
"""

import re
from datetime import date
from typing import Iterable, List

MONTH_KEY_PATTERN = re.compile(r'^\d{4}-(0[1-9]|1[0-2])$')
YEAR_KEY_PATTERN = re.compile(r'^\d{4}$')

_MONTH_ABBREVIATIONS = (
    'Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
    'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec',
)


def month_key(d: date) -> str:
    """Return the "YYYY-MM" bucket of a date."""
    return f"{d.year:04d}-{d.month:02d}"


def year_key(d: date) -> str:
    """Return the "YYYY" bucket of a date."""
    return f"{d.year:04d}"


def year_of(key: str) -> str:
    """Truncate a month key to its year key."""
    return key[:4]


def is_month_key(key: str) -> bool:
    return bool(MONTH_KEY_PATTERN.match(key or ''))


def is_year_key(key: str) -> bool:
    return bool(YEAR_KEY_PATTERN.match(key or ''))


def month_start(key: str) -> date:
    """
    First day of the month named by a month key.

    Raises:
        ValueError: If key is not a valid "YYYY-MM" key.
    """
    if not is_month_key(key):
        raise ValueError(f"Not a month key: {key!r}")
    return date(int(key[:4]), int(key[5:7]), 1)


def month_label(key: str) -> str:
    """Display label for a month key, e.g. "2024-04" -> "Apr 2024"."""
    start = month_start(key)
    return f"{_MONTH_ABBREVIATIONS[start.month - 1]} {start.year}"


def shift_month(d: date, months: int) -> date:
    """First day of the month `months` away from d's month (negative = earlier)."""
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def sorted_keys(keys: Iterable[str]) -> List[str]:
    """Unique keys in ascending (chronological) order."""
    return sorted(set(keys))
