"""
Date normalization service.

Records reach the engine with every temporal representation the surrounding
application has ever written: native datetimes, document-store timestamp
objects (or their serialized {"seconds": ...} form), ISO strings, "YYYY-MM"
keys and free-text month labels such as "April" or "Apr 2024".

normalize_date() converts any of them to a calendar date, or returns None.
None means "exclude from aggregation": it is never replaced by epoch 0 or by
today, and no exception ever escapes.

Rules, tried in order:
    0. date / datetime instances pass through (datetimes truncated to the day)
    a. objects exposing a timestamp-conversion method, or mappings holding
       serialized timestamp seconds
    b. month labels: a month name with an optional 4-digit year on either
       side, or a numeric "YYYY-MM"; resolved to the first day of the month,
       defaulting to the reference year when no year is given
    c. generic date parsing of any other string (pandas.to_datetime)
"""

import logging
import re
import warnings
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional

import pandas as pd


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MONTH_NUMBERS: Dict[str, int] = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4,
    'may': 5, 'june': 6, 'july': 7, 'august': 8,
    'september': 9, 'october': 10, 'november': 11, 'december': 12,
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'jun': 6, 'jul': 7,
    'aug': 8, 'sep': 9, 'sept': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

# Method names under which timestamp-like objects expose a datetime
TIMESTAMP_METHODS = ('to_datetime', 'ToDatetime', 'to_pydatetime', 'toDate')

# Keys of serialized document-store timestamps
TIMESTAMP_SECONDS_KEYS = ('seconds', '_seconds')

_NAME_THEN_YEAR = re.compile(r'^([A-Za-z]+)\.?(?:[\s,/-]+(\d{4}))?$')
_YEAR_THEN_NAME = re.compile(r'^(\d{4})[\s,/-]+([A-Za-z]+)\.?$')
_YEAR_MONTH = re.compile(r'^(\d{4})[-/](\d{1,2})$')
_FOUR_DIGIT_YEAR = re.compile(r'(?<!\d)\d{4}(?!\d)')

# Earliest year accepted from generic parsing
MIN_GENERIC_YEAR = 1900


# =============================================================================
# Rule implementations
# =============================================================================

def _from_timestamp_object(value: Any) -> Optional[date]:
    for name in TIMESTAMP_METHODS:
        method: Optional[Callable[[], Any]] = getattr(value, name, None)
        if callable(method):
            converted = method()
            if isinstance(converted, datetime):
                return converted.date()
            if isinstance(converted, date):
                return converted
            return None

    if isinstance(value, dict):
        for key in TIMESTAMP_SECONDS_KEYS:
            seconds = value.get(key)
            if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
                return datetime.fromtimestamp(seconds, tz=timezone.utc).date()
    return None


def _month_date(year: int, month_name_or_number: Any) -> Optional[date]:
    if isinstance(month_name_or_number, str):
        month = MONTH_NUMBERS.get(month_name_or_number.lower())
    else:
        month = month_name_or_number
    if month is None or not 1 <= month <= 12:
        return None
    return date(year, month, 1)


def parse_month_label(label: str, reference: Optional[date] = None) -> Optional[date]:
    """
    Resolve a month label to the first day of that month.

    Args:
        label: "April", "Apr", "April 2024", "2024 April", "2024-04" or "2024/4".
        reference: Supplies the year when the label has none (default: today).

    Returns:
        First day of the month, or None when the label is not a month label.

    Example:
        >>> parse_month_label('April', reference=date(2025, 6, 1))
        datetime.date(2025, 4, 1)
        >>> parse_month_label('2024-04')
        datetime.date(2024, 4, 1)
    """
    text = (label or '').strip()
    if not text:
        return None

    match = _YEAR_MONTH.match(text)
    if match:
        return _month_date(int(match.group(1)), int(match.group(2)))

    match = _NAME_THEN_YEAR.match(text)
    if match:
        name, year = match.group(1), match.group(2)
        if name.lower() not in MONTH_NUMBERS:
            return None
        default_year = (reference or date.today()).year
        return _month_date(int(year) if year else default_year, name)

    match = _YEAR_THEN_NAME.match(text)
    if match:
        return _month_date(int(match.group(1)), match.group(2))

    return None


def is_yearless_month_label(label: Any) -> bool:
    """True for a bare month name such as "April" or "Apr" (no year given)."""
    if not isinstance(label, str):
        return False
    match = _NAME_THEN_YEAR.match(label.strip())
    return bool(match) and match.group(2) is None and match.group(1).lower() in MONTH_NUMBERS


def _parse_generic(text: str) -> Optional[date]:
    with warnings.catch_warnings():
        # pandas warns when it has to guess a format per element
        warnings.simplefilter('ignore', UserWarning)
        parsed = pd.to_datetime(text, errors='coerce')
    if parsed is None or pd.isna(parsed) or parsed.year < MIN_GENERIC_YEAR:
        return None
    return parsed.date()


# =============================================================================
# Public API
# =============================================================================

def normalize_date(value: Any, reference: Optional[date] = None) -> Optional[date]:
    """
    Convert an arbitrary temporal representation to a calendar date.

    Args:
        value: Any value found in a record's date field or history label.
        reference: Date supplying the year for yearless month labels.
            Defaults to today.

    Returns:
        The normalized date, or None when no rule can interpret the value.
        Never raises.

    Example:
        >>> normalize_date('2024-04-15T10:00:00Z')
        datetime.date(2024, 4, 15)
        >>> normalize_date('April', reference=date(2024, 12, 31))
        datetime.date(2024, 4, 1)
        >>> normalize_date('not a date') is None
        True
    """
    if value is None or value is pd.NaT or isinstance(value, bool):
        return None

    try:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value

        if not isinstance(value, str):
            return _from_timestamp_object(value)

        text = value.strip()
        if not text:
            return None

        month = parse_month_label(text, reference=reference)
        if month is not None:
            return month

        # without an explicit year ("10:30", "today", "Apr-24") pandas fills in
        # the current date or year 1
        if not _FOUR_DIGIT_YEAR.search(text):
            return None

        return _parse_generic(text)
    except Exception as e:
        logger.debug(f"Unparseable date value {value!r}: {e}")
        return None
