"""
Date tokens and candidate windows.

A date token is the calendar date as an 8-digit ``YYYYMMDD`` string, taken
in the local time zone of whoever computes it (or an explicit zone).
"""

import re
from datetime import date, datetime, timedelta, tzinfo
from typing import List, Optional, Union

DATE_TOKEN_PATTERN = re.compile(r'^\d{8}$')


def local_date(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> date:
    """
    Return the calendar date for ``now`` as seen in ``tz``.

    Naive datetimes are taken to already be local. Aware datetimes are
    converted to ``tz`` (or to the process-local zone when ``tz`` is None).
    """
    if now is None:
        now = datetime.now(tz) if tz is not None else datetime.now()
    elif now.tzinfo is not None:
        now = now.astimezone(tz)
    return now.date()


def date_token(value: Union[date, datetime]) -> str:
    """Format a date (or datetime) as ``YYYYMMDD``."""
    if isinstance(value, datetime):
        value = value.date()
    return f"{value.year:04d}{value.month:02d}{value.day:02d}"


def parse_date_token(token: str) -> date:
    """
    Parse a ``YYYYMMDD`` token.

    Raises:
        ValueError: If the token is not 8 digits or not a real calendar date
    """
    if not isinstance(token, str) or not DATE_TOKEN_PATTERN.match(token):
        raise ValueError(f"not a date token: {token!r}")
    return date(int(token[0:4]), int(token[4:6]), int(token[6:8]))


def candidate_offsets(allowed_skew_days: int = 1) -> List[int]:
    """
    Day offsets tried during verification, in order.

    ``0, -1, +1`` for the default window; wider windows continue with
    ``-2, +2`` and so on.
    """
    if allowed_skew_days < 0:
        raise ValueError("allowed_skew_days must not be negative")
    offsets = [0]
    for n in range(1, allowed_skew_days + 1):
        offsets.extend((-n, n))
    return offsets


def candidate_dates(today: date, allowed_skew_days: int = 1) -> List[date]:
    return [today + timedelta(days=o) for o in candidate_offsets(allowed_skew_days)]


def day_distance(a: date, b: date) -> int:
    """Absolute whole-calendar-day difference between two dates."""
    return abs((a - b).days)
