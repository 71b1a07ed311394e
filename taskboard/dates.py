"""Due-date expressions.

Every due date is pinned to 23:59:59 local time of its day, so "is this
overdue" is a plain comparison with the current time.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Optional

from taskboard.errors import InvalidDate
from taskboard.schemas import now as local_now

ABSOLUTE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m-%d-%Y",
    "%m/%d/%Y",
    "%b %d %Y",
    "%d %b %Y",
)

_IN_DAYS = re.compile(r"^in\s+(\d+)\s+days?$", re.IGNORECASE)

INVALID_DATE_MESSAGE = "invalid date format. Try: YYYY-MM-DD, today, tomorrow, or 'in X days'"


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time(23, 59, 59)).astimezone()


def parse_date(token: str, now: Optional[datetime] = None) -> datetime:
    """Turn a user-facing date expression into an end-of-day timestamp.

    Accepts ``today``, ``tomorrow``, ``in N days`` and the absolute formats in
    ABSOLUTE_FORMATS, tried in order. Raises InvalidDate otherwise.
    """
    text = (token or "").strip()
    today = (now or local_now()).date()

    lowered = text.lower()
    if lowered == "today":
        return end_of_day(today)
    if lowered == "tomorrow":
        return end_of_day(today + timedelta(days=1))

    match = _IN_DAYS.match(text)
    if match:
        try:
            return end_of_day(today + timedelta(days=int(match.group(1))))
        except OverflowError:
            # past datetime.max
            raise InvalidDate(INVALID_DATE_MESSAGE) from None

    for fmt in ABSOLUTE_FORMATS:
        try:
            return end_of_day(datetime.strptime(text, fmt).date())
        except (ValueError, OverflowError):
            continue

    # Full timestamps such as 2024-01-15T09:30:00; the time of day is dropped.
    try:
        return end_of_day(datetime.fromisoformat(text).date())
    except (ValueError, OverflowError):
        pass

    raise InvalidDate(INVALID_DATE_MESSAGE)
