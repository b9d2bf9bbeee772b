"""
utils/dates.py
--------------
Date helpers for the recurring auto-send cycle.
All timestamps in the system are timezone-aware UTC datetimes.
"""

from datetime import date, datetime, time, timezone

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def add_one_month(moment: datetime) -> datetime:
    """
    Shift a timestamp forward by exactly one calendar month.

    The day of month is kept; when it does not exist in the target month
    it is clamped to that month's last day (Jan 31 -> Feb 28/29).
    """
    return moment + relativedelta(months=1)


def parse_send_date(value: str | date | datetime | None) -> datetime | None:
    """
    Parse an operator-supplied next-send date.

    Accepts ISO strings ("2026-03-15", "2026-03-15T09:00"), dates and
    datetimes. A bare date means 09:00 UTC that day; naive datetimes are
    treated as UTC.

    Raises:
        ValueError: If the string cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time(hour=9))
    else:
        text = str(value).strip()
        parsed = date_parser.isoparse(text)
        if len(text) == 10:
            parsed = parsed.replace(hour=9)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
