"""Date manipulation utilities"""

from datetime import date, datetime, timezone
from dateutil.relativedelta import relativedelta


def add_months(from_date: date, months: int) -> date:
    """Calendar month arithmetic; day clamps to the target month's length (Jan 31 + 1 -> Feb 28/29)"""
    return from_date + relativedelta(months=+months)


def add_years(from_date: date, years: int) -> date:
    """Calendar year arithmetic; Feb 29 clamps to Feb 28 in non-leap years"""
    return from_date + relativedelta(years=+years)


def start_of_month(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
