from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def month_period(year: int, month: int) -> Period:
    first = date(year, month, 1)
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return Period(f"{year:04d}-{month:02d}", first, next_month - date.resolution)


def current_month(today: Optional[date] = None) -> Period:
    today = today or utc_today()
    return month_period(today.year, today.month)


def resolve_month(value: Optional[str], *, today: Optional[date] = None) -> Period:
    """Parse a ``YYYY-MM`` string, falling back to the current month."""
    if not value:
        return current_month(today)
    try:
        year_str, month_str = value.split("-", 1)
        year = int(year_str)
        month = int(month_str)
    except ValueError as exc:
        raise ValueError("Month must be formatted as YYYY-MM") from exc
    if not 1 <= month <= 12 or not 1970 <= year <= 3000:
        raise ValueError("Month must be formatted as YYYY-MM")
    return month_period(year, month)
