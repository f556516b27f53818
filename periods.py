from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def year(self) -> int:
        return self.start.year

    @property
    def month(self) -> int:
        return self.start.month


def month_period(year: int, month: int) -> Period:
    if not 1 <= month <= 12:
        raise ValueError("Invalid year or month")
    try:
        first = date(year, month, 1)
    except (ValueError, OverflowError) as exc:
        raise ValueError("Invalid year or month") from exc
    if month == 12:
        next_month = date(year + 1, 1, 1) if year < date.max.year else None
    else:
        next_month = date(year, month + 1, 1)
    last = next_month - date.resolution if next_month else date(year, 12, 31)
    return Period(f"{year:04d}-{month:02d}", first, last)


def current_month(today: Optional[date] = None) -> Period:
    today = today or date.today()
    return month_period(today.year, today.month)


def custom_period(start: date, end: date) -> Period:
    return Period("custom", start, end)
