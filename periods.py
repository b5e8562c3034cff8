from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: Optional[date]
    end: Optional[date]

    def contains(self, day: date) -> bool:
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True

    @property
    def is_bounded(self) -> bool:
        return self.start is not None or self.end is not None


ALL_TIME = Period("all", None, None)


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return first, next_month - date.resolution


def _parse_bound(value: Optional[object]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def resolve_period(
    period: Optional[str],
    start: Optional[object] = None,
    end: Optional[object] = None,
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "all":
        return ALL_TIME
    if not period or period == "today":
        return Period("today", today, today)
    if period == "this_month":
        first, last = month_bounds(today)
        return Period("this_month", first, last)
    if period == "last_month":
        last_month_end = today.replace(day=1) - date.resolution
        return Period("last_month", last_month_end.replace(day=1), last_month_end)
    if period == "custom":
        start_date = _parse_bound(start)
        end_date = _parse_bound(end)
        if start_date and end_date and start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    raise ValueError(f"Unknown period: {period}")
