from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: Optional[date]
    end: Optional[date]

    def contains(self, value: date) -> bool:
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    first = month_start(d)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def add_months(d: date, count: int) -> date:
    """First day of the month ``count`` months away from ``d``."""
    total = d.year * 12 + (d.month - 1) + count
    return date(total // 12, total % 12 + 1, 1)


def trailing_months(today: date, count: int = 12) -> list[date]:
    """Month starts for the last ``count`` months, oldest first, ending with today's."""
    return [add_months(today, -offset) for offset in range(count - 1, -1, -1)]


def resolve_period(period: Optional[str], *, today: Optional[date] = None) -> Period:
    today = today or local_today()
    if not period or period == "current":
        return Period("current", month_start(today), month_end(today))
    if period == "all":
        return Period("all", None, None)
    raise ValueError("Period must be 'current' or 'all'")
