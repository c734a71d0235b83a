from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def parse_iso_date(value: Union[str, date, None]) -> Optional[date]:
    """Parse a YYYY-MM-DD string; raises ValueError for anything else."""
    if value is None or isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        raise ValueError("Empty date")
    if len(text) > 10:
        # Full ISO timestamps must parse before their calendar part is kept.
        return datetime.fromisoformat(text).date()
    return date.fromisoformat(text)


def month_period(day: date) -> Period:
    first = day.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    end = next_month - date.resolution
    return Period("month", first, end)
