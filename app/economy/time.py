from __future__ import annotations

import calendar
from datetime import date, datetime
from zoneinfo import ZoneInfo

REFERENCE_TIMEZONE = "UTC"


def reference_local_date(now_utc: datetime) -> date:
    """Calendar date used for daily counters; rolls over at midnight in REFERENCE_TIMEZONE."""
    return now_utc.astimezone(ZoneInfo(REFERENCE_TIMEZONE)).date()


def add_months(value: datetime, months: int) -> datetime:
    """Adds calendar months, clamping the day to the last day of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_years(value: datetime, years: int) -> datetime:
    return add_months(value, 12 * years)
