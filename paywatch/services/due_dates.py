from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


MIN_AGREEMENT_DAY = 1
MAX_AGREEMENT_DAY = 31


def compute_due_date(agreement_day: int, delay_days: int, reference_year: int, reference_month: int) -> date:
    """Resolve the due date for ``agreement_day`` in the reference month.

    Day numbers past the end of the month roll forward into the next month
    (31 in a 28-day February lands on 3 March), then ``delay_days`` calendar
    days are added.
    """
    if not MIN_AGREEMENT_DAY <= agreement_day <= MAX_AGREEMENT_DAY:
        raise ValueError(f"agreement_day must be between 1 and 31, got {agreement_day}")
    if delay_days < 0:
        raise ValueError("delay_days must be non-negative")

    month_start = date(reference_year, reference_month, 1)
    anchor = month_start + timedelta(days=agreement_day - 1)
    return anchor + timedelta(days=delay_days)


def receiving_date_for(agreement_date: date, delay_days: int) -> date:
    if delay_days < 0:
        raise ValueError("delay_days must be non-negative")
    return agreement_date + timedelta(days=delay_days)


def legacy_due_date(agreement_date: date | None, delay_days: int | None, today: date) -> date | None:
    if agreement_date is None:
        return None
    return compute_due_date(agreement_date.day, max(delay_days or 0, 0), today.year, today.month)


def normalize_iso_date(value: date | datetime | str | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        return None
    return date.fromisoformat(text[:10])


def is_due_today(receiving_date: date | datetime | str | None, today: date) -> bool:
    normalized = normalize_iso_date(receiving_date)
    if normalized is None:
        return False
    return normalized.isoformat() == today.isoformat()


def _zone(timezone_name: str):
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def now_in_zone(timezone_name: str) -> datetime:
    return datetime.now(_zone(timezone_name))


def today_in_zone(timezone_name: str, now: datetime | None = None) -> date:
    tz = _zone(timezone_name)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def ordinal_suffix(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
