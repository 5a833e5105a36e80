from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

DEFAULT_TZ_NAME = "Asia/Kolkata"
_MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def business_tz(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or DEFAULT_TZ_NAME)


def business_now(tz_name: str | None = None) -> datetime:
    """Get the current time in the business timezone."""
    return datetime.now(business_tz(tz_name))


def business_today(tz_name: str | None = None) -> date:
    return business_now(tz_name).date()


def parse_iso_date(value: Any) -> date | None:
    """Coerce a date, datetime or ISO string into a ``date``; ``None`` if unparsable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            try:
                return datetime.fromisoformat(text).date()
            except ValueError:
                return None
    return None


def to_iso_date(value: Any) -> str:
    """Render a date-like value as ``YYYY-MM-DD``; unparsable strings pass through."""
    parsed = parse_iso_date(value)
    if parsed:
        return parsed.isoformat()
    return str(value or "")


def month_key(value: Any) -> str | None:
    """``YYYY-MM`` for a date-like value, ``None`` when it does not parse."""
    parsed = parse_iso_date(value)
    if parsed is None:
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


def month_start(key: str) -> date:
    year, month = key.split("-")
    return date(int(year), int(month), 1)


def shift_month(day: date, offset: int) -> date:
    """First day of the month ``offset`` months away from ``day``."""
    index = day.year * 12 + (day.month - 1) + offset
    return date(index // 12, index % 12 + 1, 1)


def format_month_label(key: str, long: bool = True) -> str:
    """``January 2025`` (long) or ``Jan`` (short) for a ``YYYY-MM`` key."""
    start = month_start(key)
    if long:
        return start.strftime("%B %Y")
    return start.strftime("%b")


def is_month_key(value: Any) -> bool:
    return isinstance(value, str) and bool(_MONTH_KEY_RE.match(value))
