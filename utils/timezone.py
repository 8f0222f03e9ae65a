"""
Instants are stored in UTC; calendar dates belong to the business timezone.

An invoice raised at 20:00 UTC on 31 March is dated 1 April in India and
starts a new financial year, so every date that ends up on a document or in
an invoice number goes through business_date().
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

BUSINESS_TIMEZONE = "Asia/Kolkata"


def now_utc() -> datetime:
    """Timezone-aware current instant. Use instead of datetime.now()."""
    return datetime.now(timezone.utc)


def to_local(dt: datetime, tz_name: str = BUSINESS_TIMEZONE) -> datetime:
    """
    The same instant on a local wall clock.

    Raises:
        ValueError: naive datetime or unknown IANA zone name
    """
    if dt.tzinfo is None:
        raise ValueError("Cannot localize a naive datetime; attach a timezone first")

    try:
        zone = ZoneInfo(tz_name)
    except (KeyError, ZoneInfoNotFoundError):
        raise ValueError(f"Unknown timezone: {tz_name}")

    return dt.astimezone(zone)


def business_date(dt: datetime, tz_name: str = BUSINESS_TIMEZONE) -> date:
    return to_local(dt, tz_name).date()
