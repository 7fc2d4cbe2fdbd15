from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo


def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_naive_to_local(dt: datetime, zone: tzinfo) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(zone)


def local_date(dt: datetime, zone: tzinfo) -> date:
    """Calendar day of `dt` in `zone`. Naive datetimes are read as UTC."""
    if dt.tzinfo is None:
        return utc_naive_to_local(dt, zone).date()
    return dt.astimezone(zone).date()
