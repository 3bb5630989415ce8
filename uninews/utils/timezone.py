from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo

from uninews.core.config import settings


def get_zoneinfo() -> ZoneInfo:
    """The process-wide zone every reminder and announcement date is expressed in."""
    return ZoneInfo(settings.TIME_ZONE)


def now_local() -> datetime:
    return datetime.now(get_zoneinfo())


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC) for storage in timestamptz columns.
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def to_local(dt: datetime | None) -> datetime | None:
    """
    Express a datetime in the configured zone, keeping the instant.
    - Naive datetimes (e.g. read back from SQLite) are assumed UTC
    """
    if dt is None:
        return None
    return to_utc_aware(dt).astimezone(get_zoneinfo())
