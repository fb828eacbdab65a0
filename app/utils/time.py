from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import get_settings


def _load_zone():
    tz_name = get_settings().tz
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


LOCAL_TZ = _load_zone()


def now_local() -> datetime:
    return datetime.now(LOCAL_TZ)


def as_aware(value: datetime) -> datetime:
    """Mongo hands back naive UTC datetimes unless the client is tz_aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
