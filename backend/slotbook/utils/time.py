from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:
    return utc_now().replace(tzinfo=None)


@lru_cache
def slot_zone(name: str) -> ZoneInfo:
    """Zone in which slot dates and time labels are interpreted."""
    return ZoneInfo(name)
