"""Time helpers shared by the services.

Every timestamp in the core is timezone-aware UTC. Some backends (SQLite) hand
back naive datetimes; ``ensure_utc`` reads those as UTC.
"""

import datetime
from collections.abc import Callable

__all__ = ["Clock", "utcnow", "ensure_utc"]

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def ensure_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)
