"""Time helpers shared by the scorer and the projector."""

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are assumed to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime], clock: Clock) -> datetime:
    """Pick the explicit `now` if given, otherwise read the clock."""
    return as_utc(now if now is not None else clock())


def in_zone_of(value: datetime, reference: datetime) -> datetime:
    """Express `value` in the timezone of `reference` (UTC when naive)."""
    zone = reference.tzinfo or timezone.utc
    return as_utc(value).astimezone(zone)
