from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]

MILLIS_PER_HOUR = 60 * 60 * 1000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(moment: datetime) -> int:
    """Epoch milliseconds for an aware datetime (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def from_millis(millis: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=millis)


def iso_from_millis(millis: int | None) -> str | None:
    if millis is None:
        return None
    return from_millis(millis).isoformat()
