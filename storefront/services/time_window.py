"""Countdown arithmetic for time-bound offers.

Everything here is pure: callers pass the wall clock in, nothing is cached,
and the same inputs always produce the same :class:`RemainingTime`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR

# ISO-8601 text, an aware/naive datetime, or epoch milliseconds
DeadlineLike = Union[str, datetime, int, float, None]
InstantLike = Union[datetime, int, float]


@dataclass(frozen=True)
class RemainingTime:
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    is_expired: bool = True

    @property
    def total_seconds(self) -> int:
        return ((self.days * 24 + self.hours) * 60 + self.minutes) * 60 + self.seconds

    def to_dict(self) -> dict:
        return {
            "days": self.days,
            "hours": self.hours,
            "minutes": self.minutes,
            "seconds": self.seconds,
            "is_expired": self.is_expired,
        }


EXPIRED = RemainingTime()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_deadline(value: DeadlineLike) -> Optional[datetime]:
    """Normalise a deadline to an aware UTC datetime, or None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / MS_PER_SECOND, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.warning("Ignoring out-of-range deadline", extra={"deadline": value})
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Ignoring unparseable deadline", extra={"deadline": value})
            return None
        return parse_deadline(parsed)
    logger.warning("Ignoring deadline of unsupported type", extra={"deadline_type": type(value).__name__})
    return None


def to_epoch_ms(instant: InstantLike) -> int:
    if isinstance(instant, datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        delta = instant - datetime(1970, 1, 1, tzinfo=timezone.utc)
        # Integer arithmetic keeps sub-second precision without float drift
        return (delta.days * 86_400 + delta.seconds) * MS_PER_SECOND + delta.microseconds // 1000
    return int(instant)


def evaluate(deadline: DeadlineLike, now: InstantLike) -> RemainingTime:
    """Split the time left until ``deadline`` into days/hours/minutes/seconds.

    A missing deadline counts as already expired, and so does a deadline equal
    to ``now``. Partial seconds are truncated, never rounded up.
    """
    parsed = parse_deadline(deadline)
    if parsed is None:
        return EXPIRED

    diff = to_epoch_ms(parsed) - to_epoch_ms(now)
    if diff <= 0:
        return EXPIRED

    days, diff = divmod(diff, MS_PER_DAY)
    hours, diff = divmod(diff, MS_PER_HOUR)
    minutes, diff = divmod(diff, MS_PER_MINUTE)
    seconds = diff // MS_PER_SECOND
    return RemainingTime(
        days=days,
        hours=hours,
        minutes=minutes,
        seconds=seconds,
        is_expired=False,
    )


def is_expired(deadline: DeadlineLike, now: InstantLike) -> bool:
    return evaluate(deadline, now).is_expired


__all__ = [
    "RemainingTime",
    "EXPIRED",
    "utc_now",
    "parse_deadline",
    "to_epoch_ms",
    "evaluate",
    "is_expired",
]
