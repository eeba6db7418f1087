from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from storefront.config import Config
from storefront.observability import increment_counter
from storefront.services.time_window import InstantLike, to_epoch_ms

logger = logging.getLogger(__name__)

DENIED_IN_FLIGHT = "in_flight"
DENIED_TOO_SOON = "too_soon"


@dataclass
class SubmissionAttempt:
    """
    Submission state owned by exactly one checkout session.

    ``last_attempt_at`` is epoch milliseconds of the last granted attempt.
    """

    in_flight: bool = False
    last_attempt_at: Optional[int] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass(frozen=True)
class GuardDecision:
    granted: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.granted


def try_acquire(
    attempt: SubmissionAttempt,
    now: InstantLike,
    min_interval_ms: Optional[int] = None,
) -> GuardDecision:
    """
    Claim the attempt for one submission.

    The check and the flag update happen under the attempt's lock and before
    any I/O, so two near-simultaneous triggers can never both be granted.
    A denial is a normal outcome (a duplicate trigger), not an error.
    """
    interval = Config.CHECKOUT_THROTTLE_MS if min_interval_ms is None else min_interval_ms
    now_ms = to_epoch_ms(now)

    with attempt._lock:
        if attempt.in_flight:
            decision = GuardDecision(False, DENIED_IN_FLIGHT)
        elif attempt.last_attempt_at is not None and now_ms - attempt.last_attempt_at < interval:
            decision = GuardDecision(False, DENIED_TOO_SOON)
        else:
            attempt.in_flight = True
            attempt.last_attempt_at = now_ms
            return GuardDecision(True)

    logger.info(
        "Ignoring duplicate checkout trigger",
        extra={"reason": decision.reason, "last_attempt_at": attempt.last_attempt_at},
    )
    increment_counter("checkout_guard_denied_total", labels={"reason": decision.reason})
    return decision


def release(attempt: SubmissionAttempt) -> None:
    """Mark the attempt finished. Call exactly once per granted acquisition."""
    with attempt._lock:
        if not attempt.in_flight:
            logger.warning("Releasing a submission attempt that was not in flight")
        attempt.in_flight = False


__all__ = [
    "SubmissionAttempt",
    "GuardDecision",
    "DENIED_IN_FLIGHT",
    "DENIED_TOO_SOON",
    "try_acquire",
    "release",
]
