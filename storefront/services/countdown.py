"""Background countdown for code that renders an offer over time, such as a view
or a push channel. The HTTP API answers with one-off snapshots instead."""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from storefront.config import Config
from storefront.services.time_window import DeadlineLike, RemainingTime, evaluate, utc_now

logger = logging.getLogger(__name__)

TickCallback = Callable[[RemainingTime], None]


class CountdownTimer:
    """
    One cancellable ticker per active countdown.

    The owner starts it when a view becomes active and must stop it on
    teardown; use it as a context manager to make that automatic. The timer
    also stops itself once it has delivered an expired tick.
    """

    def __init__(
        self,
        deadline: DeadlineLike,
        on_tick: TickCallback,
        clock: Callable[[], datetime] = utc_now,
        interval: Optional[float] = None,
    ) -> None:
        self.deadline = deadline
        self.on_tick = on_tick
        self.clock = clock
        self.interval = Config.COUNTDOWN_TICK_SECONDS if interval is None else interval
        self.latest: Optional[RemainingTime] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> "CountdownTimer":
        with self._lock:
            if self.running:
                return self
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="countdown-timer",
                daemon=True,
            )
            self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def tick(self) -> RemainingTime:
        """Evaluate once and deliver the result to the callback."""
        remaining = evaluate(self.deadline, self.clock())
        self.latest = remaining
        self.on_tick(remaining)
        return remaining

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                remaining = self.tick()
            except Exception:
                logger.exception("Countdown tick failed; stopping timer")
                break
            if remaining.is_expired:
                logger.debug("Countdown reached zero", extra={"deadline": str(self.deadline)})
                break
            # wait() returns True as soon as stop() is called
            if self._stop_event.wait(self.interval):
                break
        self._stop_event.set()

    def __enter__(self) -> "CountdownTimer":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
