"""Fixed-interval driver that runs at most one monitor cycle at a time."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from restock_monitor.misc.logger import get_logger


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class PollScheduler:
    """Runs ``cycle`` immediately and then every ``interval_seconds``.

    Triggers that arrive while a cycle is running are dropped, not queued.
    ``stop()`` only prevents future cycles; a running cycle always finishes.
    """

    def __init__(
        self,
        cycle: Callable[[], Any],
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.cycle = cycle
        self.interval_seconds = float(interval_seconds)
        self.clock = clock
        self.logger = get_logger("scheduler")
        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self.skipped_triggers = 0
        self.completed_cycles = 0

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.RUNNING if self._run_lock.locked() else SchedulerState.IDLE

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def trigger(self, reason: str = "interval") -> bool:
        """Run one cycle now if idle; return False when it was skipped."""
        if self._stop_event.is_set():
            self.logger.info("trigger ignored during shutdown reason=%s", reason)
            return False
        if not self._run_lock.acquire(blocking=False):
            self.skipped_triggers += 1
            self.logger.warning("cycle still running, trigger dropped reason=%s", reason)
            return False
        try:
            self.cycle()
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("cycle raised past its own error handling: %s", exc)
        finally:
            self.completed_cycles += 1
            self._run_lock.release()
        return True

    def next_deadline(self, last_deadline: float) -> float:
        """Advance past every tick missed while the last cycle ran; missed ticks are dropped."""
        now = self.clock()
        deadline = last_deadline + self.interval_seconds
        if deadline < now:
            missed = int((now - last_deadline) // self.interval_seconds)
            self.skipped_triggers += missed
            self.logger.warning("cycle overran interval, dropped_ticks=%s", missed)
            deadline = last_deadline + (missed + 1) * self.interval_seconds
        return deadline

    def run_forever(self, max_cycles: int | None = None) -> None:
        """Block until ``stop()``; ``max_cycles`` bounds the loop for tests and one-shot runs."""
        deadline = self.clock()
        runs = 0
        while not self._stop_event.is_set():
            self.trigger("startup" if runs == 0 else "interval")
            runs += 1
            if max_cycles is not None and runs >= max_cycles:
                break
            deadline = self.next_deadline(deadline)
            wait_for = max(0.0, deadline - self.clock())
            if self._stop_event.wait(wait_for):
                break
        self.logger.info("scheduler stopped after cycles=%s", self.completed_cycles)

    def stop(self) -> None:
        """Stop issuing cycles; safe to call from a signal handler."""
        self._stop_event.set()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait for an in-flight cycle (e.g. one started by a command) to finish."""
        acquired = self._run_lock.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._run_lock.release()
        return acquired
