from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Final

from restock_monitor.misc.url_normalizer import extract_domain

RETRIABLE_STATUS_CODES: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


@dataclass(slots=True)
class BackoffPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter_seconds: float = 0.5

    def delay_for_attempt(self, attempt: int) -> float:
        exp_delay = min(self.max_delay_seconds, self.base_delay_seconds * (2 ** max(0, attempt - 1)))
        jitter = random.uniform(0, self.jitter_seconds) if self.jitter_seconds > 0 else 0.0
        return exp_delay + jitter


class DomainRateLimiter:
    """Enforces a minimum spacing between consecutive requests to the same host.

    Shared by every probe worker, so the spacing holds no matter how many
    workers are running.
    """

    def __init__(self, min_interval_seconds: float = 1.5) -> None:
        self.min_interval = max(0.0, float(min_interval_seconds))
        self._lock = threading.Lock()
        self._last_request: dict[str, float] = {}
        self._cooldown_until: dict[str, float] = {}

    def wait_for_slot(self, url: str) -> float:
        """Block until the host may be contacted; return the seconds spent waiting."""
        domain = extract_domain(url)
        waited = 0.0
        while True:
            with self._lock:
                now = time.monotonic()
                wait_seconds = 0.0
                cooldown = self._cooldown_until.get(domain, 0.0)
                if cooldown > now:
                    wait_seconds = cooldown - now

                last = self._last_request.get(domain)
                if last is not None and now - last < self.min_interval:
                    wait_seconds = max(wait_seconds, self.min_interval - (now - last))

                if wait_seconds <= 0:
                    self._last_request[domain] = now
                    return waited

            sleep_for = min(wait_seconds, 0.5)
            time.sleep(sleep_for)
            waited += sleep_for

    def apply_cooldown(self, url: str, seconds: float) -> None:
        domain = extract_domain(url)
        with self._lock:
            self._cooldown_until[domain] = max(
                self._cooldown_until.get(domain, 0.0), time.monotonic() + seconds
            )


def should_retry_status(status_code: int) -> bool:
    return status_code in RETRIABLE_STATUS_CODES
