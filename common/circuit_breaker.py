# common/circuit_breaker.py
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    In-memory circuit breaker guarding calls to another service.

    States:
    - closed: calls pass, consecutive failures are counted
    - open: calls are refused until ``reset_timeout`` has elapsed
    - half_open: exactly one trial call is let through and every other call
      is refused until it reports back; success closes the circuit, failure
      opens it again. A trial that never reports back is replaced by a new
      one after ``reset_timeout``.
    """

    def __init__(self, name: str, max_failures: int = 3, reset_timeout_seconds: int = 30):
        self.name = name
        self.max_failures = max_failures
        self.reset_timeout = timedelta(seconds=reset_timeout_seconds)
        self.failure_count = 0
        self.state = "closed"  # "closed" | "open" | "half_open"
        self.last_failure_time: Optional[datetime] = None
        self.trial_started_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def allow_request(self) -> bool:
        with self._lock:
            if self.state == "closed":
                return True

            now = datetime.now(timezone.utc)
            if self.state == "half_open":
                started = self.trial_started_at
                if started is not None and now - started < self.reset_timeout:
                    return False
                logger.info("Circuit %s trial call timed out, allowing another", self.name)
            else:
                if self.last_failure_time is None:
                    return False
                if now - self.last_failure_time < self.reset_timeout:
                    return False
                logger.info("Circuit %s half-open, allowing trial call", self.name)

            self.state = "half_open"
            self.trial_started_at = now
            return True

    def record_success(self) -> None:
        with self._lock:
            if self.state != "closed":
                logger.info("Circuit %s closed", self.name)
            self.failure_count = 0
            self.state = "closed"
            self.last_failure_time = None
            self.trial_started_at = None

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = datetime.now(timezone.utc)
            self.trial_started_at = None
            if self.state == "half_open" or self.failure_count >= self.max_failures:
                if self.state != "open":
                    logger.warning(
                        "Circuit %s opened after %d failures", self.name, self.failure_count
                    )
                self.state = "open"
