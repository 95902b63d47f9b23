"""
NeighborHelp Backend: Circuit Breaker
======================================

What:  Fails fast on a dependency that keeps failing.
Who:   EmailNotifier wraps every Resend call with one instance.

State Machine:
    CLOSED (normal operation)
        → On failure: increment failure_count
        → When failure_count >= threshold: transition to OPEN

    OPEN (rejecting all calls)
        → can_execute() raises CircuitBreakerOpenError immediately
        → After recovery_timeout seconds: transition to HALF_OPEN

    HALF_OPEN (testing recovery)
        → Allow ONE trial call through; other callers are rejected until
          that call records its outcome
        → On success: transition to CLOSED (reset failure_count)
        → On failure: transition back to OPEN (reset timer)

Not thread-safe (plain counters). A single uvicorn worker runs all
coroutines on one thread, so no lock is taken.
"""

import logging
import time
from typing import Optional

from app.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitBreaker:

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self.trial_in_flight = False

    def can_execute(self) -> bool:
        """
        Check if a call is allowed through.

        Every True returned while HALF_OPEN must be followed by
        record_success() or record_failure().

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't
            elapsed, or if HALF_OPEN and the trial call is still in flight.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.monotonic() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker '%s' transitioning to HALF_OPEN after %.1fs",
                    self.name,
                    elapsed,
                )
                self.state = self.HALF_OPEN
                self.trial_in_flight = True
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(
                recovery_time=remaining,
                context={"dependency": self.name},
            )

        if self.trial_in_flight:
            raise CircuitBreakerOpenError(
                recovery_time=0,
                context={"dependency": self.name, "state": self.HALF_OPEN},
            )
        self.trial_in_flight = True
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker '%s' transitioning to CLOSED (recovered)", self.name)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None
        self.trial_in_flight = False

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        self.trial_in_flight = False

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker '%s' returning to OPEN (test call failed)", self.name)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker '%s' OPENING after %d consecutive failures",
                self.name,
                self.failure_count,
            )
            self.state = self.OPEN
