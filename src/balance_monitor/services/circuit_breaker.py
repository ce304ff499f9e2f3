"""Consecutive-failure circuit breaker for the monitoring scheduler."""
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from balance_monitor.schemas import BreakerState
from balance_monitor.utils import utcnow

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Suspends scheduling after repeated upstream failures.

    The breaker opens once failure_threshold consecutive failures have been
    recorded and stays open while the last failure is younger than the cooldown.
    It closes lazily: the first is_suspended() call after the cooldown resets
    the counter. record_failure() reports the escalation crossing once per
    failure episode; an episode ends on success or on a cooldown reset.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown: timedelta = timedelta(minutes=10),
        escalation_threshold: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.escalation_threshold = escalation_threshold
        self._clock = clock
        self.consecutive_failures = 0
        self.last_failure_at: datetime | None = None
        self._escalated = False

    @property
    def escalated(self) -> bool:
        return self._escalated

    def record_success(self) -> None:
        if self.consecutive_failures:
            logger.info(
                "Balance fetch recovered after %d consecutive failures",
                self.consecutive_failures,
            )
        self._reset()

    def record_failure(self) -> bool:
        """Count a failure. Returns True when the escalation threshold is first crossed."""
        self.consecutive_failures += 1
        self.last_failure_at = self._clock()
        if self.consecutive_failures >= self.failure_threshold:
            logger.warning(
                "Circuit breaker open: %d consecutive failures", self.consecutive_failures
            )
        if not self._escalated and self.consecutive_failures >= self.escalation_threshold:
            self._escalated = True
            return True
        return False

    def _cooling_down(self) -> bool:
        return self.last_failure_at is not None and (
            self._clock() - self.last_failure_at < self.cooldown
        )

    def is_suspended(self) -> bool:
        if self.consecutive_failures < self.failure_threshold:
            return False
        if self._cooling_down():
            return True
        logger.info("Circuit breaker cooldown elapsed; resuming monitoring")
        self._reset()
        return False

    def state(self) -> BreakerState:
        """Read-only view; an elapsed cooldown is reported but not applied."""
        return BreakerState(
            consecutive_failures=self.consecutive_failures,
            last_failure_at=self.last_failure_at,
            suspended=self.consecutive_failures >= self.failure_threshold
            and self._cooling_down(),
            escalated=self._escalated,
        )

    def _reset(self) -> None:
        self.consecutive_failures = 0
        self.last_failure_at = None
        self._escalated = False
