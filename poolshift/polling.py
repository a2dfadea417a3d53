"""
Bounded convergence polling.

A condition is a zero-argument callable returning True when done. The
poller evaluates it immediately and then once per interval until it
reports done, the deadline passes (ConvergenceTimeoutError), or it raises
(the error propagates unchanged; retrying is only ever done on a False
result).
"""

import threading
import time
from typing import Callable, Optional

import structlog

from .exceptions import ConvergenceTimeoutError, MigrationCancelled
from .timeout_config import Timeouts, log_timeout_event

logger = structlog.get_logger(__name__)

Condition = Callable[[], bool]


class ConvergencePoller:
    """
    Repeatedly evaluates a condition at a fixed interval until a deadline.

    Args:
        interval: Seconds between evaluations
        deadline: Seconds after which polling gives up
        sleep: Sleep function (injectable for tests)
        monotonic: Monotonic clock (injectable for tests)
    """

    def __init__(
        self,
        interval: float = Timeouts.POLL_INTERVAL,
        deadline: float = Timeouts.STEP_DEADLINE,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if deadline <= 0:
            raise ValueError("deadline must be positive")
        self.interval = interval
        self.deadline = deadline
        self._sleep = sleep
        self._monotonic = monotonic

    def poll(
        self,
        condition: Condition,
        description: str = "condition",
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Block until condition() returns True.

        Raises:
            ConvergenceTimeoutError: If the deadline elapses first
            MigrationCancelled: If cancel_event is set while waiting
            Exception: Anything raised by the condition itself
        """
        start = self._monotonic()
        attempts = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise MigrationCancelled(
                    f"polling for {description} cancelled",
                    context={"attempts": attempts},
                )

            attempts += 1
            if condition():
                logger.debug(
                    "Condition met", condition=description, attempts=attempts
                )
                return

            elapsed = self._monotonic() - start
            if elapsed >= self.deadline:
                log_timeout_event("convergence_poll", self.deadline, description)
                raise ConvergenceTimeoutError(
                    f"timed out waiting for {description}",
                    interval=self.interval,
                    deadline=self.deadline,
                    context={"attempts": attempts},
                )

            self._sleep(min(self.interval, self.deadline - elapsed))


__all__ = ["Condition", "ConvergencePoller"]
