"""
Centralized timing configuration for pool migrations and API calls.

This module provides consistent values for the convergence poll interval,
the per-step convergence deadline, the worker settle duration and the HTTP
timeouts used to reach the pool-management API.

Timeout values are configurable via environment variables, with the
defaults below.

Usage:
    from poolshift.timeout_config import Timeouts

    poller = ConvergencePoller(
        interval=Timeouts.POLL_INTERVAL, deadline=Timeouts.STEP_DEADLINE
    )

Environment Variables:
    - POOLSHIFT_TIMEOUT_POLL_INTERVAL: Convergence poll interval (default: 1s)
    - POOLSHIFT_TIMEOUT_STEP_DEADLINE: Deadline per cross-scale step (default: 120s)
    - POOLSHIFT_TIMEOUT_SETTLE: Continuous healthy time per worker (default: 30s)
    - POOLSHIFT_TIMEOUT_HTTP_CONNECT: API connect timeout (default: 10s)
    - POOLSHIFT_TIMEOUT_HTTP_READ: API read timeout (default: 30s)
    - POOLSHIFT_TIMEOUT_LOCK: Migration lock acquisition (default: 60s)
"""

import logging
import os
from typing import Final

logger = logging.getLogger(__name__)


def _get_timeout(env_var: str, default: int) -> int:
    """Get timeout value from environment variable or use default.

    Args:
        env_var: Environment variable name
        default: Default timeout in seconds

    Returns:
        Timeout value in seconds
    """
    value = os.environ.get(env_var)
    if value is not None:
        try:
            timeout = int(value)
            if timeout <= 0:
                logger.warning(
                    f"Invalid timeout value for {env_var}: {value}. "
                    f"Must be positive. Using default: {default}s"
                )
                return default
            return timeout
        except ValueError:
            logger.warning(
                f"Invalid timeout value for {env_var}: {value}. "
                f"Must be integer. Using default: {default}s"
            )
            return default
    return default


class Timeouts:
    """Centralized timing constants for migrations and API calls.

    All values are in seconds and configurable via environment variables.
    """

    # Cross-scale convergence
    POLL_INTERVAL: Final[int] = _get_timeout("POOLSHIFT_TIMEOUT_POLL_INTERVAL", 1)
    STEP_DEADLINE: Final[int] = _get_timeout("POOLSHIFT_TIMEOUT_STEP_DEADLINE", 120)
    SETTLE_DURATION: Final[int] = _get_timeout("POOLSHIFT_TIMEOUT_SETTLE", 30)

    # Pool-management API
    HTTP_CONNECT: Final[int] = _get_timeout("POOLSHIFT_TIMEOUT_HTTP_CONNECT", 10)
    HTTP_READ: Final[int] = _get_timeout("POOLSHIFT_TIMEOUT_HTTP_READ", 30)

    # Migration lock
    LOCK_ACQUIRE: Final[int] = _get_timeout("POOLSHIFT_TIMEOUT_LOCK", 60)


def log_timeout_event(
    operation: str,
    timeout_value: float,
    target: str | None = None,
    level: str = "warning",
) -> None:
    """Log a timeout event with consistent formatting.

    Args:
        operation: Name of the operation that timed out
        timeout_value: Timeout value that was exceeded
        target: Optional description of what was being waited on
        level: Log level (debug, info, warning, error)
    """
    log_func = getattr(logger, level, logger.warning)
    target_str = f" - waiting on {target}" if target else ""
    log_func(
        f"Operation '{operation}' timed out after {timeout_value} seconds{target_str}"
    )
