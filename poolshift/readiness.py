"""
Readiness Oracle - decides whether a pool has converged on its target.

A pool has converged when:
1. its controller has observed the latest spec and reports exactly the
   declared number of replicas, and
2. every worker matching its selector is ready, with each ready
   sub-component continuously running for at least the settle duration,
   and the number of such settled workers equals the declared target.

Each check is returned as a condition (zero-argument callable) so it can
be handed to the ConvergencePoller. Listing errors are not retried here.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

import structlog

from .client.base import PoolClient
from .models.pool import Pool, WorkerInstance
from .polling import Condition
from .timeout_config import Timeouts

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadinessOracle:
    """Builds convergence conditions for pools."""

    def __init__(
        self,
        client: PoolClient,
        settle_duration: float = Timeouts.SETTLE_DURATION,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the oracle.

        Args:
            client: Pool client used to re-read pools and list workers
            settle_duration: Seconds a sub-component must have been running
            now: Clock returning timezone-aware datetimes (injectable for tests)
        """
        self.client = client
        self.settle_duration = timedelta(seconds=settle_duration)
        self._now = now or _utcnow
        self._logger = logger.bind(component="ReadinessOracle")

    def has_desired_replicas(self, pool: Pool) -> Condition:
        """Controller has caught up with pool's declared target."""
        desired = pool.replicas
        generation = pool.generation

        def _check() -> bool:
            current = self.client.get(pool.namespace, pool.name)
            return (
                current.observed_generation >= generation
                and current.observed_replicas == desired
            )

        return _check

    def _is_settled(self, worker: WorkerInstance, cutoff: datetime) -> bool:
        if not worker.container_statuses:
            return False
        settled = 0
        for status in worker.container_statuses:
            if not status.ready or status.running_since is None:
                continue
            if status.running_since > cutoff:
                continue
            settled += 1
        return settled == worker.declared_containers

    def count_workers(self, pool: Pool) -> Tuple[int, int]:
        """
        Count the pool's workers.

        Returns:
            (settled, non_ready): workers ready for at least the settle
            duration, and workers not reporting ready at all. Workers that
            are ready but not yet settled fall in neither bucket.
        """
        workers = self.client.list_workers(pool.namespace, pool.selector)
        cutoff = self._now() - self.settle_duration

        settled = 0
        non_ready = 0
        for worker in workers:
            if not worker.ready:
                non_ready += 1
                continue
            if self._is_settled(worker, cutoff):
                settled += 1
        return settled, non_ready

    def workers_ready(self, pool: Pool) -> Condition:
        """Exactly the declared number of settled workers and none non-ready."""
        desired = pool.replicas

        def _check() -> bool:
            settled, non_ready = self.count_workers(pool)
            self._logger.debug(
                "Worker readiness",
                pool=pool.identity,
                desired=desired,
                settled=settled,
                non_ready=non_ready,
            )
            return settled == desired and non_ready == 0

        return _check

    def scaled(self, pool: Pool) -> Condition:
        """Single-pool convergence: replicas observed and workers settled."""
        replicas_ok = self.has_desired_replicas(pool)
        workers_ok = self.workers_ready(pool)

        def _check() -> bool:
            return replicas_ok() and workers_ok()

        return _check

    def cross_scaled(self, original: Pool, replacement: Pool) -> Condition:
        """Both pools converged at their current declared targets."""
        checks = (
            self.has_desired_replicas(original),
            self.has_desired_replicas(replacement),
            self.workers_ready(original),
            self.workers_ready(replacement),
        )

        def _check() -> bool:
            return all(check() for check in checks)

        return _check

    def pool_converged(self, pool: Pool) -> bool:
        """Evaluate single-pool convergence once."""
        return self.scaled(pool)()


__all__ = ["ReadinessOracle"]
