"""
Migration Orchestrator

Applies a desired PoolSpec to an existing pool without downtime.

Flow:
    Fetching -> Classifying -> InPlace -> Done
    Fetching -> Classifying -> Migrating -> Converging -> Swapping -> Done
    any state -> Failed

A change that leaves the worker template alone is written straight onto
the pool. A template change creates a temporary pool ``<name>-<generation>``
at target 0, then cross-scales one worker at a time, alternating between
raising the temporary pool and lowering the original one, waiting for both
pools to converge before every step. Once the original pool is at 0 and the
temporary pool at its target, the original is deleted and the temporary
pool is recreated under the original name, adopting its workers.

Failures are never rolled back: both pools stay at their last applied
targets and the error is re-raised with the partial-migration state
attached to its context. Re-running the update resumes from the original
target recorded on the original pool.
"""

import threading
import uuid
from datetime import UTC, datetime
from typing import Callable, Optional

import structlog

from ..client.base import PoolClient
from ..config.models import MigrationConfig
from ..exceptions import BlankGenerationError, MigrationDivergedError, PoolShiftError
from ..models.pool import Pool
from ..models.spec import PoolSpec
from ..polling import ConvergencePoller
from ..readiness import ReadinessOracle
from ..spec_writer import SpecWriter
from .lock_manager import MigrationLockManager
from .state import (
    MigrationPath,
    MigrationResult,
    MigrationRun,
    MigrationState,
    MigrationStep,
)

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[MigrationStep], None]


def new_generation_id() -> str:
    return str(uuid.uuid4())


def temporary_pool_name(name: str, generation: str) -> str:
    return f"{name}-{generation}"


class MigrationOrchestrator:
    """
    Drives one pool update at a time through the migration state machine.

    The client is passed in explicitly; the orchestrator holds no other
    shared state, so one instance may serve updates of different pools
    from different threads.
    """

    def __init__(
        self,
        client: PoolClient,
        config: Optional[MigrationConfig] = None,
        spec_writer: Optional[SpecWriter] = None,
        oracle: Optional[ReadinessOracle] = None,
        poller: Optional[ConvergencePoller] = None,
        generation_factory: Callable[[], str] = new_generation_id,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            client: Pool-management API client
            config: Pacing, default replica and locking settings
            spec_writer: SpecWriter used to stamp specs onto pools
            oracle: Readiness oracle (built from config if omitted)
            poller: Convergence poller (built from config if omitted)
            generation_factory: Produces fresh generation ids
        """
        self.client = client
        self.config = config or MigrationConfig()
        self.spec_writer = spec_writer or SpecWriter()
        self.oracle = oracle or ReadinessOracle(
            client, settle_duration=self.config.settle_duration
        )
        self.poller = poller or ConvergencePoller(
            interval=self.config.poll_interval, deadline=self.config.step_deadline
        )
        self._new_generation = generation_factory
        self._logger = logger.bind(component="MigrationOrchestrator")

    def update(
        self,
        namespace: str,
        name: str,
        spec: PoolSpec,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MigrationResult:
        """
        Apply spec to the pool namespace/name.

        Args:
            namespace: Namespace of the existing pool
            name: Name of the existing pool
            spec: Desired, already validated, pool spec
            progress_callback: Called after every cross-scale iteration
            cancel_event: When set, the next convergence wait is abandoned

        Returns:
            MigrationResult with the pool as re-read after the update

        Raises:
            PoolShiftError: Any failure, with the partial-migration state in
                its context (the original error type is preserved)
        """
        run = MigrationRun(namespace=namespace, name=name)
        log = self._logger.bind(pool=run.identity, run_id=run.run_id)

        lock = None
        if self.config.lock_enabled:
            lock = MigrationLockManager(
                pool=run.identity, owner=run.run_id, lock_dir=self.config.lock_dir
            )

        try:
            if lock is not None:
                lock.acquire(timeout=self.config.lock_timeout)
            try:
                pool = self._apply(run, spec, log, progress_callback, cancel_event)
            finally:
                if lock is not None:
                    lock.release()
        except PoolShiftError as e:
            for key, value in run.to_context().items():
                e.context.setdefault(key, value)
            self._fail(run, log, e)
            raise
        except Exception as e:
            self._fail(run, log, e)
            raise

        run.state = MigrationState.DONE
        run.completed_at = datetime.now(UTC)
        log.info(
            "Pool update complete",
            path=run.path.value if run.path else None,
            generation=run.generation,
            iterations=len(run.steps),
            duration_seconds=run.duration_seconds,
        )
        return MigrationResult(pool=pool, run=run)

    def _fail(self, run: MigrationRun, log, error: Exception) -> None:
        failed_in = run.state
        run.state = MigrationState.FAILED
        run.completed_at = datetime.now(UTC)
        if isinstance(error, PoolShiftError):
            details = error.to_dict()
        else:
            details = {"error_type": type(error).__name__, "message": str(error)}
        log.error(
            "Pool update failed",
            state=failed_in.value,
            temporary_pool=run.temporary_name,
            **details,
        )


    def _apply(
        self,
        run: MigrationRun,
        spec: PoolSpec,
        log,
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> Pool:
        run.state = MigrationState.FETCHING
        current = self.client.get(run.namespace, run.name)
        run.live_target = current.replicas

        recovered = self.spec_writer.pop_original_target(current)
        run.original_target = current.replicas if recovered is None else recovered

        run.state = MigrationState.CLASSIFYING
        if not self.spec_writer.template_changed(current, spec):
            log.info(
                "Worker template unchanged, updating in place",
                generation=current.generation_id,
            )
            return self._update_in_place(run, current, spec, log)

        log.info(
            "Worker template changed, migrating",
            previous_generation=current.generation_id or None,
            original_target=run.original_target,
            recovered=recovered is not None,
        )
        return self._migrate(run, spec, log, progress_callback, cancel_event)

    def _update_in_place(
        self, run: MigrationRun, current: Pool, spec: PoolSpec, log
    ) -> Pool:
        run.path = MigrationPath.IN_PLACE
        run.state = MigrationState.IN_PLACE
        run.generation = current.generation_id

        target = spec.replicas if spec.replicas is not None else run.original_target
        self.spec_writer.write_pool(current, spec, run.generation, target)
        self.client.update(current)
        log.info("Updated pool in place", target=target)

        return self.client.get(run.namespace, run.name)

    def _migrate(
        self,
        run: MigrationRun,
        spec: PoolSpec,
        log,
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> Pool:
        run.path = MigrationPath.MIGRATION
        run.state = MigrationState.MIGRATING

        generation = self._new_generation()
        if not generation:
            raise BlankGenerationError(context={"pool": run.identity})
        run.generation = generation
        tmp_name = temporary_pool_name(run.name, generation)

        replacement_target = (
            spec.replicas if spec.replicas is not None else self.config.default_replicas
        )
        run.replacement_target = replacement_target

        temporary = Pool(name=tmp_name, namespace=run.namespace)
        self.spec_writer.write_pool(
            temporary, spec, generation, target=replacement_target, replicas=0
        )
        self.client.create(temporary)
        run.temporary_name = tmp_name
        log = log.bind(generation=generation, temporary_pool=tmp_name)
        log.info(
            "Created temporary pool",
            original_target=run.original_target,
            replacement_target=replacement_target,
        )

        self._cross_scale(
            run, tmp_name, replacement_target, log, progress_callback, cancel_event
        )
        return self._swap(run, tmp_name, log)

    def _cross_scale(
        self,
        run: MigrationRun,
        tmp_name: str,
        replacement_target: int,
        log,
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
    ) -> None:
        run.state = MigrationState.CONVERGING

        original_step = run.original_target or 0
        replacement_step = min(0, replacement_target)
        scale_replacement = True
        idle_iterations = 0
        iteration = 0

        while True:
            iteration += 1
            original = self.client.get(run.namespace, run.name)
            replacement = self.client.get(run.namespace, tmp_name)
            run.live_target = original.replicas
            run.live_replacement_target = replacement.replicas

            self.poller.poll(
                self.oracle.cross_scaled(original, replacement),
                description=f"{run.identity} and {tmp_name} to converge",
                cancel_event=cancel_event,
            )

            if self._on_target(original, 0) and self._on_target(
                replacement, replacement_target
            ):
                log.info("Pools converged", iterations=iteration - 1)
                return

            if idle_iterations >= 2:
                raise MigrationDivergedError(
                    f"{run.identity} and {tmp_name} stopped moving toward their targets",
                    context={
                        "original_replicas": original.replicas,
                        "replacement_replicas": replacement.replicas,
                    },
                )

            applied: Optional[int] = None
            if scale_replacement:
                stepped_pool = tmp_name
                if replacement_step < replacement_target:
                    replacement_step += 1
                    self.client.scale(run.namespace, tmp_name, replacement_step)
                    run.live_replacement_target = replacement_step
                    applied = replacement_step
            else:
                stepped_pool = run.name
                if original_step > 0:
                    original_step -= 1
                    self.client.scale(run.namespace, run.name, original_step)
                    run.live_target = original_step
                    applied = original_step
            scale_replacement = not scale_replacement
            idle_iterations = 0 if applied is not None else idle_iterations + 1

            step = MigrationStep(
                iteration=iteration,
                pool=stepped_pool,
                target=applied,
                original_target=original_step,
                replacement_target=replacement_step,
            )
            run.steps.append(step)
            if applied is not None:
                log.info(
                    "Scaled pool", iteration=iteration, scaled=stepped_pool, target=applied
                )
            else:
                log.debug("No step to apply", iteration=iteration, scaled=stepped_pool)
            if progress_callback is not None:
                progress_callback(step)

    @staticmethod
    def _on_target(pool: Pool, target: int) -> bool:
        return pool.replicas == target and pool.observed_replicas == target

    def _swap(self, run: MigrationRun, tmp_name: str, log) -> Pool:
        run.state = MigrationState.SWAPPING

        self.client.delete(run.namespace, run.name)
        log.info("Deleted original pool")

        renamed = self.client.get(run.namespace, tmp_name)
        renamed.name = run.name
        renamed.resource_version = ""
        renamed.uid = ""
        self.client.create(renamed)
        log.info("Recreated temporary pool under original name")

        self.client.delete(run.namespace, tmp_name)
        log.info("Deleted temporary pool")

        return self.client.get(run.namespace, run.name)


__all__ = [
    "MigrationOrchestrator",
    "ProgressCallback",
    "new_generation_id",
    "temporary_pool_name",
]
