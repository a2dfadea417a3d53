"""
Tests for the migration orchestrator.

Scenarios run against the in-memory FakeCluster with a fake clock, so the
1s poll interval, 30s settle duration and 120s step deadline are exercised
without sleeping.
"""

import json
import os
import socket
import threading
import time
from pathlib import Path

import pytest

from poolshift.config.models import MigrationConfig
from poolshift.exceptions import (
    BlankGenerationError,
    ConvergenceTimeoutError,
    MigrationCancelled,
    MigrationDivergedError,
    MigrationLockTimeout,
    PoolClientError,
    PoolNotFoundError,
)
from poolshift.migration.lock_manager import MigrationLockManager
from poolshift.migration.orchestrator import MigrationOrchestrator, temporary_pool_name
from poolshift.migration.state import MigrationPath, MigrationState
from poolshift.spec_writer import ORIGINAL_TARGET_ANNOTATION

from tests.fakes import Call


def _tmp_name(result_or_run) -> str:
    run = getattr(result_or_run, "run", result_or_run)
    return temporary_pool_name(run.name, run.generation)


class TestInPlaceUpdate:
    """Changes that keep the worker template are applied to the pool directly."""

    def test_unchanged_template_takes_in_place_path(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        before = cluster.get("default", "web")

        result = orchestrator.update("default", "web", make_spec(replicas=5))

        assert result.run.path is MigrationPath.IN_PLACE
        assert result.run.state is MigrationState.DONE
        assert result.pool.replicas == 5
        assert result.pool.generation_id == before.generation_id
        assert cluster.pool_names() == ["web"]

    def test_repeated_updates_never_create_temporary_pool(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        for _ in range(3):
            orchestrator.update("default", "web", make_spec())

        creates = [c for c in cluster.calls if c.op == "create"]
        assert creates == [Call("create", "web", 3)]

    def test_metadata_changes_are_written(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        spec = make_spec(labels={"team": "infra"}, annotations={"owner": "ops"})

        result = orchestrator.update("default", "web", spec)

        assert result.pool.labels == {"team": "infra"}
        assert result.pool.annotations["owner"] == "ops"

    def test_original_target_is_recovered(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        """A drifted live target is restored from the recorded original target."""
        cluster.set_target("default", "web", 1)

        result = orchestrator.update("default", "web", make_spec(replicas=None))

        assert result.pool.replicas == 3
        assert result.pool.annotations[ORIGINAL_TARGET_ANNOTATION] == "3"

    def test_live_target_used_without_recorded_original(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        stored = cluster.pools[("default", "web")]
        del stored.annotations[ORIGINAL_TARGET_ANNOTATION]
        cluster.set_target("default", "web", 2)

        result = orchestrator.update("default", "web", make_spec(replicas=None))

        assert result.pool.replicas == 2

    def test_missing_pool_raises_not_found(self, orchestrator, make_spec):
        with pytest.raises(PoolNotFoundError) as exc_info:
            orchestrator.update("default", "web", make_spec())

        assert exc_info.value.context["state"] == "fetching"


class TestMigration:
    """Template changes cross-scale into a replacement pool and swap names."""

    def test_image_change_cross_scales_and_swaps(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        result = orchestrator.update("default", "web", make_spec(image="nginx:1.26"))

        tmp = _tmp_name(result)
        assert result.run.path is MigrationPath.MIGRATION
        assert cluster.calls[1] == Call("create", tmp, 0)
        assert cluster.scale_steps() == [
            Call("scale", tmp, 1),
            Call("scale", "web", 2),
            Call("scale", tmp, 2),
            Call("scale", "web", 1),
            Call("scale", tmp, 3),
            Call("scale", "web", 0),
        ]
        assert not [c for c in cluster.calls if c.op == "update"]
        assert cluster.calls[-3:] == [
            Call("delete", "web"),
            Call("create", "web", 3),
            Call("delete", tmp),
        ]

        assert cluster.pool_names() == ["web"]
        assert result.pool.name == "web"
        assert result.pool.replicas == 3
        assert result.pool.template.containers[0].image == "nginx:1.26"
        assert result.pool.generation_id == result.run.generation

        workers = cluster.list_workers("default", result.pool.selector)
        assert len(workers) == 3

    def test_zero_replacement_target_clamps_step(
        self, orchestrator, cluster, resource, make_spec, clock
    ):
        resource.create(make_spec(replicas=2))
        clock.advance(60)

        result = orchestrator.update(
            "default", "web", make_spec(image="nginx:1.26", replicas=0)
        )

        assert cluster.scale_steps() == [Call("scale", "web", 1), Call("scale", "web", 0)]
        assert [s.skipped for s in result.run.steps] == [True, False, True, False]
        assert result.pool.replicas == 0
        assert cluster.pool_names() == ["web"]

    def test_missing_replicas_defaults_replacement_target(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        result = orchestrator.update(
            "default", "web", make_spec(image="nginx:1.26", replicas=None)
        )

        assert result.run.replacement_target == 1
        assert result.pool.replicas == 1

    def test_targets_move_one_pool_one_step_at_a_time(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        result = orchestrator.update(
            "default", "web", make_spec(image="nginx:1.26", replicas=4)
        )

        tmp = _tmp_name(result)
        last = {"web": 3, tmp: 0}
        for call in cluster.scale_steps():
            assert abs(call.replicas - last[call.name]) == 1
            last[call.name] = call.replicas

        steps = result.run.steps
        replacement = [s.replacement_target for s in steps]
        original = [s.original_target for s in steps]
        assert replacement == sorted(replacement)
        assert original == sorted(original, reverse=True)
        # alternation flips every iteration, starting with the replacement
        assert [s.pool for s in steps[:4]] == [tmp, "web", tmp, "web"]

    def test_progress_callback_sees_every_step(
        self, orchestrator, running_pool, make_spec
    ):
        seen = []

        result = orchestrator.update(
            "default", "web", make_spec(image="nginx:1.26"), progress_callback=seen.append
        )

        assert seen == result.run.steps
        assert [s.iteration for s in seen] == [1, 2, 3, 4, 5, 6]

    def test_waits_for_settle_duration_between_steps(
        self, orchestrator, clock, running_pool, make_spec
    ):
        orchestrator.update("default", "web", make_spec(image="nginx:1.26", replicas=1))

        # one new worker had to settle for 30s before the original could drop
        assert sum(clock.sleeps) >= 30
        assert all(s <= 1 for s in clock.sleeps)

    def test_resume_uses_recorded_original_target(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        """An interrupted migration left the original at 1; it restarts from 3."""
        cluster.set_target("default", "web", 1)

        result = orchestrator.update("default", "web", make_spec(image="nginx:1.26"))

        assert result.run.original_target == 3
        assert cluster.scale_steps()[1] == Call("scale", "web", 2)
        assert result.pool.replicas == 3


class TestMigrationFailures:
    """Failures leave both pools in place and carry the migration state."""

    def test_convergence_timeout_leaves_both_pools(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        cluster.unhealthy_images.add("nginx:broken")

        with pytest.raises(ConvergenceTimeoutError) as exc_info:
            orchestrator.update("default", "web", make_spec(image="nginx:broken"))

        error = exc_info.value
        tmp = error.context["temporary_pool"]
        assert error.context["state"] == "converging"
        assert error.context["last_targets"] == {"original": 3, "replacement": 1}
        assert error.deadline == 120
        assert cluster.pool_names() == sorted(["web", tmp])
        assert cluster.pools[("default", "web")].replicas == 3
        assert cluster.pools[("default", tmp)].replicas == 1
        assert not [c for c in cluster.calls if c.op == "delete"]

    def test_resumed_failure_reports_live_targets(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        cluster.set_target("default", "web", 1)
        cluster.fail_on("list_workers", "*", PoolClientError("boom", status_code=500))

        with pytest.raises(PoolClientError) as exc_info:
            orchestrator.update("default", "web", make_spec(image="nginx:1.26"))

        error = exc_info.value
        assert error.context["iterations"] == 0
        assert error.context["last_targets"] == {"original": 1, "replacement": 0}
        assert cluster.pools[("default", "web")].annotations[ORIGINAL_TARGET_ANNOTATION] == "3"

    def test_client_error_is_not_retried(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        orchestrator._new_generation = lambda: "gen-1"
        tmp = temporary_pool_name("web", "gen-1")
        cluster.fail_on("scale", tmp, PoolClientError("boom", status_code=500))

        with pytest.raises(PoolClientError) as exc_info:
            orchestrator.update("default", "web", make_spec(image="nginx:1.26"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.context["temporary_pool"] == tmp
        assert cluster.scale_steps() == []

    def test_blank_generation_rejected_before_create(
        self, cluster, migration_config, spec_writer, oracle, poller, running_pool, make_spec
    ):
        orchestrator = MigrationOrchestrator(
            cluster,
            config=migration_config,
            spec_writer=spec_writer,
            oracle=oracle,
            poller=poller,
            generation_factory=lambda: "",
        )

        with pytest.raises(BlankGenerationError):
            orchestrator.update("default", "web", make_spec(image="nginx:1.26"))

        assert [c.op for c in cluster.calls] == ["create"]

    def test_cancel_event_stops_migration(
        self, orchestrator, cluster, running_pool, make_spec
    ):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(MigrationCancelled) as exc_info:
            orchestrator.update(
                "default", "web", make_spec(image="nginx:1.26"), cancel_event=cancel
            )

        assert exc_info.value.context["state"] == "converging"
        assert len(cluster.pool_names()) == 2

    def test_external_target_change_is_detected(
        self, orchestrator, cluster, resource, make_spec, clock
    ):
        resource.create(make_spec(replicas=1))
        clock.advance(60)

        def scale_back(step):
            if step.pool == "web" and step.target == 0:
                cluster.set_target("default", "web", 1)

        with pytest.raises(MigrationDivergedError):
            orchestrator.update(
                "default",
                "web",
                make_spec(image="nginx:1.26", replicas=1),
                progress_callback=scale_back,
            )


class TestMigrationLock:
    """The optional per-pool lock serializes updates."""

    @pytest.fixture
    def migration_config(self, tmp_path: Path) -> MigrationConfig:
        return MigrationConfig(lock_enabled=True, lock_dir=tmp_path, lock_timeout=0.01)

    def test_lock_released_after_update(
        self, orchestrator, running_pool, make_spec, tmp_path
    ):
        orchestrator.update("default", "web", make_spec())

        assert list(tmp_path.glob("*.lock")) == []

    def test_held_lock_times_out(self, orchestrator, cluster, running_pool, make_spec, tmp_path):
        holder = MigrationLockManager("default/web", owner="other", lock_dir=tmp_path)
        holder.lock_file.write_text(
            json.dumps(
                {
                    "pool": "default/web",
                    "owner": "other",
                    "pid": os.getpid(),
                    "timestamp": time.time(),
                    "hostname": socket.gethostname(),
                }
            )
        )

        with pytest.raises(MigrationLockTimeout) as exc_info:
            orchestrator.update("default", "web", make_spec(replicas=5))

        assert exc_info.value.context["holder"] == "other"
        assert cluster.pools[("default", "web")].replicas == 3
