from typing import Any, Callable

import pytest

from poolshift.config.models import MigrationConfig
from poolshift.migration.orchestrator import MigrationOrchestrator
from poolshift.models.spec import PoolSpec
from poolshift.polling import ConvergencePoller
from poolshift.readiness import ReadinessOracle
from poolshift.resource import PoolResource
from poolshift.spec_writer import SpecWriter

from tests.fakes import FakeClock, FakeCluster, make_tree

# ============================================================================
# Spec fixtures
# ============================================================================


@pytest.fixture
def spec_writer() -> SpecWriter:
    return SpecWriter()


@pytest.fixture
def make_spec(spec_writer: SpecWriter) -> Callable[..., PoolSpec]:
    """Build a validated PoolSpec; keyword arguments go to make_tree."""

    def _make(**kwargs: Any) -> PoolSpec:
        return spec_writer.parse(make_tree(**kwargs))

    return _make


# ============================================================================
# Fake cluster fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cluster(clock: FakeClock) -> FakeCluster:
    return FakeCluster(clock=clock)


@pytest.fixture
def migration_config() -> MigrationConfig:
    return MigrationConfig()


@pytest.fixture
def oracle(cluster: FakeCluster, clock: FakeClock, migration_config: MigrationConfig):
    return ReadinessOracle(
        cluster, settle_duration=migration_config.settle_duration, now=clock.now
    )


@pytest.fixture
def poller(clock: FakeClock, migration_config: MigrationConfig) -> ConvergencePoller:
    return ConvergencePoller(
        interval=migration_config.poll_interval,
        deadline=migration_config.step_deadline,
        sleep=clock.sleep,
        monotonic=clock.monotonic,
    )


@pytest.fixture
def orchestrator(
    cluster: FakeCluster,
    migration_config: MigrationConfig,
    spec_writer: SpecWriter,
    oracle: ReadinessOracle,
    poller: ConvergencePoller,
) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        cluster,
        config=migration_config,
        spec_writer=spec_writer,
        oracle=oracle,
        poller=poller,
    )


@pytest.fixture
def resource(
    cluster: FakeCluster,
    migration_config: MigrationConfig,
    spec_writer: SpecWriter,
    orchestrator: MigrationOrchestrator,
) -> PoolResource:
    return PoolResource(
        cluster,
        config=migration_config,
        spec_writer=spec_writer,
        orchestrator=orchestrator,
    )


@pytest.fixture
def running_pool(resource: PoolResource, make_spec, clock: FakeClock) -> str:
    """A pool 'default/web' at 3 settled replicas running nginx:1.25."""
    identity = resource.create(make_spec())
    clock.advance(60)
    return identity
