"""
poolshift - zero-downtime migrations of replica pools.

Public API:
    PoolResource: create/read/update/delete/exists on pools
    MigrationOrchestrator: applies a PoolSpec to an existing pool
    ReadinessOracle, ConvergencePoller: convergence checks and bounded polling
    SpecWriter: declarative tree <-> PoolSpec <-> Pool
    KubernetesPoolClient: replication-controller API client
"""

from .client import KubernetesPoolClient, PoolClient
from .migration import MigrationOrchestrator, MigrationResult
from .polling import ConvergencePoller
from .readiness import ReadinessOracle
from .resource import PoolResource
from .spec_writer import SpecWriter

__version__ = "0.1.0"

__all__ = [
    "ConvergencePoller",
    "KubernetesPoolClient",
    "MigrationOrchestrator",
    "MigrationResult",
    "PoolClient",
    "PoolResource",
    "ReadinessOracle",
    "SpecWriter",
    "__version__",
]
