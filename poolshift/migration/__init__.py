"""
Zero-downtime pool migration.

Public API:
    MigrationOrchestrator: Applies a PoolSpec to an existing pool
    MigrationLockManager: Optional per-pool file lock
    MigrationState, MigrationPath, MigrationStep, MigrationRun, MigrationResult
"""

from .lock_manager import MigrationLockManager
from .orchestrator import MigrationOrchestrator, ProgressCallback
from .state import (
    MigrationPath,
    MigrationResult,
    MigrationRun,
    MigrationState,
    MigrationStep,
)

__all__ = [
    "MigrationLockManager",
    "MigrationOrchestrator",
    "MigrationPath",
    "MigrationResult",
    "MigrationRun",
    "MigrationState",
    "MigrationStep",
    "ProgressCallback",
]
