"""
Migration State Models

Data models for tracking a single pool update while it runs:
- MigrationState: where in the state machine the update currently is
- MigrationStep: one iteration of the cross-scale loop
- MigrationRun: the full record of an update (path, generation, steps)
- MigrationResult: the final pool plus its run record
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..models.pool import Pool


class MigrationState(str, Enum):
    """States of the pool update state machine."""

    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    IN_PLACE = "in_place"
    MIGRATING = "migrating"
    CONVERGING = "converging"
    SWAPPING = "swapping"
    DONE = "done"
    FAILED = "failed"


class MigrationPath(str, Enum):
    """How a change is applied."""

    IN_PLACE = "in_place"
    MIGRATION = "migration"


@dataclass
class MigrationStep:
    """
    One iteration of the cross-scale loop.

    Attributes:
        iteration: 1-based iteration number
        pool: Name of the pool this iteration was allowed to scale
        target: Target the pool was set to (None if nothing was applied)
        original_target: Original pool's declared target after the iteration
        replacement_target: Replacement pool's declared target after the iteration
    """

    iteration: int
    pool: str
    target: Optional[int]
    original_target: int
    replacement_target: int

    @property
    def skipped(self) -> bool:
        """True when the side whose turn it was had already reached its target."""
        return self.target is None


@dataclass
class MigrationRun:
    """Record of one pool update."""

    namespace: str
    name: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: MigrationState = MigrationState.FETCHING
    path: Optional[MigrationPath] = None
    generation: str = ""
    temporary_name: Optional[str] = None
    original_target: Optional[int] = None
    live_target: Optional[int] = None
    live_replacement_target: Optional[int] = None
    replacement_target: Optional[int] = None
    steps: List[MigrationStep] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = None

    @property
    def identity(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def last_targets(self) -> Dict[str, Optional[int]]:
        """
        Declared targets of both pools as last fetched or applied.

        These are live values, so on a resumed run the original pool may
        already sit below the recorded original target.
        """
        original = self.original_target if self.live_target is None else self.live_target
        return {"original": original, "replacement": self.live_replacement_target or 0}


    def to_context(self) -> Dict[str, Any]:
        """Partial-migration state, for attaching to a failure."""
        context: Dict[str, Any] = {
            "state": self.state.value,
            "pool": self.identity,
        }
        if self.path is not None:
            context["path"] = self.path.value
        if self.generation:
            context["generation"] = self.generation
        if self.temporary_name:
            context["temporary_pool"] = self.temporary_name
        if self.path is MigrationPath.MIGRATION:
            context["last_targets"] = self.last_targets()
            context["iterations"] = len(self.steps)
        return context


@dataclass
class MigrationResult:
    """Outcome of a successful update."""

    pool: Pool
    run: MigrationRun

    @property
    def migrated(self) -> bool:
        return self.run.path is MigrationPath.MIGRATION


__all__ = [
    "MigrationPath",
    "MigrationResult",
    "MigrationRun",
    "MigrationState",
    "MigrationStep",
]
