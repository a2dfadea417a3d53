"""
Pool and Worker Models

Runtime views of the objects the migration engine reads from and writes to
the pool-management API:
- Pool: a replica pool (replication controller) with its declared target,
  observed replica count, worker template and selector
- WorkerInstance: one worker (pod) owned by a pool, observed read-only
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .spec import GENERATION_LABEL, WorkerTemplate


@dataclass
class Pool:
    """
    A named, horizontally-scalable set of identical workers.

    Attributes:
        name: Pool name, unique within its namespace
        namespace: Namespace the pool lives in
        replicas: Declared target replica count
        observed_replicas: Replica count last reported by the pool's controller
        template: Spec for the workers this pool creates
        selector: Labels identifying the pool's workers
        labels: Pool metadata labels
        annotations: Pool metadata annotations (holds migration metadata)
        resource_version: Server-side version token; blank for a fresh object
        generation: Server-side spec generation
        observed_generation: Spec generation the controller has acted on
        manifest: Raw object as last read from the server (empty for a
            pool built locally); fields the models do not cover are
            written back from it unchanged
    """

    name: str
    namespace: str = "default"
    replicas: int = 1
    observed_replicas: int = 0
    template: WorkerTemplate = field(default_factory=WorkerTemplate)
    selector: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    resource_version: str = ""
    uid: str = ""
    generation: int = 0
    observed_generation: int = 0
    manifest: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def identity(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def generation_id(self) -> str:
        """The migration generation stamped into the worker template, or ''."""
        return self.template.labels.get(GENERATION_LABEL, "")


@dataclass
class ContainerStatus:
    """Health of one sub-component of a worker."""

    name: str
    ready: bool = False
    running_since: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self.running_since is not None


@dataclass
class WorkerInstance:
    """
    One running unit managed by a pool.

    Attributes:
        name: Worker name
        namespace: Namespace of the worker
        labels: Labels (include the owning pool's selector labels)
        ready: Whether the worker as a whole reports ready
        declared_containers: Number of sub-components in the worker spec
        container_statuses: Per sub-component health
        started_at: When the worker was started, if known
    """

    name: str
    namespace: str = "default"
    labels: Dict[str, str] = field(default_factory=dict)
    ready: bool = False
    declared_containers: int = 0
    container_statuses: List[ContainerStatus] = field(default_factory=list)
    started_at: Optional[datetime] = None
