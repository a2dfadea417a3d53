"""
Pool resource lifecycle.

PoolResource is the host of the migration engine: it exposes the
create/read/update/delete/exists operations on pools addressed by their
``namespace/name`` identity, and delegates updates to the
MigrationOrchestrator.
"""

import threading
from typing import Any, Dict, Mapping, Optional

import structlog

from .client.base import PoolClient
from .config.models import MigrationConfig
from .exceptions import PoolNotFoundError
from .migration.orchestrator import (
    MigrationOrchestrator,
    ProgressCallback,
    new_generation_id,
)
from .migration.state import MigrationResult
from .models.pool import Pool
from .models.spec import PoolSpec
from .spec_writer import SpecWriter
from .utils.identity import join_id, split_id

logger = structlog.get_logger(__name__)


class PoolResource:
    """Lifecycle operations on pools."""

    def __init__(
        self,
        client: PoolClient,
        config: Optional[MigrationConfig] = None,
        spec_writer: Optional[SpecWriter] = None,
        orchestrator: Optional[MigrationOrchestrator] = None,
    ) -> None:
        self.client = client
        self.config = config or MigrationConfig()
        self.spec_writer = spec_writer or SpecWriter()
        self.orchestrator = orchestrator or MigrationOrchestrator(
            client, config=self.config, spec_writer=self.spec_writer
        )
        self._logger = logger.bind(component="PoolResource")

    def parse(self, tree: Mapping[str, Any]) -> PoolSpec:
        return self.spec_writer.parse(tree)

    def create(self, spec: PoolSpec) -> str:
        """
        Create a pool from spec with a fresh generation.

        Returns:
            The new pool's identity
        """
        target = spec.replicas if spec.replicas is not None else self.config.default_replicas
        generation = new_generation_id()

        pool = Pool(name=spec.name, namespace=spec.namespace)
        self.spec_writer.write_pool(pool, spec, generation, target)
        self.client.create(pool)

        identity = join_id(spec.namespace, spec.name)
        self._logger.info(
            "Created pool", pool=identity, generation=generation, target=target
        )
        return identity

    def read(self, identity: str) -> Dict[str, Any]:
        """Return the pool as a declarative tree."""
        namespace, name = split_id(identity)
        return self.spec_writer.read_pool(self.client.get(namespace, name))

    def update(
        self,
        identity: str,
        spec: PoolSpec,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MigrationResult:
        namespace, name = split_id(identity)
        return self.orchestrator.update(
            namespace,
            name,
            spec,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )

    def delete(self, identity: str) -> None:
        namespace, name = split_id(identity)
        self.client.delete(namespace, name)
        self._logger.info("Deleted pool", pool=identity)

    def exists(self, identity: str) -> bool:
        namespace, name = split_id(identity)
        try:
            self.client.get(namespace, name)
        except PoolNotFoundError:
            return False
        return True


__all__ = ["PoolResource"]
