"""
PoolClient contract consumed by the migration engine.

Any object with these six methods can drive a migration. Cross-scale
steps only call scale(), which changes nothing but the declared target.
Implementations raise PoolNotFoundError when the named pool does not exist and
PoolClientError for every other failure.
"""

from typing import Dict, List, Protocol, runtime_checkable

from ..models.pool import Pool, WorkerInstance


@runtime_checkable
class PoolClient(Protocol):
    def get(self, namespace: str, name: str) -> Pool: ...

    def create(self, pool: Pool) -> Pool: ...

    def update(self, pool: Pool) -> Pool: ...

    def scale(self, namespace: str, name: str, replicas: int) -> Pool: ...

    def delete(self, namespace: str, name: str) -> None: ...

    def list_workers(
        self, namespace: str, selector: Dict[str, str]
    ) -> List[WorkerInstance]: ...
