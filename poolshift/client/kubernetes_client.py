"""
Kubernetes Pool Client - replication controllers over the core/v1 REST API.

Philosophy:
- Plain synchronous httpx client; every call blocks until the API answers
- One explicit client value is handed to whoever needs it (no globals)
- Errors are classified: 404 becomes PoolNotFoundError, everything else
  PoolClientError

Public API:
    KubernetesPoolClient: PoolClient implementation
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config.models import ClusterConfig
from ..exceptions import ConfigurationError, PoolClientError, PoolNotFoundError
from ..models.pool import Pool, WorkerInstance
from .manifest import pool_from_manifest, pool_to_manifest, worker_from_manifest

logger = structlog.get_logger(__name__)


def format_selector(selector: Dict[str, str]) -> str:
    """Render an equality-based label selector (``a=b,c=d``)."""
    return ",".join(f"{k}={v}" for k, v in sorted(selector.items()))


class KubernetesPoolClient:
    """
    PoolClient backed by the replication controller API.

    Deletions orphan the pool's workers, so a pool recreated with the same
    selector adopts them.
    """

    API_PREFIX = "/api/v1"

    def __init__(
        self,
        host: str,
        username: str = "",
        password: str = "",
        verify_ssl: bool = False,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            host: API server host, optionally with port (no scheme)
            username: Basic-auth username (no auth when empty)
            password: Basic-auth password
            verify_ssl: Verify the server certificate
            connect_timeout: Connect timeout in seconds
            read_timeout: Read timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.host = host
        self._logger = logger.bind(component="KubernetesPoolClient", host=host)
        self._http = httpx.Client(
            base_url=f"https://{host}",
            auth=httpx.BasicAuth(username, password) if username else None,
            verify=verify_ssl,
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
            headers={"Accept": "application/json", "User-Agent": "poolshift/0.1"},
            transport=transport,
        )

    @classmethod
    def from_config(
        cls, config: ClusterConfig, transport: Optional[httpx.BaseTransport] = None
    ) -> "KubernetesPoolClient":
        if not config.host:
            raise ConfigurationError(
                "cluster.host is required to reach the pool-management API",
                recovery_suggestion="Set POOLSHIFT_CLUSTER__HOST or cluster.host in the config file",
            )
        return cls(
            host=config.host,
            username=config.username,
            password=config.password,
            verify_ssl=config.verify_ssl,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            transport=transport,
        )

    def __enter__(self) -> "KubernetesPoolClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _collection(self, namespace: str, kind: str) -> str:
        return f"{self.API_PREFIX}/namespaces/{namespace}/{kind}"

    def _request(
        self,
        method: str,
        path: str,
        namespace: str,
        name: Optional[str] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise PoolClientError(
                f"{method} {path} failed: {e}",
                namespace=namespace,
                name=name,
                cause=e,
            ) from e

        if response.status_code == 404:
            raise PoolNotFoundError(
                f"{namespace}/{name or ''} not found",
                namespace=namespace,
                name=name,
            )
        if response.status_code >= 400:
            raise PoolClientError(
                f"{method} {path} returned {response.status_code}: {self._error_message(response)}",
                status_code=response.status_code,
                namespace=namespace,
                name=name,
            )

        self._logger.debug(
            "API call", method=method, path=path, status=response.status_code
        )
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.text[:200]

    def get(self, namespace: str, name: str) -> Pool:
        path = f"{self._collection(namespace, 'replicationcontrollers')}/{name}"
        return pool_from_manifest(self._request("GET", path, namespace, name))

    def create(self, pool: Pool) -> Pool:
        path = self._collection(pool.namespace, "replicationcontrollers")
        data = self._request(
            "POST", path, pool.namespace, pool.name, json=pool_to_manifest(pool)
        )
        return pool_from_manifest(data)

    def update(self, pool: Pool) -> Pool:
        path = f"{self._collection(pool.namespace, 'replicationcontrollers')}/{pool.name}"
        data = self._request(
            "PUT", path, pool.namespace, pool.name, json=pool_to_manifest(pool)
        )
        return pool_from_manifest(data)

    def scale(self, namespace: str, name: str, replicas: int) -> Pool:
        """Set only the declared target; the rest of the stored pool is untouched."""
        path = f"{self._collection(namespace, 'replicationcontrollers')}/{name}"
        data = self._request(
            "PATCH",
            path,
            namespace,
            name,
            content=json.dumps({"spec": {"replicas": replicas}}),
            headers={"Content-Type": "application/merge-patch+json"},
        )
        return pool_from_manifest(data)

    def delete(self, namespace: str, name: str) -> None:
        path = f"{self._collection(namespace, 'replicationcontrollers')}/{name}"
        self._request(
            "DELETE",
            path,
            namespace,
            name,
            json={
                "kind": "DeleteOptions",
                "apiVersion": "v1",
                "propagationPolicy": "Orphan",
            },
        )

    def list_workers(
        self, namespace: str, selector: Dict[str, str]
    ) -> List[WorkerInstance]:
        path = self._collection(namespace, "pods")
        data = self._request(
            "GET",
            path,
            namespace,
            params={"labelSelector": format_selector(selector)},
        )
        return [worker_from_manifest(item) for item in data.get("items") or []]


__all__ = ["KubernetesPoolClient", "format_selector"]
