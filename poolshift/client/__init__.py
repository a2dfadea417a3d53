"""
Pool-management API clients.

Public API:
    PoolClient: Protocol the migration engine depends on
    KubernetesPoolClient: httpx implementation over the core/v1 API
"""

from .base import PoolClient
from .kubernetes_client import KubernetesPoolClient

__all__ = ["KubernetesPoolClient", "PoolClient"]
