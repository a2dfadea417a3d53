"""
Manifest codec for replication controllers and pods (core/v1 JSON).

Worker templates are dumped with python field names, which map onto the
API's camelCase keys one-to-one apart from a couple of acronym fields.
Map-valued fields (labels, node selectors) are passed through untouched.
"""

import copy
import re
from datetime import datetime
from typing import Any, Dict, Optional

from ..models.pool import ContainerStatus, Pool, WorkerInstance
from ..models.spec import WorkerTemplate

_CAMEL_OVERRIDES = {"volume_id": "volumeID", "host_ip": "hostIP"}
_SNAKE_OVERRIDES = {v: k for k, v in _CAMEL_OVERRIDES.items()}
_OPAQUE_KEYS = frozenset({"labels", "annotations", "node_selector", "nodeSelector"})
# metadata owned by the API server, dropped when an object is created anew
_SERVER_METADATA = (
    "uid",
    "resourceVersion",
    "generation",
    "creationTimestamp",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
    "managedFields",
    "selfLink",
)

_UPPER = re.compile(r"([A-Z])")


def _to_camel(key: str) -> str:
    if key in _CAMEL_OVERRIDES:
        return _CAMEL_OVERRIDES[key]
    head, *rest = key.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def _to_snake(key: str) -> str:
    if key in _SNAKE_OVERRIDES:
        return _SNAKE_OVERRIDES[key]
    return _UPPER.sub(r"_\1", key).lower()


def camelize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            _to_camel(k): (v if k in _OPAQUE_KEYS else camelize(v))
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [camelize(v) for v in obj]
    return obj


def snakify(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            _to_snake(k): (v if k in _OPAQUE_KEYS else snakify(v))
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [snakify(v) for v in obj]
    return obj


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def template_to_manifest(template: WorkerTemplate) -> Dict[str, Any]:
    data = template.model_dump(exclude_none=True)
    labels = data.pop("labels", {})
    return {"metadata": {"labels": labels}, "spec": camelize(data)}


def template_from_manifest(data: Dict[str, Any]) -> WorkerTemplate:
    spec = snakify(data.get("spec") or {})
    spec["labels"] = dict((data.get("metadata") or {}).get("labels") or {})
    return WorkerTemplate.model_validate(spec, context={"lenient": True})


def pool_to_manifest(pool: Pool) -> Dict[str, Any]:
    """
    Render a pool as a replication controller manifest.

    The pool's raw server manifest is the base, so fields the models do not
    cover (finalizers, owner references, init containers, volume sources
    without a model) go back unchanged. The worker template is re-rendered
    only when it differs from the one read. A pool without a resource
    version is a fresh creation and loses the server-owned metadata.
    """
    manifest = copy.deepcopy(pool.manifest)
    manifest.pop("status", None)
    manifest["apiVersion"] = "v1"
    manifest["kind"] = "ReplicationController"

    metadata = manifest.setdefault("metadata", {})
    if not pool.resource_version:
        for key in _SERVER_METADATA:
            metadata.pop(key, None)
    metadata["name"] = pool.name
    metadata["namespace"] = pool.namespace
    metadata["labels"] = dict(pool.labels)
    metadata["annotations"] = dict(pool.annotations)
    if pool.resource_version:
        metadata["resourceVersion"] = pool.resource_version
    if pool.uid:
        metadata["uid"] = pool.uid

    spec = manifest.setdefault("spec", {})
    spec["replicas"] = pool.replicas
    spec["selector"] = dict(pool.selector)
    read_template = spec.get("template")
    if not read_template or template_from_manifest(read_template) != pool.template:
        spec["template"] = template_to_manifest(pool.template)
    return manifest


def pool_from_manifest(data: Dict[str, Any]) -> Pool:
    metadata = data.get("metadata") or {}
    spec = data.get("spec") or {}
    status = data.get("status") or {}
    template = spec.get("template")
    return Pool(
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", "default"),
        replicas=spec.get("replicas", 1),
        observed_replicas=status.get("replicas", 0),
        template=template_from_manifest(template) if template else WorkerTemplate(),
        selector=dict(spec.get("selector") or {}),
        labels=dict(metadata.get("labels") or {}),
        annotations=dict(metadata.get("annotations") or {}),
        resource_version=metadata.get("resourceVersion", ""),
        uid=metadata.get("uid", ""),
        generation=metadata.get("generation", 0),
        observed_generation=status.get("observedGeneration", 0),
        manifest=copy.deepcopy(data),
    )


def worker_from_manifest(data: Dict[str, Any]) -> WorkerInstance:
    metadata = data.get("metadata") or {}
    spec = data.get("spec") or {}
    status = data.get("status") or {}

    ready = any(
        c.get("type") == "Ready" and c.get("status") == "True"
        for c in status.get("conditions") or []
    )
    statuses = []
    for cs in status.get("containerStatuses") or []:
        running = (cs.get("state") or {}).get("running")
        statuses.append(
            ContainerStatus(
                name=cs.get("name", ""),
                ready=bool(cs.get("ready")),
                running_since=_parse_time(running.get("startedAt")) if running else None,
            )
        )

    return WorkerInstance(
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", "default"),
        labels=dict(metadata.get("labels") or {}),
        ready=ready,
        declared_containers=len(spec.get("containers") or []),
        container_statuses=statuses,
        started_at=_parse_time(status.get("startTime")),
    )
