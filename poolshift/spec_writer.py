"""
SpecWriter - translation between declarative pool specs and pool objects.

Responsibilities:
- Parse a declarative configuration tree into a validated PoolSpec
- Write a PoolSpec into a Pool (labels, annotations, target, template,
  generation label and selector)
- Read a Pool back into a declarative tree with migration bookkeeping
  stripped
- Own the reserved migration metadata: the original target count and the
  template fingerprint annotations, and the generation label

Everything in the worker template beyond the generation label (volumes,
environment, resources, probes) is carried verbatim.
"""

import hashlib
import json
from typing import Any, Mapping, Optional

import structlog
from pydantic import ValidationError

from .exceptions import BlankGenerationError, ResourceQuantityError, SpecValidationError
from .models.pool import Pool
from .models.spec import GENERATION_LABEL, PoolSpec, WorkerTemplate

logger = structlog.get_logger(__name__)

OWNED_ANNOTATION = "poolshift.io/owned"
ORIGINAL_TARGET_ANNOTATION = "poolshift.io/original-target-count"
TEMPLATE_HASH_ANNOTATION = "poolshift.io/template-hash"

RESERVED_ANNOTATIONS = frozenset(
    {OWNED_ANNOTATION, ORIGINAL_TARGET_ANNOTATION, TEMPLATE_HASH_ANNOTATION}
)


def template_fingerprint(template: WorkerTemplate) -> str:
    """Stable hash of a worker template, ignoring the generation label."""
    payload = template.without_generation().model_dump(mode="json", exclude_none=True)
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()


def _format_errors(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class SpecWriter:
    """Converts between declarative trees, PoolSpecs and Pool objects."""

    def __init__(self, default_namespace: str = "default") -> None:
        self.default_namespace = default_namespace
        self._logger = logger.bind(component="SpecWriter")

    def parse(self, tree: Mapping[str, Any]) -> PoolSpec:
        """
        Validate a declarative tree into a PoolSpec.

        Raises:
            ResourceQuantityError: If a cpu/memory quantity is unparsable
            SpecValidationError: For any other schema violation
        """
        if not isinstance(tree, Mapping):
            raise SpecValidationError("pool spec must be a mapping")
        data = dict(tree)
        data.setdefault("namespace", self.default_namespace)
        if data.get("template") is None:
            raise SpecValidationError("missing template", field="template")

        try:
            return PoolSpec.model_validate(data)
        except ValidationError as e:
            for err in e.errors():
                if err["type"] == "resource_quantity":
                    loc = ".".join(str(p) for p in err["loc"])
                    raise ResourceQuantityError(
                        f"invalid resource quantity at {loc}",
                        quantity=(err.get("ctx") or {}).get("quantity"),
                        field=loc,
                        cause=e,
                    ) from e
            first_loc = ".".join(str(p) for p in e.errors()[0]["loc"]) if e.errors() else None
            raise SpecValidationError(
                f"invalid pool spec: {_format_errors(e)}", field=first_loc, cause=e
            ) from e

    def write_pool(
        self,
        pool: Pool,
        spec: PoolSpec,
        generation: str,
        target: int,
        replicas: Optional[int] = None,
    ) -> Pool:
        """
        Write a spec into a pool object in place.

        Args:
            pool: Pool to mutate (fresh or fetched)
            spec: Desired spec
            generation: Generation id stamped into the worker template labels
            target: User-requested replica count, recorded as the original target
            replicas: Override for the declared target (0 for a temporary pool)

        Returns:
            The same pool, for chaining

        Raises:
            BlankGenerationError: If generation is empty
        """
        if not generation:
            raise BlankGenerationError(context={"pool": pool.identity})

        pool.labels = dict(spec.labels)
        pool.annotations = {OWNED_ANNOTATION: "true", **spec.annotations}
        pool.annotations[ORIGINAL_TARGET_ANNOTATION] = str(target)
        pool.annotations[TEMPLATE_HASH_ANNOTATION] = template_fingerprint(spec.template)

        pool.replicas = target if replicas is None else replicas

        pool.template = spec.template.with_generation(generation)
        pool.selector = dict(pool.template.labels)
        self._logger.debug(
            "Wrote pool spec",
            pool=pool.identity,
            generation=generation,
            target=target,
            replicas=pool.replicas,
        )
        return pool

    def read_pool(self, pool: Pool) -> dict[str, Any]:
        """Render a pool as a declarative tree, hiding migration bookkeeping."""
        annotations = {
            k: v for k, v in pool.annotations.items() if k not in RESERVED_ANNOTATIONS
        }
        template = pool.template.without_generation().model_dump(
            by_alias=True, exclude_none=True
        )
        return {
            "namespace": pool.namespace,
            "name": pool.name,
            "labels": dict(pool.labels),
            "annotations": annotations,
            "replicas": pool.replicas,
            "template": template,
        }

    def pop_original_target(self, pool: Pool) -> Optional[int]:
        """
        Remove and return the recorded original target count, if any.

        Raises:
            SpecValidationError: If the recorded value is not a non-negative integer
        """
        raw = pool.annotations.pop(ORIGINAL_TARGET_ANNOTATION, None)
        if raw is None:
            return None
        try:
            value = int(raw)
        except ValueError as e:
            raise SpecValidationError(
                f"pool {pool.identity} has a corrupt original target count {raw!r}",
                field=ORIGINAL_TARGET_ANNOTATION,
                cause=e,
            ) from e
        if value < 0:
            raise SpecValidationError(
                f"pool {pool.identity} has a negative original target count {raw!r}",
                field=ORIGINAL_TARGET_ANNOTATION,
            )
        return value

    def template_changed(self, pool: Pool, spec: PoolSpec) -> bool:
        """
        Whether applying spec requires replacing the pool's workers.

        A pool without a generation label cannot keep its generation and is
        always treated as changed.
        """
        if not pool.generation_id:
            return True
        desired = template_fingerprint(spec.template)
        recorded = pool.annotations.get(TEMPLATE_HASH_ANNOTATION)
        if recorded:
            return recorded != desired
        return template_fingerprint(pool.template) != desired


__all__ = [
    "GENERATION_LABEL",
    "ORIGINAL_TARGET_ANNOTATION",
    "OWNED_ANNOTATION",
    "RESERVED_ANNOTATIONS",
    "SpecWriter",
    "TEMPLATE_HASH_ANNOTATION",
    "template_fingerprint",
]
