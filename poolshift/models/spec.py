"""
Declarative pool specification models.

A pool spec is parsed from a loosely-typed configuration tree (YAML/dict)
into these validated models. The tree uses block-style keys, so a volume
is written as ``{"name": "data", "empty_dir": {}}`` and a probe as
``{"initial_delay": 5, "http_get": {"path": "/", "port": 80}}``. Each
of those one-of blocks is lifted into an explicit tagged variant
(``source`` / ``handler`` / ``value_from`` with a ``kind`` discriminator)
on the way in, and flattened back on the way out, so the rest of the code
never inspects raw tree keys.

Validation is strict by default: unknown keys are rejected. Passing
``context={"lenient": True}`` to ``model_validate`` drops unknown keys
instead, which is how live objects returned by the API server (full of
server-side defaults) are read back.
"""

from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_serializer,
    model_validator,
)
from pydantic_core import PydanticCustomError

from .quantity import parse_quantity

GENERATION_LABEL = "deployment"

_NAME_PATTERN = r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$"


def _is_lenient(info: ValidationInfo) -> bool:
    return bool(info.context and info.context.get("lenient"))


def _single_block(value: Any) -> dict[str, Any]:
    """Accept a block given either as a mapping or a one-element list."""
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list) and len(value) == 1:
        return _single_block(value[0])
    raise ValueError("expected a single block")


def _tag_variant(block: dict[str, Any], kinds: tuple[str, ...]) -> Optional[dict[str, Any]]:
    """Turn ``{"host_path": {...}}`` into ``{"kind": "host_path", ...}``."""
    present = [k for k in kinds if block.get(k) is not None]
    if len(present) > 1:
        raise ValueError(f"only one of {', '.join(kinds)} may be set, got {', '.join(present)}")
    if not present:
        return None
    kind = present[0]
    return {"kind": kind, **_single_block(block[kind])}


def _untag_variant(tagged: dict[str, Any]) -> dict[str, Any]:
    body = dict(tagged)
    kind = body.pop("kind")
    return {kind: body}


class TreeModel(BaseModel):
    """Base for spec models: strict about unknown keys unless lenient."""

    variant_keys: ClassVar[tuple[str, ...]] = ()

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _reject_unknown_keys(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict) or _is_lenient(info):
            return data
        allowed = set(cls.variant_keys)
        for name, field in cls.model_fields.items():
            allowed.add(name)
            if field.alias:
                allowed.add(field.alias)
        unknown = sorted(set(data) - allowed)
        if unknown:
            raise ValueError(f"unknown field(s): {', '.join(unknown)}")
        return data


# Volume sources
class HostPathSource(TreeModel):
    kind: Literal["host_path"] = "host_path"
    path: str


class EmptyDirSource(TreeModel):
    kind: Literal["empty_dir"] = "empty_dir"
    medium: str = ""


class GCEPersistentDiskSource(TreeModel):
    kind: Literal["gce_persistent_disk"] = "gce_persistent_disk"
    pd_name: str
    fs_type: str = ""
    partition: int = 0
    read_only: bool = False


class AWSElasticBlockStoreSource(TreeModel):
    kind: Literal["aws_elastic_block_store"] = "aws_elastic_block_store"
    volume_id: str
    fs_type: str = ""
    partition: int = 0
    read_only: bool = False


class GitRepoSource(TreeModel):
    kind: Literal["git_repo"] = "git_repo"
    repository: str
    revision: str = ""
    directory: str = ""


class SecretVolumeSource(TreeModel):
    kind: Literal["secret"] = "secret"
    secret_name: str


VolumeSource = Annotated[
    Union[
        HostPathSource,
        EmptyDirSource,
        GCEPersistentDiskSource,
        AWSElasticBlockStoreSource,
        GitRepoSource,
        SecretVolumeSource,
    ],
    Field(discriminator="kind"),
]

VOLUME_KINDS = (
    "host_path",
    "empty_dir",
    "gce_persistent_disk",
    "aws_elastic_block_store",
    "git_repo",
    "secret",
)


class Volume(TreeModel):
    """A named volume with at most one source."""

    variant_keys: ClassVar[tuple[str, ...]] = VOLUME_KINDS

    name: str
    source: Optional[VolumeSource] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_source(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "source" in data:
            return data
        source = _tag_variant(data, VOLUME_KINDS)
        lifted = {k: v for k, v in data.items() if k not in VOLUME_KINDS}
        lifted["source"] = source
        return lifted

    @model_serializer(mode="wrap")
    def _flatten_source(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        source = data.pop("source", None)
        if source:
            data.update(_untag_variant(source))
        return data


# Environment
class FieldRefSource(TreeModel):
    kind: Literal["field_ref"] = "field_ref"
    field_path: str


class ConfigMapKeyRefSource(TreeModel):
    kind: Literal["config_map_key_ref"] = "config_map_key_ref"
    name: str
    key: str


class SecretKeyRefSource(TreeModel):
    kind: Literal["secret_key_ref"] = "secret_key_ref"
    name: str
    key: str


EnvVarSource = Annotated[
    Union[FieldRefSource, ConfigMapKeyRefSource, SecretKeyRefSource],
    Field(discriminator="kind"),
]

ENV_SOURCE_KINDS = ("field_ref", "config_map_key_ref", "secret_key_ref")


class EnvVar(TreeModel):
    """An environment variable set from a literal value or a reference."""

    name: str
    value: Optional[str] = None
    value_from: Optional[EnvVarSource] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_value_from(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict) or data.get("value_from") is None:
            return data
        block = _single_block(data["value_from"])
        if "kind" in block:
            return data
        strict = not _is_lenient(info)
        if strict:
            unknown = sorted(set(block) - set(ENV_SOURCE_KINDS))
            if unknown:
                raise ValueError(f"unknown value_from field(s): {', '.join(unknown)}")
        lifted = dict(data)
        lifted["value_from"] = _tag_variant(block, ENV_SOURCE_KINDS)
        # A reference always wins over a literal value
        if lifted["value_from"] is not None:
            lifted["value"] = None
        return lifted

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @model_serializer(mode="wrap")
    def _flatten_value_from(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        source = data.get("value_from")
        if source:
            data["value_from"] = _untag_variant(source)
        return data


# Probes
class HTTPHeader(TreeModel):
    name: str
    value: str = ""


class ExecAction(TreeModel):
    kind: Literal["exec"] = "exec"
    command: list[str] = Field(default_factory=list)


class HTTPGetAction(TreeModel):
    kind: Literal["http_get"] = "http_get"
    path: str = ""
    port: Union[int, str]
    host: str = ""
    scheme: str = ""
    http_headers: list[HTTPHeader] = Field(default_factory=list, alias="http_header")


class TCPSocketAction(TreeModel):
    kind: Literal["tcp_socket"] = "tcp_socket"
    port: Union[int, str]


ProbeHandler = Annotated[
    Union[ExecAction, HTTPGetAction, TCPSocketAction],
    Field(discriminator="kind"),
]

PROBE_KINDS = ("exec", "http_get", "tcp_socket")


class Probe(TreeModel):
    """Liveness/readiness probe: timing fields plus one handler."""

    variant_keys: ClassVar[tuple[str, ...]] = PROBE_KINDS

    initial_delay_seconds: Optional[int] = Field(default=None, ge=0, alias="initial_delay")
    timeout_seconds: Optional[int] = Field(default=None, ge=0, alias="timeout")
    period_seconds: Optional[int] = Field(default=None, ge=0, alias="period")
    success_threshold: Optional[int] = Field(default=None, ge=0)
    failure_threshold: Optional[int] = Field(default=None, ge=0)
    handler: Optional[ProbeHandler] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_handler(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "handler" in data:
            return data
        handler = _tag_variant(data, PROBE_KINDS)
        lifted = {k: v for k, v in data.items() if k not in PROBE_KINDS}
        lifted["handler"] = handler
        return lifted

    @model_serializer(mode="wrap")
    def _flatten_handler(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        action = data.pop("handler", None)
        if action:
            data.update(_untag_variant(action))
        return data


# Containers
class ResourceList(TreeModel):
    cpu: Optional[str] = None
    memory: Optional[str] = None

    @field_validator("cpu", "memory", mode="before")
    @classmethod
    def _validate_quantity(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        try:
            parse_quantity(v)
        except ValueError:
            raise PydanticCustomError(
                "resource_quantity",
                "invalid resource quantity {quantity}",
                {"quantity": v},
            ) from None
        return v


class ResourceRequirements(TreeModel):
    limits: Optional[ResourceList] = None
    requests: Optional[ResourceList] = None


class ContainerPort(TreeModel):
    name: Optional[str] = None
    host_port: Optional[int] = Field(default=None, ge=0, le=65535)
    container_port: int = Field(ge=1, le=65535)
    protocol: str = "TCP"
    host_ip: Optional[str] = None


class VolumeMount(TreeModel):
    name: str
    mount_path: str
    read_only: bool = False


class Container(TreeModel):
    name: str
    image: str
    image_pull_policy: Optional[str] = None
    termination_message_path: Optional[str] = None
    command: list[str] = Field(default_factory=list)
    args: list[str] = Field(default_factory=list)
    working_dir: Optional[str] = None
    ports: list[ContainerPort] = Field(default_factory=list, alias="port")
    env: list[EnvVar] = Field(default_factory=list)
    volume_mounts: list[VolumeMount] = Field(default_factory=list, alias="volume_mount")
    liveness_probe: Optional[Probe] = None
    readiness_probe: Optional[Probe] = None
    resources: Optional[ResourceRequirements] = None


class LocalObjectReference(TreeModel):
    name: str


class WorkerTemplate(TreeModel):
    """The immutable spec for the workers a pool creates."""

    labels: dict[str, str] = Field(default_factory=dict)
    node_selector: dict[str, str] = Field(default_factory=dict)
    volumes: list[Volume] = Field(default_factory=list, alias="volume")
    image_pull_secrets: list[LocalObjectReference] = Field(
        default_factory=list, alias="image_pull_secret"
    )
    containers: list[Container] = Field(default_factory=list, alias="container")
    restart_policy: Optional[str] = None
    dns_policy: Optional[str] = None
    service_account_name: Optional[str] = None
    node_name: Optional[str] = None
    termination_grace_period_seconds: Optional[int] = Field(
        default=None, ge=0, alias="termination_grace_period"
    )
    active_deadline_seconds: Optional[int] = Field(
        default=None, ge=0, alias="active_deadline"
    )

    @field_validator("restart_policy")
    @classmethod
    def _validate_restart_policy(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("Always", "OnFailure", "Never"):
            raise ValueError("restart_policy must be one of: Always, OnFailure, Never")
        return v

    @field_validator("containers")
    @classmethod
    def _unique_container_names(cls, v: list[Container]) -> list[Container]:
        names = [c.name for c in v]
        if len(names) != len(set(names)):
            raise ValueError("container names must be unique")
        return v

    def without_generation(self) -> "WorkerTemplate":
        """Copy of this template with the generation label removed."""
        labels = {k: v for k, v in self.labels.items() if k != GENERATION_LABEL}
        return self.model_copy(update={"labels": labels}, deep=True)

    def with_generation(self, generation: str) -> "WorkerTemplate":
        labels = {**self.labels, GENERATION_LABEL: generation}
        return self.model_copy(update={"labels": labels}, deep=True)


class PoolSpec(TreeModel):
    """Desired state of one pool, as declared by the user."""

    namespace: str = Field(default="default", pattern=_NAME_PATTERN, max_length=63)
    name: str = Field(pattern=_NAME_PATTERN, max_length=253)
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    replicas: Optional[int] = Field(default=None, ge=0)
    template: WorkerTemplate

    @field_validator("template")
    @classmethod
    def _no_reserved_label(cls, v: WorkerTemplate) -> WorkerTemplate:
        if GENERATION_LABEL in v.labels:
            raise ValueError(
                f"template label {GENERATION_LABEL!r} is reserved for the pool generation"
            )
        return v
