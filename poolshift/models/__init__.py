from .pool import ContainerStatus, Pool, WorkerInstance
from .quantity import parse_quantity
from .spec import (
    GENERATION_LABEL,
    Container,
    ContainerPort,
    EnvVar,
    Probe,
    PoolSpec,
    ResourceList,
    ResourceRequirements,
    Volume,
    VolumeMount,
    WorkerTemplate,
)

__all__ = [
    "GENERATION_LABEL",
    "Container",
    "ContainerPort",
    "ContainerStatus",
    "EnvVar",
    "Pool",
    "PoolSpec",
    "Probe",
    "ResourceList",
    "ResourceRequirements",
    "Volume",
    "VolumeMount",
    "WorkerInstance",
    "WorkerTemplate",
    "parse_quantity",
]
