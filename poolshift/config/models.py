"""
Configuration models for poolshift.

Provides type-safe configuration using pydantic with validation,
defaults, and schema enforcement.
"""

from pathlib import Path
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..timeout_config import Timeouts


class ClusterConfig(BaseModel):
    """Connection settings for the pool-management API."""

    host: Optional[str] = Field(
        default=None,
        description="API server host (with optional port), without scheme",
    )
    username: str = Field(default="", description="Basic-auth username")
    password: str = Field(default="", description="Basic-auth password")
    verify_ssl: bool = Field(
        default=False,
        description="Verify the API server certificate",
    )
    namespace: str = Field(
        default="default",
        description="Namespace used when a pool spec names none",
    )
    connect_timeout: Annotated[float, Field(gt=0)] = Field(
        default=Timeouts.HTTP_CONNECT,
        description="Connect timeout for API calls in seconds",
    )
    read_timeout: Annotated[float, Field(gt=0)] = Field(
        default=Timeouts.HTTP_READ,
        description="Read timeout for API calls in seconds",
    )

    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    @field_validator("host")
    @classmethod
    def strip_scheme(cls, v: Optional[str]) -> Optional[str]:
        """Accept hosts given with an https:// prefix."""
        if v is None:
            return v
        for prefix in ("https://", "http://"):
            if v.startswith(prefix):
                v = v[len(prefix) :]
        return v.rstrip("/") or None

    def get_safe_host(self) -> str:
        """Get host for logging (credentials are never included)."""
        return f"{self.host} (user: {self.username})" if self.host else "Not configured"


class MigrationConfig(BaseModel):
    """Pacing and safety settings for pool migrations."""

    poll_interval: Annotated[float, Field(gt=0)] = Field(
        default=Timeouts.POLL_INTERVAL,
        description="Seconds between convergence checks",
    )
    step_deadline: Annotated[float, Field(gt=0)] = Field(
        default=Timeouts.STEP_DEADLINE,
        description="Deadline for each cross-scale step to converge",
    )
    settle_duration: Annotated[float, Field(ge=0)] = Field(
        default=Timeouts.SETTLE_DURATION,
        description="Continuous running time before a worker counts as ready",
    )
    default_replicas: Annotated[int, Field(ge=0)] = Field(
        default=1,
        description="Replacement target when a spec declares no replica count",
    )
    lock_enabled: bool = Field(
        default=False,
        description="Serialize migrations of the same pool through a file lock",
    )
    lock_timeout: Annotated[float, Field(gt=0)] = Field(
        default=Timeouts.LOCK_ACQUIRE,
        description="Seconds to wait for the migration lock",
    )
    lock_dir: Path = Field(
        default=Path(".poolshift/locks"),
        description="Directory holding migration lock files",
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("step_deadline")
    @classmethod
    def validate_deadline(cls, v: float) -> float:
        """A step deadline shorter than one second cannot observe a poll."""
        if v < 1:
            raise ValueError("step_deadline must be at least 1 second")
        return v


class LoggingConfig(BaseModel):
    """Logging behaviour."""

    level: str = Field(default="INFO", description="Log level")
    json_output: bool = Field(
        default=True,
        description="Render structured logs as JSON (console renderer if false)",
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class PoolShiftConfig(BaseModel):
    """Root configuration."""

    cluster: ClusterConfig = Field(
        default_factory=ClusterConfig,
        description="Pool-management API connection",
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig,
        description="Migration pacing and locking",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings",
    )

    model_config = ConfigDict(extra="forbid")
