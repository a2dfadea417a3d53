"""
Configuration loader for poolshift.

Sources, highest priority first:
1. CLI arguments (``None`` values mean "not given")
2. Environment variables: POOLSHIFT_<SECTION>__<FIELD>, e.g.
   POOLSHIFT_MIGRATION__STEP_DEADLINE=300 (a .env file is read too)
3. The YAML config file (POOLSHIFT_CONFIG_PATH or
   ~/.config/poolshift/config.yaml)
4. Model defaults

Layers are merged as plain mappings and validated once; environment
values stay strings and are coerced by the models.
"""

import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .models import PoolShiftConfig

ENV_PREFIX = "POOLSHIFT_"
CONFIG_PATH_ENV = "POOLSHIFT_CONFIG_PATH"
DEFAULT_CONFIG_FILE = Path.home() / ".config" / "poolshift" / "config.yaml"


def _merge(base: dict[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Merge overlay into a copy of base; None in overlay leaves base alone."""
    result = dict(base)
    for key, value in overlay.items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            existing = result.get(key)
            result[key] = _merge(existing if isinstance(existing, dict) else {}, value)
        else:
            result[key] = value
    return result


class ConfigLoader:
    """Reads the config file and environment and validates the merge."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self._default_path()

    @staticmethod
    def _default_path() -> Path:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        return Path(env_path).expanduser() if env_path else DEFAULT_CONFIG_FILE

    def load(self, cli_args: Optional[Mapping[str, Any]] = None) -> PoolShiftConfig:
        """
        Load and validate the configuration.

        Raises:
            ConfigurationError: If the file is unreadable or a value is invalid
        """
        load_dotenv()
        merged: dict[str, Any] = {}
        if self.config_path.exists():
            merged = _merge(merged, self._read_file())
        merged = _merge(merged, self._read_env())
        merged = _merge(merged, cli_args or {})

        try:
            return PoolShiftConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed: {e}",
                context={"config_path": str(self.config_path)},
                cause=e,
            ) from e

    def _read_file(self) -> dict[str, Any]:
        path = self.config_path
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", cause=e) from e
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read config file {path}: {e}", cause=e
            ) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    def _read_env(self) -> dict[str, Any]:
        """
        Collect POOLSHIFT_<SECTION>__<FIELD> variables.

        Variables not naming a config section (POOLSHIFT_TIMEOUT_*,
        POOLSHIFT_CONFIG_PATH) belong to other layers and are skipped.
        """
        sections = set(PoolShiftConfig.model_fields)
        config: dict[str, Any] = {}
        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue
            section, sep, field_name = key[len(ENV_PREFIX) :].lower().partition("__")
            if not sep or section not in sections or not field_name:
                continue
            config.setdefault(section, {})[field_name] = value
        return config

    def create_default_config(self, force: bool = False) -> Path:
        """
        Write the commented default configuration file.

        Raises:
            ConfigurationError: If the file exists and force is False
        """
        if self.config_path.exists() and not force:
            raise ConfigurationError(
                f"Configuration file already exists at {self.config_path}",
                recovery_suggestion="Pass --force to overwrite it",
            )
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(DEFAULT_CONFIG_YAML)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot write config file {self.config_path}: {e}", cause=e
            ) from e
        return self.config_path


DEFAULT_CONFIG_YAML = """\
# poolshift configuration
# =======================

# Pool-management API connection
cluster:
  # API server host, optionally with port (no scheme)
  # host: "10.0.0.1:6443"
  # username: admin
  # password: ""

  # Verify the API server certificate
  verify_ssl: false

  # Namespace used when a pool spec names none
  namespace: default

  # Connect/read timeouts in seconds
  connect_timeout: 10
  read_timeout: 30

# Migration pacing
migration:
  # Seconds between convergence checks
  poll_interval: 1

  # Deadline for each cross-scale step to converge (seconds)
  step_deadline: 120

  # Continuous running time before a worker counts as ready (seconds)
  settle_duration: 30

  # Replacement target when a spec declares no replica count
  default_replicas: 1

  # Serialize migrations of the same pool on this host
  lock_enabled: false
  lock_timeout: 60
  lock_dir: ".poolshift/locks"

logging:
  level: INFO
  json_output: true
"""


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[Mapping[str, Any]] = None,
) -> PoolShiftConfig:
    """Load configuration from file, environment and CLI arguments."""
    return ConfigLoader(config_path).load(cli_args)


def create_default_config(
    config_path: Optional[Path] = None,
    force: bool = False,
) -> Path:
    """Create default configuration file."""
    return ConfigLoader(config_path).create_default_config(force=force)
