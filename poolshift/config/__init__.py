"""
Configuration management for poolshift.

Provides type-safe configuration loading and validation with support
for multiple configuration sources and priority-based merging.
"""

from .loader import ConfigLoader, create_default_config, load_config
from .models import ClusterConfig, LoggingConfig, MigrationConfig, PoolShiftConfig

__all__ = [
    "ClusterConfig",
    "ConfigLoader",
    "LoggingConfig",
    "MigrationConfig",
    "PoolShiftConfig",
    "create_default_config",
    "load_config",
]
