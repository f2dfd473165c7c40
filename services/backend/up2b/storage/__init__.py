"""Storage module for configuration persistence."""

from .base import ConfigConflictError, ConfigStore, ConfigStoreError
from .local import InMemoryConfigStore, LocalConfigStore

__all__ = [
    "ConfigConflictError",
    "ConfigStore",
    "ConfigStoreError",
    "InMemoryConfigStore",
    "LocalConfigStore",
]
