"""Configuration store interface."""

from typing import Optional, Protocol, runtime_checkable

from up2b.errors import Up2bError
from up2b.schemas.config import AppConfig


@runtime_checkable
class ConfigStore(Protocol):
    """Abstract interface for reading and writing the configuration document.

    Writes replace the whole document and are versioned: a writer passes the
    version it read, and the store refuses the write when another writer
    got there first.
    """

    def get_config(self) -> Optional[AppConfig]:
        """Read the configuration.

        Returns:
            The configuration, or None if nothing was saved yet.

        Raises:
            ConfigStoreError: If the stored document cannot be read.
        """
        ...

    def get_version(self) -> int:
        """Version of the stored document, 0 when nothing was saved yet."""
        ...

    def update_config(self, config: AppConfig, expected_version: Optional[int] = None) -> int:
        """Replace the stored configuration.

        Args:
            config: The new configuration.
            expected_version: Version the caller read; None skips the check.

        Returns:
            int: The new version.

        Raises:
            ConfigConflictError: If ``expected_version`` is stale.
            ConfigStoreError: If the document cannot be written.
        """
        ...


class ConfigStoreError(Up2bError):
    """Base exception for configuration storage errors."""

    code = "STORAGE"


class ConfigConflictError(ConfigStoreError):
    """The document changed since the writer read it."""

    code = "CONFLICT"

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"configuration changed concurrently: expected version {expected}, found {actual}"
        )
        self.expected = expected
        self.actual = actual
