"""JSON file and in-memory implementations of ConfigStore."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from config import get_settings
from up2b.schemas.config import AppConfig

from .base import ConfigConflictError, ConfigStore, ConfigStoreError

logger = logging.getLogger(__name__)


class LocalConfigStore(ConfigStore):
    """Configuration stored as a JSON file on the local filesystem.

    The file holds ``{"version": n, "config": {...}}`` and is replaced
    atomically on every write.
    """

    def __init__(self, path: Optional[str | Path] = None):
        """Initialize the store.

        Args:
            path: Location of the JSON document. If not provided, uses the
                configured ``config_file`` from settings.
        """
        self.path = Path(path) if path is not None else get_settings().config_file
        logger.info(f"Initialized LocalConfigStore at: {self.path}")

    def _read(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read config file {self.path}: {e}")
            raise ConfigStoreError(f"cannot read {self.path}: {e}") from e

    def get_version(self) -> int:
        document = self._read()
        if document is None:
            return 0
        return int(document.get("version", 0))

    def get_config(self) -> Optional[AppConfig]:
        document = self._read()
        if document is None:
            return None
        try:
            return AppConfig.model_validate(document.get("config", {}))
        except PydanticValidationError as e:
            logger.error(f"Config file {self.path} is invalid: {e}")
            raise ConfigStoreError(f"invalid configuration in {self.path}: {e}") from e

    def update_config(self, config: AppConfig, expected_version: Optional[int] = None) -> int:
        current = self.get_version()
        if expected_version is not None and expected_version != current:
            raise ConfigConflictError(expected_version, current)

        version = current + 1
        document = {"version": version, "config": config.model_dump(mode="json")}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".config-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.error(f"Failed to write config file {self.path}: {e}")
            raise ConfigStoreError(f"cannot write {self.path}: {e}") from e

        logger.debug(f"Saved configuration version {version} to {self.path}")
        return version


class InMemoryConfigStore(ConfigStore):
    """Configuration kept in memory; suitable for tests."""

    def __init__(self, config: Optional[AppConfig] = None):
        self._config = config.model_copy(deep=True) if config is not None else None
        self._version = 1 if config is not None else 0

    def get_version(self) -> int:
        return self._version

    def get_config(self) -> Optional[AppConfig]:
        return self._config.model_copy(deep=True) if self._config is not None else None

    def update_config(self, config: AppConfig, expected_version: Optional[int] = None) -> int:
        if expected_version is not None and expected_version != self._version:
            raise ConfigConflictError(expected_version, self._version)
        self._config = config.model_copy(deep=True)
        self._version += 1
        return self._version
