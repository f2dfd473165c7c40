"""FastAPI dependency injection configuration."""

import logging

from fastapi import Depends

from config import get_settings
from up2b.service import Up2bService
from up2b.storage.base import ConfigStore
from up2b.storage.local import LocalConfigStore

logger = logging.getLogger(__name__)


# Global instance for the configuration store
_config_store: ConfigStore | None = None

# Global instance for the service; it owns the image cache and config lock
_service: Up2bService | None = None


def get_config_store() -> ConfigStore:
    """Get the configuration store.

    Returns:
        ConfigStore: A JSON file store at ``settings.config_file``.
    """
    global _config_store

    if _config_store is None:
        settings = get_settings()
        _config_store = LocalConfigStore(settings.config_file)
        logger.info(f"Created local config store at: {settings.config_file}")

    return _config_store


def get_service(store: ConfigStore = Depends(get_config_store)) -> Up2bService:
    """Get the singleton service.

    The service must be shared between requests: it holds the image cache
    and the lock that serializes configuration writes.

    Args:
        store: Configuration store from get_config_store dependency.

    Returns:
        Up2bService: The service instance.
    """
    global _service

    if _service is None:
        _service = Up2bService(store, settings=get_settings())
        logger.info("Created Up2bService")

    return _service
