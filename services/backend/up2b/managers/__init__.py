"""Provider managers and the factory that picks one per provider code."""

import logging
from typing import Optional

from up2b.errors import ConfigError
from up2b.managers.api import ApiManager
from up2b.managers.base import Manager
from up2b.managers.chevereto import CHEVERETO_SITES, CheveretoManager, ExtraCallback
from up2b.managers.git import GitManager
from up2b.managers.smms import SMMS_API, SmmsManager
from up2b.schemas.config import parse_manager_code
from up2b.schemas.descriptor import (
    ApiAuthConfig,
    AuthConfig,
    CheveretoAuthConfig,
    GitAuthConfig,
)
from up2b.transport import HttpTransport

logger = logging.getLogger(__name__)


def create_manager(
    code: str,
    auth_config: Optional[AuthConfig],
    transport: HttpTransport,
    on_extra_updated: Optional[ExtraCallback] = None,
) -> Manager:
    """Create the manager for ``code`` from its stored credentials.

    Args:
        code: Provider code.
        auth_config: The provider's stored configuration.
        transport: HTTP transport shared by the managers.
        on_extra_updated: Passed to Chevereto managers to persist refreshed
            session data.

    Returns:
        Manager: The configured manager.

    Raises:
        ConfigError: If the provider is not configured or its configuration
            has the wrong kind.
    """
    code = parse_manager_code(code)
    if auth_config is None:
        raise ConfigError(f"{code} is not configured")

    if code == "SMMS" and isinstance(auth_config, ApiAuthConfig):
        manager: Manager = SmmsManager(auth_config.token, transport)
    elif code in CHEVERETO_SITES and isinstance(auth_config, CheveretoAuthConfig):
        manager = CheveretoManager(
            code, CHEVERETO_SITES[code], auth_config, transport, on_extra_updated
        )
    elif code == "GITHUB" and isinstance(auth_config, GitAuthConfig):
        manager = GitManager(code, auth_config, transport)
    elif code.startswith("CUSTOM-") and isinstance(auth_config, ApiAuthConfig):
        manager = ApiManager(code, auth_config.api, auth_config.token, transport)
    else:
        raise ConfigError(f"{code} cannot be configured as {auth_config.type}")

    logger.debug(f"Created {type(manager).__name__} for {code}")
    return manager


__all__ = [
    "ApiManager",
    "CheveretoManager",
    "GitManager",
    "Manager",
    "SmmsManager",
    "SMMS_API",
    "create_manager",
]
