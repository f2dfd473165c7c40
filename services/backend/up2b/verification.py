"""Credential verification and registration of new providers."""

import logging
from typing import Any, Union

from up2b.descriptor import FieldError, is_code_taken, parse_descriptor
from up2b.errors import CustomCodeExists, ValidationError
from up2b.managers import create_manager
from up2b.schemas.config import (
    BUILTIN_MANAGERS,
    AppConfig,
    ManagerKind,
    is_custom_code,
    normalize_custom_code,
)
from up2b.schemas.descriptor import ApiAuthConfig, AuthConfig, CheveretoAuthConfig
from up2b.transport import HttpTransport

logger = logging.getLogger(__name__)


def expected_kind(code: str) -> ManagerKind:
    """Credential kind a provider code takes; custom providers are API providers."""
    if code in BUILTIN_MANAGERS:
        return BUILTIN_MANAGERS[code][2]
    if is_custom_code(code):
        return ManagerKind.API
    raise ValidationError(f"unknown provider code {code}")


async def verify_provider(code: str, auth_config: AuthConfig, transport: HttpTransport) -> AuthConfig:
    """Verify credentials and return the configuration worth persisting.

    Chevereto providers log in and get the session (``token`` and
    ``cookie``) attached as ``extra``. API and git providers are not
    checked over the network.

    Raises:
        ValidationError: If the credentials are not of the kind ``code`` takes.
        AuthError: If the username or password is wrong.
        Up2bError: On any other failure; nothing should be persisted then.
    """
    kind = expected_kind(code)
    if auth_config.type != kind.value:
        raise ValidationError(
            f"{code} takes {kind.value} credentials, got {auth_config.type}",
            [FieldError(field="type", message=f"expected {kind.value}")],
        )

    if not isinstance(auth_config, CheveretoAuthConfig):
        logger.debug(f"{code}: no network verification for {auth_config.type} providers")
        return auth_config

    manager = create_manager(code, auth_config, transport)
    extra = await manager.verify()
    logger.info(f"{code}: credentials verified")
    return auth_config.model_copy(update={"extra": extra})


def add_custom_provider(
    config: AppConfig,
    code: str,
    descriptor: Union[dict[str, Any], ApiAuthConfig],
) -> tuple[AppConfig, str]:
    """Register a new custom API provider and make it the active one.

    Args:
        config: Current configuration; it is not modified.
        code: User-chosen code, with or without the ``CUSTOM-`` prefix.
        descriptor: The provider's API descriptor.

    Returns:
        The updated configuration and the canonical code.

    Raises:
        CustomCodeExists: If the code is already used, checked before
            anything else.
        ValidationError: If the code or the descriptor is invalid.
    """
    canonical = normalize_custom_code(code)
    if is_code_taken(code, config.auth_config):
        raise CustomCodeExists(canonical)

    auth_config = parse_descriptor(descriptor, code=code, existing_codes=config.auth_config)
    if not isinstance(auth_config, ApiAuthConfig):
        raise ValidationError(f"custom providers must be API providers, got {auth_config.type}")

    updated = config.model_copy(deep=True)
    updated.insert_auth_config(canonical, auth_config)
    updated.using = canonical
    logger.info(f"Added custom provider {canonical}")
    return updated, canonical
