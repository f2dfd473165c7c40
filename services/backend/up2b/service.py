"""Operation surface used by the HTTP API and the command line."""

import asyncio
import itertools
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import httpx

from config import Settings, get_settings
from up2b.compress import Compressor, PillowCompressor
from up2b.descriptor import parse_descriptor, validate_code
from up2b.errors import ConfigError, Up2bError
from up2b.events import EventChannel
from up2b.managers import SMMS_API, Manager, create_manager
from up2b.pipeline import UploadPipeline
from up2b.repositories.image_cache import ImageCache, InMemoryImageCache
from up2b.schemas.config import (
    BUILTIN_MANAGERS,
    AppConfig,
    ManagerItem,
    is_custom_code,
    parse_manager_code,
)
from up2b.schemas.descriptor import ApiAuthConfig, ApiConfig, AuthConfig, CheveretoAuthConfig, ImageFormat
from up2b.schemas.image import DeleteResponse, ImageRecord, UploadFailure, UploadResponse, UploadResult
from up2b.schemas.job import Succeeded, UploadJob, UploadWarning
from up2b.storage.base import ConfigStore
from up2b.transport import HttpTransport
from up2b.verification import add_custom_provider, verify_provider

logger = logging.getLogger(__name__)


def with_builtin_baseline(config: Optional[AppConfig]) -> AppConfig:
    """Return a copy of ``config`` with the built-in SMMS descriptor re-seeded.

    Only the stored SMMS token survives; the rest of its descriptor always
    comes from the code.
    """
    config = config.model_copy(deep=True) if config is not None else AppConfig()
    stored = config.auth_config.get("SMMS")
    token = stored.token if isinstance(stored, ApiAuthConfig) else ""
    config.auth_config["SMMS"] = ApiAuthConfig(token=token, api=SMMS_API.model_copy(deep=True))
    return config


def job_to_result(job: UploadJob) -> UploadResult:
    state = job.state
    if isinstance(state, Succeeded):
        return UploadResponse(url=state.url, deleted_id=state.deleted_id, thumb=state.thumb)
    if isinstance(state, UploadWarning):
        return UploadFailure(code="REPEATED", detail=state.reason)
    return UploadFailure(code=state.code, detail=state.detail)


class Up2bService:
    """Configuration, provider selection and the four provider operations.

    All writes of the configuration document go through one lock and carry
    the version that was read, so concurrent writers cannot silently
    overwrite each other.
    """

    def __init__(
        self,
        store: ConfigStore,
        settings: Optional[Settings] = None,
        cache: Optional[ImageCache] = None,
        events: Optional[EventChannel] = None,
        compressor: Optional[Compressor] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the service.

        Args:
            store: Configuration store.
            settings: Application settings.
            cache: Image cache; an in-memory one by default.
            events: Event channel for upload events.
            compressor: Compression collaborator; a Pillow compressor by
                default when ``settings.compress_enabled`` is set.
            http_transport: ``httpx`` transport override, e.g. for tests.
        """
        self.settings = settings or get_settings()
        self.store = store
        self.cache = cache if cache is not None else InMemoryImageCache()
        self.events = events or EventChannel()
        if compressor is None and self.settings.compress_enabled:
            compressor = PillowCompressor(self.settings)
        self.compressor = compressor
        self.http_transport = http_transport
        self._lock = asyncio.Lock()
        self._job_ids = itertools.count(1)

    # Configuration

    def get_config(self) -> Optional[AppConfig]:
        config = self.store.get_config()
        if config is None:
            return None
        return with_builtin_baseline(config)

    def _require_config(self) -> AppConfig:
        config = self.get_config()
        if config is None:
            raise ConfigError("no configuration has been saved yet")
        return config

    async def update_config(self, config: AppConfig, expected_version: Optional[int] = None) -> int:
        """Persist a whole configuration document.

        Raises:
            ConfigConflictError: If ``expected_version`` is stale.
        """
        async with self._lock:
            if expected_version is None:
                expected_version = self.store.get_version()
            version = self.store.update_config(with_builtin_baseline(config), expected_version)
        logger.info(f"Configuration saved (version {version})")
        return version

    async def _modify_config(self, change) -> AppConfig:
        async with self._lock:
            version = self.store.get_version()
            config = with_builtin_baseline(self.store.get_config())
            config = change(config) or config
            self.store.update_config(with_builtin_baseline(config), version)
        return config

    def get_using(self) -> str:
        config = self.get_config()
        return config.using if config is not None else AppConfig().using

    async def toggle_manager(self, code: str) -> str:
        code = parse_manager_code(code)

        def use(config: AppConfig) -> None:
            config.using = code

        await self._modify_config(use)
        logger.info(f"Active provider is now {code}")
        return code

    def automatic_compression(self) -> bool:
        config = self.get_config()
        return config.automatic_compression if config is not None else False

    def smms_config(self) -> ApiConfig:
        return SMMS_API.model_copy(deep=True)

    def get_managers(self) -> list[ManagerItem]:
        managers = [ManagerItem.from_code(code) for code in BUILTIN_MANAGERS]
        config = self.get_config()
        if config is not None:
            managers += [ManagerItem.from_code(code) for code in config.auth_config if is_custom_code(code)]
        return managers

    def check_new_manager_code(self, code: str) -> bool:
        """Whether ``code`` is a well-formed custom code that is still free."""
        config = self.get_config()
        existing = config.auth_config if config is not None else ()
        return not validate_code(code, existing)

    async def new_custom_manager(
        self, code: str, descriptor: Union[dict[str, Any], ApiAuthConfig]
    ) -> str:
        """Add a custom provider and make it active.

        Raises:
            CustomCodeExists: If the code is taken.
            ValidationError: If the code or descriptor is invalid.
        """
        added: list[str] = []

        def add(config: AppConfig) -> AppConfig:
            updated, canonical = add_custom_provider(config, code, descriptor)
            added.append(canonical)
            return updated

        await self._modify_config(add)
        return added[0]

    # Providers

    def _transport(self, config: AppConfig) -> HttpTransport:
        return HttpTransport(self.settings, proxy=config.proxy_url, transport=self.http_transport)

    async def _save_extra(self, code: str, extra: dict[str, str]) -> None:
        def store_extra(config: AppConfig) -> None:
            auth = config.get_auth_config(code)
            if isinstance(auth, CheveretoAuthConfig):
                config.insert_auth_config(code, auth.model_copy(update={"extra": extra}))

        await self._modify_config(store_extra)
        logger.debug(f"{code}: session data saved")

    def _manager(self, config: Optional[AppConfig] = None) -> Manager:
        config = config or self._require_config()
        code = config.using

        async def on_extra_updated(extra: dict[str, str]) -> None:
            await self._save_extra(code, extra)

        return create_manager(
            code,
            config.get_auth_config(code),
            self._transport(config),
            on_extra_updated=on_extra_updated,
        )

    def get_allowed_formats(self) -> list[ImageFormat]:
        return self._manager().allowed_formats

    def get_compress_state(self) -> bool:
        return self.compressor is not None

    def get_support_stream(self) -> bool:
        return self._manager().supports_stream

    def _pipeline(self) -> UploadPipeline:
        config = self._require_config()
        return UploadPipeline(
            self._manager(config),
            events=self.events,
            cache=self.cache,
            compressor=self.compressor,
            automatic_compression=config.automatic_compression,
            job_ids=self._job_ids,
        )

    async def upload_image(self, path: Union[str, Path]) -> UploadResult:
        pipeline = self._pipeline()
        job = await pipeline.process(pipeline.create_job(path))
        return job_to_result(job)

    async def upload_images(self, paths: Iterable[Union[str, Path]]) -> list[UploadJob]:
        return await self._pipeline().run_batch(paths)

    async def get_all_images(self, refresh: bool = False) -> list[ImageRecord]:
        """List the active provider's images, from the cache unless ``refresh``."""
        config = self._require_config()
        if not refresh:
            cached = self.cache.get(config.using)
            if cached is not None:
                return cached

        images = await self._manager(config).get_all_images()
        self.cache.replace(config.using, images)
        return images

    async def delete_image(self, deleted_id: str) -> DeleteResponse:
        config = self._require_config()
        manager = self._manager(config)
        try:
            result = await manager.delete_image(deleted_id)
        except Up2bError as e:
            logger.error(f"{config.using}: delete of {deleted_id} failed: [{e.code}] {e.message}")
            return DeleteResponse(success=False, error=e.message)

        if result.success:
            self.cache.remove(config.using, deleted_id)
        return result

    async def verify(
        self, code: str, credentials: Union[dict[str, Any], AuthConfig]
    ) -> Optional[dict[str, str]]:
        """Verify a provider's credentials and persist them on success.

        Returns:
            The session data of Chevereto providers, None otherwise.

        Raises:
            AuthError: If the credentials are wrong; nothing is persisted.
        """
        code = parse_manager_code(code)
        auth_config = parse_descriptor(credentials)
        verified = await verify_provider(code, auth_config, self._transport(self.get_config() or AppConfig()))

        def save(config: AppConfig) -> None:
            config.insert_auth_config(code, verified)

        await self._modify_config(save)
        return verified.extra if isinstance(verified, CheveretoAuthConfig) else None
