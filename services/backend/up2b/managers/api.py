"""Manager for providers described by a declarative API descriptor."""

import logging
from pathlib import Path
from typing import Optional

from up2b.interpreter import interpret_delete, interpret_list, interpret_upload
from up2b.managers.base import Manager
from up2b.request_builder import RequestBuilder
from up2b.schemas.descriptor import ApiConfig, CompressedFormat, ImageFormat
from up2b.schemas.image import DeleteResponse, ImageRecord
from up2b.transport import HttpTransport, ProgressCallback

logger = logging.getLogger(__name__)


class ApiManager(Manager):
    """Runs list, delete and upload through the request builder and interpreter."""

    def __init__(self, code: str, api: ApiConfig, token: str, transport: HttpTransport):
        super().__init__(code, transport)
        self.api = api
        self.builder = RequestBuilder(api, token, provider=code)

    @property
    def allowed_formats(self) -> list[ImageFormat]:
        return self.api.upload.allowed_formats

    @property
    def max_size(self) -> int:
        return self.api.upload.max_size

    @property
    def compressed_format(self) -> CompressedFormat:
        return self.api.upload.compressed_format

    @property
    def supports_stream(self) -> bool:
        return self.builder.supports_stream

    async def get_all_images(self) -> list[ImageRecord]:
        response = await self.transport.send(self.builder.build_list())
        images = interpret_list(self.api.list.controller, response.status_code, response.content)
        logger.info(f"{self.code}: listed {len(images)} images")
        return images

    async def delete_image(self, deleted_id: str) -> DeleteResponse:
        response = await self.transport.send(self.builder.build_delete(deleted_id))
        result = interpret_delete(self.api.delete.controller, response.status_code, response.content)
        if result.success:
            logger.info(f"{self.code}: deleted image {deleted_id}")
        else:
            logger.warning(f"{self.code}: failed to delete {deleted_id}: {result.error}")
        return result

    async def upload(
        self, path: Path, on_progress: Optional[ProgressCallback] = None
    ) -> ImageRecord:
        path = Path(path)
        self.builder.check_upload(path)
        logger.debug(f"{self.code}: uploading {path} with timeout {self.builder.timeout}s")

        with path.open("rb") as fp:
            request = self.builder.build_upload(path, fp)
            response = await self.transport.send(
                request,
                timeout=self.builder.timeout,
                on_progress=on_progress if self.supports_stream else None,
            )

        image = interpret_upload(self.api.upload.controller, response.status_code, response.content)
        logger.info(f"{self.code}: uploaded {path.name} -> {image.url}")
        return image
