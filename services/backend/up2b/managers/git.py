"""Git repository backed storage through the GitHub contents API."""

import base64
import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import httpx

from up2b.errors import DecodeError, ProviderRejected, ValidationError
from up2b.interpreter import get_by_path
from up2b.managers.base import Manager
from up2b.request_builder import join_url
from up2b.schemas.descriptor import GitAuthConfig, ImageFormat
from up2b.schemas.image import DeleteResponse, ImageRecord
from up2b.transport import HttpTransport, ProgressCallback

logger = logging.getLogger(__name__)

GIT_MAX_SIZE = 20 * 1024 * 1024
GIT_TIMEOUT = 180
DELETE_MESSAGE = "up2b: delete the picture that is no longer used"
ID_SEPARATOR = "---"


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"HTTP {response.status_code} with a non-JSON body: {e}") from e


def _message(data: Any, status: int) -> str:
    message = get_by_path(data, "message")
    return message if isinstance(message, str) else f"HTTP {status}"


def _record(item: Any) -> ImageRecord:
    download_url = get_by_path(item, "download_url")
    sha = get_by_path(item, "sha")
    url = get_by_path(item, "url")
    if not all(isinstance(value, str) for value in (download_url, sha, url)):
        raise DecodeError("content entry lacks download_url, sha or url")
    return ImageRecord(url=download_url, deleted_id=f"{url}{ID_SEPARATOR}{sha}")


class GitManager(Manager):
    """Stores images as files of a GitHub repository directory.

    The delete id of an image is ``<contents api url>---<blob sha>``, both
    of which the contents API needs to remove the file again.
    """

    def __init__(self, code: str, auth: GitAuthConfig, transport: HttpTransport):
        super().__init__(code, transport)
        self.auth = auth
        self.contents_url = (
            f"{auth.base_url.rstrip('/')}/repos/{auth.username}/{auth.repository}"
            f"/contents/{auth.path or 'up2b'}"
        )

    @property
    def allowed_formats(self) -> list[ImageFormat]:
        return [
            ImageFormat.JPEG,
            ImageFormat.PNG,
            ImageFormat.GIF,
            ImageFormat.BMP,
            ImageFormat.WEBP,
            ImageFormat.AVIF,
        ]

    @property
    def max_size(self) -> int:
        return GIT_MAX_SIZE

    @property
    def supports_stream(self) -> bool:
        return True

    def headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.transport.settings.user_agent,
            "Authorization": f"Bearer {self.auth.token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def get_all_images(self) -> list[ImageRecord]:
        response = await self.transport.send(
            httpx.Request("GET", self.contents_url, headers=self.headers())
        )
        if response.status_code == 404:
            # The directory is created by the first upload.
            logger.info(f"{self.code}: {self.contents_url} does not exist yet")
            return []

        data = _decode(response)
        if response.status_code != 200:
            message = _message(data, response.status_code)
            logger.error(f"{self.code}: list failed: status={response.status_code}, error={message}")
            raise ProviderRejected(message)
        if not isinstance(data, list):
            raise DecodeError(f"{self.contents_url} is not a directory")

        images = [_record(item) for item in data]
        logger.info(f"{self.code}: listed {len(images)} images")
        return images

    async def delete_image(self, deleted_id: str) -> DeleteResponse:
        url, separator, sha = deleted_id.partition(ID_SEPARATOR)
        if not separator or not url or not sha:
            raise ValidationError(f"malformed delete id: {deleted_id!r}")

        request = httpx.Request(
            "DELETE",
            url,
            headers=self.headers(),
            json={"sha": sha, "message": DELETE_MESSAGE},
        )
        response = await self.transport.send(request)
        if response.status_code != 200:
            message = _message(_decode(response), response.status_code)
            logger.error(f"{self.code}: delete failed: status={response.status_code}, error={message}")
            return DeleteResponse(success=False, error=message)

        logger.info(f"{self.code}: deleted {url}")
        return DeleteResponse(success=True)

    async def upload(
        self, path: Path, on_progress: Optional[ProgressCallback] = None
    ) -> ImageRecord:
        path = Path(path)
        self.check(path)

        filename = f"{path.stem}_{int(time.time() * 1000)}{path.suffix}"
        request = httpx.Request(
            "PUT",
            join_url(self.contents_url, filename),
            headers=self.headers(),
            json={
                "message": f"up2b: {path.name}",
                "content": base64.b64encode(path.read_bytes()).decode("utf-8"),
            },
        )
        response = await self.transport.send(request, timeout=GIT_TIMEOUT, on_progress=on_progress)

        data = _decode(response)
        if response.status_code != 201:
            message = _message(data, response.status_code)
            logger.error(f"{self.code}: upload failed: status={response.status_code}, error={message}")
            raise ProviderRejected(message)

        image = _record(get_by_path(data, "content"))
        logger.info(f"{self.code}: uploaded {path.name} -> {image.url}")
        return image
