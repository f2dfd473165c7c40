"""Builds concrete HTTP requests from an API provider descriptor."""

import base64
import json
import logging
from pathlib import Path
from typing import Any, BinaryIO, Optional
from urllib.parse import quote

import httpx

from up2b.errors import SizeExceeded, UnsupportedFormat, ValidationError
from up2b.schemas.descriptor import (
    ApiConfig,
    BodyAuth,
    DeletePost,
    FileKind,
    HeaderAuth,
    ImageFormat,
    JsonContent,
    ListPost,
    MultipartContent,
    QueryKind,
)

logger = logging.getLogger(__name__)


def join_url(base_url: str, path: str) -> str:
    """Join ``base_url`` and ``path`` with exactly one slash between them."""
    if not path:
        return base_url
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def guess_mime_type(path: str | Path) -> str:
    ext = Path(path).suffix.lstrip(".").lower()
    if ext in ("", "jpg", "jpeg"):
        return "image/jpeg"
    return f"image/{ext}"


def check_image(provider: str, path: Path, allowed_formats: list[ImageFormat], max_size: int) -> int:
    """Pre-flight checks run before any upload request is dispatched.

    Returns:
        The file size in bytes.

    Raises:
        ValidationError: If the file does not exist.
        UnsupportedFormat: If the extension is not among ``allowed_formats``.
        SizeExceeded: If the file is larger than ``max_size``.
    """
    if not path.is_file():
        raise ValidationError(f"image file not found: {path}")

    image_format = ImageFormat.from_path(path)
    if image_format is None or image_format not in allowed_formats:
        allowed = ", ".join(f.value for f in allowed_formats)
        raise UnsupportedFormat(
            f"{provider} does not accept {path.suffix or 'extensionless'} images "
            f"(allowed: {allowed})"
        )

    size = path.stat().st_size
    if size > max_size:
        raise SizeExceeded(provider, str(path), max_size, size)
    return size


class RequestBuilder:
    """Turns list, delete and upload operations into ``httpx.Request`` objects.

    The builder never sends anything; the provider manager hands the request
    to the transport and the response to the interpreter.
    """

    def __init__(self, api: ApiConfig, token: str = "", provider: str = "API"):
        self.api = api
        self.token = token
        self.provider = provider

    def url(self, path: str) -> str:
        return join_url(self.api.base_url, path)

    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        auth = self.api.auth_method
        if isinstance(auth, HeaderAuth):
            headers[auth.header_name] = (auth.prefix or "") + self.token
        return headers

    def _with_body_token(self, body: dict[str, Any]) -> dict[str, Any]:
        if isinstance(self.api.auth_method, BodyAuth):
            body[self.api.auth_method.key] = self.token
        return body

    @property
    def supports_stream(self) -> bool:
        content_type = self.api.upload.content_type
        if isinstance(content_type, JsonContent):
            return True
        return content_type.file_kind == FileKind.STREAM

    @property
    def timeout(self) -> int:
        return self.api.upload.effective_timeout

    def build_list(self) -> httpx.Request:
        url = self.url(self.api.list.path)
        method = self.api.list.method
        if isinstance(method, ListPost):
            body = self._with_body_token(dict(method.body))
            return httpx.Request("POST", url, headers=self.headers(), json=body)
        return httpx.Request("GET", url, headers=self.headers())

    def build_delete(self, deleted_id: str) -> httpx.Request:
        if not deleted_id:
            raise ValidationError("deleted id is required")

        method = self.api.delete.method
        if isinstance(method, DeletePost):
            body = dict(method.body)
            body[method.key] = deleted_id
            body = self._with_body_token(body)
            return httpx.Request(
                "POST", self.url(self.api.delete.path), headers=self.headers(), json=body
            )

        if isinstance(method.kind, QueryKind):
            url = self.url(self.api.delete.path)
            params = {method.kind.key: deleted_id}
        else:
            url = join_url(self.url(self.api.delete.path), quote(deleted_id, safe=""))
            params = None
        return httpx.Request(method.type, url, headers=self.headers(), params=params)

    def check_upload(self, path: Path) -> int:
        upload = self.api.upload
        return check_image(self.provider, path, upload.allowed_formats, upload.max_size)

    def build_upload(self, path: Path, fp: Optional[BinaryIO] = None) -> httpx.Request:
        """Build the upload request for ``path``.

        Args:
            path: Local image file.
            fp: An open binary handle on ``path``. Streamed multipart parts
                read from it lazily; without it the file is read into memory.

        Raises:
            ValidationError: If the file does not exist.
            UnsupportedFormat: If the provider does not accept the format.
            SizeExceeded: If the file exceeds the provider's ``max_size``.
        """
        path = Path(path)
        self.check_upload(path)

        upload = self.api.upload
        url = self.url(upload.path)
        other_body = dict(upload.other_body or {})
        content_type = upload.content_type

        if isinstance(content_type, MultipartContent):
            if content_type.file_kind == FileKind.STREAM and fp is not None:
                content: Any = fp
            else:
                content = fp.read() if fp is not None else path.read_bytes()
            files = {content_type.file_part_name: (path.name, content, guess_mime_type(path))}
            data = {
                key: value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
                for key, value in self._with_body_token(other_body).items()
            }
            logger.debug(f"Building multipart upload to {url} with part {content_type.file_part_name!r}")
            return httpx.Request("POST", url, headers=self.headers(), data=data, files=files)

        raw = fp.read() if fp is not None else path.read_bytes()
        body = self._with_body_token(other_body)
        body[content_type.key] = base64.b64encode(raw).decode("utf-8")
        logger.debug(f"Building JSON upload to {url} under key {content_type.key!r}")
        return httpx.Request("POST", url, headers=self.headers(), json=body)
