"""Chevereto based providers (imgse.com, img.tg).

These sites have no token API: the manager logs in with the user's
credentials like a browser does and keeps the resulting ``auth_token`` and
session cookie as the provider's ``extra`` data.
"""

import json
import logging
import math
import re
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel

from up2b.errors import AuthError, DecodeError, ProviderRejected
from up2b.interpreter import get_by_path
from up2b.managers.base import Manager
from up2b.request_builder import guess_mime_type, join_url
from up2b.schemas.descriptor import (
    DEFAULT_UPLOAD_TIMEOUT,
    CheveretoAuthConfig,
    CompressedFormat,
    FileKind,
    ImageFormat,
)
from up2b.schemas.image import DeleteResponse, ImageRecord
from up2b.transport import HttpTransport, ProgressCallback

logger = logging.getLogger(__name__)

AUTH_TOKEN_PATTERN = re.compile(r'PF\.obj\.config\.auth_token = "([a-f0-9]{40})";')
LOGIN_ERROR_PATTERN = re.compile(r'PF\.fn\.growl\.expirable\("(.+?)"\)')
IMAGE_OBJECT_PATTERN = re.compile(r"data-object='(.+?)'")
IMAGE_COUNT_PATTERN = re.compile(r'<b data-text="image-count">(\d+)</b>')
SEEK_PATTERN = re.compile(r'&seek=(.+?)"')

WRONG_CREDENTIALS = "错误的用户名或密码"
AUTH_TOKEN_EXPIRED = "请求被拒绝 (auth_token)"
INVALID_OWNER = "Invalid content owner request"

IMAGES_PER_PAGE = 80

# Only the characters Chevereto percent-encodes inside ``data-object``.
QUOTES = {
    "%7B": "{",
    "%22": '"',
    "%3A": ":",
    "%2C": ",",
    "%7D": "}",
    "%5C": "\\",
    "%2F": "/",
}

ExtraCallback = Callable[[dict[str, str]], Awaitable[None]]


def unquote(text: str) -> str:
    for quoted, char in QUOTES.items():
        text = text.replace(quoted, char)
    return text


class CheveretoSite(BaseModel):
    """Fixed properties of one Chevereto installation."""

    name: str
    base_url: str
    max_size: int
    file_kind: FileKind
    allowed_formats: list[ImageFormat]
    compressed_format: CompressedFormat


CHEVERETO_SITES: dict[str, CheveretoSite] = {
    "IMGSE": CheveretoSite(
        name="imgse.com",
        base_url="https://imgse.com/",
        max_size=10 * 1024 * 1024,
        file_kind=FileKind.BUFFER,
        allowed_formats=[ImageFormat.JPEG, ImageFormat.PNG, ImageFormat.GIF],
        compressed_format=CompressedFormat.JPEG,
    ),
    "IMGTG": CheveretoSite(
        name="img.tg",
        base_url="https://img.tg/",
        max_size=5 * 1024 * 1024,
        file_kind=FileKind.STREAM,
        allowed_formats=[
            ImageFormat.JPEG,
            ImageFormat.PNG,
            ImageFormat.BMP,
            ImageFormat.GIF,
            ImageFormat.WEBP,
        ],
        compressed_format=CompressedFormat.WEBP,
    ),
}


def _first_cookie(response: httpx.Response) -> Optional[str]:
    cookies = response.headers.get_list("set-cookie")
    if not cookies:
        return None
    return cookies[0].split(";")[0]


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"HTTP {response.status_code} with a non-JSON body: {e}") from e
    message = get_by_path(data, "error.message")
    if not isinstance(message, str):
        raise DecodeError(f"HTTP {response.status_code} without error.message")
    return message


class CheveretoManager(Manager):
    """Manager for a Chevereto site, authenticated with username and password."""

    def __init__(
        self,
        code: str,
        site: CheveretoSite,
        auth: CheveretoAuthConfig,
        transport: HttpTransport,
        on_extra_updated: Optional[ExtraCallback] = None,
    ):
        """Initialize the manager.

        Args:
            code: Provider code (``IMGSE`` or ``IMGTG``).
            site: Fixed properties of the installation.
            auth: Credentials and the session data of a previous login.
            transport: HTTP transport.
            on_extra_updated: Awaited with the new session data whenever the
                ``auth_token`` is refreshed, so it can be persisted.
        """
        super().__init__(code, transport)
        self.site = site
        self.username = auth.username
        self.password = auth.password
        self.timeout = auth.timeout or DEFAULT_UPLOAD_TIMEOUT
        extra = auth.extra or {}
        self.token: Optional[str] = extra.get("token")
        self.cookie: Optional[str] = extra.get("cookie")
        self.on_extra_updated = on_extra_updated
        self.max_retry_count = transport.settings.max_retry_count

    @property
    def allowed_formats(self) -> list[ImageFormat]:
        return self.site.allowed_formats

    @property
    def max_size(self) -> int:
        return self.site.max_size

    @property
    def compressed_format(self) -> CompressedFormat:
        return self.site.compressed_format

    @property
    def supports_stream(self) -> bool:
        return self.site.file_kind == FileKind.STREAM

    @property
    def extra(self) -> dict[str, str]:
        return {"token": self.token or "", "cookie": self.cookie or ""}

    def url(self, path: str) -> str:
        return join_url(self.site.base_url, path)

    def headers(self, with_cookie: bool = True) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.transport.settings.user_agent,
        }
        if with_cookie and self.cookie:
            headers["Cookie"] = self.cookie
        return headers

    async def _fetch_auth_token(self, with_cookie: bool) -> tuple[str, httpx.Response]:
        headers = self.headers(with_cookie)
        headers["Accept"] = "text/html"
        response = await self.transport.send(httpx.Request("POST", self.url("login"), headers=headers))

        if response.status_code != 200:
            logger.error(f"{self.code}: could not load the login page: status={response.status_code}")
            raise ProviderRejected(f"could not load the login page: HTTP {response.status_code}")

        match = AUTH_TOKEN_PATTERN.search(response.text)
        if not match:
            raise ProviderRejected("no auth_token found on the login page")
        return match.group(1), response

    async def login(self) -> dict[str, str]:
        """Log in and return the new session data.

        Raises:
            AuthError: If the username or password is wrong.
            ProviderRejected: If the site refused the login for another reason.
        """
        logger.debug(f"{self.code}: logging in as {self.username}")
        auth_token, page = await self._fetch_auth_token(with_cookie=False)
        cookie = _first_cookie(page)
        if cookie is None:
            raise ProviderRejected("the login page did not set a session cookie")

        headers = self.headers(with_cookie=False)
        headers["Cookie"] = cookie
        request = httpx.Request(
            "POST",
            self.url("login"),
            headers=headers,
            data={
                "login-subject": self.username,
                "password": self.password,
                "auth_token": auth_token,
            },
        )
        response = await self.transport.send(request, follow_redirects=False)

        if response.status_code != 301:
            match = LOGIN_ERROR_PATTERN.search(response.text)
            if match:
                detail = match.group(1)
                if detail == WRONG_CREDENTIALS:
                    raise AuthError()
                raise ProviderRejected(detail)
            raise ProviderRejected(f"login failed: HTTP {response.status_code}")

        keeplogin = _first_cookie(response)
        if keeplogin is None:
            raise ProviderRejected("login succeeded without a session cookie")

        self.cookie = f"{cookie}; {keeplogin}"
        self.token = auth_token
        logger.info(f"{self.code}: logged in as {self.username}")
        return self.extra

    async def verify(self) -> Optional[dict[str, str]]:
        return await self.login()

    async def _refresh_token(self) -> None:
        self.token, _ = await self._fetch_auth_token(with_cookie=True)
        logger.info(f"{self.code}: auth_token refreshed")
        if self.on_extra_updated is not None:
            await self.on_extra_updated(self.extra)

    async def _ensure_session(self) -> None:
        if not self.token or not self.cookie:
            logger.warning(f"{self.code}: no session yet, logging in")
            await self.login()
            if self.on_extra_updated is not None:
                await self.on_extra_updated(self.extra)

    def _parse_page(self, text: str) -> list[ImageRecord]:
        images = []
        for quoted in IMAGE_OBJECT_PATTERN.findall(text):
            try:
                data = json.loads(unquote(quoted))
            except json.JSONDecodeError as e:
                raise DecodeError(f"malformed image data on album page: {e}") from e
            url = get_by_path(data, "url")
            name = get_by_path(data, "name")
            thumb = get_by_path(data, "thumb.url")
            if not isinstance(url, str) or not isinstance(name, str):
                raise DecodeError("image data on album page lacks url or name")
            images.append(
                ImageRecord(url=url, deleted_id=name, thumb=thumb if isinstance(thumb, str) else None)
            )
        return images

    async def _visit_page(self, page: int, seek: Optional[str] = None) -> str:
        url = f"{self.url(self.username)}/?page={page}"
        if seek is not None:
            url += f"&seek={seek}"
        logger.debug(f"{self.code}: requesting album page {page}")

        response = await self.transport.send(httpx.Request("GET", url, headers=self.headers()))
        if response.status_code != 200:
            logger.error(f"{self.code}: album page {page} failed: status={response.status_code}")
            raise ProviderRejected(f"could not load album page {page}: HTTP {response.status_code}")
        return response.text

    async def get_all_images(self) -> list[ImageRecord]:
        text = await self._visit_page(1)
        images = self._parse_page(text)

        count_match = IMAGE_COUNT_PATTERN.search(text)
        if count_match:
            pages = math.ceil(int(count_match.group(1)) / IMAGES_PER_PAGE)
            if pages > 1:
                seek_match = SEEK_PATTERN.search(text)
                if not seek_match:
                    raise DecodeError("album has several pages but no seek marker")
                for page in range(2, pages + 1):
                    images += self._parse_page(await self._visit_page(page, seek_match.group(1)))

        logger.info(f"{self.code}: listed {len(images)} images")
        return images

    async def delete_image(self, deleted_id: str) -> DeleteResponse:
        await self._ensure_session()

        attempt = 0
        while True:
            request = httpx.Request(
                "POST",
                self.url("json"),
                headers=self.headers(),
                data={
                    "auth_token": self.token,
                    "action": "delete",
                    "from": "list",
                    "delete": "images",
                    "multiple": "true",
                    "deleting[ids][]": deleted_id,
                },
            )
            response = await self.transport.send(request)
            if response.status_code == 200:
                logger.info(f"{self.code}: deleted image {deleted_id}")
                return DeleteResponse(success=True)

            message = _error_message(response)
            if message == INVALID_OWNER:
                logger.error(f"{self.code}: image does not exist: {deleted_id}")
                return DeleteResponse(success=False, error="image not found")
            if message != AUTH_TOKEN_EXPIRED or attempt >= self.max_retry_count:
                logger.error(f"{self.code}: delete failed: id={deleted_id}, error={message}")
                return DeleteResponse(success=False, error=message)

            attempt += 1
            logger.info(
                f"{self.code}: auth_token expired, refreshing and retrying "
                f"{attempt}/{self.max_retry_count}"
            )
            await self._refresh_token()

    def _build_upload(self, path: Path, content) -> httpx.Request:
        return httpx.Request(
            "POST",
            self.url("json"),
            headers=self.headers(),
            data={
                "type": "file",
                "action": "upload",
                "timestamp": str(int(time.time() * 1000)),
                "auth_token": self.token,
                "nsfw": "0",
            },
            files={"source": (path.name, content, guess_mime_type(path))},
        )

    async def upload(
        self, path: Path, on_progress: Optional[ProgressCallback] = None
    ) -> ImageRecord:
        path = Path(path)
        self.check(path)
        await self._ensure_session()

        attempt = 0
        while True:
            with path.open("rb") as fp:
                content = fp if self.supports_stream else fp.read()
                response = await self.transport.send(
                    self._build_upload(path, content),
                    timeout=self.timeout,
                    on_progress=on_progress if self.supports_stream else None,
                )

            if response.status_code == 200:
                break

            message = _error_message(response)
            if message != AUTH_TOKEN_EXPIRED or attempt >= self.max_retry_count:
                logger.error(f"{self.code}: upload failed: {message}")
                raise ProviderRejected(message)

            attempt += 1
            logger.info(
                f"{self.code}: auth_token expired, refreshing and retrying "
                f"{attempt}/{self.max_retry_count}"
            )
            await self._refresh_token()

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"upload response is not valid JSON: {e}") from e

        url = get_by_path(data, "image.url")
        name = get_by_path(data, "image.name")
        thumb = get_by_path(data, "image.thumb.url")
        if not isinstance(url, str) or not isinstance(name, str):
            raise DecodeError("upload response lacks image.url or image.name")

        logger.info(f"{self.code}: uploaded {path.name} -> {url}")
        return ImageRecord(url=url, deleted_id=name, thumb=thumb if isinstance(thumb, str) else None)
