"""HTTP transport shared by every provider manager."""

import logging
import time
from typing import AsyncIterator, Callable, Optional

import httpx

from config import Settings, get_settings
from up2b.errors import NetworkError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


async def _report_progress(
    stream: httpx.AsyncByteStream,
    total: int,
    on_progress: ProgressCallback,
    chunk_size: int,
) -> AsyncIterator[bytes]:
    sent = 0
    async for chunk in stream:
        for start in range(0, len(chunk), chunk_size):
            piece = chunk[start:start + chunk_size]
            sent += len(piece)
            on_progress(sent, total)
            yield piece


class HttpTransport:
    """Sends prepared requests through ``httpx.AsyncClient``.

    Every ``httpx`` failure is converted to :class:`NetworkError`. Requests
    are never retried here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        proxy: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the transport.

        Args:
            settings: Application settings (timeouts, chunk size).
            proxy: Proxy URL such as ``socks5://127.0.0.1:1080``.
            transport: Optional ``httpx`` transport, e.g. ``httpx.MockTransport``.
        """
        self.settings = settings or get_settings()
        self.proxy = proxy
        self.transport = transport

    def _with_progress(self, request: httpx.Request, on_progress: ProgressCallback) -> httpx.Request:
        total = int(request.headers.get("Content-Length", 0))
        if not total:
            return request
        body = _report_progress(request.stream, total, on_progress, self.settings.upload_chunk_size)
        # Content-Length is kept so the body is not sent chunked.
        return httpx.Request(
            request.method,
            request.url,
            headers=request.headers,
            content=body,
            extensions=request.extensions,
        )

    async def send(
        self,
        request: httpx.Request,
        *,
        timeout: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
        follow_redirects: bool = True,
    ) -> httpx.Response:
        """Send ``request`` and return the fully read response.

        Args:
            request: The request to send.
            timeout: Seconds; defaults to ``settings.request_timeout``.
            on_progress: Called with ``(bytes_sent, total)`` while the body
                is written.
            follow_redirects: Whether redirects are followed.

        Raises:
            NetworkError: If the request could not be completed.
        """
        if on_progress is not None:
            request = self._with_progress(request, on_progress)

        start_time = time.time()
        try:
            async with httpx.AsyncClient(
                timeout=timeout or self.settings.request_timeout,
                proxy=self.proxy,
                transport=self.transport,
            ) as client:
                response = await client.send(request, follow_redirects=follow_redirects)
        except httpx.HTTPError as e:
            logger.error(f"HTTP error during {request.method} {request.url}: {e!r}")
            raise NetworkError(f"{request.method} {request.url} failed: {e}") from e

        elapsed_time = time.time() - start_time
        logger.debug(
            f"{request.method} {request.url} -> {response.status_code} in {elapsed_time:.2f}s"
        )
        return response
