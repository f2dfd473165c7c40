"""Provider manager interface."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from up2b.request_builder import check_image
from up2b.schemas.descriptor import CompressedFormat, ImageFormat
from up2b.schemas.image import DeleteResponse, ImageRecord
from up2b.transport import HttpTransport, ProgressCallback


class Manager(ABC):
    """Abstract base class for image hosting providers.

    A manager owns the credentials of one provider and implements the four
    operations of the uniform surface. Failures are raised as
    :class:`up2b.errors.Up2bError` subclasses; converting them to result
    objects is left to the service layer.
    """

    def __init__(self, code: str, transport: HttpTransport):
        self.code = code
        self.transport = transport

    @property
    @abstractmethod
    def allowed_formats(self) -> list[ImageFormat]:
        """Formats the provider accepts."""

    @property
    @abstractmethod
    def max_size(self) -> int:
        """Largest accepted file size in bytes."""

    @property
    def compressed_format(self) -> CompressedFormat:
        return CompressedFormat.WEBP

    @property
    def supports_stream(self) -> bool:
        return False

    def check(self, path: Path) -> int:
        """Run the pre-flight format and size checks, returning the file size."""
        return check_image(self.code, Path(path), self.allowed_formats, self.max_size)

    async def verify(self) -> Optional[dict[str, str]]:
        """Check the credentials, returning session data worth persisting."""
        return None

    @abstractmethod
    async def get_all_images(self) -> list[ImageRecord]:
        """List every image stored on the provider."""

    @abstractmethod
    async def delete_image(self, deleted_id: str) -> DeleteResponse:
        """Delete the image identified by ``deleted_id``."""

    @abstractmethod
    async def upload(
        self, path: Path, on_progress: Optional[ProgressCallback] = None
    ) -> ImageRecord:
        """Upload the image at ``path``.

        Args:
            path: Local image file.
            on_progress: Called with ``(bytes_sent, total)`` while streaming.

        Returns:
            ImageRecord: The stored image.

        Raises:
            Up2bError: On any pre-flight, network or provider failure.
        """
