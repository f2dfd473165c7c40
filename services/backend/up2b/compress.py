"""Image compression for files larger than a provider accepts."""

import asyncio
import logging
import math
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from PIL import Image
from pydantic import BaseModel

from config import Settings
from up2b.errors import CompressionError
from up2b.schemas.descriptor import CompressedFormat

logger = logging.getLogger(__name__)


class CompressedImage(BaseModel):
    path: Path
    original_size: int
    compressed_size: int


@runtime_checkable
class Compressor(Protocol):
    """Interface of the compression collaborator used by the upload pipeline."""

    async def compress(
        self, path: Path, max_size: int, target: CompressedFormat
    ) -> CompressedImage:
        """Write a smaller copy of ``path``.

        Args:
            path: Image to compress.
            max_size: Size limit of the provider in bytes.
            target: Output format.

        Returns:
            CompressedImage: Location and sizes of the compressed copy.
        """
        ...


class PillowCompressor:
    """Compressor backed by Pillow.

    ``JPEG`` re-encodes with quality ``max_size * 100 / file_size``;
    ``WEBP`` downscales both sides by ``ceil(sqrt(file_size / max_size))``
    with a Lanczos filter. Each copy is a new file in ``settings.temp_dir``
    that the caller deletes once uploaded.
    """

    def __init__(self, settings: Settings):
        self.temp_dir = settings.temp_dir

    async def compress(
        self, path: Path, max_size: int, target: CompressedFormat
    ) -> CompressedImage:
        return await asyncio.to_thread(self._compress, Path(path), max_size, target)

    def _output_path(self, path: Path, target: CompressedFormat) -> Path:
        """Reserve a unique file in the temp directory for one compressed copy."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(
            prefix=f"{path.stem}-", suffix=f".{target.value.lower()}", dir=self.temp_dir
        )
        os.close(fd)
        return Path(name)

    def _compress(self, path: Path, max_size: int, target: CompressedFormat) -> CompressedImage:
        original_size = path.stat().st_size
        output = self._output_path(path, target)

        try:
            with Image.open(path) as img:
                if target == CompressedFormat.JPEG:
                    quality = max(1, min(95, max_size * 100 // original_size))
                    img.convert("RGB").save(output, "JPEG", quality=quality)
                    logger.debug(f"Re-encoded {path.name} as JPEG with quality {quality}")
                else:
                    scale = math.ceil(math.sqrt(original_size / max_size))
                    width = max(1, img.width // scale)
                    height = max(1, img.height // scale)
                    resized = img.resize((width, height), Image.Resampling.LANCZOS)
                    resized.save(output, "WEBP")
                    logger.debug(f"Resized {path.name} to {width}x{height}")
        except OSError as e:
            output.unlink(missing_ok=True)
            raise CompressionError(f"cannot compress {path}: {e}") from e

        compressed_size = output.stat().st_size
        logger.info(
            f"Compressed {path.name}: {original_size} -> {compressed_size} bytes ({output})"
        )
        return CompressedImage(
            path=output, original_size=original_size, compressed_size=compressed_size
        )
