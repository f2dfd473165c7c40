"""Tests for the Pillow compressor."""

import pytest
from PIL import Image

from up2b.compress import CompressedImage, Compressor, PillowCompressor
from up2b.errors import CompressionError
from up2b.schemas.descriptor import CompressedFormat


@pytest.fixture
def compressor(settings):
    return PillowCompressor(settings)


class TestPillowCompressor:
    """Test cases for PillowCompressor."""

    def test_implements_protocol(self, compressor):
        assert isinstance(compressor, Compressor)

    @pytest.mark.asyncio
    async def test_webp_downscales(self, compressor, make_image, settings):
        """Test WEBP compression shrinks both sides by the computed factor."""
        path = make_image("large.png", size=(200, 100), noise=True)
        original_size = path.stat().st_size

        result = await compressor.compress(path, original_size // 3, CompressedFormat.WEBP)

        assert isinstance(result, CompressedImage)
        assert result.path.parent == settings.temp_dir
        assert result.path.name.startswith("large-")
        assert result.path.suffix == ".webp"
        assert result.original_size == original_size
        assert result.compressed_size == result.path.stat().st_size
        with Image.open(result.path) as img:
            assert img.format == "WEBP"
            assert img.size == (100, 50)

    @pytest.mark.asyncio
    async def test_jpeg_reencodes(self, compressor, make_image, settings):
        """Test JPEG compression writes an RGB JPEG copy."""
        path = make_image("large.png", size=(120, 120), noise=True)

        result = await compressor.compress(path, path.stat().st_size // 2, CompressedFormat.JPEG)

        assert result.path.parent == settings.temp_dir
        assert result.path.suffix == ".jpeg"
        assert result.compressed_size < result.original_size
        with Image.open(result.path) as img:
            assert img.format == "JPEG"
            assert img.size == (120, 120)

    @pytest.mark.asyncio
    async def test_original_untouched(self, compressor, make_image):
        path = make_image("keep.png", size=(64, 64), noise=True)
        before = path.read_bytes()

        await compressor.compress(path, 100, CompressedFormat.WEBP)

        assert path.read_bytes() == before

    @pytest.mark.asyncio
    async def test_not_an_image(self, compressor, tmp_path):
        """Test undecodable files raise CompressionError."""
        path = tmp_path / "fake.png"
        path.write_bytes(b"not an image at all")

        with pytest.raises(CompressionError) as exc_info:
            await compressor.compress(path, 10, CompressedFormat.WEBP)
        assert exc_info.value.code == "COMPRESS"

    @pytest.mark.asyncio
    async def test_same_name_gets_separate_copies(self, compressor, make_image, tmp_path):
        """Test two images with the same name never share a compressed file."""
        first = make_image("shot.png", size=(64, 64), noise=True)
        other_dir = tmp_path / "other"
        other_dir.mkdir()
        second = other_dir / "shot.png"
        second.write_bytes(first.read_bytes())

        a = await compressor.compress(first, 100, CompressedFormat.WEBP)
        b = await compressor.compress(second, 100, CompressedFormat.WEBP)

        assert a.path != b.path
        assert a.path.exists() and b.path.exists()

    @pytest.mark.asyncio
    async def test_failure_leaves_no_file(self, compressor, tmp_path, settings):
        path = tmp_path / "fake.png"
        path.write_bytes(b"not an image at all")

        with pytest.raises(CompressionError):
            await compressor.compress(path, 10, CompressedFormat.JPEG)
        assert list(settings.temp_dir.iterdir()) == []
