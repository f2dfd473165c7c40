"""Unit tests for the image cache."""

from unittest.mock import Mock

import pytest

from up2b.repositories import ImageCache, InMemoryImageCache
from up2b.schemas import ImageRecord


def record(n: int) -> ImageRecord:
    return ImageRecord(url=f"https://x/{n}.png", deleted_id=str(n))


class TestImageCache:
    """Test ImageCache interface."""

    def test_interface_methods_defined(self):
        for name in ("get", "replace", "add", "remove", "clear"):
            assert hasattr(ImageCache, name)

    def test_mock_implementation(self):
        mock_cache = Mock(spec=ImageCache)
        mock_cache.get.return_value = [record(1)]
        assert mock_cache.get("SMMS") == [record(1)]


class TestInMemoryImageCache:
    """Test InMemoryImageCache implementation."""

    @pytest.fixture
    def cache(self):
        return InMemoryImageCache()

    def test_never_listed(self, cache):
        """Test a provider that was never listed has no entry."""
        assert cache.get("SMMS") is None

    def test_replace_and_get(self, cache):
        cache.replace("SMMS", [record(1), record(2)])
        assert cache.get("SMMS") == [record(1), record(2)]
        assert cache.get("IMGSE") is None

    def test_empty_listing_is_cached(self, cache):
        cache.replace("GITHUB", [])
        assert cache.get("GITHUB") == []

    def test_get_returns_copy(self, cache):
        cache.replace("SMMS", [record(1)])
        cache.get("SMMS").append(record(2))
        assert cache.get("SMMS") == [record(1)]

    def test_add(self, cache):
        cache.add("SMMS", record(1))
        cache.add("SMMS", record(2))
        assert [r.deleted_id for r in cache.get("SMMS")] == ["1", "2"]

    def test_remove(self, cache):
        cache.replace("SMMS", [record(1), record(2)])
        assert cache.remove("SMMS", "1") is True
        assert cache.remove("SMMS", "1") is False
        assert cache.remove("IMGSE", "1") is False
        assert cache.get("SMMS") == [record(2)]

    def test_clear(self, cache):
        cache.replace("SMMS", [record(1)])
        cache.replace("IMGSE", [record(2)])

        cache.clear("SMMS")
        assert cache.get("SMMS") is None
        assert cache.get("IMGSE") == [record(2)]

        cache.clear()
        assert cache.get("IMGSE") is None
