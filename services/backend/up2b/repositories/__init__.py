"""Repository implementations for cached provider data."""

from .image_cache import ImageCache, InMemoryImageCache

__all__ = ["ImageCache", "InMemoryImageCache"]
