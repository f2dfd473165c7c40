"""Per-provider cache of image records."""

import logging
from typing import Optional, Protocol

from up2b.schemas.image import ImageRecord

logger = logging.getLogger(__name__)


class ImageCache(Protocol):
    """Interface for the local image list cache.

    Records are kept per provider code. There is a single writer: the
    upload pipeline appends, the delete path removes and a list refresh
    replaces the whole list of a provider.
    """

    def get(self, code: str) -> Optional[list[ImageRecord]]:
        """Get the cached records of a provider.

        Args:
            code: Provider code.

        Returns:
            The records, or None when the provider was never listed.
        """
        ...

    def replace(self, code: str, records: list[ImageRecord]) -> None:
        """Replace every cached record of a provider."""
        ...

    def add(self, code: str, record: ImageRecord) -> None:
        """Append a freshly uploaded record."""
        ...

    def remove(self, code: str, deleted_id: str) -> bool:
        """Remove a record by delete id.

        Returns:
            bool: True if a record was removed.
        """
        ...

    def clear(self, code: Optional[str] = None) -> None:
        """Drop one provider's records, or every provider's when code is None."""
        ...


class InMemoryImageCache(ImageCache):
    """In-memory implementation of ImageCache.

    Data is not persisted and will be lost when the application restarts.
    """

    def __init__(self):
        self._storage: dict[str, list[ImageRecord]] = {}
        logger.info("Initialized InMemoryImageCache")

    def get(self, code: str) -> Optional[list[ImageRecord]]:
        records = self._storage.get(code)
        return list(records) if records is not None else None

    def replace(self, code: str, records: list[ImageRecord]) -> None:
        self._storage[code] = list(records)
        logger.debug(f"Cached {len(records)} images for {code}")

    def add(self, code: str, record: ImageRecord) -> None:
        self._storage.setdefault(code, []).append(record)
        logger.debug(f"Cached uploaded image for {code}: {record.url}")

    def remove(self, code: str, deleted_id: str) -> bool:
        records = self._storage.get(code)
        if not records:
            return False
        kept = [r for r in records if r.deleted_id != deleted_id]
        self._storage[code] = kept
        return len(kept) != len(records)

    def clear(self, code: Optional[str] = None) -> None:
        if code is None:
            self._storage.clear()
        else:
            self._storage.pop(code, None)
