"""Bounded, resumable pagination over the source bucket listing."""

import logging
from typing import List, Optional, Tuple

from bucket_sync.exceptions import ListingError
from bucket_sync.store import ObjectRecord, ObjectStore

logger: logging.Logger = logging.getLogger(__name__)

MAX_PAGE_SIZE: int = 1000


def effective_page_size(max_keys: Optional[int]) -> int:
    """
    Clamps the configured page size to the listing hard cap.

    Args:
        max_keys (int, optional): The configured page size.

    Returns:
        int: `max_keys` if it is a positive value below the cap, else the cap.
    """
    if max_keys is None or max_keys <= 0:
        return MAX_PAGE_SIZE
    return min(max_keys, MAX_PAGE_SIZE)


class Paginator:
    """
    Turns an opaque listing cursor into successive pages of object records.

    Cursors are passed through untouched: "" starts the listing and a
    returned "" means there are no further pages.
    """

    def __init__(
        self, store: ObjectStore, prefix: str = "", max_keys: Optional[int] = None
    ) -> None:
        """
        Args:
            store (ObjectStore): The source bucket.
            prefix (str): Only keys under this prefix are listed.
            max_keys (int, optional): The configured page size.
        """
        self._store: ObjectStore = store
        self._prefix: str = prefix
        self.page_size: int = effective_page_size(max_keys)

    async def fetch_page(self, cursor: str) -> Tuple[List[ObjectRecord], str]:
        """
        Fetches the page that follows `cursor`.

        A page without records is an error even when the listing is
        exhausted, so resuming from a cursor past the last key fails here
        instead of ending quietly.

        Args:
            cursor (str): Where to resume the listing.

        Returns:
            Tuple[List[ObjectRecord], str]: The records, in listing order, and
                the cursor of the next page.

        Raises:
            ListingError: If the listing call fails or returns no records.
        """
        try:
            records, next_cursor = await self._store.list_objects(
                self._prefix, cursor, self.page_size
            )
        except Exception as e:
            raise ListingError(
                f"Failed to list objects after '{cursor}': {e}", cursor=cursor
            ) from e

        if not records:
            raise ListingError(f"Empty listing after '{cursor}'.", cursor=cursor)

        logger.debug(
            f"Listed {len(records)} objects after '{cursor}' (next: '{next_cursor}')."
        )
        return records, next_cursor
