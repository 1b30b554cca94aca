"""
Storage package for ogugu.

This package defines the feed and post store interfaces the refresh job and
the registration path depend on, together with their PostgreSQL and in-memory
implementations. A ``Storage`` bundles one of each and is what gets passed
around; there is no module-level database handle.
"""
from datetime import datetime
from typing import AsyncContextManager, List, Optional, Protocol

import structlog

from ogugu.config import DatabaseConfig, StoreBackend
from ogugu.models import Feed, Post

# Set up structured logger
logger = structlog.get_logger()


class StoreError(Exception):
    """Raised when the underlying storage fails."""


class NotFound(StoreError):
    """Raised when a referenced feed or post does not exist."""


class AlreadyExists(StoreError):
    """Raised when creating a feed whose link is already registered."""


class FeedStore(Protocol):
    """Protocol defining the interface for feed stores."""

    async def create(
        self,
        title: str,
        link: str,
        description: str = "",
        last_modified: Optional[datetime] = None,
    ) -> Feed:
        """
        Register a new feed with ``fetched=False``.

        ``last_modified`` seeds the comparison point for later refreshes.

        Raises:
            AlreadyExists: If a feed with the same link exists
        """
        ...

    async def get(self, feed_id: str) -> Feed:
        """
        Get a feed by id.

        Raises:
            NotFound: If the feed does not exist
        """
        ...

    async def list_all(self) -> List[Feed]:
        """Return every registered feed, oldest first."""
        ...

    async def mark_fetched(self, feed_id: str, last_modified: Optional[datetime] = None) -> Feed:
        """
        Set ``fetched`` to True. Idempotent.

        A ``last_modified`` given here is applied in the same write, under the
        same rule as ``update_last_modified``.

        Raises:
            NotFound: If the feed does not exist
        """
        ...

    async def update_last_modified(self, feed_id: str, timestamp: datetime) -> Feed:
        """
        Advance ``last_modified`` to ``timestamp``.

        A timestamp that is not strictly after the stored one leaves the feed
        unchanged, so the value never moves backwards.

        Raises:
            NotFound: If the feed does not exist
        """
        ...

    async def delete(self, feed_id: str) -> bool:
        """Delete a feed and its posts. Returns True if it existed."""
        ...

    def claim(self, feed_id: str) -> AsyncContextManager[Optional[Feed]]:
        """
        Serialise a read-decide-write sequence on one feed.

        Yields a freshly read copy of the feed, or None when another holder
        already has it (or it no longer exists). Never blocks waiting.
        """
        ...


class PostStore(Protocol):
    """Protocol defining the interface for post stores."""

    async def create(
        self,
        feed_id: str,
        title: str,
        description: str,
        link: str = "",
        pub_date: Optional[str] = None,
    ) -> Post:
        """
        Create a post belonging to ``feed_id``.

        Raises:
            NotFound: If the feed does not exist
            StoreError: On any other storage failure
        """
        ...

    async def list_for_feed(self, feed_id: str, limit: int = 50) -> List[Post]:
        """Return a feed's posts, newest first."""
        ...

    async def count_for_feed(self, feed_id: str) -> int:
        """Return how many posts a feed has."""
        ...


class Storage:
    """
    A feed store and a post store sharing one backend.

    Used as an async context manager so the application context can close it.
    """

    def __init__(self, feeds: FeedStore, posts: PostStore):
        self.feeds = feeds
        self.posts = posts

    async def close(self) -> None:
        """Release backend resources."""

    async def __aenter__(self) -> "Storage":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def get_storage(config: DatabaseConfig) -> Storage:
    """
    Get a storage backend based on configuration.

    Args:
        config: Database configuration

    Returns:
        Storage: Ready-to-use storage with its schema in place

    Raises:
        StoreError: If the PostgreSQL backend cannot be reached
    """
    if config.backend == StoreBackend.POSTGRES:
        from ogugu.store.postgres import PostgresStorage

        return await PostgresStorage.create(config)

    from ogugu.store.memory import MemoryStorage

    logger.warning("Using in-memory storage; feeds and posts will not survive a restart")
    return MemoryStorage()


__all__ = [
    "AlreadyExists",
    "FeedStore",
    "NotFound",
    "PostStore",
    "Storage",
    "StoreError",
    "get_storage",
]
