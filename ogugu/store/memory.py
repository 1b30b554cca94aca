"""
Memory-based storage for ogugu.

This module keeps feeds and posts in process memory. It is used by the test
suite and for throwaway local runs; it honours the same invariants as the
PostgreSQL backend (monotonic ``last_modified``, cascade on delete, posts must
reference an existing feed, non-blocking per-feed claims).
"""
import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

import structlog

from ogugu.models import Feed, Post
from ogugu.models.feed import utcnow
from ogugu.store import AlreadyExists, NotFound, Storage

# Set up structured logger
logger = structlog.get_logger()


class MemoryFeedStore:
    """In-memory feed store. Returned feeds are copies."""

    def __init__(self) -> None:
        self._feeds: Dict[str, Feed] = {}
        self._claims: Dict[str, asyncio.Lock] = {}
        # Shared with MemoryPostStore for cascade deletes
        self._posts: Dict[str, Post] = {}

    async def create(
        self,
        title: str,
        link: str,
        description: str = "",
        last_modified: Optional[datetime] = None,
    ) -> Feed:
        if any(feed.link == link for feed in self._feeds.values()):
            raise AlreadyExists(f"Feed already registered: {link}")

        now = utcnow()
        feed = Feed(
            id=str(uuid.uuid4()),
            title=title,
            link=link,
            description=description,
            last_modified=last_modified,
            created_at=now,
            updated_at=now,
        )
        self._feeds[feed.id] = feed
        return feed.model_copy()

    async def get(self, feed_id: str) -> Feed:
        return self._require(feed_id).model_copy()

    async def list_all(self) -> List[Feed]:
        feeds = sorted(self._feeds.values(), key=lambda f: f.created_at)
        return [feed.model_copy() for feed in feeds]

    async def mark_fetched(self, feed_id: str, last_modified: Optional[datetime] = None) -> Feed:
        feed = self._require(feed_id)
        if not feed.fetched:
            feed.fetched = True
            feed.updated_at = utcnow()
        if last_modified is not None and feed.is_modified_since(last_modified):
            feed.last_modified = last_modified
            feed.updated_at = utcnow()
        return feed.model_copy()

    async def update_last_modified(self, feed_id: str, timestamp: datetime) -> Feed:
        feed = self._require(feed_id)
        if feed.is_modified_since(timestamp):
            feed.last_modified = timestamp
            feed.updated_at = utcnow()
        return feed.model_copy()

    async def delete(self, feed_id: str) -> bool:
        if self._feeds.pop(feed_id, None) is None:
            return False
        for post_id in [p.id for p in self._posts.values() if p.feed_id == feed_id]:
            del self._posts[post_id]
        lock = self._claims.get(feed_id)
        if lock is not None and not lock.locked():
            del self._claims[feed_id]
        return True

    @asynccontextmanager
    async def claim(self, feed_id: str) -> AsyncIterator[Optional[Feed]]:
        lock = self._claims.setdefault(feed_id, asyncio.Lock())
        if lock.locked():
            logger.debug("Feed already claimed", feed_id=feed_id)
            yield None
            return

        async with lock:
            feed = self._feeds.get(feed_id)
            yield feed.model_copy() if feed else None

    def _require(self, feed_id: str) -> Feed:
        feed = self._feeds.get(feed_id)
        if feed is None:
            raise NotFound(f"Feed not found: {feed_id}")
        return feed


class MemoryPostStore:
    """In-memory post store bound to a MemoryFeedStore."""

    def __init__(self, feeds: MemoryFeedStore):
        self._feeds = feeds

    async def create(
        self,
        feed_id: str,
        title: str,
        description: str,
        link: str = "",
        pub_date: Optional[str] = None,
    ) -> Post:
        self._feeds._require(feed_id)
        now = utcnow()
        post = Post(
            id=str(uuid.uuid4()),
            feed_id=feed_id,
            title=title,
            description=description,
            link=link,
            pub_date=pub_date,
            created_at=now,
            updated_at=now,
        )
        self._feeds._posts[post.id] = post
        return post.model_copy()

    async def list_for_feed(self, feed_id: str, limit: int = 50) -> List[Post]:
        posts = [p for p in self._feeds._posts.values() if p.feed_id == feed_id]
        posts.sort(key=lambda p: p.created_at, reverse=True)
        return [p.model_copy() for p in posts[:limit]]

    async def count_for_feed(self, feed_id: str) -> int:
        return sum(1 for p in self._feeds._posts.values() if p.feed_id == feed_id)


class MemoryStorage(Storage):
    """Feed and post stores backed by process memory."""

    def __init__(self) -> None:
        feeds = MemoryFeedStore()
        super().__init__(feeds, MemoryPostStore(feeds))
