"""
Feed refresh job for ogugu.

One pass walks every registered feed and, for each, does exactly one of:

- nothing (busy, unreachable, unparseable, or unchanged),
- an initial import, for feeds that have never been fetched,
- a refresh import, when ``Last-Modified`` is strictly newer than the stored
  modification time.

Per-feed failures are logged and contained; the next scheduled pass is the
retry. Running the pass twice against unchanged remotes creates no posts and
touches no feed on the second run.

Changes to a feed's items that do not come with a newer ``Last-Modified``
header are never imported once the feed has been fetched.
"""
import asyncio
import time
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional

import structlog
from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field

from ogugu.feeds.base import FeedFetcher, FetchError, ParseError, parse_http_date
from ogugu.feeds.rss import parse_feed_async
from ogugu.models import Feed, RemoteFeedDocument
from ogugu.models.feed import utcnow
from ogugu.store import Storage, StoreError

if TYPE_CHECKING:
    from ogugu.context import AppContext

# Set up structured logger
logger = structlog.get_logger()

# Define metrics
FEEDS_PROCESSED_TOTAL = Counter(
    'ogugu_feeds_processed_total', 'Total number of feed refreshes by outcome', ['outcome']
)
POSTS_CREATED_TOTAL = Counter('ogugu_posts_created_total', 'Total number of posts imported')
POST_ERRORS_TOTAL = Counter('ogugu_post_errors_total', 'Total number of items that failed to import')
REFRESH_PASS_SECONDS = Histogram('ogugu_refresh_pass_seconds', 'Duration of a full refresh pass')


class RefreshOutcome(str, Enum):
    """What a single feed's refresh ended up doing."""
    POPULATED = "populated"
    REFRESHED = "refreshed"
    UP_TO_DATE = "up_to_date"
    NO_MODIFICATION_SIGNAL = "no_modification_signal"
    INVALID_MODIFICATION_SIGNAL = "invalid_modification_signal"
    FETCH_FAILED = "fetch_failed"
    PARSE_FAILED = "parse_failed"
    STORE_FAILED = "store_failed"
    BUSY = "busy"
    ERROR = "error"


class FeedRefreshResult(BaseModel):
    """Outcome of refreshing one feed."""
    feed_id: str
    outcome: RefreshOutcome
    posts_created: int = 0
    last_modified: Optional[datetime] = None


class RefreshSummary(BaseModel):
    """Outcome of one pass over all feeds."""
    results: List[FeedRefreshResult] = Field(default_factory=list)

    @property
    def posts_created(self) -> int:
        return sum(r.posts_created for r in self.results)

    def outcomes(self) -> Dict[str, RefreshOutcome]:
        """Map of feed id to outcome."""
        return {r.feed_id: r.outcome for r in self.results}

    def count(self, outcome: RefreshOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)


async def refresh_all_feeds(
    storage: Storage,
    fetcher: FeedFetcher,
    concurrency: int = 1,
) -> RefreshSummary:
    """
    Run one reconciliation pass over every registered feed.

    Args:
        storage: Feed and post stores
        fetcher: Fetcher used for every feed in the pass
        concurrency: Maximum number of feeds processed at once

    Returns:
        RefreshSummary: Per-feed outcomes, in feed listing order
    """
    started = time.monotonic()

    try:
        feeds = await storage.feeds.list_all()
    except StoreError as e:
        logger.error("Could not list feeds, skipping refresh pass", error=str(e))
        return RefreshSummary()

    logger.info("Starting refresh pass", feed_count=len(feeds), concurrency=concurrency)

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _guarded(feed: Feed) -> FeedRefreshResult:
        async with semaphore:
            try:
                return await refresh_feed(storage, fetcher, feed)
            except StoreError as e:
                logger.error("Storage error refreshing feed", feed_id=feed.id, error=str(e))
                return _finish(feed.id, RefreshOutcome.STORE_FAILED)
            except Exception as e:
                logger.exception(
                    "Unexpected error refreshing feed",
                    feed_id=feed.id,
                    url=feed.link,
                    error=str(e),
                )
                return _finish(feed.id, RefreshOutcome.ERROR)

    results = await asyncio.gather(*[_guarded(feed) for feed in feeds])
    summary = RefreshSummary(results=list(results))

    elapsed = time.monotonic() - started
    REFRESH_PASS_SECONDS.observe(elapsed)
    logger.info(
        "Refresh pass complete",
        feed_count=len(feeds),
        posts_created=summary.posts_created,
        populated=summary.count(RefreshOutcome.POPULATED),
        refreshed=summary.count(RefreshOutcome.REFRESHED),
        failed=summary.count(RefreshOutcome.FETCH_FAILED)
        + summary.count(RefreshOutcome.PARSE_FAILED)
        + summary.count(RefreshOutcome.STORE_FAILED)
        + summary.count(RefreshOutcome.ERROR),
        duration_seconds=round(elapsed, 3),
    )
    return summary


async def refresh_feed(storage: Storage, fetcher: FeedFetcher, feed: Feed) -> FeedRefreshResult:
    """
    Reconcile one feed against its remote document.

    The feed is claimed for the whole fetch-decide-import-persist sequence, and
    its state is re-read under the claim, so a concurrent pass cannot import
    the same items twice.

    Args:
        storage: Feed and post stores
        fetcher: Feed fetcher
        feed: Feed as listed at the start of the pass

    Returns:
        FeedRefreshResult: What happened to this feed
    """
    async with storage.feeds.claim(feed.id) as current:
        if current is None:
            logger.info("Feed busy or removed, skipping", feed_id=feed.id)
            return _finish(feed.id, RefreshOutcome.BUSY)

        log = logger.bind(feed_id=current.id, url=current.link)

        try:
            response = await fetcher.fetch(current.link)
        except FetchError as e:
            log.warning("Could not fetch feed", status_code=e.status_code, error=str(e))
            return _finish(current.id, RefreshOutcome.FETCH_FAILED)

        if not current.fetched:
            return await _initial_import(storage, current, response.content, response.last_modified, log)

        if not response.last_modified:
            log.debug("No Last-Modified header, nothing to compare")
            return _finish(current.id, RefreshOutcome.NO_MODIFICATION_SIGNAL)

        modified = parse_http_date(response.last_modified)
        if modified is None:
            log.warning("Could not parse Last-Modified header", value=response.last_modified)
            return _finish(current.id, RefreshOutcome.INVALID_MODIFICATION_SIGNAL)

        if not current.is_modified_since(modified):
            log.debug(
                "Feed not modified",
                last_modified=modified.isoformat(),
                stored_last_modified=current.last_modified.isoformat() if current.last_modified else None,
            )
            return _finish(current.id, RefreshOutcome.UP_TO_DATE)

        return await _refresh_import(storage, current, response.content, modified, log)


async def _initial_import(
    storage: Storage,
    feed: Feed,
    content: bytes,
    last_modified_header: Optional[str],
    log,
) -> FeedRefreshResult:
    """First successful fetch: import everything, then mark the feed fetched."""
    document = await _parse(content, log)
    if document is None:
        return _finish(feed.id, RefreshOutcome.PARSE_FAILED)

    created = await populate(storage, feed, document)

    # Later passes compare against the server's header, or the import time without one
    seed = parse_http_date(last_modified_header) or utcnow()

    try:
        updated = await storage.feeds.mark_fetched(feed.id, last_modified=seed)
    except StoreError as e:
        log.error("Could not record initial fetch", posts_created=created, error=str(e))
        return _finish(feed.id, RefreshOutcome.STORE_FAILED, created)

    log.info("Feed populated", posts_created=created, item_count=len(document.items))
    return _finish(feed.id, RefreshOutcome.POPULATED, created, updated.last_modified)


async def _refresh_import(
    storage: Storage,
    feed: Feed,
    content: bytes,
    modified: datetime,
    log,
) -> FeedRefreshResult:
    """Modified since last import: import the items, then advance last_modified."""
    document = await _parse(content, log)
    if document is None:
        return _finish(feed.id, RefreshOutcome.PARSE_FAILED)

    created = await populate(storage, feed, document)

    try:
        updated = await storage.feeds.update_last_modified(feed.id, modified)
    except StoreError as e:
        log.error("Could not record modification time", posts_created=created, error=str(e))
        return _finish(feed.id, RefreshOutcome.STORE_FAILED, created)

    log.info(
        "Feed refreshed",
        posts_created=created,
        item_count=len(document.items),
        last_modified=modified.isoformat(),
    )
    return _finish(feed.id, RefreshOutcome.REFRESHED, created, updated.last_modified)


async def _parse(content: bytes, log) -> Optional[RemoteFeedDocument]:
    try:
        return await parse_feed_async(content)
    except ParseError as e:
        log.warning("Could not parse feed document", error=str(e))
        return None


async def populate(storage: Storage, feed: Feed, document: RemoteFeedDocument) -> int:
    """
    Create a post for every item in a parsed document.

    Items that fail to store are logged and skipped.

    Returns:
        int: Number of posts created
    """
    created = 0
    for item in document.items:
        try:
            await storage.posts.create(
                feed.id,
                title=item.title,
                description=item.description,
                link=item.link,
                pub_date=item.pub_date,
            )
            created += 1
        except StoreError as e:
            POST_ERRORS_TOTAL.inc()
            logger.warning(
                "Could not create post",
                feed_id=feed.id,
                title=item.title,
                error=str(e),
            )
    POSTS_CREATED_TOTAL.inc(created)
    return created


def _finish(
    feed_id: str,
    outcome: RefreshOutcome,
    posts_created: int = 0,
    last_modified: Optional[datetime] = None,
) -> FeedRefreshResult:
    FEEDS_PROCESSED_TOTAL.labels(outcome=outcome.value).inc()
    return FeedRefreshResult(
        feed_id=feed_id,
        outcome=outcome,
        posts_created=posts_created,
        last_modified=last_modified,
    )


async def run_refresh_pass(app_context: 'AppContext') -> RefreshSummary:
    """
    Job function the scheduler calls: one pass with the configured settings.
    """
    return await refresh_all_feeds(
        app_context.storage,
        app_context.fetcher,
        concurrency=app_context.settings.job.concurrency,
    )
