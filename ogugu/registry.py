"""
Feed registration for ogugu.

Registering a feed reads its channel metadata once so the feed gets a title
and description, then stores it unfetched. The refresh job does the import.
"""
from urllib.parse import urlparse

import structlog

from ogugu.feeds.base import FeedFetcher, parse_http_date
from ogugu.feeds.rss import parse_feed_async
from ogugu.models import Feed
from ogugu.models.feed import utcnow
from ogugu.store import Storage

logger = structlog.get_logger()

UNTITLED_FEED = "Untitled Feed"


def validate_feed_url(url: str) -> str:
    """
    Check that a feed URL is an absolute http(s) URL.

    Raises:
        ValueError: If the URL is not usable
    """
    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ValueError(f"Invalid URL: {url}") from e
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL, only absolute http and https URLs are supported: {url}")
    return url


async def register_feed(storage: Storage, fetcher: FeedFetcher, url: str) -> Feed:
    """
    Register a new feed from its URL.

    The feed's ``last_modified`` is seeded from the response's
    ``Last-Modified`` header, or from the registration time when the header is
    missing or unparseable.

    Args:
        storage: Feed and post stores
        fetcher: Feed fetcher
        url: Remote feed URL

    Returns:
        Feed: The stored feed, with ``fetched=False``

    Raises:
        ValueError: If the URL is invalid
        FetchError: If the URL cannot be fetched
        ParseError: If the document is not a feed
        AlreadyExists: If the URL is already registered
        StoreError: On other storage failures
    """
    url = validate_feed_url(url)
    response = await fetcher.fetch(url)
    document = await parse_feed_async(response.content)

    feed = await storage.feeds.create(
        title=document.title or UNTITLED_FEED,
        link=url,
        description=document.description,
        last_modified=parse_http_date(response.last_modified) or utcnow(),
    )
    logger.info(
        "Feed registered",
        feed_id=feed.id,
        url=url,
        title=feed.title,
        last_modified=feed.last_modified.isoformat(),
    )
    return feed
