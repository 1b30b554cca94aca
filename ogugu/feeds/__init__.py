"""
Feed package for ogugu.

This package fetches remote feed documents and decodes them into channel
metadata and items. The refresh job in ``ogugu.tasks`` composes the two.
"""
from ogugu.feeds.base import (
    FeedError,
    FeedFetcher,
    FetchError,
    FetchResult,
    ParseError,
    parse_http_date,
)
from ogugu.feeds.rss import parse_feed, parse_feed_async

__all__ = [
    "FeedError",
    "FeedFetcher",
    "FetchError",
    "FetchResult",
    "ParseError",
    "parse_feed",
    "parse_feed_async",
    "parse_http_date",
]
