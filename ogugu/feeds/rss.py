"""
RSS feed parsing for ogugu.

This module decodes a fetched feed body into a ``RemoteFeedDocument``. It uses
feedparser, which also understands Atom, and applies the item policy the
refresh job relies on: an item without a title or description is skipped,
the rest of the document is kept.
"""
import asyncio
import html
import re
import xml.sax
from typing import Any, List, Optional

import bleach
import feedparser
import structlog

from ogugu.feeds.base import ParseError
from ogugu.models.document import FeedItem, RemoteFeedDocument

# Set up structured logger
logger = structlog.get_logger()


def parse_feed(content: bytes) -> RemoteFeedDocument:
    """
    Parse raw feed bytes into channel metadata and items.

    Args:
        content: Raw feed content

    Returns:
        RemoteFeedDocument: Channel metadata plus the well-formed items,
            in document order

    Raises:
        ParseError: If the content is not well-formed XML or not an RSS/Atom feed
    """
    if not content or not content.strip():
        raise ParseError("Feed document is empty")

    parsed = feedparser.parse(content)

    # feedparser falls back to a loose parser on malformed XML and flags it
    # via bozo; a SAX error means the document itself is broken.
    bozo_exception = parsed.get("bozo_exception")
    if parsed.get("bozo") and isinstance(bozo_exception, xml.sax.SAXException):
        raise ParseError(f"Feed document is not well-formed XML: {bozo_exception}")

    if not parsed.get("version"):
        raise ParseError("Document is not a recognised RSS or Atom feed")

    channel = parsed.get("feed", {})
    items = _extract_items(parsed.get("entries", []))

    logger.debug(
        "Feed parsed",
        version=parsed.get("version"),
        entry_count=len(parsed.get("entries", [])),
        item_count=len(items),
    )

    return RemoteFeedDocument(
        title=_text(channel.get("title")),
        description=_text(channel.get("description") or channel.get("subtitle")),
        link=_text(channel.get("link")),
        last_build_date=channel.get("updated") or None,
        items=items,
    )


async def parse_feed_async(content: bytes) -> RemoteFeedDocument:
    """
    Parse feed content in the default thread pool.

    feedparser is CPU-bound, so the event loop hands it to an executor.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: parse_feed(content))


def _extract_items(entries: List[Any]) -> List[FeedItem]:
    """Convert feedparser entries to FeedItems, skipping incomplete ones."""
    items = []
    for position, entry in enumerate(entries):
        try:
            title = _text(entry.get("title"))
            raw_description = _text(entry.get("description") or entry.get("summary"))

            if not title or not raw_description:
                logger.warning(
                    "Skipping feed item missing a required field",
                    position=position,
                    has_title=bool(title),
                    has_description=bool(raw_description),
                )
                continue

            items.append(
                FeedItem(
                    title=title,
                    # Markup-only descriptions keep feedparser's sanitised HTML
                    description=clean_description(raw_description) or raw_description,
                    link=_text(entry.get("link")),
                    pub_date=entry.get("published") or None,
                )
            )
        except Exception as e:
            logger.warning(
                "Skipping malformed feed item",
                position=position,
                error=str(e),
            )
    return items


def clean_description(value: Optional[str]) -> str:
    """
    Strip markup from an item description.

    Args:
        value: Description as delivered by the feed, possibly HTML

    Returns:
        str: Plain text with whitespace collapsed
    """
    if not value:
        return ""
    text = value
    if "<" in text:
        text = bleach.clean(text, tags=[], strip=True)
    # Stored as plain text, so entities are decoded
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def _text(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""
