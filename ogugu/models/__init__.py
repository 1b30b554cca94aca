"""
Central re-exports for the ogugu data models.

This module exposes the canonical models from their dedicated modules to
provide stable import paths as "ogugu.models" without redefining types.
"""
from .document import FeedItem, RemoteFeedDocument
from .feed import Feed
from .post import Post

__all__ = [
    "Feed",
    "FeedItem",
    "Post",
    "RemoteFeedDocument",
]
