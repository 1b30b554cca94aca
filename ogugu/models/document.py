"""
Transient models describing one parsed feed response.

Nothing here is persisted; the refresh job turns ``FeedItem``s into posts.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class FeedItem(BaseModel):
    """A single ``<item>`` extracted from a feed document."""
    title: str
    description: str
    link: str = ""
    pub_date: Optional[str] = None


class RemoteFeedDocument(BaseModel):
    """Channel metadata and items from one fetched feed document."""
    title: str = ""
    description: str = ""
    link: str = ""
    # Channel-level marker (lastBuildDate / updated), kept verbatim
    last_build_date: Optional[str] = None
    items: List[FeedItem] = Field(default_factory=list)
