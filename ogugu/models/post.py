"""
Post model for items imported from a feed.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ogugu.models.feed import utcnow


class Post(BaseModel):
    """
    One article imported from a feed.

    ``pub_date`` is the publication date exactly as the source wrote it.
    """
    id: str
    feed_id: str
    title: str
    description: str
    link: str = ""
    pub_date: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
