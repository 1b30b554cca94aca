"""
Feed model for registered remote sources.

A feed's ``fetched`` flag and ``last_modified`` timestamp are the only state the
refresh job reads to decide what to import, and the only fields it writes.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Feed(BaseModel):
    """
    Represents one registered RSS source.

    ``fetched`` is False until the first successful import and never reverts.
    ``last_modified`` only moves forward. Registration seeds it, and the first
    import sets it if it is still unset, so a fetched feed always has one.
    """
    id: str
    title: str
    link: str
    description: str = ""
    fetched: bool = False
    last_modified: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("last_modified", "created_at", "updated_at", mode="before")
    @classmethod
    def ensure_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure all datetime fields have timezone information."""
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_modified_since(self, timestamp: datetime) -> bool:
        """True when ``timestamp`` is strictly after the recorded modification time."""
        if self.last_modified is None:
            return True
        return timestamp > self.last_modified
