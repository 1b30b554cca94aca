"""
Feed fetching for ogugu.

This module owns the outbound side of a refresh: a single bounded-timeout GET
of a feed's URL, and the interpretation of the ``Last-Modified`` header that
comes back with it. HTTP-date strings are parsed here and nowhere else; the
rest of the code only sees timezone-aware datetimes.
"""
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx
import structlog
from dateutil import parser as date_parser
from pydantic import BaseModel

from ogugu.config import FetcherConfig

# Set up structured logger
logger = structlog.get_logger()

# Constants
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_HEADERS = {
    "Accept": "application/rss+xml,application/atom+xml,application/xml;q=0.9,text/xml;q=0.8,*/*;q=0.1",
    "Accept-Language": "en-US,en;q=0.9",
}


class FeedError(Exception):
    """Base class for errors raised while fetching or decoding a feed."""


class FetchError(FeedError):
    """
    Raised when a feed cannot be retrieved.

    Covers transport failures, timeouts and any non-2xx final status.
    """

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ParseError(FeedError):
    """Raised when fetched bytes are not a usable RSS/Atom document."""


class FetchResult(BaseModel):
    """The parts of one HTTP response the refresh job cares about."""
    url: str
    content: bytes
    last_modified: Optional[str] = None
    status_code: int = 200


class FeedFetcher:
    """
    Performs one HTTP GET per feed with a uniform timeout.

    The fetcher is stateless apart from the pooled ``httpx.AsyncClient`` it
    wraps, so one instance is shared by every feed in a pass.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: Optional[str] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.headers: Dict[str, str] = dict(DEFAULT_HEADERS)
        if user_agent:
            self.headers["User-Agent"] = user_agent

    @classmethod
    def from_config(cls, config: FetcherConfig) -> "FeedFetcher":
        """Build a fetcher from the ``fetcher`` settings section."""
        return cls(timeout=config.timeout_seconds, user_agent=config.user_agent)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a feed document.

        Args:
            url: Remote feed URL

        Returns:
            FetchResult: Body, raw ``Last-Modified`` header and status code

        Raises:
            FetchError: On network failure, timeout or a non-2xx status
        """
        logger.debug("Fetching feed", url=url)
        try:
            response = await self.client.get(
                url,
                headers=self.headers,
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            raise FetchError(url, f"Timed out after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"Request failed: {e}") from e

        if not response.is_success:
            raise FetchError(
                url,
                f"Unexpected HTTP status {response.status_code}",
                status_code=response.status_code,
            )

        last_modified = response.headers.get("Last-Modified") or None

        logger.debug(
            "Feed fetched",
            url=url,
            status_code=response.status_code,
            content_length=len(response.content),
            last_modified=last_modified,
        )

        return FetchResult(
            url=url,
            content=response.content,
            last_modified=last_modified,
            status_code=response.status_code,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FeedFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a ``Last-Modified`` header value.

    Accepts RFC 1123 HTTP-dates as well as the other formats dateutil
    understands. Naive results are taken to be UTC.

    Args:
        value: Raw header value

    Returns:
        Optional[datetime]: Timezone-aware timestamp, or None if unparseable
    """
    if not value or not value.strip():
        return None

    try:
        dt = date_parser.parse(value.strip())
    except (ValueError, OverflowError) as e:
        logger.debug("Unparseable HTTP date", value=value, error=str(e))
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
