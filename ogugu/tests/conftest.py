from typing import Dict, List, Optional, Union

import pytest

from ogugu.feeds.base import FetchResult
from ogugu.store.memory import MemoryStorage

# Sample feeds for testing
SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Engineering</title>
    <link>https://example.com/</link>
    <description>Posts from the example team</description>
    <lastBuildDate>Wed, 21 Oct 2015 07:28:00 GMT</lastBuildDate>
    <item>
      <title>First post</title>
      <link>https://example.com/first</link>
      <description>Hello from the first post</description>
      <pubDate>Mon, 19 Oct 2015 10:00:00 +0000</pubDate>
    </item>
    <item>
      <title>Second post</title>
      <link>https://example.com/second</link>
      <description>&lt;p&gt;Some &lt;b&gt;bold&lt;/b&gt; words&lt;/p&gt;</description>
      <pubDate>Tue, 20 Oct 2015 10:00:00 +0000</pubDate>
    </item>
  </channel>
</rss>
"""

SAMPLE_RSS_ONE_ITEM = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example News</title>
    <link>https://news.example.com/</link>
    <description>News</description>
    <item>
      <title>Breaking</title>
      <link>https://news.example.com/breaking</link>
      <description>Something happened</description>
      <pubDate>Thu, 22 Oct 2015 09:00:00 +0000</pubDate>
    </item>
  </channel>
</rss>
"""

SAMPLE_RSS_MISSING_DESCRIPTION = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Half Broken</title>
    <link>https://broken.example.com/</link>
    <description>One good item, one without a description</description>
    <item>
      <title>Complete item</title>
      <description>Has everything</description>
    </item>
    <item>
      <title>No description here</title>
      <link>https://broken.example.com/incomplete</link>
    </item>
  </channel>
</rss>
"""

SAMPLE_RSS_NO_TITLE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <link>https://untitled.example.com/</link>
    <description>No channel title</description>
  </channel>
</rss>
"""

SAMPLE_ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Example</title>
  <subtitle>An Atom feed</subtitle>
  <link href="https://atom.example.com/"/>
  <updated>2015-10-21T07:28:00Z</updated>
  <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
  <entry>
    <title>Atom entry</title>
    <link href="https://atom.example.com/entry"/>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
    <updated>2015-10-21T07:28:00Z</updated>
    <summary>Summary of the entry</summary>
  </entry>
</feed>
"""

MALFORMED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Truncated</title>
    <item>
      <title>Cut off
"""

HTML_PAGE = """<!DOCTYPE html>
<html><head><title>Not a feed</title></head><body><p>Hello</p></body></html>
"""

LAST_MODIFIED_T0 = "Wed, 21 Oct 2015 07:28:00 GMT"
LAST_MODIFIED_T1 = "Thu, 22 Oct 2015 07:28:00 GMT"


class FakeFetcher:
    """Fetcher returning canned responses per URL."""

    def __init__(self) -> None:
        self.responses: Dict[str, Union[FetchResult, Exception]] = {}
        self.calls: List[str] = []

    def respond(self, url: str, body: str, last_modified: Optional[str] = None) -> None:
        self.responses[url] = FetchResult(
            url=url, content=body.encode("utf-8"), last_modified=last_modified
        )

    def fail(self, url: str, error: Exception) -> None:
        self.responses[url] = error

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def sample_rss():
    return SAMPLE_RSS


@pytest.fixture
def sample_rss_one_item():
    return SAMPLE_RSS_ONE_ITEM


@pytest.fixture
def sample_rss_missing_description():
    return SAMPLE_RSS_MISSING_DESCRIPTION


@pytest.fixture
def sample_rss_no_title():
    return SAMPLE_RSS_NO_TITLE


@pytest.fixture
def sample_atom():
    return SAMPLE_ATOM


@pytest.fixture
def malformed_xml():
    return MALFORMED_XML


@pytest.fixture
def html_page():
    return HTML_PAGE
