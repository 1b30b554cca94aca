import pytest

from ogugu.feeds.base import ParseError
from ogugu.feeds.rss import clean_description, parse_feed, parse_feed_async
from ogugu.models import RemoteFeedDocument


def test_parse_feed_reads_channel_and_items(sample_rss):
    document = parse_feed(sample_rss.encode("utf-8"))

    assert isinstance(document, RemoteFeedDocument)
    assert document.title == "Example Engineering"
    assert document.description == "Posts from the example team"
    assert document.link == "https://example.com/"
    assert [item.title for item in document.items] == ["First post", "Second post"]
    assert document.items[0].link == "https://example.com/first"
    assert document.items[0].description == "Hello from the first post"


def test_parse_feed_keeps_pub_date_verbatim(sample_rss):
    document = parse_feed(sample_rss.encode("utf-8"))

    assert document.items[0].pub_date == "Mon, 19 Oct 2015 10:00:00 +0000"
    assert document.items[1].pub_date == "Tue, 20 Oct 2015 10:00:00 +0000"


def test_parse_feed_strips_markup_from_descriptions(sample_rss):
    document = parse_feed(sample_rss.encode("utf-8"))

    assert document.items[1].description == "Some bold words"


def test_parse_feed_skips_items_missing_description(sample_rss_missing_description):
    document = parse_feed(sample_rss_missing_description.encode("utf-8"))

    assert len(document.items) == 1
    assert document.items[0].title == "Complete item"
    assert document.items[0].link == ""
    assert document.items[0].pub_date is None


def test_parse_feed_understands_atom(sample_atom):
    document = parse_feed(sample_atom.encode("utf-8"))

    assert document.title == "Atom Example"
    assert document.description == "An Atom feed"
    assert len(document.items) == 1
    assert document.items[0].title == "Atom entry"
    assert document.items[0].description == "Summary of the entry"


def test_parse_feed_without_channel_title(sample_rss_no_title):
    document = parse_feed(sample_rss_no_title.encode("utf-8"))

    assert document.title == ""
    assert document.items == []


def test_parse_feed_rejects_malformed_xml(malformed_xml):
    with pytest.raises(ParseError):
        parse_feed(malformed_xml.encode("utf-8"))


def test_parse_feed_rejects_non_feed_documents(html_page):
    with pytest.raises(ParseError):
        parse_feed(html_page.encode("utf-8"))


@pytest.mark.parametrize("content", [b"", b"   \n"])
def test_parse_feed_rejects_empty_content(content):
    with pytest.raises(ParseError):
        parse_feed(content)


@pytest.mark.asyncio
async def test_parse_feed_async_matches_sync(sample_rss):
    document = await parse_feed_async(sample_rss.encode("utf-8"))

    assert document == parse_feed(sample_rss.encode("utf-8"))


def test_clean_description():
    assert clean_description(None) == ""
    assert clean_description("  plain\n  text ") == "plain text"
    assert clean_description("<p>Hello <a href='x'>world</a></p>") == "Hello world"


ENTITY_RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Entities</title>
    <link>https://example.com/</link>
    <description>d</description>
    <item>
      <title>Cartoons</title>
      <description>Tom &amp;amp; Jerry &lt;b&gt;win&lt;/b&gt;</description>
    </item>
    <item>
      <title>Picture only</title>
      <description>&lt;img src="https://example.com/a.png" /&gt;</description>
    </item>
  </channel>
</rss>
"""


def test_parse_feed_decodes_entities_in_descriptions():
    document = parse_feed(ENTITY_RSS)

    assert document.items[0].description == "Tom & Jerry win"


def test_parse_feed_keeps_markup_only_descriptions():
    document = parse_feed(ENTITY_RSS)

    assert [item.title for item in document.items] == ["Cartoons", "Picture only"]
    assert "https://example.com/a.png" in document.items[1].description


def test_clean_description_does_not_escape_entities():
    assert clean_description("Tom & Jerry <b>win</b>") == "Tom & Jerry win"
    assert clean_description("Tom &amp; Jerry") == "Tom & Jerry"
