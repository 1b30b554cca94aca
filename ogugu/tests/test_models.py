from datetime import datetime, timedelta, timezone

from pydantic import BaseModel

# Ensure canonical models are re-exported and not redefined here
from ogugu.models import Feed, FeedItem, Post, RemoteFeedDocument


def test_models_exports_refer_to_canonical_types():
    for model in (Feed, FeedItem, Post, RemoteFeedDocument):
        assert issubclass(model, BaseModel)
    fields = getattr(Feed, "model_fields", {})
    assert "fetched" in fields and "last_modified" in fields


def test_feed_naive_datetimes_become_utc():
    feed = Feed(id="1", title="t", link="https://example.com", last_modified=datetime(2024, 1, 1))

    assert feed.last_modified.tzinfo is not None
    assert feed.last_modified == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_is_modified_since_is_strict():
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    feed = Feed(id="1", title="t", link="https://example.com", last_modified=t0)

    assert feed.is_modified_since(t0 + timedelta(seconds=1))
    assert not feed.is_modified_since(t0)
    assert not feed.is_modified_since(t0 - timedelta(seconds=1))


def test_unset_last_modified_is_older_than_anything():
    feed = Feed(id="1", title="t", link="https://example.com")

    assert feed.is_modified_since(datetime(1970, 1, 1, tzinfo=timezone.utc))
