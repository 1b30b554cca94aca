import pytest

from ogugu.config import Settings
from ogugu.main import parse_args, run_add_feed, run_once


def test_parse_args_defaults_to_daemon():
    args = parse_args([])

    assert args.once is False
    assert args.add is None
    assert args.log_level is None


def test_parse_args_once_and_log_level():
    args = parse_args(["--once", "--log-level", "DEBUG"])

    assert args.once is True
    assert args.log_level == "DEBUG"


def test_parse_args_add():
    assert parse_args(["--add", "https://example.com/rss"]).add == "https://example.com/rss"


def test_parse_args_rejects_unknown_log_level():
    with pytest.raises(SystemExit):
        parse_args(["--log-level", "LOUD"])


@pytest.mark.asyncio
async def test_run_once_with_no_feeds(monkeypatch):
    monkeypatch.delenv("DATABASE__BACKEND", raising=False)
    monkeypatch.delenv("DATABASE__DSN", raising=False)

    assert await run_once(Settings(_env_file=None)) == 0


@pytest.mark.asyncio
async def test_run_add_feed_rejects_invalid_url(monkeypatch):
    monkeypatch.delenv("DATABASE__BACKEND", raising=False)
    monkeypatch.delenv("DATABASE__DSN", raising=False)

    assert await run_add_feed(Settings(_env_file=None), "not a url") == 1
