#!/usr/bin/env python3
"""
Ogugu - Entry Point

This module serves as the main entry point for the feed refresh service.
It initializes the components, runs the refresh job once or on a schedule,
registers feeds, and manages graceful shutdown.
"""
import argparse
import asyncio
import logging
import signal
import sys
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from prometheus_client import start_http_server

from ogugu.config import LogLevel, Settings, load_settings
from ogugu.context import AppContext
from ogugu.feeds.base import FeedError
from ogugu.registry import register_feed
from ogugu.store import StoreError
from ogugu.tasks import run_refresh_pass

# Set up structured logger
logger = structlog.get_logger()


@asynccontextmanager
async def app_lifecycle(settings: Settings, start_scheduler: bool = False):
    """
    Context manager for the application lifecycle.

    This handles initialization and graceful shutdown of all components.
    """
    app_context = AppContext(settings)

    try:
        await app_context.initialize(start_scheduler=start_scheduler)

        if settings.metrics.prometheus_enabled:
            start_http_server(settings.metrics.prometheus_port)
            logger.info("Prometheus metrics server started",
                        port=settings.metrics.prometheus_port)

        yield app_context

    finally:
        await app_context.shutdown()


def setup_logging(settings: Settings) -> None:
    """Set up structured logging based on configuration."""
    log_level = settings.metrics.log_level.value

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.metrics.structured_logging
            else structlog.dev.ConsoleRenderer()
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # structlog hands records to the standard library, which needs a handler
    # and a level on the root logger.
    numeric_level = getattr(logging, log_level, logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    logging.getLogger().setLevel(numeric_level)
    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logger.info("Logging initialized", level=log_level)


def setup_signal_handlers(loop: asyncio.AbstractEventLoop, app_context: AppContext) -> None:
    """Set up signal handlers for graceful shutdown."""
    def signal_handler():
        logger.info("Received shutdown signal")
        app_context.shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    logger.info("Signal handlers registered")


async def run_daemon(settings: Settings) -> None:
    """Run refresh passes on a schedule until stopped."""
    logger.info("Starting ogugu refresh daemon")

    async with app_lifecycle(settings, start_scheduler=True) as app_context:
        loop = asyncio.get_running_loop()
        setup_signal_handlers(loop, app_context)

        try:
            await app_context.shutdown_event.wait()

        except asyncio.CancelledError:
            logger.info("Main task cancelled")

        finally:
            logger.info("Daemon shutting down")


async def run_once(settings: Settings) -> int:
    """Run a single refresh pass and exit."""
    logger.info("Running a single refresh pass")

    async with app_lifecycle(settings) as app_context:
        summary = await app_context.create_task(run_refresh_pass(app_context))

    logger.info(
        "One-time run completed",
        feeds=len(summary.results),
        posts_created=summary.posts_created,
        outcomes={k: v.value for k, v in summary.outcomes().items()},
    )
    return 0


async def run_add_feed(settings: Settings, url: str) -> int:
    """Register a feed and exit."""
    async with app_lifecycle(settings) as app_context:
        try:
            feed = await register_feed(app_context.storage, app_context.fetcher, url)
        except (ValueError, FeedError, StoreError) as e:
            logger.error("Could not register feed", url=url, error=str(e))
            return 1

    print(feed.model_dump_json(indent=2))
    return 0


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Ogugu - RSS aggregator feed refresh service"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one refresh pass and exit (don't run as daemon)"
    )

    parser.add_argument(
        "--add",
        metavar="URL",
        help="Register the feed at URL and exit",
        default=None
    )

    parser.add_argument(
        "--log-level",
        choices=[level.value for level in LogLevel],
        default=None,
        help="Set the log level"
    )

    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the application."""
    try:
        args = parse_args(argv)

        settings = load_settings()

        if args.log_level:
            settings.metrics.log_level = LogLevel(args.log_level)

        setup_logging(settings)

        logger.info(
            "Ogugu starting up",
            version=settings.version,
            python_version=sys.version
        )

        if args.add:
            return asyncio.run(run_add_feed(settings, args.add))
        if args.once:
            return asyncio.run(run_once(settings))

        asyncio.run(run_daemon(settings))
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except Exception as e:
        logger.exception("Unhandled exception", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
