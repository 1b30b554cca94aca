"""
PostgreSQL connection pool helpers for ogugu.

Pool creation is retried with exponential backoff, since the database is often
still starting when the service comes up. The caller owns the returned pool
and closes it.
"""
import asyncio

import asyncpg
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()

# Errors worth waiting out while the server comes up
TRANSIENT_CONNECT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.CannotConnectNowError,
    asyncpg.TooManyConnectionsError,
)


def _log_retry(retry_state) -> None:
    logger.warning(
        "PostgreSQL not reachable yet, retrying",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


def safe_dsn(dsn: str) -> str:
    """Strip credentials from a DSN for logging."""
    return dsn.split("@")[-1] if "@" in dsn else dsn


async def create_pool(
    dsn: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: int = 30,
    connect_attempts: int = 5,
) -> asyncpg.Pool:
    """
    Create an asyncpg connection pool, retrying while the server is unreachable.

    Args:
        dsn: PostgreSQL connection string
        min_size: Minimum number of connections in the pool
        max_size: Maximum number of connections in the pool
        command_timeout: Default timeout for commands in seconds
        connect_attempts: How many times to try before giving up

    Returns:
        asyncpg.Pool: A new pool, owned by the caller
    """
    logger.info(
        "Creating PostgreSQL connection pool",
        dsn=safe_dsn(dsn),
        min_size=min_size,
        max_size=max_size,
    )
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(TRANSIENT_CONNECT_ERRORS),
        stop=stop_after_attempt(connect_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            pool = await asyncpg.create_pool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
            )
    return pool
