"""
PostgreSQL storage for ogugu.

This module implements the feed and post stores on top of an asyncpg pool
owned by ``PostgresStorage``. Updates are one statement per operation; the
``last_modified`` guard lives in SQL so concurrent writers can never move it
backwards. Per-feed claims use session-level advisory locks so overlapping
refresh runs cannot interleave on the same feed, and every store call made
while a claim is held runs on the claiming connection.
"""
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import AsyncIterator, List, Optional

import asyncpg
import structlog

from ogugu.config import DatabaseConfig
from ogugu.db.postgres_pool import create_pool, safe_dsn
from ogugu.models import Feed, Post
from ogugu.store import AlreadyExists, NotFound, Storage, StoreError

logger = structlog.get_logger()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feeds (
    id            TEXT PRIMARY KEY,
    title         TEXT NOT NULL,
    link          TEXT NOT NULL UNIQUE,
    description   TEXT NOT NULL DEFAULT '',
    fetched       BOOLEAN NOT NULL DEFAULT FALSE,
    last_modified TIMESTAMPTZ NULL,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS posts (
    id          TEXT PRIMARY KEY,
    feed_id     TEXT NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
    title       TEXT NOT NULL,
    description TEXT NOT NULL,
    link        TEXT NOT NULL DEFAULT '',
    pub_date    TEXT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS posts_feed_id_created_at_idx
ON posts (feed_id, created_at DESC);
"""

FEED_COLUMNS = "id, title, link, description, fetched, last_modified, created_at, updated_at"
POST_COLUMNS = "id, feed_id, title, description, link, pub_date, created_at, updated_at"

# Errors that mean "the database is unavailable or misbehaving"
DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

# Connection holding the current task's feed claim, if any
_claimed_connection: ContextVar[Optional[asyncpg.Connection]] = ContextVar(
    "ogugu_claimed_connection", default=None
)


@asynccontextmanager
async def _connection(pool: asyncpg.Pool) -> AsyncIterator[asyncpg.Connection]:
    """Use the claiming connection inside a claim, a pooled one otherwise."""
    conn = _claimed_connection.get()
    if conn is not None:
        yield conn
        return
    async with pool.acquire() as conn:
        yield conn


def _row_to_feed(row: asyncpg.Record) -> Feed:
    return Feed(**dict(row))


def _row_to_post(row: asyncpg.Record) -> Post:
    return Post(**dict(row))


class PostgresFeedStore:
    """Feed store backed by the ``feeds`` table."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(
        self,
        title: str,
        link: str,
        description: str = "",
        last_modified: Optional[datetime] = None,
    ) -> Feed:
        try:
            async with _connection(self.pool) as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO feeds (id, title, link, description, last_modified)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {FEED_COLUMNS}
                    """,
                    str(uuid.uuid4()),
                    title,
                    link,
                    description,
                    last_modified,
                )
        except asyncpg.UniqueViolationError as e:
            raise AlreadyExists(f"Feed already registered: {link}") from e
        except DB_ERRORS as e:
            raise StoreError(f"Could not create feed: {e}") from e
        return _row_to_feed(row)

    async def get(self, feed_id: str) -> Feed:
        try:
            async with _connection(self.pool) as conn:
                row = await conn.fetchrow(
                    f"SELECT {FEED_COLUMNS} FROM feeds WHERE id = $1", feed_id
                )
        except DB_ERRORS as e:
            raise StoreError(f"Could not read feed {feed_id}: {e}") from e
        if row is None:
            raise NotFound(f"Feed not found: {feed_id}")
        return _row_to_feed(row)

    async def list_all(self) -> List[Feed]:
        try:
            async with _connection(self.pool) as conn:
                rows = await conn.fetch(
                    f"SELECT {FEED_COLUMNS} FROM feeds ORDER BY created_at, id"
                )
        except DB_ERRORS as e:
            raise StoreError(f"Could not list feeds: {e}") from e
        return [_row_to_feed(r) for r in rows]

    async def mark_fetched(self, feed_id: str, last_modified: Optional[datetime] = None) -> Feed:
        try:
            async with _connection(self.pool) as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE feeds
                    SET fetched = TRUE,
                        last_modified = CASE
                            WHEN $2::timestamptz IS NOT NULL
                                 AND (last_modified IS NULL OR last_modified < $2::timestamptz)
                            THEN $2::timestamptz
                            ELSE last_modified
                        END,
                        updated_at = NOW()
                    WHERE id = $1
                    RETURNING {FEED_COLUMNS}
                    """,
                    feed_id,
                    last_modified,
                )
        except DB_ERRORS as e:
            raise StoreError(f"Could not mark feed {feed_id} fetched: {e}") from e
        if row is None:
            raise NotFound(f"Feed not found: {feed_id}")
        return _row_to_feed(row)

    async def update_last_modified(self, feed_id: str, timestamp: datetime) -> Feed:
        try:
            async with _connection(self.pool) as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE feeds
                    SET last_modified = $2, updated_at = NOW()
                    WHERE id = $1
                      AND (last_modified IS NULL OR last_modified < $2)
                    RETURNING {FEED_COLUMNS}
                    """,
                    feed_id,
                    timestamp,
                )
        except DB_ERRORS as e:
            raise StoreError(f"Could not update last_modified of feed {feed_id}: {e}") from e
        if row is None:
            # Either the feed is gone or the stored value is already newer
            return await self.get(feed_id)
        return _row_to_feed(row)

    async def delete(self, feed_id: str) -> bool:
        try:
            async with _connection(self.pool) as conn:
                status = await conn.execute("DELETE FROM feeds WHERE id = $1", feed_id)
        except DB_ERRORS as e:
            raise StoreError(f"Could not delete feed {feed_id}: {e}") from e
        return status.endswith(" 1")

    @asynccontextmanager
    async def claim(self, feed_id: str) -> AsyncIterator[Optional[Feed]]:
        try:
            conn = await self.pool.acquire()
        except DB_ERRORS as e:
            raise StoreError(f"Could not acquire a connection to claim feed {feed_id}: {e}") from e

        try:
            try:
                locked = await conn.fetchval(
                    "SELECT pg_try_advisory_lock(hashtextextended($1, 0))", feed_id
                )
            except DB_ERRORS as e:
                raise StoreError(f"Could not lock feed {feed_id}: {e}") from e

            if not locked:
                logger.debug("Feed already claimed", feed_id=feed_id)
                yield None
                return

            token = _claimed_connection.set(conn)
            try:
                try:
                    row = await conn.fetchrow(
                        f"SELECT {FEED_COLUMNS} FROM feeds WHERE id = $1", feed_id
                    )
                except DB_ERRORS as e:
                    raise StoreError(f"Could not read feed {feed_id}: {e}") from e
                yield _row_to_feed(row) if row else None
            finally:
                _claimed_connection.reset(token)
                await conn.execute(
                    "SELECT pg_advisory_unlock(hashtextextended($1, 0))", feed_id
                )
        finally:
            await self.pool.release(conn)


class PostgresPostStore:
    """Post store backed by the ``posts`` table."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(
        self,
        feed_id: str,
        title: str,
        description: str,
        link: str = "",
        pub_date: Optional[str] = None,
    ) -> Post:
        try:
            async with _connection(self.pool) as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO posts (id, feed_id, title, description, link, pub_date)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING {POST_COLUMNS}
                    """,
                    str(uuid.uuid4()),
                    feed_id,
                    title,
                    description,
                    link,
                    pub_date,
                )
        except asyncpg.ForeignKeyViolationError as e:
            raise NotFound(f"Feed not found: {feed_id}") from e
        except DB_ERRORS as e:
            raise StoreError(f"Could not create post for feed {feed_id}: {e}") from e
        return _row_to_post(row)

    async def list_for_feed(self, feed_id: str, limit: int = 50) -> List[Post]:
        try:
            async with _connection(self.pool) as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {POST_COLUMNS} FROM posts
                    WHERE feed_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    feed_id,
                    limit,
                )
        except DB_ERRORS as e:
            raise StoreError(f"Could not list posts of feed {feed_id}: {e}") from e
        return [_row_to_post(r) for r in rows]

    async def count_for_feed(self, feed_id: str) -> int:
        try:
            async with _connection(self.pool) as conn:
                return await conn.fetchval(
                    "SELECT COUNT(*) FROM posts WHERE feed_id = $1", feed_id
                )
        except DB_ERRORS as e:
            raise StoreError(f"Could not count posts of feed {feed_id}: {e}") from e


class PostgresStorage(Storage):
    """Feed and post stores sharing one asyncpg pool, which this storage owns."""

    def __init__(self, pool: asyncpg.Pool, dsn: str):
        super().__init__(PostgresFeedStore(pool), PostgresPostStore(pool))
        self.pool = pool
        self.dsn = dsn

    @classmethod
    async def create(cls, config: DatabaseConfig) -> "PostgresStorage":
        """
        Connect to PostgreSQL and ensure the schema exists.

        Args:
            config: Database configuration

        Returns:
            PostgresStorage: Storage bound to a new pool
        """
        try:
            pool = await create_pool(
                config.dsn,
                min_size=config.min_pool_size,
                max_size=config.max_pool_size,
                command_timeout=config.command_timeout,
                connect_attempts=config.connect_attempts,
            )
        except DB_ERRORS as e:
            raise StoreError(f"Could not connect to PostgreSQL: {e}") from e

        try:
            async with pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except DB_ERRORS as e:
            await pool.close()
            raise StoreError(f"Could not initialise PostgreSQL storage: {e}") from e

        logger.info("PostgreSQL storage initialized", dsn=safe_dsn(config.dsn))
        return cls(pool, config.dsn)

    async def close(self) -> None:
        """Close the connection pool."""
        logger.info("Closing PostgreSQL connection pool", dsn=safe_dsn(self.dsn))
        await self.pool.close()
