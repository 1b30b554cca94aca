"""
Database utilities for ogugu.

This package provides asyncpg pool creation for the PostgreSQL storage backend.
"""

from ogugu.db.postgres_pool import create_pool, safe_dsn

__all__ = ["create_pool", "safe_dsn"]
