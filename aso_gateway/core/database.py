"""
Process-wide asyncpg pool backing the approval store, audit log and
organization store.

Pool sizing comes from settings (DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE,
DB_COMMAND_TIMEOUT_SECONDS). The maximum size also bounds how many
auto-approval upserts run at once, since each upsert holds one connection.

Lifecycle:
    lifespan startup  -> init_db()
    per request       -> get_db_pool() (creates the pool lazily if startup failed)
    lifespan shutdown -> close_db()
"""

import logging
from typing import Optional

import asyncpg
from asyncpg import Pool

from aso_gateway.core.config import get_settings

logger = logging.getLogger(__name__)

_pool: Optional[Pool] = None


async def init_db() -> Pool:
    """
    Create the pool if it does not exist yet and return it.

    Raises:
        asyncpg.PostgresError: The database rejected the connection.
        OSError: The database host could not be reached.
    """
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()
    _pool = await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout_seconds,
    )
    logger.info(
        f"Store pool ready (min={settings.db_pool_min_size}, max={settings.db_pool_max_size})"
    )
    return _pool


async def get_db_pool() -> Pool:
    return _pool if _pool is not None else await init_db()


async def close_db() -> None:
    """Release every pooled connection. No-op when the pool was never created."""
    global _pool

    pool, _pool = _pool, None
    if pool is not None:
        await pool.close()
