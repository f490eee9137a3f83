# nudge/db/pool.py
"""
Async PostgreSQL pool for the user store.

Connections hand out dict rows in autocommit mode: the repository issues one
statement per mutation and never opens explicit transactions.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT = 30.0  # seconds


class DatabasePoolManager:
    """Owns the process-wide AsyncConnectionPool between startup and shutdown."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._closed = False

    async def initialize(self) -> None:
        if self.pool is not None:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        pool_config = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )

        try:
            await pool.open(wait=True)
            await self._select_one(pool)
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        logger.info(
            "Database pool initialized",
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
        )

    @staticmethod
    async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        app_name = f"security-nudge-{settings.environment}"
        await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute("SET statement_timeout = '30s'")

    @staticmethod
    async def _select_one(pool: AsyncConnectionPool) -> None:
        async with pool.connection() as conn:
            cur = await conn.execute("SELECT 1 AS ok")
            row = await cur.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Database connection test returned an unexpected result")

    async def close(self) -> None:
        if self.pool is None:
            return

        pool, self.pool = self.pool, None
        self._closed = True
        try:
            await asyncio.wait_for(pool.close(), timeout=CLOSE_TIMEOUT)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if self.pool is None:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        async with self.pool.connection() as conn:
            yield conn

    async def health_check(self) -> dict[str, Any]:
        """Round-trip a trivial query and report pool occupancy."""
        if self.pool is None:
            return {"healthy": False, "error": "Pool not initialized"}

        start_time = time.time()
        try:
            await self._select_one(self.pool)
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {"healthy": False, "error": str(e), "error_type": type(e).__name__}

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "connection_time_ms": round((time.time() - start_time) * 1000, 2),
            "pool_size": stats.get("pool_size", 0),
            "pool_available": stats.get("pool_available", 0),
        }


# Global pool instance
db_pool = DatabasePoolManager()


async def get_db_connection():
    """Get database connection from pool."""
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
