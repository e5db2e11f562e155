"""
Permohonan Database Connection Pool

Manages the asyncpg connection pool for the permohonan store.
Automatically runs migrations on initialization.

Schema Evolution:
-----------------
When adding/removing/renaming tables in schema.sql:
1. Update the schema.sql file with new DDL
2. Update migrations.REQUIRED_TABLES with new table names
3. For existing deployments, run the migration manually or drop/recreate schema:
   DROP SCHEMA sipedes CASCADE;
   (then restart app to auto-create)
"""

from typing import Optional

import asyncpg
from loguru import logger

from sipedes_api.workflow.db.migrations import REQUIRED_TABLES
from sipedes_api.workflow.db.migrations import run_migrations
from sipedes_api.workflow.db.migrations import verify_schema


class DomainDBPool:
    """Permohonan database connection pool manager."""

    EXPECTED_TABLES = set(REQUIRED_TABLES)

    def __init__(self, connection_string: str):
        """
        Initialize domain DB pool.

        Args:
            connection_string: PostgreSQL connection string for the permohonan database
        """
        self.connection_string = connection_string
        self.pool: Optional[asyncpg.Pool] = None
        self._pool_initialized = False

    async def initialize(self) -> None:
        """
        Initialize connection pool and run migrations.

        Creates the pool, validates it and creates the schema when tables are missing.
        """
        if self._pool_initialized and self.pool is not None:
            logger.debug("Domain DB pool already initialized")
            return

        try:
            logger.info("Initializing permohonan database pool")

            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=2,
                max_size=10,
                command_timeout=60,  # seconds
                timeout=15,  # connection timeout, seconds
                max_cached_statement_lifetime=0,  # no prepared statement caching across DDL
            )

            async with self.pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                if result != 1:
                    raise RuntimeError("Pool validation query failed")

            logger.info("Domain DB pool validated")

            await self._run_migrations()

            self._pool_initialized = True
            logger.success("Permohonan database initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize domain DB pool: {e}", exc_info=True)
            if self.pool:
                await self.pool.close()
                self.pool = None
            raise

    async def _run_migrations(self) -> None:
        """Create the schema from schema.sql unless every expected table already exists."""
        state = await verify_schema(self.pool)
        existing = set(state["tables"])

        if existing >= self.EXPECTED_TABLES:
            logger.info(f"Schema sipedes and all {len(self.EXPECTED_TABLES)} expected tables exist")
            return

        if state["schema_exists"] and existing:
            logger.warning(
                f"Schema sipedes is missing table(s) {sorted(self.EXPECTED_TABLES - existing)} - applying schema.sql"
            )
        else:
            logger.info("Schema sipedes not found - running migrations")

        await run_migrations(self.pool)

        state = await verify_schema(self.pool)
        if not state["all_present"]:
            raise RuntimeError(f"Migration incomplete: missing tables {state['missing_tables']}")
        logger.success(f"All {len(self.EXPECTED_TABLES)} permohonan tables verified successfully")

    async def close(self) -> None:
        """Close the connection pool gracefully."""
        if self.pool:
            logger.info("Closing permohonan database pool")
            await self.pool.close()
            self.pool = None
            self._pool_initialized = False
            logger.info("Domain DB pool closed")

    def acquire(self):
        """
        Acquire a database connection from the pool.

        Returns async context manager that yields a connection.

        Usage:
            async with pool.acquire() as conn:
                result = await conn.fetchrow("SELECT * FROM ...")
        """
        if not self.pool:
            raise RuntimeError("Domain DB pool not initialized - call initialize() first")
        return self.pool.acquire()

    async def health_check(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            if not self.pool:
                return False

            async with self.pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except Exception as e:
            logger.error(f"Domain DB health check failed: {e}")
            return False
