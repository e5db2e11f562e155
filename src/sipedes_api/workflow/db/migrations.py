"""Database migrations for the permohonan store.

This module handles schema initialization by executing the schema.sql file.
All DDL is stored in schema.sql for maintainability.
"""

from pathlib import Path

import asyncpg
from loguru import logger

SCHEMA_NAME = "sipedes"

REQUIRED_TABLES = [
    "permohonan",
    "permohonan_timeline",
    "tracking_sequences",
]


def load_schema_sql() -> str:
    """Read schema.sql from this package.

    Raises
    ------
    FileNotFoundError
        If schema.sql is not shipped with the package
    """
    schema_path = Path(__file__).parent / "schema.sql"
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")
    return schema_path.read_text(encoding="utf-8")


async def run_migrations(pool: asyncpg.Pool) -> None:
    """Run database migrations to create schema and tables.

    All SQL uses IF NOT EXISTS, so it's safe to run multiple times.

    Parameters
    ----------
    pool : asyncpg.Pool
        Database connection pool

    Raises
    ------
    FileNotFoundError
        If schema.sql file not found
    asyncpg.PostgresError
        If migration fails
    """
    schema_sql = load_schema_sql()

    async with pool.acquire() as conn:
        try:
            await conn.execute(schema_sql)
            logger.info(
                "Permohonan database migrations completed",
                schema=SCHEMA_NAME,
                tables=len(REQUIRED_TABLES),
            )
        except Exception as e:
            logger.error(f"Migration failed: {e}")
            raise


async def verify_schema(pool: asyncpg.Pool) -> dict:
    """Verify that all required tables exist.

    Returns
    -------
    dict
        {
            "schema_exists": bool,
            "tables": list[str],
            "missing_tables": list[str],
            "all_present": bool
        }
    """
    async with pool.acquire() as conn:
        schema_exists = await conn.fetchval(
            "SELECT EXISTS (SELECT 1 FROM information_schema.schemata WHERE schema_name = $1)",
            SCHEMA_NAME,
        )
        rows = await conn.fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = $1
            ORDER BY table_name
            """,
            SCHEMA_NAME,
        )

    tables = [row["table_name"] for row in rows]
    missing = [t for t in REQUIRED_TABLES if t not in tables]
    return {
        "schema_exists": bool(schema_exists),
        "tables": tables,
        "missing_tables": missing,
        "all_present": not missing,
    }
