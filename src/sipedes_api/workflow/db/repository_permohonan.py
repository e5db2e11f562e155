"""
Permohonan Repository (PostgreSQL)

asyncpg backend for permohonan aggregates. One row per aggregate in
``sipedes.permohonan`` plus its ordered timeline in ``sipedes.permohonan_timeline``.
"""

import json
from datetime import date
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple
from uuid import UUID

import asyncpg
from loguru import logger

from sipedes_api.workflow.db.repository_base import PermohonanRepository
from sipedes_api.workflow.db.repository_base import empty_status_counts
from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.exceptions import ConcurrentModification
from sipedes_api.workflow.models.document import DocumentRecord
from sipedes_api.workflow.models.filters import PermohonanFilter
from sipedes_api.workflow.models.permohonan import Permohonan
from sipedes_api.workflow.models.permohonan import Requester
from sipedes_api.workflow.models.permohonan import ServiceRef
from sipedes_api.workflow.models.timeline import TimelineEntry

SCHEMA = "sipedes"

# Latest timeline timestamp; "most recent" ordering uses it instead of a stored column
_SELECT_PERMOHONAN = f"""
    SELECT p.*, lt.updated_at
    FROM {SCHEMA}.permohonan p
    JOIN LATERAL (
        SELECT MAX(t.occurred_at) AS updated_at
        FROM {SCHEMA}.permohonan_timeline t
        WHERE t.permohonan_id = p.permohonan_id
    ) lt ON TRUE
"""


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_filter_clause(criteria: PermohonanFilter, args: Optional[List[Any]] = None) -> Tuple[str, List[Any]]:
    """
    Translate a PermohonanFilter into a SQL WHERE clause over alias ``p``.

    Args:
        criteria: Filter to translate
        args: Positional arguments already bound (placeholders continue after them)

    Returns:
        Tuple of (clause starting with " WHERE " or empty string, bound arguments)
    """
    args = list(args or [])
    clauses = []

    def bind(value: Any) -> str:
        args.append(value)
        return f"${len(args)}"

    if criteria.status is not None:
        clauses.append(f"p.status = {bind(criteria.status.value)}")
    if criteria.service_id is not None:
        clauses.append(f"p.service_id = {bind(criteria.service_id)}")
    if criteria.requester_id is not None:
        clauses.append(f"p.requester_id = {bind(criteria.requester_id)}")
    if criteria.date_range is not None:
        if criteria.date_range.start is not None:
            clauses.append(f"p.created_at >= {bind(criteria.date_range.start)}")
        if criteria.date_range.end is not None:
            clauses.append(f"p.created_at < {bind(criteria.date_range.end)}")
    if criteria.search_text is not None:
        pattern = bind(f"%{_escape_like(criteria.search_text)}%")
        clauses.append(
            f"(p.tracking_number ILIKE {pattern} OR p.service_name ILIKE {pattern} OR p.requester_name ILIKE {pattern})"
        )

    if not clauses:
        return "", args
    return " WHERE " + " AND ".join(clauses), args


def _load_json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _dump_document(document: Optional[DocumentRecord]) -> Optional[str]:
    if document is None:
        return None
    return json.dumps(document.model_dump(mode="json"))


def row_to_permohonan(row: Dict[str, Any], timeline_rows: Sequence[Dict[str, Any]]) -> Permohonan:
    """Assemble an aggregate from its row and its timeline rows (ordered by seq)."""
    result_document = _load_json(row.get("result_document"))
    return Permohonan(
        permohonan_id=row["permohonan_id"],
        tracking_number=row["tracking_number"],
        requester=Requester(
            requester_id=row["requester_id"],
            name=row["requester_name"],
            national_id=row["requester_national_id"],
        ),
        service=ServiceRef(service_id=row["service_id"], name=row["service_name"]),
        purpose=row["purpose"],
        status=PermohonanStatus(row["status"]),
        rejection_reason=row["rejection_reason"],
        documents=tuple(DocumentRecord(**d) for d in _load_json(row["documents"]) or []),
        result_document=DocumentRecord(**result_document) if result_document else None,
        timeline=tuple(
            TimelineEntry(
                status=PermohonanStatus(t["status"]),
                timestamp=t["occurred_at"],
                note=t["note"],
                actor=t["actor"],
            )
            for t in timeline_rows
        ),
        version=row["version"],
    )


class PostgresPermohonanRepository(PermohonanRepository):
    """Permohonan repository backed by PostgreSQL via asyncpg."""

    def __init__(self, pool):
        """
        Initialize repository.

        Args:
            pool: asyncpg.Pool (or DomainDBPool) exposing ``acquire()``
        """
        self.pool = pool

    # ────────────────────────────────────────────────────────────────────────
    # Reads
    # ────────────────────────────────────────────────────────────────────────

    async def _hydrate(self, conn: asyncpg.Connection, rows: Sequence[Any]) -> List[Permohonan]:
        if not rows:
            return []
        ids = [row["permohonan_id"] for row in rows]
        timeline_rows = await conn.fetch(
            f"""
            SELECT permohonan_id, seq, status, occurred_at, note, actor
            FROM {SCHEMA}.permohonan_timeline
            WHERE permohonan_id = ANY($1::uuid[])
            ORDER BY permohonan_id, seq
            """,
            ids,
        )
        by_id: Dict[UUID, List[Dict[str, Any]]] = {}
        for t in timeline_rows:
            by_id.setdefault(t["permohonan_id"], []).append(dict(t))
        return [row_to_permohonan(dict(row), by_id.get(row["permohonan_id"], [])) for row in rows]

    async def _fetch_one(self, where: str, *args: Any) -> Optional[Permohonan]:
        async with self.pool.acquire() as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                row = await conn.fetchrow(f"{_SELECT_PERMOHONAN} WHERE {where}", *args)
                if row is None:
                    return None
                found = await self._hydrate(conn, [row])
                return found[0]

    async def find_by_id(self, permohonan_id: UUID) -> Optional[Permohonan]:
        return await self._fetch_one("p.permohonan_id = $1", permohonan_id)

    async def find_by_tracking_number(self, tracking_number: str) -> Optional[Permohonan]:
        return await self._fetch_one("UPPER(p.tracking_number) = UPPER($1)", tracking_number.strip())

    async def search(
        self,
        criteria: PermohonanFilter,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Permohonan]:
        where, args = build_filter_clause(criteria)
        query = f"{_SELECT_PERMOHONAN}{where} ORDER BY lt.updated_at DESC, p.tracking_number DESC"
        if limit is not None:
            args.append(limit)
            query += f" LIMIT ${len(args)}"
        if offset:
            args.append(offset)
            query += f" OFFSET ${len(args)}"

        async with self.pool.acquire() as conn:
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                rows = await conn.fetch(query, *args)
                return await self._hydrate(conn, rows)

    async def count(self, criteria: PermohonanFilter) -> int:
        where, args = build_filter_clause(criteria)
        async with self.pool.acquire() as conn:
            return await conn.fetchval(f"SELECT COUNT(*) FROM {SCHEMA}.permohonan p{where}", *args)

    async def count_by_status(self, criteria: Optional[PermohonanFilter] = None) -> Dict[PermohonanStatus, int]:
        where, args = build_filter_clause(criteria or PermohonanFilter())
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT p.status, COUNT(*) AS total FROM {SCHEMA}.permohonan p{where} GROUP BY p.status",
                *args,
            )
        counts = empty_status_counts()
        for row in rows:
            counts[PermohonanStatus(row["status"])] = row["total"]
        return counts

    async def count_by_service(self) -> Dict[int, int]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT service_id, COUNT(*) AS total FROM {SCHEMA}.permohonan GROUP BY service_id"
            )
        return {row["service_id"]: row["total"] for row in rows}

    # ────────────────────────────────────────────────────────────────────────
    # Writes
    # ────────────────────────────────────────────────────────────────────────

    async def _insert_timeline(self, conn: asyncpg.Connection, permohonan: Permohonan, start: int) -> None:
        entries = permohonan.timeline[start:]
        if not entries:
            return
        await conn.executemany(
            f"""
            INSERT INTO {SCHEMA}.permohonan_timeline (permohonan_id, seq, status, occurred_at, note, actor)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            [
                (permohonan.permohonan_id, start + i + 1, e.status.value, e.timestamp, e.note, e.actor)
                for i, e in enumerate(entries)
            ],
        )

    async def save(self, permohonan: Permohonan) -> Permohonan:
        documents = json.dumps([d.model_dump(mode="json") for d in permohonan.documents])
        result_document = _dump_document(permohonan.result_document)

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                if permohonan.version == 1:
                    try:
                        await conn.execute(
                            f"""
                            INSERT INTO {SCHEMA}.permohonan (
                                permohonan_id, tracking_number, requester_id, requester_name,
                                requester_national_id, service_id, service_name, purpose, status,
                                rejection_reason, documents, result_document, version, created_at
                            )
                            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11::jsonb, $12::jsonb, $13, $14)
                            """,
                            permohonan.permohonan_id,
                            permohonan.tracking_number,
                            permohonan.requester.requester_id,
                            permohonan.requester.name,
                            permohonan.requester.national_id,
                            permohonan.service.service_id,
                            permohonan.service.name,
                            permohonan.purpose,
                            permohonan.status.value,
                            permohonan.rejection_reason,
                            documents,
                            result_document,
                            permohonan.version,
                            permohonan.created_at,
                        )
                    except asyncpg.UniqueViolationError as e:
                        raise ConcurrentModification(
                            f"Permohonan {permohonan.tracking_number} already exists",
                            permohonan_id=str(permohonan.permohonan_id),
                        ) from e
                    await self._insert_timeline(conn, permohonan, 0)
                else:
                    status = await conn.execute(
                        f"""
                        UPDATE {SCHEMA}.permohonan
                        SET status = $2,
                            rejection_reason = $3,
                            documents = $4::jsonb,
                            result_document = $5::jsonb,
                            purpose = $6,
                            version = $7
                        WHERE permohonan_id = $1 AND version = $8
                        """,
                        permohonan.permohonan_id,
                        permohonan.status.value,
                        permohonan.rejection_reason,
                        documents,
                        result_document,
                        permohonan.purpose,
                        permohonan.version,
                        permohonan.version - 1,
                    )
                    if status != "UPDATE 1":
                        raise ConcurrentModification(
                            f"Permohonan {permohonan.tracking_number} was modified concurrently",
                            permohonan_id=str(permohonan.permohonan_id),
                            expected_version=permohonan.version - 1,
                        )
                    stored_entries = await conn.fetchval(
                        f"SELECT COUNT(*) FROM {SCHEMA}.permohonan_timeline WHERE permohonan_id = $1",
                        permohonan.permohonan_id,
                    )
                    await self._insert_timeline(conn, permohonan, stored_entries)

        logger.debug(
            "Permohonan saved",
            tracking_number=permohonan.tracking_number,
            version=permohonan.version,
            status=permohonan.status.value,
        )
        return permohonan

    async def next_tracking_sequence(self, day: date) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                f"""
                INSERT INTO {SCHEMA}.tracking_sequences (day, last_value)
                VALUES ($1, 1)
                ON CONFLICT (day) DO UPDATE
                SET last_value = {SCHEMA}.tracking_sequences.last_value + 1
                RETURNING last_value
                """,
                day,
            )

    async def health_check(self) -> bool:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.error(f"Permohonan database health check failed: {e}")
            return False
