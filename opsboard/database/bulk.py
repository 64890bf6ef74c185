"""
Batch insert helpers.

Portable INSERT ... ON CONFLICT for PostgreSQL (production) and SQLite
(tests and local demo), chunked so large batches stay under driver
parameter limits.
"""

from typing import Any, Dict, List, Sequence

import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 200


def _insert_for(session: AsyncSession, model: Any):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported on dialect {dialect!r}")


async def upsert_rows(
    session: AsyncSession,
    model: Any,
    records: List[Dict[str, Any]],
    conflict_columns: Sequence[str],
) -> int:
    """
    Insert records, overwriting every non-key column of rows that collide on
    ``conflict_columns``. The primary key of an existing row is preserved.
    """
    if not records:
        return 0

    key_columns = set(conflict_columns) | {c.name for c in model.__table__.primary_key.columns}
    update_columns = [c for c in records[0] if c not in key_columns]

    for i in range(0, len(records), CHUNK_SIZE):
        chunk = records[i:i + CHUNK_SIZE]
        stmt = _insert_for(session, model).values(chunk)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={column: stmt.excluded[column] for column in update_columns},
        )
        await session.execute(stmt)

    logger.debug("Upserted records", table=model.__tablename__, count=len(records))
    return len(records)


async def insert_ignore(session: AsyncSession, model: Any, records: List[Dict[str, Any]]) -> int:
    """Insert records, skipping any that collide with an existing row."""
    if not records:
        return 0

    for i in range(0, len(records), CHUNK_SIZE):
        chunk = records[i:i + CHUNK_SIZE]
        stmt = _insert_for(session, model).values(chunk).on_conflict_do_nothing()
        await session.execute(stmt)

    logger.info("Inserted records", table=model.__tablename__, count=len(records))
    return len(records)
