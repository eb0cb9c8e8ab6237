from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable, Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Connection

from ticketops.core.config import settings
from ticketops.core.database import db_schema

from .dto import ImportRecord

JSON_DOCUMENT = sa.JSON().with_variant(JSONB(), "postgresql")


@lru_cache(maxsize=8)
def _imports_table(name: str, schema: str | None) -> sa.Table:
    metadata = sa.MetaData()
    return sa.Table(
        name,
        metadata,
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True),
        sa.Column("src", sa.Text()),
        sa.Column("src_email", sa.Text()),
        sa.Column("attached_files", JSON_DOCUMENT),
        sa.Column("ocr_text", sa.Text()),
        sa.Column("parsed", JSON_DOCUMENT),
        sa.Column("confidence", sa.Numeric(asdecimal=False)),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("meta", JSON_DOCUMENT),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        schema=schema,
    )


def imports_table() -> sa.Table:
    return _imports_table(settings.IMPORTS_TABLE, db_schema())


def _row_to_record(row) -> ImportRecord:
    return ImportRecord(
        id=row.id,
        status=row.status,
        parsed=row.parsed,
        meta=dict(row.meta or {}),
        src=row.src,
        src_email=row.src_email,
        confidence=row.confidence,
        created_at=row.created_at,
        processed_at=row.processed_at,
    )


_RECORD_COLUMNS = (
    "id",
    "status",
    "parsed",
    "meta",
    "src",
    "src_email",
    "confidence",
    "created_at",
    "processed_at",
)


def _select():
    t = imports_table()
    return sa.select(*(t.c[name] for name in _RECORD_COLUMNS))


def get_import(conn: Connection, import_id: int) -> ImportRecord | None:
    t = imports_table()
    row = conn.execute(_select().where(t.c.id == import_id)).fetchone()
    return _row_to_record(row) if row else None


def lock_import(conn: Connection, import_id: int) -> ImportRecord | None:
    """Re-read the import with a row lock held until the transaction ends.

    The FOR UPDATE clause is dropped on SQLite.
    """
    t = imports_table()
    row = conn.execute(_select().where(t.c.id == import_id).with_for_update()).fetchone()
    return _row_to_record(row) if row else None


def list_imports(
    conn: Connection,
    statuses: Sequence[str] | None = None,
    limit: int = 50,
) -> list[ImportRecord]:
    t = imports_table()
    stmt = _select()
    if statuses:
        stmt = stmt.where(t.c.status.in_(list(statuses)))
    stmt = stmt.order_by(t.c.created_at.desc(), t.c.id.desc()).limit(limit)
    return [_row_to_record(r) for r in conn.execute(stmt).fetchall()]


def list_reclassify_candidates(conn: Connection, exclude_statuses: Iterable[str]) -> list[ImportRecord]:
    t = imports_table()
    stmt = (
        _select()
        .where(t.c.parsed.isnot(None))
        .where(t.c.status.notin_(list(exclude_statuses)))
        .order_by(t.c.id)
    )
    return [_row_to_record(r) for r in conn.execute(stmt).fetchall()]


def guarded_update(
    conn: Connection,
    import_id: int,
    values: dict[str, Any],
    allowed_statuses: Iterable[str],
) -> int:
    """UPDATE the import only while its status is one of ``allowed_statuses``.

    Returns the affected row count; 0 means the status moved underneath us.
    """
    t = imports_table()
    stmt = (
        sa.update(t)
        .where(t.c.id == import_id)
        .where(t.c.status.in_(list(allowed_statuses)))
        .values(**values)
    )
    return conn.execute(stmt).rowcount


def update_meta(conn: Connection, import_id: int, meta: dict[str, Any]) -> int:
    t = imports_table()
    return conn.execute(sa.update(t).where(t.c.id == import_id).values(meta=meta)).rowcount


def insert_import(conn: Connection, **values: Any) -> int:
    """Create an import row; ingestion owns this in production, CLIs and tests use it."""
    t = imports_table()
    return conn.execute(sa.insert(t).values(**values).returning(t.c.id)).scalar_one()
