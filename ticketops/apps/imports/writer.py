"""Single-statement bulk insert into an introspected target table."""
from __future__ import annotations

import uuid
from typing import Any, Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ticketops.core.observability.logging import get_logger

from .dto import TargetSchema
from .errors import BatchWriteError

logger = get_logger(__name__)

JSON_DOCUMENT = sa.JSON().with_variant(JSONB(), "postgresql")


def _is_json(data_type: str) -> bool:
    return data_type.lower() in ("json", "jsonb")


def build_table(schema: TargetSchema) -> sa.Table:
    """Core table whose columns are exactly the snapshot's columns."""
    metadata = sa.MetaData()
    columns = []
    for info in schema.columns:
        column_type = JSON_DOCUMENT if _is_json(info.data_type) else sa.types.NullType()
        is_id = info.column_name.lower() == "id"
        columns.append(
            sa.Column(
                info.column_name,
                column_type,
                primary_key=is_id,
                nullable=info.is_nullable,
                # ids are generated by the store and read back through RETURNING
                server_default=sa.FetchedValue() if is_id else None,
            )
        )
    return sa.Table(schema.table, metadata, *columns, schema=schema.schema)


def _normalize_id(value: Any) -> Any:
    return str(value) if isinstance(value, uuid.UUID) else value


def write_batch(conn: Connection, schema: TargetSchema, records: Sequence[dict[str, Any]]) -> list[Any]:
    """Insert ``records`` with one executemany INSERT ... RETURNING id.

    Returned ids follow the order of ``records``. Keys outside the snapshot
    are dropped; a key missing from some records binds NULL there.
    """
    if not records:
        raise ValueError("write_batch requires at least one record")

    table = build_table(schema)
    id_column = schema.resolve("id")
    if id_column is None:
        raise BatchWriteError(schema.table, "table has no id column to return")

    allowed = set(schema.column_names)
    keys: list[str] = []
    dropped: set[str] = set()
    for record in records:
        for key in record:
            if key not in allowed:
                dropped.add(key)
            elif key not in keys:
                keys.append(key)
    if dropped:
        logger.warning(
            "batch_unknown_columns_dropped",
            extra={"table": schema.table, "columns": sorted(dropped)},
        )
    if not keys:
        raise BatchWriteError(schema.table, "no writable columns in batch")

    params = [{key: record.get(key) for key in keys} for record in records]
    stmt = sa.insert(table).returning(table.c[id_column], sort_by_parameter_order=True)
    try:
        result = conn.execute(stmt, params)
        ids = [_normalize_id(row[0]) for row in result.all()]
    except SQLAlchemyError as exc:
        logger.error(
            "batch_write_failed",
            extra={"table": schema.table, "rows": len(params), "error": str(exc).splitlines()[0]},
        )
        raise BatchWriteError(schema.table, str(exc).splitlines()[0]) from exc

    if len(ids) != len(params):
        raise BatchWriteError(
            schema.table, f"expected {len(params)} ids from RETURNING, got {len(ids)}"
        )
    logger.info("batch_written", extra={"table": schema.table, "rows": len(ids)})
    return ids
