"""Live column discovery for target tables."""
from __future__ import annotations

import time
from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.exc import CompileError, SQLAlchemyError

from ticketops.core.observability.logging import get_logger
from ticketops.core.observability.metrics import record_introspection_duration

from .dto import ColumnInfo, TargetSchema
from .errors import SchemaNotFoundError

logger = get_logger(__name__)

DEFAULT_SCHEMA = "public"

_INFORMATION_SCHEMA_SQL = sa.text(
    """
    SELECT column_name, data_type, is_nullable
    FROM information_schema.columns
    WHERE table_schema = :schema
      AND table_name = :table
    ORDER BY ordinal_position
    """
)


def _type_name(type_, dialect) -> str:
    try:
        return str(type_.compile(dialect=dialect)).lower()
    except CompileError:
        return type(type_).__name__.lower()


def _nullable(value) -> bool:
    if isinstance(value, str):
        return value.strip().upper() != "NO"
    return bool(value)


class SchemaIntrospector:
    """Reads the ordered column list of a table.

    The catalog reflection path runs first; the ``information_schema`` view
    is queried when reflection fails or finds nothing. Each path uses its own
    connection so a failed catalog query cannot poison a caller transaction.
    """

    def __init__(self, engine: Engine, schema: str | None = None):
        self.engine = engine
        self.schema = schema
        self.last_errors: list[str] = []

    def _from_catalog(self, table: str) -> list[ColumnInfo]:
        with self.engine.connect() as conn:
            inspector = sa.inspect(conn)
            columns = inspector.get_columns(table, schema=self.schema)
            return [
                ColumnInfo(
                    column_name=c["name"],
                    data_type=_type_name(c["type"], conn.dialect),
                    is_nullable=_nullable(c.get("nullable", True)),
                )
                for c in columns
            ]

    def _from_information_schema(self, table: str) -> list[ColumnInfo]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _INFORMATION_SCHEMA_SQL,
                {"schema": self.schema or DEFAULT_SCHEMA, "table": table},
            ).fetchall()
        return [
            ColumnInfo(
                column_name=r.column_name,
                data_type=str(r.data_type).lower(),
                is_nullable=_nullable(r.is_nullable),
            )
            for r in rows
        ]

    def get_columns(self, table: str) -> list[ColumnInfo]:
        """Ordered columns of ``table``; empty when neither path finds any."""
        errors: list[str] = []
        self.last_errors = errors
        for path, reader in (
            ("catalog", self._from_catalog),
            ("information_schema", self._from_information_schema),
        ):
            start = time.time()
            try:
                columns = reader(table)
            except SQLAlchemyError as exc:
                errors.append(f"{path}: {exc.__class__.__name__}")
                logger.warning(
                    "schema_introspection_path_failed",
                    extra={"table": table, "path": path, "error": str(exc).splitlines()[0]},
                )
                continue
            finally:
                record_introspection_duration((time.time() - start) * 1000.0, path)
            if columns:
                logger.debug(
                    "schema_introspected",
                    extra={"table": table, "path": path, "column_count": len(columns)},
                )
                return columns
        return []

    def require_schema(self, table: str, expected_columns: Sequence[str]) -> TargetSchema:
        """Snapshot of ``table`` or ``SchemaNotFoundError`` naming the expected columns."""
        columns = self.get_columns(table)
        if not columns:
            cause = "; ".join(self.last_errors) or None
            logger.error(
                "schema_not_found",
                extra={"table": table, "expected_columns": list(expected_columns)},
            )
            raise SchemaNotFoundError(table, expected_columns, cause)
        return TargetSchema(table=table, columns=tuple(columns), schema=self.schema)
