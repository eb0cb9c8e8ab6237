from __future__ import annotations

from datetime import datetime, timezone

import pytest
import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.pool import StaticPool

from ticketops.apps.imports import repository
from ticketops.core.config import settings
from ticketops.core.observability import metrics

FIXED_NOW = datetime(2025, 1, 20, 8, 30, tzinfo=timezone.utc)


def make_engine() -> sa.engine.Engine:
    """In-memory SQLite shared across threads, with working SAVEPOINTs."""
    engine = sa.create_engine(
        "sqlite+pysqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _no_implicit_tx(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def delivery_table(metadata: sa.MetaData, *, reduced: bool = False) -> sa.Table:
    if reduced:
        return sa.Table(
            "delivery_tickets",
            metadata,
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("date", sa.Text),
            sa.Column("truck", sa.Text),
            sa.Column("qty", sa.Numeric(asdecimal=False)),
            sa.Column("amount", sa.Numeric(asdecimal=False)),
            sa.Column("meta", sa.JSON),
        )
    return sa.Table(
        "delivery_tickets",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("date", sa.Text),
        sa.Column("store", sa.Text),
        sa.Column("product", sa.Text),
        sa.Column("driver", sa.Text),
        sa.Column("truck", sa.Text),
        sa.Column("qty", sa.Numeric(asdecimal=False)),
        sa.Column("price", sa.Numeric(asdecimal=False)),
        sa.Column("tax", sa.Numeric(asdecimal=False)),
        sa.Column("amount", sa.Numeric(asdecimal=False)),
        sa.Column("status", sa.Text),
        sa.Column("notes", sa.Text),
        sa.Column("customerName", sa.Text),
        sa.Column("account", sa.Text),
        sa.Column("meta", sa.JSON),
    )


def service_table(metadata: sa.MetaData) -> sa.Table:
    return sa.Table(
        "service_jobs",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("job_number", sa.Text, nullable=False),
        sa.Column("job_description", sa.Text),
        sa.Column("status", sa.Text),
        sa.Column("customer_name", sa.Text),
        sa.Column("address", sa.Text),
        sa.Column("job_date", sa.Text),
        sa.Column("primary_tech", sa.Text),
        sa.Column("job_amount", sa.Numeric(asdecimal=False)),
        sa.Column("meta", sa.JSON),
    )


@pytest.fixture(autouse=True)
def _sqlite_settings(monkeypatch):
    monkeypatch.setattr(settings, "DB_SCHEMA", "")
    monkeypatch.setattr(settings, "enable_metrics", True)
    metrics.reset_metrics()
    yield
    metrics.reset_metrics()


@pytest.fixture
def engine():
    eng = make_engine()
    repository.imports_table().metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def tables(engine):
    metadata = sa.MetaData()
    delivery = delivery_table(metadata)
    service = service_table(metadata)
    metadata.create_all(engine)
    return {"delivery": delivery, "service": service}


@pytest.fixture
def reduced_tables(engine):
    metadata = sa.MetaData()
    delivery = delivery_table(metadata, reduced=True)
    service = service_table(metadata)
    metadata.create_all(engine)
    return {"delivery": delivery, "service": service}


@pytest.fixture
def seed_import(engine):
    def _seed(rows=None, *, status="pending", meta=None, column_map=None, parsed=...):
        if parsed is ...:
            parsed = None if rows is None else {"rows": rows, "summary": {}}
            if parsed is not None and column_map is not None:
                parsed["columnMap"] = column_map
        with engine.begin() as conn:
            return repository.insert_import(
                conn,
                src="email",
                src_email="dispatch@example.com",
                parsed=parsed,
                status=status,
                meta=meta or {},
                confidence=0.82,
            )

    return _seed


@pytest.fixture
def load_import(engine):
    def _load(import_id):
        with engine.connect() as conn:
            return repository.get_import(conn, import_id)

    return _load


@pytest.fixture
def fetch_rows(engine):
    def _fetch(table: sa.Table) -> list[dict]:
        with engine.connect() as conn:
            return [dict(r._mapping) for r in conn.execute(sa.select(table).order_by(table.c.id))]

    return _fetch


@pytest.fixture
def fixed_now():
    return FIXED_NOW
