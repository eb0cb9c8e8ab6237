import pytest

from ticketops.apps.imports.errors import SchemaNotFoundError
from ticketops.apps.imports.schema import SchemaIntrospector


def _install_information_schema(engine, rows):
    raw = engine.raw_connection()
    try:
        cur = raw.cursor()
        cur.execute("ATTACH DATABASE ':memory:' AS information_schema")
        cur.execute(
            "CREATE TABLE information_schema.columns ("
            " table_schema TEXT, table_name TEXT, column_name TEXT,"
            " data_type TEXT, is_nullable TEXT, ordinal_position INTEGER)"
        )
        cur.executemany("INSERT INTO information_schema.columns VALUES (?, ?, ?, ?, ?, ?)", rows)
        cur.close()
    finally:
        raw.close()


def test_catalog_path_returns_ordered_columns(engine, tables):
    columns = SchemaIntrospector(engine).get_columns("delivery_tickets")
    names = [c.column_name for c in columns]
    assert names[:3] == ["id", "date", "store"]
    assert "customerName" in names
    meta = next(c for c in columns if c.column_name == "meta")
    assert meta.data_type == "json"
    assert next(c for c in columns if c.column_name == "id").is_nullable is False


def test_information_schema_fallback(engine):
    _install_information_schema(
        engine,
        [
            ("public", "legacy_tickets", "amount", "numeric", "YES", 3),
            ("public", "legacy_tickets", "id", "bigint", "NO", 1),
            ("public", "legacy_tickets", "date", "date", "YES", 2),
            ("other", "legacy_tickets", "ignored", "text", "YES", 1),
        ],
    )
    columns = SchemaIntrospector(engine).get_columns("legacy_tickets")
    assert [(c.column_name, c.data_type, c.is_nullable) for c in columns] == [
        ("id", "bigint", False),
        ("date", "date", True),
        ("amount", "numeric", True),
    ]


def test_missing_table_is_fatal_and_names_expected_columns(engine):
    introspector = SchemaIntrospector(engine)
    assert introspector.get_columns("delivery_tickets") == []
    with pytest.raises(SchemaNotFoundError) as exc_info:
        introspector.require_schema("delivery_tickets", ["id", "date", "truck", "qty"])
    err = exc_info.value
    assert err.http_status == 500
    assert err.error == "Table schema not found"
    assert "delivery_tickets" in err.message
    assert "id, date, truck, qty" in err.message
    assert err.expected_columns == ["id", "date", "truck", "qty"]


def test_require_schema_snapshot_resolves_case_insensitively(engine, tables):
    snapshot = SchemaIntrospector(engine).require_schema("delivery_tickets", ["id"])
    assert snapshot.table == "delivery_tickets"
    assert snapshot.resolve("CUSTOMERNAME") == "customerName"
    assert snapshot.resolve("hazmat_fee") is None
