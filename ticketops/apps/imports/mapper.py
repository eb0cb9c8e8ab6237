from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from .dto import Mapped, MappingResult, TargetSchema, Unmappable
from .policies import (
    DELIVERY_FIELD_ALIASES,
    META_COLUMN,
    PROVENANCE_ROW_KEYS,
    RAW_COLUMNS_KEY,
    SERVICE_DEFAULT_AMOUNT,
    SERVICE_DEFAULT_STATUS,
    SERVICE_DEFAULT_TEXT,
    SERVICE_FIELD_ALIASES,
    SERVICE_TEXT_FIELDS,
)
from .validators import first_present, lowered_keys, parse_number

# whole tokens of a reflected type name, e.g. "NUMERIC(10, 2)" or "double precision"
_NUMERIC_TYPE_TOKENS = frozenset(
    (
        "int", "int2", "int4", "int8", "integer", "smallint", "bigint", "tinyint",
        "numeric", "decimal", "number", "real", "double", "float", "float4", "float8", "money",
    )
)


def apply_column_map(row: Mapping[Any, Any], column_map: Mapping[Any, Any] | None) -> dict[str, Any]:
    """Rename source keys through a reviewer column map.

    Keys already present under the target name are kept.
    """
    if not column_map:
        return dict(row)
    lookup = {str(k): v for k, v in column_map.items() if v}
    out: dict[str, Any] = {}
    renamed: dict[str, Any] = {}
    for key, value in row.items():
        target = lookup.get(str(key))
        if target and str(target) != str(key):
            renamed[str(target)] = value
        else:
            out[str(key)] = value
    for target, value in renamed.items():
        out.setdefault(target, value)
    return out


def _plain_number(number: Decimal) -> int | float:
    if number == number.to_integral_value():
        return int(number)
    return float(number)


def _is_numeric_type(data_type: str) -> bool:
    return not _NUMERIC_TYPE_TOKENS.isdisjoint(re.findall(r"[a-z0-9]+", data_type.lower()))


def provenance(row: Mapping[Any, Any], import_id: int, imported_at: str) -> dict[str, Any]:
    keyed = lowered_keys(row)
    meta: dict[str, Any] = {"importId": import_id, "importedAt": imported_at}
    for key in PROVENANCE_ROW_KEYS:
        meta[key] = keyed.get(key.lower())
    raw_columns = keyed.get(RAW_COLUMNS_KEY.lower())
    if raw_columns is not None:
        meta[RAW_COLUMNS_KEY] = raw_columns
    return meta


def map_delivery_row(
    row: Mapping[Any, Any],
    schema: TargetSchema,
    import_id: int,
    imported_at: str,
) -> MappingResult:
    record: dict[str, Any] = {}
    for target, aliases in DELIVERY_FIELD_ALIASES.items():
        column = schema.resolve(target)
        if column is None:
            continue
        hit = first_present(row, aliases)
        if hit is None:
            continue
        value = hit[1]
        info = schema.column(column)
        if info is not None and _is_numeric_type(info.data_type) and isinstance(value, str):
            number = parse_number(value)
            if number is None:
                continue
            value = _plain_number(number)
        record[column] = value

    meta_column = schema.resolve(META_COLUMN)
    if meta_column is not None:
        record[meta_column] = provenance(row, import_id, imported_at)

    if not record:
        return Unmappable
    return Mapped(record)


def map_service_row(
    row: Mapping[Any, Any],
    import_id: int,
    imported_at: str,
    today: date,
) -> dict[str, Any]:
    """Fixed service-job shape; every field falls back to a named default."""
    values: dict[str, Any] = {}
    for target, aliases in SERVICE_FIELD_ALIASES.items():
        hit = first_present(row, aliases)
        values[target] = hit[1] if hit else None

    record: dict[str, Any] = {}
    for target in SERVICE_TEXT_FIELDS:
        value = values[target]
        record[target] = str(value).strip() if value is not None else SERVICE_DEFAULT_TEXT

    record["job_date"] = values["job_date"] or today.isoformat()
    amount = parse_number(values["job_amount"])
    record["job_amount"] = _plain_number(amount) if amount is not None else SERVICE_DEFAULT_AMOUNT
    status = values["status"]
    record["status"] = str(status).strip() if status is not None else SERVICE_DEFAULT_STATUS
    record[META_COLUMN] = provenance(row, import_id, imported_at)
    return record
