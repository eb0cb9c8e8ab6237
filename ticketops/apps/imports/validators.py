from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from .dto import RejectedRow
from .policies import (
    AMOUNT_ALIASES,
    DATE_ALIASES,
    REASON_VALIDATION_FAILED,
    TICKET_OR_TRUCK_ALIASES,
    ZERO,
)

_NUMBER_NOISE_RE = re.compile(r"[\s$,]")


def is_present(value: Any) -> bool:
    """Defined and, for strings, not blank."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def lowered_keys(row: Mapping[Any, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in row.items():
        # first spelling wins when a row carries the same key in two casings
        out.setdefault(str(key).lower(), value)
    return out


def first_present(row: Mapping[Any, Any], aliases: Iterable[str]) -> tuple[str, Any] | None:
    """First alias (case-insensitive) with a present value, as (alias, value)."""
    keyed = lowered_keys(row)
    for alias in aliases:
        value = keyed.get(alias.lower())
        if is_present(value):
            return alias, value
    return None


def parse_number(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = _NUMBER_NOISE_RE.sub("", value)
        if not cleaned:
            return None
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            return None
    else:
        return None
    if not number.is_finite():
        return None
    return number


def has_date(row: Mapping[Any, Any]) -> bool:
    return first_present(row, DATE_ALIASES) is not None


def has_ticket_or_truck(row: Mapping[Any, Any]) -> bool:
    return first_present(row, TICKET_OR_TRUCK_ALIASES) is not None


def has_amount(row: Mapping[Any, Any]) -> bool:
    keyed = lowered_keys(row)
    for alias in AMOUNT_ALIASES:
        number = parse_number(keyed.get(alias))
        if number is not None and number > ZERO:
            return True
    return False


def is_row_acceptable(row: Mapping[Any, Any]) -> bool:
    """Minimal completeness rule for a delivery row."""
    if not isinstance(row, Mapping):
        return False
    return has_date(row) and has_ticket_or_truck(row) and has_amount(row)


def partition_delivery_rows(
    indexed_rows: Iterable[tuple[int, Mapping[str, Any]]],
) -> tuple[list[tuple[int, Mapping[str, Any]]], list[RejectedRow]]:
    accepted: list[tuple[int, Mapping[str, Any]]] = []
    rejected: list[RejectedRow] = []
    for index, row in indexed_rows:
        if is_row_acceptable(row):
            accepted.append((index, row))
        else:
            original = dict(row) if isinstance(row, Mapping) else {"value": row}
            rejected.append(
                RejectedRow(index=index, row=original, reason=REASON_VALIDATION_FAILED)
            )
    return accepted, rejected
