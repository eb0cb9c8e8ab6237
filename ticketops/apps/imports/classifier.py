"""Delivery vs. service classification of an import."""
from __future__ import annotations

from typing import Any, Iterable, Mapping

from ticketops.core.observability.logging import get_logger

from .dto import Detection, ImportRecord
from .mapper import apply_column_map
from .policies import (
    DELIVERY_CONFIDENCE_DENOMINATOR,
    DELIVERY_TOKEN_THRESHOLD,
    DELIVERY_TOKENS,
    IMPORT_TYPE_DELIVERY,
    IMPORT_TYPE_SERVICE,
    IMPORT_TYPES,
    QUANTITY_ALIASES,
)
from .validators import first_present

logger = get_logger(__name__)


def _field_names(column_map: Mapping[Any, Any] | None, rows: Iterable[Any]) -> list[str]:
    names = [str(v).lower().strip() for v in (column_map or {}).values() if v is not None]
    seen = set(names)
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        for key in row:
            name = str(key).lower().strip()
            if name not in seen:
                seen.add(name)
                names.append(name)
    return names


def delivery_token_hits(column_map: Mapping[Any, Any] | None, rows: Iterable[Any]) -> tuple[str, ...]:
    names = _field_names(column_map, rows)
    return tuple(token for token in DELIVERY_TOKENS if any(token in name for name in names))


def _confidence(hits: tuple[str, ...]) -> float:
    return min(1.0, len(hits) / DELIVERY_CONFIDENCE_DENOMINATOR)


def infer_import_type(column_map: Mapping[Any, Any] | None, rows: Iterable[Any]) -> Detection:
    """Token-count detection over the parsed field names.

    Used by reclassification, where a stored ``meta.importType`` is exactly
    what is being second-guessed.
    """
    hits = delivery_token_hits(column_map, rows)
    kind = IMPORT_TYPE_DELIVERY if len(hits) >= DELIVERY_TOKEN_THRESHOLD else IMPORT_TYPE_SERVICE
    return Detection(type=kind, confidence=_confidence(hits), hits=hits)


def has_quantity(row: Any) -> bool:
    return isinstance(row, Mapping) and first_present(row, QUANTITY_ALIASES) is not None


def classify(record: ImportRecord) -> Detection:
    override = (record.meta or {}).get("importType")
    normalized = override.strip().lower() if isinstance(override, str) else None
    if normalized in IMPORT_TYPES:
        return Detection(type=normalized, confidence=1.0)
    if override:
        logger.warning(
            "import_type_override_ignored",
            extra={"import_id": record.id, "import_type": str(override)},
        )

    rows = record.rows
    if not rows:
        return Detection(type=IMPORT_TYPE_SERVICE, confidence=0.0)

    column_map = record.column_map
    hits = delivery_token_hits(column_map, rows)
    renamed = (apply_column_map(r, column_map) if isinstance(r, Mapping) else r for r in rows)
    kind = IMPORT_TYPE_DELIVERY if any(has_quantity(r) for r in renamed) else IMPORT_TYPE_SERVICE
    return Detection(type=kind, confidence=_confidence(hits), hits=hits)
