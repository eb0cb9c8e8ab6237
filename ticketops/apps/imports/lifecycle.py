"""Review lifecycle of a ticket import: draft, accept, reject, reclassify.

Accept runs the whole reconciliation chain for one import::

    load -> classify -> introspect target -> validate/map (delivery)
         -> map/dedupe (service) -> batch insert -> guarded status write

The batch insert and the status write share one transaction. The status
write runs in a SAVEPOINT and only matches while the import is still in a
non-terminal status, so two concurrent accepts cannot both succeed.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ticketops.core.config import settings
from ticketops.core.database import db_schema, ensure_engine
from ticketops.core.observability.logging import get_logger, set_import_id
from ticketops.core.observability.metrics import (
    add_rows_failed,
    add_rows_inserted,
    increment_accept_errors,
    increment_accept_total,
    increment_drafts_saved,
    increment_reclassified,
    increment_rejected,
    increment_status_update_failures,
    record_accept_duration,
)

from . import repository
from .classifier import classify, infer_import_type
from .dedup import dedupe_service_records
from .dto import AcceptResult, Detection, ImportRecord, IndexedRecord, Mapped, RejectedRow
from .errors import (
    AlreadyAcceptedError,
    ImportLifecycleError,
    ImportNotFoundError,
    InvalidRequestError,
    InvalidTransitionError,
    NoRowsSelectedError,
    NotProcessedError,
)
from .mapper import apply_column_map, map_delivery_row, map_service_row
from .policies import (
    DELIVERY_FIELD_ALIASES,
    IMPORT_TYPE_DELIVERY,
    IMPORT_TYPE_SERVICE,
    META_COLUMN,
    REASON_UNMAPPABLE,
    SCHEDULED_STATUS_TOKENS,
    SERVICE_FIELD_ALIASES,
    ZERO,
)
from .schema import SchemaIntrospector
from .status import NON_TERMINAL_STATUSES, ImportStatus, ensure_transition, parse_status
from .validators import parse_number, partition_delivery_rows
from .writer import write_batch

logger = get_logger(__name__)

_NON_TERMINAL = [s.value for s in NON_TERMINAL_STATUSES]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


def target_table(import_type: str) -> str:
    if import_type == IMPORT_TYPE_DELIVERY:
        return settings.DELIVERY_TABLE
    return settings.SERVICE_TABLE


def expected_columns(import_type: str) -> list[str]:
    fields = DELIVERY_FIELD_ALIASES if import_type == IMPORT_TYPE_DELIVERY else SERVICE_FIELD_ALIASES
    return ["id", *fields, META_COLUMN]


def _as_number(value: Any) -> Decimal:
    number = parse_number(value)
    return number if number is not None else ZERO


def _plain(number: Decimal) -> int | float:
    return int(number) if number == number.to_integral_value() else float(number)


def calculate_summary(rows: Sequence[Any]) -> dict[str, Any]:
    """Review-screen totals; recomputed whenever rows change."""
    scheduled_jobs = 0
    scheduled_revenue = ZERO
    sales_total = ZERO
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        amount = _as_number(row.get("amount"))
        status = str(row.get("status") or "").lower()
        if any(token in status for token in SCHEDULED_STATUS_TOKENS):
            scheduled_jobs += 1
            scheduled_revenue += amount
        sales_total += amount
    return {
        "totalRows": len(rows),
        "scheduledJobs": scheduled_jobs,
        "scheduledRevenue": _plain(scheduled_revenue),
        "salesTotal": _plain(sales_total),
    }


def _load(conn: Connection, import_id: int) -> ImportRecord:
    record = repository.get_import(conn, import_id)
    if record is None:
        raise ImportNotFoundError(import_id)
    return record


def _raise_lost_race(conn: Connection, import_id: int, action: str) -> None:
    current = _load(conn, import_id)
    if parse_status(current.status) is ImportStatus.ACCEPTED and action == "accept":
        raise AlreadyAcceptedError("This import was accepted by a concurrent request")
    raise InvalidTransitionError(current.status, action.replace("_", " "))


def select_rows(rows: Sequence[Any], included_rows: Sequence[int] | None) -> list[tuple[int, Any]]:
    """Selected rows as ``(index, row)`` in input order."""
    if included_rows is None:
        return list(enumerate(rows))
    picked: set[int] = set()
    for index in included_rows:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidRequestError(f"includedRows must contain row indices, got {index!r}")
        if index < 0 or index >= len(rows):
            raise InvalidRequestError(
                f"includedRows index {index} is out of range for {len(rows)} rows"
            )
        picked.add(index)
    return [(index, rows[index]) for index in sorted(picked)]


def _prepare_delivery(
    selected: list[tuple[int, Any]],
    column_map: Mapping[str, Any],
    schema,
    import_id: int,
    imported_at: str,
) -> tuple[list[IndexedRecord], list[RejectedRow]]:
    originals = dict(selected)
    renamed = [
        (index, apply_column_map(row, column_map) if isinstance(row, Mapping) else row)
        for index, row in selected
    ]
    accepted, failed = partition_delivery_rows(renamed)
    records: list[IndexedRecord] = []
    for index, row in accepted:
        result = map_delivery_row(row, schema, import_id, imported_at)
        if isinstance(result, Mapped):
            records.append(IndexedRecord(index=index, record=result.record))
        else:
            failed.append(RejectedRow(index=index, row=row, reason=REASON_UNMAPPABLE))
    # report the rows as stored, before any column-map renaming
    failed = [
        RejectedRow(index=f.index, row=_original_row(originals[f.index]), reason=f.reason)
        for f in sorted(failed, key=lambda f: f.index)
    ]
    return records, failed


def _original_row(row: Any) -> dict[str, Any]:
    return dict(row) if isinstance(row, Mapping) else {"value": row}


def _prepare_service(
    selected: list[tuple[int, Any]],
    column_map: Mapping[str, Any],
    import_id: int,
    imported_at: str,
    today,
) -> tuple[list[IndexedRecord], list[RejectedRow]]:
    entries = []
    failed: list[RejectedRow] = []
    for index, row in selected:
        if not isinstance(row, Mapping):
            failed.append(RejectedRow(index=index, row=_original_row(row), reason=REASON_UNMAPPABLE))
            continue
        record = map_service_row(apply_column_map(row, column_map), import_id, imported_at, today)
        entries.append((index, row, record))
    survivors, dropped = dedupe_service_records(entries)
    failed = sorted(failed + dropped, key=lambda f: f.index)
    return survivors, failed


def accept_import(
    import_id: int,
    *,
    included_rows: Sequence[int] | None = None,
    engine: Engine | None = None,
    introspector: SchemaIntrospector | None = None,
    now: datetime | None = None,
) -> AcceptResult:
    """Convert the selected rows of an import into target records."""
    start = time.time()
    set_import_id(import_id)
    try:
        result = _accept(import_id, included_rows, engine, introspector, now)
    except ImportLifecycleError as exc:
        increment_accept_errors(exc.error)
        raise
    finally:
        record_accept_duration((time.time() - start) * 1000.0)
        set_import_id(None)
    increment_accept_total(result.import_type)
    add_rows_inserted(result.inserted)
    add_rows_failed(result.failed)
    return result


def _accept(
    import_id: int,
    included_rows: Sequence[int] | None,
    engine: Engine | None,
    introspector: SchemaIntrospector | None,
    now: datetime | None,
) -> AcceptResult:
    if included_rows is not None and len(included_rows) == 0:
        raise NoRowsSelectedError()

    engine = ensure_engine(engine)
    with engine.connect() as conn:
        record = _load(conn, import_id)

    ensure_transition(record.status, "accept")
    rows = record.rows
    if not rows:
        raise NotProcessedError()
    selected = select_rows(rows, included_rows)
    if not selected:
        raise NoRowsSelectedError()

    detection = classify(record)
    import_type = detection.type
    logger.info(
        "accept_started",
        extra={
            "import_id": import_id,
            "import_type": import_type,
            "confidence": detection.confidence,
            "selected_rows": len(selected),
            "total_rows": len(rows),
        },
    )

    introspector = introspector or SchemaIntrospector(engine, db_schema())
    table = target_table(import_type)
    schema = introspector.require_schema(table, expected_columns(import_type))

    moment = now or _utcnow()
    imported_at = _iso(moment)
    if import_type == IMPORT_TYPE_DELIVERY:
        records, failed = _prepare_delivery(
            selected, record.column_map, schema, import_id, imported_at
        )
    else:
        records, failed = _prepare_service(
            selected, record.column_map, import_id, imported_at, moment.date()
        )

    result = AcceptResult(
        import_id=import_id,
        import_type=import_type,
        ids=[],
        failed_rows=failed,
        detection=detection,
    )
    with engine.begin() as conn:
        current = _lock_unchanged(conn, record)
        if records:
            result.ids = write_batch(conn, schema, [r.record for r in records])
        result.status_updated = _write_accepted(conn, current, result, imported_at)

    logger.info(
        "accept_done",
        extra={
            "import_id": import_id,
            "import_type": import_type,
            "table": table,
            "inserted": result.inserted,
            "failed": result.failed,
            "status_updated": result.status_updated,
        },
    )
    return result


def _lock_unchanged(conn: Connection, record: ImportRecord) -> ImportRecord:
    """Lock the import and make sure it still holds the rows that were mapped."""
    current = repository.lock_import(conn, record.id)
    if current is None:
        raise ImportNotFoundError(record.id)
    if parse_status(current.status) not in NON_TERMINAL_STATUSES:
        _raise_lost_race(conn, record.id, "accept")
    if current.parsed != record.parsed or current.meta != record.meta:
        raise InvalidTransitionError(
            current.status,
            "accept",
            "Import was modified while it was being accepted; reload and retry",
        )
    return current


def _write_accepted(conn: Connection, record: ImportRecord, result: AcceptResult, accepted_at: str) -> bool:
    parsed = dict(record.parsed or {})
    parsed["acceptedIds"] = list(result.ids)
    parsed["failedRows"] = [f.as_dict() for f in result.failed_rows]
    meta = dict(record.meta or {})
    meta.update(
        {
            "acceptedAt": accepted_at,
            "importType": result.import_type,
            "created": {result.created_key: list(result.ids)},
        }
    )
    if result.detection is not None:
        meta["detection"] = result.detection.as_meta()

    try:
        with conn.begin_nested():
            count = repository.guarded_update(
                conn,
                record.id,
                {"status": ImportStatus.ACCEPTED.value, "parsed": parsed, "meta": meta},
                _NON_TERMINAL,
            )
    except SQLAlchemyError as exc:
        # Records are already written; the import keeps its previous status.
        increment_status_update_failures()
        logger.warning(
            "status_update_failed",
            extra={"import_id": record.id, "error": str(exc).splitlines()[0]},
        )
        return False
    if count == 0:
        _raise_lost_race(conn, record.id, "accept")
    return True


def save_draft(
    import_id: int,
    rows: Sequence[Any],
    *,
    column_map: Mapping[str, Any] | None = None,
    engine: Engine | None = None,
    now: datetime | None = None,
) -> ImportRecord:
    """Replace the reviewed rows of a non-terminal import and refresh its summary."""
    if not isinstance(rows, list) or not rows:
        raise InvalidRequestError("rows must be a non-empty list")
    engine = ensure_engine(engine)
    moment = now or _utcnow()
    with engine.begin() as conn:
        record = _load(conn, import_id)
        target = ensure_transition(record.status, "save_draft")
        if not record.rows:
            raise NotProcessedError("Import must be processed before it can be reviewed")

        parsed = dict(record.parsed or {})
        parsed["rows"] = list(rows)
        parsed["summary"] = calculate_summary(rows)
        if column_map is not None:
            parsed["columnMap"] = dict(column_map)
        meta = dict(record.meta or {})
        meta["draftSavedAt"] = _iso(moment)

        count = repository.guarded_update(
            conn, import_id, {"parsed": parsed, "meta": meta}, _NON_TERMINAL
        )
        if count == 0:
            _raise_lost_race(conn, import_id, "save_draft")

    increment_drafts_saved()
    logger.info("draft_saved", extra={"import_id": import_id, "rows": len(rows)})
    record.parsed = parsed
    record.meta = meta
    record.status = target.value
    return record


def reject_import(
    import_id: int,
    *,
    reason: str | None = None,
    engine: Engine | None = None,
    now: datetime | None = None,
) -> ImportRecord:
    engine = ensure_engine(engine)
    moment = now or _utcnow()
    with engine.begin() as conn:
        record = _load(conn, import_id)
        target = ensure_transition(record.status, "reject")
        meta = dict(record.meta or {})
        meta["rejectedAt"] = _iso(moment)
        if reason:
            meta["rejectionReason"] = reason
        count = repository.guarded_update(
            conn, import_id, {"status": target.value, "meta": meta}, _NON_TERMINAL
        )
        if count == 0:
            _raise_lost_race(conn, import_id, "reject")

    increment_rejected()
    logger.info("import_rejected", extra={"import_id": import_id})
    record.status = target.value
    record.meta = meta
    return record


def reclassify_delivery_imports(
    *,
    engine: Engine | None = None,
    min_confidence: float | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Re-run delivery detection on imports typed as service (or untyped).

    Imports detected as delivery at or above ``min_confidence`` get
    ``meta.importType = "delivery"`` plus reclassification stamps.
    """
    engine = ensure_engine(engine)
    threshold = settings.RECLASSIFY_MIN_CONFIDENCE if min_confidence is None else min_confidence
    stamp = _iso(now or _utcnow())

    with engine.connect() as conn:
        candidates = repository.list_reclassify_candidates(conn, [ImportStatus.ACCEPTED.value])
    candidates = [
        c
        for c in candidates
        if str((c.meta or {}).get("importType") or "").strip().lower() in ("", IMPORT_TYPE_SERVICE)
    ]

    summary: dict[str, Any] = {"total": len(candidates), "reclassified": 0, "skipped": 0, "details": []}
    for candidate in candidates:
        detection: Detection = infer_import_type(candidate.column_map, candidate.rows)
        if detection.type != IMPORT_TYPE_DELIVERY or detection.confidence < threshold:
            summary["skipped"] += 1
            summary["details"].append(
                {
                    "id": candidate.id,
                    "status": "skipped",
                    "reason": "not_delivery"
                    if detection.type != IMPORT_TYPE_DELIVERY
                    else "confidence_too_low",
                    "confidence": detection.confidence,
                }
            )
            continue

        meta = dict(candidate.meta or {})
        meta.update(
            {
                "importType": IMPORT_TYPE_DELIVERY,
                "reclassified_at": stamp,
                "reclassified_by": "system",
                "detection": detection.as_meta(),
            }
        )
        try:
            with engine.begin() as conn:
                repository.update_meta(conn, candidate.id, meta)
        except SQLAlchemyError as exc:
            logger.error(
                "reclassify_update_failed",
                extra={"import_id": candidate.id, "error": str(exc).splitlines()[0]},
            )
            summary["skipped"] += 1
            summary["details"].append(
                {"id": candidate.id, "status": "error", "message": str(exc).splitlines()[0]}
            )
            continue
        summary["reclassified"] += 1
        summary["details"].append(
            {
                "id": candidate.id,
                "status": "reclassified",
                "confidence": detection.confidence,
                "hits": list(detection.hits),
            }
        )

    increment_reclassified(float(summary["reclassified"]))
    logger.info(
        "reclassify_done",
        extra={k: summary[k] for k in ("total", "reclassified", "skipped")},
    )
    return summary
