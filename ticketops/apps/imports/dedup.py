"""Last-write-wins collapse of service jobs sharing a job number."""
from __future__ import annotations

from typing import Any, Iterable, Mapping

from .dto import IndexedRecord, RejectedRow
from .policies import REASON_DUPLICATE_JOB_NUMBER, REASON_MISSING_JOB_NUMBER


def job_key(record: Mapping[str, Any]) -> str | None:
    value = record.get("job_number")
    if value is None:
        return None
    key = str(value).strip()
    return key or None


def dedupe_service_records(
    entries: Iterable[tuple[int, Mapping[str, Any], dict[str, Any]]],
) -> tuple[list[IndexedRecord], list[RejectedRow]]:
    """Collapse ``(index, source_row, record)`` entries by job number.

    The last occurrence of a key wins. Survivors keep the input order of their
    winning rows; losers and key-less rows come back as rejected rows so every
    selected row is still accounted for.
    """
    dropped: list[RejectedRow] = []
    winners: dict[str, tuple[int, Mapping[str, Any], dict[str, Any]]] = {}
    for index, row, record in entries:
        key = job_key(record)
        if key is None:
            dropped.append(RejectedRow(index=index, row=dict(row), reason=REASON_MISSING_JOB_NUMBER))
            continue
        previous = winners.get(key)
        if previous is not None:
            dropped.append(
                RejectedRow(index=previous[0], row=dict(previous[1]), reason=REASON_DUPLICATE_JOB_NUMBER)
            )
        winners[key] = (index, row, record)

    survivors = [
        IndexedRecord(index=index, record=record)
        for index, _, record in sorted(winners.values(), key=lambda entry: entry[0])
    ]
    dropped.sort(key=lambda rejected: rejected.index)
    return survivors, dropped
