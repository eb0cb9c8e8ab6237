from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class ColumnInfo:
    column_name: str
    data_type: str
    is_nullable: bool = True


@dataclass(frozen=True)
class TargetSchema:
    """Column snapshot of one target table, taken once per accept call."""

    table: str
    columns: tuple[ColumnInfo, ...]
    schema: str | None = None

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.column_name for c in self.columns)

    def resolve(self, name: str) -> str | None:
        """Declared column name matching ``name`` case-insensitively."""
        wanted = name.lower()
        for column in self.columns:
            if column.column_name.lower() == wanted:
                return column.column_name
        return None

    def column(self, name: str) -> ColumnInfo | None:
        for column in self.columns:
            if column.column_name == name:
                return column
        return None


@dataclass
class ImportRecord:
    id: int
    status: str
    parsed: dict[str, Any] | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    src: str | None = None
    src_email: str | None = None
    confidence: float | None = None
    created_at: Any = None
    processed_at: Any = None

    @property
    def rows(self) -> list[dict[str, Any]]:
        rows = (self.parsed or {}).get("rows") or []
        return rows if isinstance(rows, list) else []

    @property
    def column_map(self) -> dict[str, str]:
        column_map = (self.parsed or {}).get("columnMap") or {}
        return column_map if isinstance(column_map, dict) else {}


@dataclass(frozen=True)
class Detection:
    type: str
    confidence: float
    hits: tuple[str, ...] = ()

    @property
    def token_count(self) -> int:
        return len(self.hits)

    def as_meta(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "confidence": self.confidence,
            "hits": list(self.hits),
            "tokenCount": self.token_count,
        }


@dataclass(frozen=True)
class Mapped:
    record: dict[str, Any]


class _Unmappable:
    __slots__ = ()

    def __repr__(self) -> str:
        return "Unmappable"

    def __bool__(self) -> bool:
        return False


Unmappable = _Unmappable()

MappingResult = Union[Mapped, _Unmappable]


@dataclass(frozen=True)
class IndexedRecord:
    """A mapped payload remembering which input row produced it."""

    index: int
    record: dict[str, Any]


@dataclass(frozen=True)
class RejectedRow:
    index: int
    row: dict[str, Any]
    reason: str

    def as_dict(self) -> dict[str, Any]:
        return {"index": self.index, "row": self.row, "reason": self.reason}


@dataclass
class AcceptResult:
    import_id: int
    import_type: str
    ids: list[Any]
    failed_rows: list[RejectedRow]
    status_updated: bool = True
    detection: Detection | None = None

    @property
    def inserted(self) -> int:
        return len(self.ids)

    @property
    def failed(self) -> int:
        return len(self.failed_rows)

    @property
    def created_key(self) -> str:
        return "deliveryTickets" if self.import_type == "delivery" else "serviceJobs"

    @property
    def message(self) -> str:
        noun = "delivery tickets" if self.import_type == "delivery" else "service jobs"
        return f"Imported {self.inserted} {noun}, {self.failed} rows failed"
