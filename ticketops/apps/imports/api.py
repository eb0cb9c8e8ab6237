import json
import time
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from ticketops.core.config import settings
from ticketops.core.database import get_engine
from ticketops.core.observability.logging import logger, set_trace_id

from . import repository
from .errors import ImportLifecycleError, InvalidRequestError
from .lifecycle import accept_import, reject_import, save_draft
from .status import ImportStatus

router = APIRouter(prefix="/api/imports")


class AcceptRequest(BaseModel):
    importId: int = Field(gt=0)
    includedRows: Optional[list[int]] = None


class FailedRow(BaseModel):
    index: int
    row: dict[str, Any]
    reason: str


class AcceptResponse(BaseModel):
    success: bool = True
    importId: int
    created: dict[str, list[Any]]
    inserted: int
    failed: int
    failedRows: list[FailedRow]
    message: str


class DraftRequest(BaseModel):
    rows: list[dict[str, Any]]
    columnMap: Optional[dict[str, str]] = None


class DraftResponse(BaseModel):
    success: bool = True
    importId: int
    status: str
    summary: dict[str, Any]


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class RejectResponse(BaseModel):
    success: bool = True
    importId: int
    status: str


class ImportListItem(BaseModel):
    id: int
    status: str
    src: Optional[str] = None
    confidence: Optional[float] = None
    createdAt: Optional[str] = None
    importType: Optional[str] = None
    rowCount: int = 0
    acceptedCount: Optional[int] = None
    failedCount: Optional[int] = None
    summary: Optional[dict[str, Any]] = None
    detection: Optional[dict[str, Any]] = None


class ImportListResponse(BaseModel):
    items: list[ImportListItem]


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "message": message},
    )


def _lifecycle_error(exc: ImportLifecycleError, import_id: Any, trace_id: str) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.info
    log(
        "import_request_rejected",
        extra={
            "import_id": import_id,
            "error": exc.error,
            "http_status": exc.http_status,
            "trace_id": trace_id,
        },
    )
    return _error(exc.http_status, exc.error, exc.message)


def register_exception_handlers(app: FastAPI) -> None:
    """Body and query validation failures under the imports API use the error envelope."""

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        if not request.url.path.startswith(router.prefix):
            return await request_validation_exception_handler(request, exc)
        message = "; ".join(
            f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()
        )
        logger.info(
            "import_request_invalid",
            extra={"path": request.url.path, "errors": len(exc.errors())},
        )
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request", message or "Invalid request")


def _in_trace(trace_id: str, fn, *args, **kwargs):
    set_trace_id(trace_id)
    return fn(*args, **kwargs)


@router.post("/accept", response_model=AcceptResponse)
async def accept(
    request: Request,
    engine: Engine = Depends(get_engine),
    trace_header: str | None = Header(None, alias="X-Trace-ID"),
):
    start = time.time()
    trace_id = trace_header or str(uuid.uuid4())
    set_trace_id(trace_id)

    try:
        body = json.loads(await request.body())
    except (ValueError, UnicodeDecodeError):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON", "Request body must be valid JSON")
    if not isinstance(body, dict):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON", "Request body must be a JSON object")
    if not body.get("importId"):
        return _error(status.HTTP_400_BAD_REQUEST, "Missing importId", "importId is required")
    try:
        payload = AcceptRequest.model_validate(body)
    except ValidationError as exc:
        err = InvalidRequestError("; ".join(e["msg"] for e in exc.errors()))
        return _lifecycle_error(err, body.get("importId"), trace_id)

    try:
        result = await run_in_threadpool(
            _in_trace,
            trace_id,
            accept_import,
            payload.importId,
            included_rows=payload.includedRows,
            engine=engine,
        )
    except ImportLifecycleError as exc:
        return _lifecycle_error(exc, payload.importId, trace_id)
    except Exception as exc:
        logger.exception(
            "accept_unexpected_error",
            extra={"import_id": payload.importId, "trace_id": trace_id},
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", str(exc))

    logger.info(
        "accept_request_done",
        extra={
            "import_id": payload.importId,
            "inserted": result.inserted,
            "failed": result.failed,
            "trace_id": trace_id,
            "duration_ms": (time.time() - start) * 1000.0,
        },
    )
    return AcceptResponse(
        importId=payload.importId,
        created={result.created_key: result.ids},
        inserted=result.inserted,
        failed=result.failed,
        failedRows=[FailedRow(**f.as_dict()) for f in result.failed_rows],
        message=result.message,
    )


@router.get("", response_model=ImportListResponse)
def list_imports(
    status_filter: list[str] | None = Query(None, alias="status"),
    limit: int = 50,
    engine: Engine = Depends(get_engine),
):
    statuses = []
    for value in status_filter or []:
        for part in value.split(","):
            part = part.strip()
            if not part:
                continue
            if part not in {s.value for s in ImportStatus}:
                return _error(status.HTTP_400_BAD_REQUEST, "Invalid request", f"Unknown status '{part}'")
            statuses.append(part)
    limit = max(1, min(limit, settings.IMPORTS_LIST_MAX_LIMIT))

    with engine.connect() as conn:
        records = repository.list_imports(conn, statuses or None, limit)

    items = []
    for record in records:
        parsed = record.parsed or {}
        accepted_ids = parsed.get("acceptedIds")
        failed_rows = parsed.get("failedRows")
        items.append(
            ImportListItem(
                id=record.id,
                status=record.status,
                src=record.src,
                confidence=record.confidence,
                createdAt=record.created_at.isoformat() if record.created_at else None,
                importType=record.meta.get("importType"),
                rowCount=len(record.rows),
                acceptedCount=len(accepted_ids) if isinstance(accepted_ids, list) else None,
                failedCount=len(failed_rows) if isinstance(failed_rows, list) else None,
                summary=parsed.get("summary"),
                detection=record.meta.get("detection"),
            )
        )
    return ImportListResponse(items=items)


@router.put("/{import_id}/draft", response_model=DraftResponse)
def put_draft(
    import_id: int,
    payload: DraftRequest,
    engine: Engine = Depends(get_engine),
    trace_header: str | None = Header(None, alias="X-Trace-ID"),
):
    trace_id = trace_header or str(uuid.uuid4())
    set_trace_id(trace_id)
    try:
        record = save_draft(import_id, payload.rows, column_map=payload.columnMap, engine=engine)
    except ImportLifecycleError as exc:
        return _lifecycle_error(exc, import_id, trace_id)
    return DraftResponse(
        importId=import_id,
        status=record.status,
        summary=(record.parsed or {}).get("summary") or {},
    )


@router.post("/{import_id}/reject", response_model=RejectResponse)
def post_reject(
    import_id: int,
    payload: RejectRequest | None = None,
    engine: Engine = Depends(get_engine),
    trace_header: str | None = Header(None, alias="X-Trace-ID"),
):
    trace_id = trace_header or str(uuid.uuid4())
    set_trace_id(trace_id)
    try:
        record = reject_import(
            import_id, reason=payload.reason if payload else None, engine=engine
        )
    except ImportLifecycleError as exc:
        return _lifecycle_error(exc, import_id, trace_id)
    return RejectResponse(importId=import_id, status=record.status)
