import time
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.engine import Engine

from ticketops.core.config import settings
from ticketops.core.database import get_engine
from ticketops.core.observability.logging import hash_actor_token, logger, set_trace_id
from ticketops.core.observability.metrics import get_metrics, record_ops_duration

from .lifecycle import reclassify_delivery_imports

router = APIRouter(prefix="/api/ops")


def _error(status_code: int, code: str, detail: str):
    raise HTTPException(status_code=status_code, detail={"error": code, "detail": detail})


def _auth_admin(authorization: str | None) -> tuple[str, str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        _error(
            status.HTTP_401_UNAUTHORIZED, "unauthorized", "Missing or invalid Authorization header"
        )
    token = authorization.split(" ", 1)[1].strip()
    allowed = [t.strip() for t in settings.ADMIN_TOKENS.split(",") if t.strip()]
    if not allowed or token not in allowed:
        _error(status.HTTP_403_FORBIDDEN, "forbidden", "Admin token required")
    return token, hash_actor_token(token)


@router.post("/imports/reclassify-delivery", response_model=dict[str, Any])
def reclassify_delivery(
    min_confidence: float | None = Query(None, alias="minConfidence", ge=0.0, le=1.0),
    authorization: str | None = Header(None, alias="Authorization"),
    trace_header: str | None = Header(None, alias="X-Trace-ID"),
    engine: Engine = Depends(get_engine),
):
    start = time.time()
    _, token_hash = _auth_admin(authorization)
    trace_id = trace_header or str(uuid.uuid4())
    set_trace_id(trace_id)

    summary = reclassify_delivery_imports(engine=engine, min_confidence=min_confidence)

    record_ops_duration((time.time() - start) * 1000.0)
    logger.info(
        "ops_reclassify_delivery",
        extra={
            "actor_role": "admin",
            "actor_token_hash": token_hash,
            "trace_id": trace_id,
            "reclassified": summary["reclassified"],
            "duration_ms": (time.time() - start) * 1000.0,
        },
    )
    return {"success": True, "summary": summary}


@router.get("/metrics", response_model=dict[str, Any])
def ops_metrics(authorization: str | None = Header(None, alias="Authorization")):
    _, token_hash = _auth_admin(authorization)
    logger.info("ops_metrics_read", extra={"actor_role": "admin", "actor_token_hash": token_hash})
    return {"metrics": get_metrics()}
