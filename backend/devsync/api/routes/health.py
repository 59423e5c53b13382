import time
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devsync.api.response import ResponseEnvelope, success_response
from devsync.db.session import get_db

router = APIRouter(tags=["health"])


@router.get("/healthz", summary="Liveness check", response_model=ResponseEnvelope)
def healthz() -> dict:
    return success_response({"status": "ok"})


@router.get("/readyz", summary="Readiness check", response_model=ResponseEnvelope)
def readyz(request: Request, db: Session = Depends(get_db)) -> JSONResponse:
    checks: dict[str, dict[str, Any]] = {}
    overall_ok = True

    db_check: dict[str, Any] = {"status": "ok"}
    db_start = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
        db_check["latency_ms"] = int((time.perf_counter() - db_start) * 1000)
    except SQLAlchemyError as exc:
        db_check["status"] = "error"
        db_check["error"] = str(exc)
        overall_ok = False
    checks["database"] = db_check

    registry = request.app.state.registry
    checks["realtime"] = {"status": "ok", "connections": registry.connection_count}

    payload = {"status": "ready" if overall_ok else "degraded", "checks": checks}
    status_code = status.HTTP_200_OK if overall_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=success_response(payload))
