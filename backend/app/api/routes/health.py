from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from app.db.session import engine

router = APIRouter()

REQUIRED_TABLES = (
    "users",
    "class_sessions",
    "timetable_assignments",
    "resource_requests",
    "request_notifications",
    "schedule_configurations",
)


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    db_ok = True
    missing_tables: list[str] = []
    db_error: str | None = None

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            table_names = set(inspect(connection).get_table_names())
            missing_tables = [name for name in REQUIRED_TABLES if name not in table_names]
    except Exception as exc:  # pragma: no cover - environment dependent
        db_ok = False
        db_error = str(exc)

    ready = db_ok and not missing_tables
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {"ok": db_ok, "missing_tables": missing_tables, "error": db_error},
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
