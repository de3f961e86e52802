from __future__ import annotations

import logging

from sqlalchemy import inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

import app.models  # noqa: F401
from app.core.config import get_settings
from app.db.base import Base
from app.db.session import engine as default_engine
from app.models.semester import ScheduleConfiguration, Semester

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "timetable_assignments": {"id", "user_id", "class_session_id", "class_group_id", "period_index", "semester_id", "status"},
    "resource_requests": {
        "id",
        "class_session_id",
        "status",
        "original_class_group_id",
        "original_period_index",
        "dismissed",
    },
    "request_notifications": {"id", "request_id", "target_department_id", "user_id", "is_read"},
    "schedule_configurations": {"id", "semester_id", "periods_per_day", "class_days_per_week"},
}


def _ensure_resource_request_columns(engine: Engine) -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "resource_requests" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("resource_requests")}
        if "dismissed" not in column_names:
            connection.execute(
                text("ALTER TABLE resource_requests ADD COLUMN dismissed BOOLEAN NOT NULL DEFAULT FALSE")
            )
        if "original_class_group_id" not in column_names:
            connection.execute(text("ALTER TABLE resource_requests ADD COLUMN original_class_group_id VARCHAR(36)"))
        if "original_period_index" not in column_names:
            connection.execute(text("ALTER TABLE resource_requests ADD COLUMN original_period_index INTEGER"))


def _assert_required_columns(engine: Engine) -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def seed_schedule_configuration(engine: Engine) -> ScheduleConfiguration | None:
    """Give the active semester a schedule configuration built from settings defaults."""
    settings = get_settings()
    with Session(engine) as db:
        semester = db.execute(select(Semester).where(Semester.is_active.is_(True))).scalars().first()
        if semester is None:
            return None
        existing = db.execute(
            select(ScheduleConfiguration).where(ScheduleConfiguration.semester_id == semester.id)
        ).scalars().first()
        if existing is not None:
            return existing
        config = ScheduleConfiguration(
            semester_id=semester.id,
            periods_per_day=settings.default_periods_per_day,
            class_days_per_week=settings.default_class_days_per_week,
            period_duration_mins=settings.default_period_duration_mins,
            start_time=settings.default_day_start_time,
        )
        db.add(config)
        db.commit()
        db.refresh(config)
        logger.info("Seeded schedule configuration for semester %s", semester.id)
        return config


def ensure_runtime_schema_compatibility(engine: Engine | None = None) -> None:
    engine = engine or default_engine
    try:
        # Ensure missing tables are present before additive compatibility patches.
        Base.metadata.create_all(bind=engine)
        _ensure_resource_request_columns(engine)
        _assert_required_columns(engine)
        seed_schedule_configuration(engine)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
