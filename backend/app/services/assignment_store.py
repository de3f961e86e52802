"""Durable reads and writes of timetable assignments keyed by their cell."""

from __future__ import annotations

import uuid

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.models.timetable import AssignmentStatus, TimetableAssignment

CELL_COLUMNS = ("user_id", "class_group_id", "period_index", "semester_id")


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Assignment upsert is not supported on {dialect}")


def upsert_assignment(
    db: Session,
    *,
    user_id: str,
    class_session_id: str,
    class_group_id: str,
    period_index: int,
    semester_id: str,
    status: AssignmentStatus,
) -> None:
    insert = _insert_for(db)
    statement = insert(TimetableAssignment).values(
        id=str(uuid.uuid4()),
        user_id=user_id,
        class_session_id=class_session_id,
        class_group_id=class_group_id,
        period_index=period_index,
        semester_id=semester_id,
        status=status,
    )
    statement = statement.on_conflict_do_update(
        index_elements=list(CELL_COLUMNS),
        set_={
            "class_session_id": statement.excluded.class_session_id,
            "status": statement.excluded.status,
        },
    )
    db.execute(statement)


def get_cell(
    db: Session,
    *,
    user_id: str,
    class_group_id: str,
    period_index: int,
    semester_id: str,
) -> TimetableAssignment | None:
    return db.execute(
        select(TimetableAssignment).where(
            TimetableAssignment.user_id == user_id,
            TimetableAssignment.class_group_id == class_group_id,
            TimetableAssignment.period_index == period_index,
            TimetableAssignment.semester_id == semester_id,
        )
        .execution_options(populate_existing=True)
    ).scalars().first()


def for_session(db: Session, class_session_id: str, semester_id: str | None = None) -> list[TimetableAssignment]:
    query = select(TimetableAssignment).where(TimetableAssignment.class_session_id == class_session_id)
    if semester_id is not None:
        query = query.where(TimetableAssignment.semester_id == semester_id)
    query = query.order_by(TimetableAssignment.period_index).execution_options(populate_existing=True)
    return list(db.execute(query).scalars())


def delete_cell(
    db: Session,
    *,
    class_session_id: str,
    class_group_id: str,
    period_index: int,
    semester_id: str,
) -> int:
    result = db.execute(
        delete(TimetableAssignment)
        .where(
            TimetableAssignment.class_session_id == class_session_id,
            TimetableAssignment.class_group_id == class_group_id,
            TimetableAssignment.period_index == period_index,
            TimetableAssignment.semester_id == semester_id,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def delete_for_session(db: Session, class_session_id: str, semester_id: str | None = None) -> int:
    statement = delete(TimetableAssignment).where(TimetableAssignment.class_session_id == class_session_id)
    if semester_id is not None:
        statement = statement.where(TimetableAssignment.semester_id == semester_id)
    result = db.execute(statement.execution_options(synchronize_session=False))
    return result.rowcount or 0


def set_status(db: Session, class_session_id: str, semester_id: str, status: AssignmentStatus) -> int:
    records = for_session(db, class_session_id, semester_id)
    for record in records:
        record.status = status
    db.flush()
    return len(records)
