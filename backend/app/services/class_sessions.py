from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, TransientIOError, ValidationError
from app.models.class_group import ClassGroup
from app.models.class_session import ClassSession
from app.models.classroom import Classroom
from app.models.course import Course
from app.models.instructor import Instructor
from app.models.user import User
from app.services import assignment_store
from app.services.audit import SESSION_ENTITY, log_activity
from app.services.authorization import ensure_can_manage_program, is_admin
from app.services.calendar_cache import CalendarCache
from app.services.resource_requests import ResourceRequestWorkflow, session_program_id

logger = logging.getLogger(__name__)

SESSION_DELETED_REASON = "withdrawn because the class was deleted"


def _require(db: Session, model, record_id: str, label: str):
    record = db.get(model, record_id)
    if record is None:
        raise NotFoundError(label, record_id)
    return record


def create_class_session(
    db: Session,
    actor: User,
    *,
    course_id: str,
    class_group_id: str,
    instructor_id: str,
    classroom_id: str,
    period_count: int = 1,
) -> ClassSession:
    if period_count < 1:
        raise ValidationError("A class must last at least one period")
    _require(db, Course, course_id, "Course")
    group = _require(db, ClassGroup, class_group_id, "Class group")
    _require(db, Instructor, instructor_id, "Instructor")
    _require(db, Classroom, classroom_id, "Classroom")
    ensure_can_manage_program(actor, group.program_id)

    session = ClassSession(
        course_id=course_id,
        class_group_id=group.id,
        instructor_id=instructor_id,
        classroom_id=classroom_id,
        period_count=period_count,
        program_id=group.program_id,
        user_id=actor.id,
    )
    db.add(session)
    db.flush()
    log_activity(
        db,
        user=actor,
        action="class_session.create",
        entity_type=SESSION_ENTITY,
        entity_id=session.id,
        details={"course_id": course_id, "class_group_id": group.id, "period_count": period_count},
    )
    db.commit()
    db.refresh(session)
    return session


def list_class_sessions(db: Session, actor: User, *, program_id: str | None = None) -> list[ClassSession]:
    query = select(ClassSession).order_by(ClassSession.created_at)
    if program_id is not None:
        query = query.where(ClassSession.program_id == program_id)
    elif not is_admin(actor) and actor.program_id:
        query = query.where(ClassSession.program_id == actor.program_id)
    return list(db.execute(query).scalars())


def delete_class_session(db: Session, cache: CalendarCache, actor: User, class_session_id: str) -> list[str]:
    """Delete a class with its placements; a pending request is withdrawn with it."""
    session = _require(db, ClassSession, class_session_id, "Class session")
    ensure_can_manage_program(actor, session_program_id(db, session))

    workflow = ResourceRequestWorkflow(db, cache)
    try:
        removed = assignment_store.delete_for_session(db, session.id)
        warnings = workflow.withdraw_for_session(session.id, actor, reason=SESSION_DELETED_REASON)
        log_activity(
            db,
            user=actor,
            action="class_session.delete",
            entity_type=SESSION_ENTITY,
            entity_id=session.id,
            details={"removed_assignments": removed},
        )
        db.delete(session)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Deleting class session %s failed", class_session_id, exc_info=True)
        raise TransientIOError() from exc
    cache.invalidate()
    return warnings
