from __future__ import annotations

from datetime import datetime, timezone
import logging

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.notification import NotificationType, RequestNotification
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

NOTIFICATION_FAILED_WARNING = "The change was saved, but the notification could not be delivered."


def _write(
    db: Session,
    *,
    request_id: str,
    title: str,
    message: str,
    notification_type: NotificationType,
    target_department_id: str | None = None,
    user_id: str | None = None,
) -> RequestNotification:
    record = RequestNotification(
        request_id=request_id,
        target_department_id=target_department_id,
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
    )
    db.add(record)
    db.flush()
    return record


def dispatch(
    db: Session,
    *,
    request_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    target_department_id: str | None = None,
    user_id: str | None = None,
) -> str | None:
    """Write one notification inside a savepoint.

    Returns ``None`` on success or a warning string when the write failed; a
    failure never rolls back the caller's transaction.
    """
    try:
        with db.begin_nested():
            _write(
                db,
                request_id=request_id,
                title=title,
                message=message,
                notification_type=notification_type,
                target_department_id=target_department_id,
                user_id=user_id,
            )
    except SQLAlchemyError:
        logger.warning(
            "Notification for request %s (%s) could not be written",
            request_id,
            notification_type.value,
            exc_info=True,
        )
        return NOTIFICATION_FAILED_WARNING
    return None


def notify_department(
    db: Session,
    *,
    request_id: str,
    department_id: str,
    title: str,
    message: str,
    notification_type: NotificationType,
) -> str | None:
    return dispatch(
        db,
        request_id=request_id,
        title=title,
        message=message,
        notification_type=notification_type,
        target_department_id=department_id,
    )


def notify_user(
    db: Session,
    *,
    request_id: str,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType,
) -> str | None:
    return dispatch(
        db,
        request_id=request_id,
        title=title,
        message=message,
        notification_type=notification_type,
        user_id=user_id,
    )


def _visible_to(user: User):
    clauses = [RequestNotification.user_id == user.id]
    if user.role == UserRole.admin:
        clauses.append(RequestNotification.target_department_id.is_not(None))
    elif user.role == UserRole.department_head and user.department_id:
        clauses.append(RequestNotification.target_department_id == user.department_id)
    return or_(*clauses)


def list_for_user(db: Session, user: User, *, unread_only: bool = False, limit: int = 100) -> list[RequestNotification]:
    query = select(RequestNotification).where(_visible_to(user))
    if unread_only:
        query = query.where(RequestNotification.is_read.is_(False))
    query = query.order_by(RequestNotification.created_at.desc()).limit(limit)
    return list(db.execute(query).scalars())


def get_for_user(db: Session, user: User, notification_id: str) -> RequestNotification | None:
    return db.execute(
        select(RequestNotification).where(RequestNotification.id == notification_id, _visible_to(user))
    ).scalars().first()


def mark_read(record: RequestNotification) -> RequestNotification:
    if not record.is_read:
        record.is_read = True
        record.read_at = datetime.now(timezone.utc)
    return record


def mark_all_read(db: Session, user: User) -> int:
    result = db.execute(
        update(RequestNotification)
        .where(_visible_to(user), RequestNotification.is_read.is_(False))
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def mark_request_read_for_user(db: Session, *, request_id: str, user_id: str) -> int:
    result = db.execute(
        update(RequestNotification)
        .where(
            RequestNotification.request_id == request_id,
            RequestNotification.user_id == user_id,
            RequestNotification.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
