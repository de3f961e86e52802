"""Cross-department borrowing of instructors and classrooms.

A program head who places a session that uses an instructor or classroom
owned by another department gets a ``tentative`` assignment plus a pending
request addressed to that department. Department heads approve (the
assignment becomes ``confirmed``) or reject (the assignment is removed, or
put back where it was at approval time). The requester may withdraw a
pending request or dismiss a resolved one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StateError,
    TransientIOError,
    ValidationError,
)
from app.models.class_group import ClassGroup
from app.models.class_session import ClassSession
from app.models.classroom import Classroom
from app.models.course import Course
from app.models.instructor import Instructor
from app.models.notification import NotificationType
from app.models.program import Program
from app.models.resource_request import (
    ACTIVE_REQUEST_STATUSES,
    RequestStatus,
    ResourceRequest,
    ResourceType,
)
from app.models.timetable import AssignmentStatus
from app.models.user import User
from app.services import assignment_store
from app.services.audit import REQUEST_ENTITY, log_activity
from app.services.authorization import (
    can_manage_assignments_for_program,
    ensure_can_manage_program,
    ensure_can_review_department,
    is_admin,
)
from app.services.calendar_cache import CalendarCache
from app.services.conflict_service import check_placement
from app.services.notifications import mark_request_read_for_user, notify_department, notify_user
from app.services.timetable_context import get_active_semester, group_calendar, load_context

logger = logging.getLogger(__name__)

ACTION_REMOVED = "removed_from_timetable"
ACTION_RESTORED = "restored"

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.pending: frozenset({RequestStatus.approved, RequestStatus.rejected, RequestStatus.cancelled}),
    RequestStatus.approved: frozenset({RequestStatus.rejected}),
    RequestStatus.rejected: frozenset(),
    RequestStatus.cancelled: frozenset(),
}


@dataclass(frozen=True)
class ForeignResource:
    resource_type: ResourceType
    resource_id: str
    department_id: str
    name: str


@dataclass
class WorkflowResult:
    request: ResourceRequest
    created: bool = False
    action: str | None = None
    restored_to_period: int | None = None
    warnings: list[str] = field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def session_program_id(db: Session, session: ClassSession) -> str | None:
    if session.program_id:
        return session.program_id
    group = db.get(ClassGroup, session.class_group_id)
    return group.program_id if group is not None else None


def find_foreign_resource(db: Session, session: ClassSession) -> ForeignResource | None:
    """Return the resource of ``session`` owned by a department other than its program's.

    The instructor is checked first; a classroom only counts when it has a
    preferred department.
    """
    program_id = session_program_id(db, session)
    program = db.get(Program, program_id) if program_id else None
    home_department = program.department_id if program is not None else None
    if home_department is None:
        return None

    instructor = db.get(Instructor, session.instructor_id)
    if instructor is not None and instructor.department_id and instructor.department_id != home_department:
        return ForeignResource(
            resource_type=ResourceType.instructor,
            resource_id=instructor.id,
            department_id=instructor.department_id,
            name=instructor.full_name,
        )

    classroom = db.get(Classroom, session.classroom_id)
    if (
        classroom is not None
        and classroom.preferred_department_id
        and classroom.preferred_department_id != home_department
    ):
        return ForeignResource(
            resource_type=ResourceType.classroom,
            resource_id=classroom.id,
            department_id=classroom.preferred_department_id,
            name=classroom.name,
        )
    return None


def active_request_for_session(db: Session, class_session_id: str) -> ResourceRequest | None:
    return db.execute(
        select(ResourceRequest)
        .where(
            ResourceRequest.class_session_id == class_session_id,
            ResourceRequest.status.in_(ACTIVE_REQUEST_STATUSES),
        )
        .order_by(ResourceRequest.requested_at.desc())
    ).scalars().first()


def ensure_transition(request: ResourceRequest, target: RequestStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[request.status]:
        raise StateError(
            f"Cannot change a {request.status.value} request to {target.value}",
            details={"request_id": request.id, "status": request.status.value},
        )


class ResourceRequestWorkflow:
    def __init__(self, db: Session, cache: CalendarCache | None = None) -> None:
        self.db = db
        self.cache = cache

    def _get(self, request_id: str) -> ResourceRequest:
        request = self.db.get(ResourceRequest, request_id)
        if request is None:
            raise NotFoundError("Resource request", request_id)
        return request

    def _session(self, class_session_id: str) -> ClassSession:
        session = self.db.get(ClassSession, class_session_id)
        if session is None:
            raise NotFoundError("Class session", class_session_id)
        return session

    def _describe(self, request: ResourceRequest) -> tuple[str, str]:
        """Resource name and course code for notification text."""
        if request.resource_type == ResourceType.instructor:
            instructor = self.db.get(Instructor, request.resource_id)
            resource_name = f"instructor {instructor.full_name}" if instructor else "an instructor"
        else:
            classroom = self.db.get(Classroom, request.resource_id)
            resource_name = f"classroom {classroom.name}" if classroom else "a classroom"
        session = self.db.get(ClassSession, request.class_session_id)
        course = self.db.get(Course, session.course_id) if session is not None else None
        return resource_name, course.code if course is not None else "a class"

    def _commit(self, semester_id: str | None = None) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            if self.cache is not None:
                self.cache.invalidate(semester_id)
            logger.warning("Resource request transition could not be saved", exc_info=True)
            raise TransientIOError() from exc
        if self.cache is not None:
            self.cache.invalidate(semester_id)

    def create(
        self,
        class_session_id: str,
        actor: User,
        *,
        resource: ForeignResource | None = None,
        notes: str | None = None,
        commit: bool = True,
    ) -> WorkflowResult:
        session = self._session(class_session_id)
        program_id = session_program_id(self.db, session)
        ensure_can_manage_program(actor, program_id)

        existing = active_request_for_session(self.db, session.id)
        if existing is not None:
            return WorkflowResult(request=existing, created=False)

        resource = resource or find_foreign_resource(self.db, session)
        if resource is None:
            raise ValidationError("This class only uses resources of its own department; no request is needed")

        request = ResourceRequest(
            resource_type=resource.resource_type,
            resource_id=resource.resource_id,
            class_session_id=session.id,
            requester_id=actor.id,
            requesting_program_id=program_id,
            target_department_id=resource.department_id,
            status=RequestStatus.pending,
            notes=notes,
        )
        self.db.add(request)
        self.db.flush()

        semester_id = None
        try:
            semester_id = get_active_semester(self.db).id
        except StateError:
            logger.debug("No active semester; request %s created without a placement", request.id)
        if semester_id is not None:
            assignment_store.set_status(self.db, session.id, semester_id, AssignmentStatus.tentative)

        program = self.db.get(Program, program_id) if program_id else None
        course = self.db.get(Course, session.course_id)
        result = WorkflowResult(request=request, created=True)
        warning = notify_department(
            self.db,
            request_id=request.id,
            department_id=resource.department_id,
            title="New resource request",
            message=(
                f"{program.name if program else 'A program'} requests {resource.resource_type.value} "
                f"{resource.name} for {course.code if course else 'a class'}."
            ),
            notification_type=NotificationType.request_created,
        )
        if warning:
            result.warnings.append(warning)

        log_activity(
            self.db,
            user=actor,
            action="resource_request.create",
            entity_type=REQUEST_ENTITY,
            entity_id=request.id,
            details={
                "class_session_id": session.id,
                "resource_type": resource.resource_type.value,
                "resource_id": resource.resource_id,
                "target_department_id": resource.department_id,
            },
        )
        if commit:
            self._commit(semester_id)
        logger.info("Resource request %s created for session %s", request.id, session.id)
        return result

    def approve(self, request_id: str, reviewer: User) -> WorkflowResult:
        request = self._get(request_id)
        ensure_can_review_department(reviewer, request.target_department_id)
        if request.status != RequestStatus.pending:
            raise StateError("Request is not pending", details={"status": request.status.value})

        semester = get_active_semester(self.db)
        assignments = assignment_store.for_session(self.db, request.class_session_id, semester.id)
        if not assignments:
            raise StateError("Timetable assignment not found")

        for assignment in assignments:
            assignment.status = AssignmentStatus.confirmed
        placed = assignments[0]
        request.status = RequestStatus.approved
        request.reviewed_by = reviewer.id
        request.reviewed_at = _utc_now()
        request.original_class_group_id = placed.class_group_id
        request.original_period_index = placed.period_index
        self.db.flush()

        result = WorkflowResult(request=request)
        resource_name, course_code = self._describe(request)
        warning = notify_user(
            self.db,
            request_id=request.id,
            user_id=request.requester_id,
            title="Resource request approved",
            message=f"Your request for {resource_name} ({course_code}) was approved.",
            notification_type=NotificationType.request_approved,
        )
        if warning:
            result.warnings.append(warning)
        log_activity(
            self.db,
            user=reviewer,
            action="resource_request.approve",
            entity_type=REQUEST_ENTITY,
            entity_id=request.id,
            details={"class_group_id": placed.class_group_id, "period_index": placed.period_index},
        )
        self._commit(semester.id)
        return result

    def reject(self, request_id: str, reviewer: User, message: str) -> WorkflowResult:
        text = (message or "").strip()
        if not text:
            raise ValidationError("A rejection message is required")
        request = self._get(request_id)
        ensure_can_review_department(reviewer, request.target_department_id)
        ensure_transition(request, RequestStatus.rejected)

        was_approved = request.status == RequestStatus.approved
        session = self.db.get(ClassSession, request.class_session_id)
        semester = get_active_semester(self.db)
        result = WorkflowResult(request=request)

        assignment_store.delete_for_session(self.db, request.class_session_id, semester.id)
        if (
            was_approved
            and session is not None
            and request.original_class_group_id is not None
            and request.original_period_index is not None
            and self._restore(session, request, semester.id, result)
        ):
            result.action = ACTION_RESTORED
            result.restored_to_period = request.original_period_index
        else:
            result.action = ACTION_REMOVED

        request.status = RequestStatus.rejected
        request.rejection_message = text
        request.reviewed_by = reviewer.id
        request.reviewed_at = _utc_now()
        self.db.flush()

        warning = notify_user(
            self.db,
            request_id=request.id,
            user_id=request.requester_id,
            title="Resource request rejected",
            message=text,
            notification_type=NotificationType.request_rejected,
        )
        if warning:
            result.warnings.append(warning)
        log_activity(
            self.db,
            user=reviewer,
            action="resource_request.reject",
            entity_type=REQUEST_ENTITY,
            entity_id=request.id,
            details={"action": result.action, "restored_to_period": result.restored_to_period},
        )
        self._commit(semester.id)
        return result

    def _restore(self, session: ClassSession, request: ResourceRequest, semester_id: str, result: WorkflowResult) -> bool:
        """Put the session back at its approval-time cell. Returns False when that cell is taken."""
        occupant = assignment_store.get_cell(
            self.db,
            user_id=session.user_id,
            class_group_id=request.original_class_group_id,
            period_index=request.original_period_index,
            semester_id=semester_id,
        )
        if occupant is not None and occupant.class_session_id != session.id:
            logger.warning(
                "Not restoring session %s over session %s at period %s",
                session.id,
                occupant.class_session_id,
                request.original_period_index,
            )
            result.warnings.append(
                f"The original period {request.original_period_index + 1} now holds another class, "
                "so the session was removed from the timetable instead."
            )
            return False

        if self.cache is not None:
            self.cache.invalidate(semester_id)
        context = load_context(self.db, self.cache or CalendarCache(enabled=False))
        candidate = context.sessions.get(session.id)
        if candidate is not None:
            outcome = check_placement(
                group_calendar(self.db, context),
                candidate,
                request.original_class_group_id,
                request.original_period_index,
                merge_policy=context.merge_policy,
            )
            if not outcome.ok:
                result.warnings.append(f"Restored over an existing booking. {outcome.message}")
        assignment_store.upsert_assignment(
            self.db,
            user_id=session.user_id,
            class_session_id=session.id,
            class_group_id=request.original_class_group_id,
            period_index=request.original_period_index,
            semester_id=semester_id,
            status=AssignmentStatus.confirmed,
        )
        return True

    def cancel(self, request_id: str, requester: User) -> WorkflowResult:
        request = self._get(request_id)
        if request.requester_id != requester.id:
            raise PermissionDeniedError("Only the requester can cancel this request")
        if request.status != RequestStatus.pending:
            raise StateError("Only pending requests can be cancelled", details={"status": request.status.value})
        semester = get_active_semester(self.db)
        assignment_store.delete_for_session(self.db, request.class_session_id, semester.id)
        result = self._withdraw(request, requester, reason="cancelled by the requester")
        self._commit(semester.id)
        return result

    def withdraw_for_session(self, class_session_id: str, actor: User, *, reason: str) -> list[str]:
        """Cancel the pending request of a session that left the timetable.

        Runs inside the caller's transaction and does not commit.
        """
        request = active_request_for_session(self.db, class_session_id)
        if request is None or request.status != RequestStatus.pending:
            return []
        if request.requester_id != actor.id and not can_manage_assignments_for_program(
            actor, request.requesting_program_id
        ):
            raise PermissionDeniedError("You cannot withdraw this request")
        return self._withdraw(request, actor, reason=reason).warnings

    def _withdraw(self, request: ResourceRequest, actor: User, *, reason: str) -> WorkflowResult:
        ensure_transition(request, RequestStatus.cancelled)
        request.status = RequestStatus.cancelled
        request.reviewed_at = _utc_now()
        self.db.flush()

        result = WorkflowResult(request=request, action=ACTION_REMOVED)
        resource_name, course_code = self._describe(request)
        warning = notify_department(
            self.db,
            request_id=request.id,
            department_id=request.target_department_id,
            title="Resource request withdrawn",
            message=f"The request for {resource_name} ({course_code}) was {reason}.",
            notification_type=NotificationType.request_cancelled,
        )
        if warning:
            result.warnings.append(warning)
        log_activity(
            self.db,
            user=actor,
            action="resource_request.cancel",
            entity_type=REQUEST_ENTITY,
            entity_id=request.id,
            details={"reason": reason},
        )
        return result

    def dismiss(self, request_id: str, requester: User) -> WorkflowResult:
        request = self._get(request_id)
        if request.requester_id != requester.id:
            raise PermissionDeniedError("Only the requester can dismiss this request")
        if request.status not in (RequestStatus.approved, RequestStatus.rejected):
            raise StateError(
                "Only approved or rejected requests can be dismissed",
                details={"status": request.status.value},
            )
        request.dismissed = True
        mark_request_read_for_user(self.db, request_id=request.id, user_id=requester.id)
        self._commit()
        return WorkflowResult(request=request)

    def list_for_requester(
        self,
        actor: User,
        *,
        status: RequestStatus | None = None,
        include_dismissed: bool = False,
    ) -> list[ResourceRequest]:
        query = select(ResourceRequest).where(ResourceRequest.requester_id == actor.id)
        if status is not None:
            query = query.where(ResourceRequest.status == status)
        if not include_dismissed:
            query = query.where(ResourceRequest.dismissed.is_(False))
        return list(self.db.execute(query.order_by(ResourceRequest.requested_at.desc())).scalars())

    def list_for_department(
        self,
        actor: User,
        *,
        department_id: str | None = None,
        status: RequestStatus | None = None,
    ) -> list[ResourceRequest]:
        department_id = department_id or actor.department_id
        query = select(ResourceRequest)
        if department_id is None:
            if not is_admin(actor):
                raise PermissionDeniedError("No department is linked to your account")
        else:
            ensure_can_review_department(actor, department_id)
            query = query.where(ResourceRequest.target_department_id == department_id)
        if status is not None:
            query = query.where(ResourceRequest.status == status)
        return list(self.db.execute(query.order_by(ResourceRequest.requested_at.desc())).scalars())
