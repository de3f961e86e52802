"""Assign, move and remove timetable placements.

Every mutation follows the same protocol: validate against the class-group
calendar of the active semester, apply the change to the shared calendar
cache, persist it with a natural-key upsert, then either invalidate the cache
(success) or roll back both the transaction and the cache entry (failure).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import functools
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AppError, ConflictError, NotFoundError, TransientIOError, ValidationError
from app.models.class_session import ClassSession
from app.models.resource_request import RequestStatus
from app.models.timetable import AssignmentStatus
from app.models.user import User
from app.services import assignment_store
from app.services.audit import ASSIGNMENT_ENTITY, log_activity
from app.services.authorization import ensure_can_manage_program
from app.services.calendar import MergePolicy, SessionInfo, ViewMode, period_label
from app.services.calendar_cache import AssignmentSnapshot, CalendarCache
from app.services.conflict_service import (
    ConflictResult,
    check_placement,
    check_view_mismatch,
    soft_warnings,
)
from app.services.resource_requests import (
    ResourceRequestWorkflow,
    active_request_for_session,
    find_foreign_resource,
    session_program_id,
)
from app.services.timetable_context import TimetableContext, group_calendar, load_context, view_resources

logger = logging.getLogger(__name__)

DIVERGENCE_WARNING = "Another user changed this period at the same time; the timetable now shows their change."
WITHDRAWN_REASON = "cancelled by the program head"


@dataclass
class MutationResult:
    ok: bool = True
    error: str | None = None
    error_kind: str | None = None
    noop: bool = False
    warnings: list[str] = field(default_factory=list)
    status: str | None = None
    request_id: str | None = None

    @classmethod
    def failed(cls, message: str, kind: str = "conflict") -> MutationResult:
        return cls(ok=False, error=message, error_kind=kind)

    @classmethod
    def from_error(cls, exc: ConflictError | ValidationError) -> MutationResult:
        return cls.failed(exc.message, "conflict" if isinstance(exc, ConflictError) else "validation")


def _raise_for(outcome: ConflictResult) -> None:
    if not outcome.ok:
        kind = outcome.kind.value if outcome.kind is not None else None
        raise ConflictError(outcome.message, details={"kind": kind, "competing_group": outcome.competing_group})


def mutation_boundary(method):
    """Turn conflicts and validation problems into a failed result instead of raising."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs) -> MutationResult:
        try:
            return method(self, *args, **kwargs)
        except (ConflictError, ValidationError) as exc:
            return MutationResult.from_error(exc)

    return wrapper


class AssignmentCoordinator:
    def __init__(
        self,
        db: Session,
        cache: CalendarCache,
        actor: User,
        *,
        merge_policy: MergePolicy | None = None,
    ) -> None:
        self.db = db
        self.cache = cache
        self.actor = actor
        self.merge_policy = merge_policy
        self.workflow = ResourceRequestWorkflow(db, cache)

    def _load(self, class_session_id: str) -> tuple[ClassSession, TimetableContext, SessionInfo]:
        session = self.db.get(ClassSession, class_session_id)
        if session is None:
            raise NotFoundError("Class session", class_session_id)
        ensure_can_manage_program(self.actor, session_program_id(self.db, session))
        context = load_context(self.db, self.cache, merge_policy=self.merge_policy)
        candidate = context.sessions.get(session.id)
        if candidate is None:
            raise NotFoundError("Class session", class_session_id)
        return session, context, candidate

    def _placement_status(self, session: ClassSession):
        foreign = find_foreign_resource(self.db, session)
        if foreign is None:
            return AssignmentStatus.confirmed, None
        request = active_request_for_session(self.db, session.id)
        if request is not None and request.status == RequestStatus.approved:
            return AssignmentStatus.confirmed, None
        return AssignmentStatus.tentative, foreign

    def _persist(
        self,
        semester_id: str,
        cache_ops: list[dict],
        write: Callable[[], None],
    ) -> None:
        snapshot = self.cache.snapshot(semester_id)
        for op in cache_ops:
            self.cache.apply(semester_id, **op)
        try:
            write()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.cache.restore(semester_id, snapshot)
            logger.warning("Timetable write failed; local changes rolled back", exc_info=True)
            raise TransientIOError() from exc
        except AppError:
            self.db.rollback()
            self.cache.restore(semester_id, snapshot)
            raise
        self.cache.invalidate(semester_id)

    def _check_landed(self, session: ClassSession, group_id: str, period_index: int, semester_id: str) -> list[str]:
        refreshed = assignment_store.get_cell(
            self.db,
            user_id=session.user_id,
            class_group_id=group_id,
            period_index=period_index,
            semester_id=semester_id,
        )
        if refreshed is None or refreshed.class_session_id != session.id:
            logger.info("Cell %s/%s was overwritten by another writer", group_id, period_index)
            return [DIVERGENCE_WARNING]
        return []

    def _place(
        self,
        session: ClassSession,
        context: TimetableContext,
        candidate: SessionInfo,
        period_index: int,
        *,
        vacate: int | None = None,
    ) -> MutationResult:
        semester_id = context.semester.id
        group_id = candidate.group.id
        status, foreign = self._placement_status(session)
        result = MutationResult(status=status.value)

        snapshot = AssignmentSnapshot(
            id=None,
            user_id=session.user_id,
            class_session_id=session.id,
            class_group_id=group_id,
            period_index=period_index,
            semester_id=semester_id,
            status=status.value,
        )
        cache_ops: list[dict] = []
        if vacate is not None:
            cache_ops.append({"remove_cell": (session.user_id, group_id, vacate, semester_id)})
        cache_ops.append({"upsert": snapshot})

        def write() -> None:
            assignment_store.upsert_assignment(
                self.db,
                user_id=session.user_id,
                class_session_id=session.id,
                class_group_id=group_id,
                period_index=period_index,
                semester_id=semester_id,
                status=status,
            )
            if vacate is not None:
                assignment_store.delete_cell(
                    self.db,
                    class_session_id=session.id,
                    class_group_id=group_id,
                    period_index=vacate,
                    semester_id=semester_id,
                )
            if foreign is not None:
                outcome = self.workflow.create(session.id, self.actor, resource=foreign, commit=False)
                result.request_id = outcome.request.id
                result.warnings.extend(outcome.warnings)
            log_activity(
                self.db,
                user=self.actor,
                action="timetable.move" if vacate is not None else "timetable.assign",
                entity_type=ASSIGNMENT_ENTITY,
                entity_id=session.id,
                details={
                    "class_group_id": group_id,
                    "period_index": period_index,
                    "from_period_index": vacate,
                    "status": status.value,
                },
            )

        self._persist(semester_id, cache_ops, write)
        result.warnings.extend(self._check_landed(session, group_id, period_index, semester_id))
        return result

    @mutation_boundary
    def assign(
        self,
        resource_id: str,
        period_index: int,
        class_session_id: str,
        view: ViewMode = ViewMode.class_group,
    ) -> MutationResult:
        session, context, candidate = self._load(class_session_id)
        _raise_for(check_view_mismatch(candidate, view, resource_id))

        group_id = candidate.group.id
        placed = context.assignments_of(session.id)
        if any(item.class_group_id == group_id and item.period_index == period_index for item in placed):
            return MutationResult(noop=True, status=placed[0].status)
        if placed:
            where = period_label(placed[0].period_index, context.config)
            raise ValidationError(f"Class '{candidate.course_code}' is already scheduled ({where}); move it instead.")

        calendar = group_calendar(self.db, context)
        outcome = check_placement(calendar, candidate, group_id, period_index, merge_policy=context.merge_policy)
        _raise_for(outcome)
        if outcome.noop:
            return MutationResult(noop=True)

        warnings = soft_warnings(calendar, candidate, group_id, period_index)
        result = self._place(session, context, candidate, period_index)
        result.warnings[:0] = warnings
        return result

    @mutation_boundary
    def move(
        self,
        from_resource_id: str,
        from_period: int,
        to_resource_id: str,
        to_period: int,
        class_session_id: str,
        view: ViewMode = ViewMode.class_group,
    ) -> MutationResult:
        session, context, candidate = self._load(class_session_id)
        for resource_id in (from_resource_id, to_resource_id):
            _raise_for(check_view_mismatch(candidate, view, resource_id))

        group_id = candidate.group.id
        placed = context.assignments_of(session.id)
        source = next(
            (item for item in placed if item.class_group_id == group_id and item.period_index == from_period),
            None,
        )
        if source is None:
            raise ValidationError(f"Class '{candidate.course_code}' is not scheduled at period {from_period + 1}.")
        if from_period == to_period:
            return MutationResult(noop=True, status=source.status)

        calendar = group_calendar(self.db, context)
        outcome = check_placement(
            calendar,
            candidate,
            group_id,
            to_period,
            exclude_source=(group_id, from_period),
            merge_policy=context.merge_policy,
        )
        _raise_for(outcome)
        if outcome.noop:
            return MutationResult(noop=True, status=source.status)

        warnings = soft_warnings(calendar, candidate, group_id, to_period)
        result = self._place(session, context, candidate, to_period, vacate=from_period)
        result.warnings[:0] = warnings
        return result

    @mutation_boundary
    def remove(
        self,
        resource_id: str,
        period_index: int,
        view: ViewMode = ViewMode.class_group,
        class_session_id: str | None = None,
    ) -> MutationResult:
        """Send the class(es) occupying the addressed cell back to the unassigned list."""
        context = load_context(self.db, self.cache, merge_policy=self.merge_policy)
        semester_id = context.semester.id
        calendar = context.calendar(view, view_resources(self.db, view))

        targets: dict[tuple[str, str, int], AssignmentSnapshot] = {}
        for entry in calendar.get_cell(resource_id, period_index):
            if view is ViewMode.class_group and entry.class_group_id != resource_id:
                continue
            if class_session_id is not None and entry.session.id != class_session_id:
                continue
            for item in context.assignments_of(entry.session.id):
                if item.class_group_id == entry.class_group_id and item.period_index == entry.start_period:
                    targets[(item.class_session_id, item.class_group_id, item.period_index)] = item
        if not targets:
            return MutationResult(noop=True)

        sessions = {}
        for session_id, _, _ in targets:
            session = self.db.get(ClassSession, session_id)
            if session is None:
                raise NotFoundError("Class session", session_id)
            ensure_can_manage_program(self.actor, session_program_id(self.db, session))
            sessions[session_id] = session

        result = MutationResult()
        cache_ops = [{"remove_cell": item.cell} for item in targets.values()]

        def write() -> None:
            for item in targets.values():
                assignment_store.delete_cell(
                    self.db,
                    class_session_id=item.class_session_id,
                    class_group_id=item.class_group_id,
                    period_index=item.period_index,
                    semester_id=semester_id,
                )
            for session_id in sessions:
                if not assignment_store.for_session(self.db, session_id, semester_id):
                    result.warnings.extend(
                        self.workflow.withdraw_for_session(session_id, self.actor, reason=WITHDRAWN_REASON)
                    )
                log_activity(
                    self.db,
                    user=self.actor,
                    action="timetable.remove",
                    entity_type=ASSIGNMENT_ENTITY,
                    entity_id=session_id,
                    details={"resource_id": resource_id, "period_index": period_index, "view": view.value},
                )

        self._persist(semester_id, cache_ops, write)
        return result
