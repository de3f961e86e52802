"""Loads the reference data the calendar, detector and coordinator work on."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ConfigurationError, StateError
from app.models.class_group import ClassGroup
from app.models.class_session import ClassSession
from app.models.classroom import Classroom
from app.models.course import Course
from app.models.instructor import Instructor
from app.models.program import Program
from app.models.semester import ScheduleConfiguration, Semester
from app.models.timetable import TimetableAssignment
from app.services.calendar import (
    MergePolicy,
    Placement,
    ResourceCalendar,
    ResourceRef,
    SessionInfo,
    ViewMode,
    build_calendar,
    classroom_ref,
    group_ref,
    instructor_ref,
)
from app.services.calendar_cache import AssignmentSnapshot, CalendarCache

logger = logging.getLogger(__name__)


def get_active_semester(db: Session) -> Semester:
    semester = db.execute(
        select(Semester).where(Semester.is_active.is_(True)).order_by(Semester.start_date.desc())
    ).scalars().first()
    if semester is None:
        raise StateError("No active semester found")
    return semester


def _validate_grid(config: ScheduleConfiguration) -> None:
    if config.periods_per_day < 1 or config.class_days_per_week < 1:
        raise ConfigurationError(
            f"Schedule configuration {config.id} must have at least one period per day and one class day"
        )


def get_schedule_config(db: Session, semester: Semester) -> ScheduleConfiguration:
    config = db.execute(
        select(ScheduleConfiguration).where(ScheduleConfiguration.semester_id == semester.id)
    ).scalars().first()
    if config is not None:
        _validate_grid(config)
        return config
    settings = get_settings()
    logger.debug("Semester %s has no schedule configuration; using defaults", semester.id)
    return ScheduleConfiguration(
        semester_id=semester.id,
        periods_per_day=settings.default_periods_per_day,
        class_days_per_week=settings.default_class_days_per_week,
        period_duration_mins=settings.default_period_duration_mins,
        start_time=settings.default_day_start_time,
    )


def default_merge_policy() -> MergePolicy:
    return MergePolicy.from_names(get_settings().merge_policy_views)


def _by_id(db: Session, model, ids: Iterable[str]) -> dict:
    wanted = {item for item in ids if item}
    if not wanted:
        return {}
    return {row.id: row for row in db.execute(select(model).where(model.id.in_(wanted))).scalars()}


def load_session_infos(db: Session, session_ids: Iterable[str] | None = None) -> dict[str, SessionInfo]:
    query = select(ClassSession)
    if session_ids is not None:
        ids = list(session_ids)
        if not ids:
            return {}
        query = query.where(ClassSession.id.in_(ids))
    sessions = list(db.execute(query).scalars())

    courses = _by_id(db, Course, (item.course_id for item in sessions))
    groups = _by_id(db, ClassGroup, (item.class_group_id for item in sessions))
    instructors = _by_id(db, Instructor, (item.instructor_id for item in sessions))
    classrooms = _by_id(db, Classroom, (item.classroom_id for item in sessions))
    programs = _by_id(db, Program, [item.program_id for item in groups.values()])

    infos: dict[str, SessionInfo] = {}
    for item in sessions:
        course = courses.get(item.course_id)
        group = groups.get(item.class_group_id)
        instructor = instructors.get(item.instructor_id)
        classroom = classrooms.get(item.classroom_id)
        if course is None or group is None or instructor is None or classroom is None:
            logger.warning("Class session %s references missing reference data; skipped", item.id)
            continue
        program = programs.get(group.program_id)
        infos[item.id] = SessionInfo(
            id=item.id,
            course_id=course.id,
            course_code=course.code,
            course_name=course.name,
            group=group_ref(group),
            instructor=instructor_ref(instructor),
            classroom=classroom_ref(classroom),
            period_count=item.period_count,
            program_id=item.program_id or group.program_id,
            program_name=program.name if program is not None else None,
        )
    return infos


def view_resources(db: Session, view: ViewMode) -> list[ResourceRef]:
    if view is ViewMode.classroom:
        return [classroom_ref(item) for item in db.execute(select(Classroom).order_by(Classroom.name)).scalars()]
    if view is ViewMode.instructor:
        rows = db.execute(select(Instructor).order_by(Instructor.last_name, Instructor.first_name)).scalars()
        return [instructor_ref(item) for item in rows]
    return [group_ref(item) for item in db.execute(select(ClassGroup).order_by(ClassGroup.name)).scalars()]


def cached_assignments(db: Session, cache: CalendarCache, semester_id: str) -> list[AssignmentSnapshot]:
    def loader():
        return db.execute(
            select(TimetableAssignment).where(TimetableAssignment.semester_id == semester_id)
        ).scalars()

    return cache.get(semester_id, loader)


@dataclass
class TimetableContext:
    semester: Semester
    config: ScheduleConfiguration
    sessions: dict[str, SessionInfo]
    assignments: list[AssignmentSnapshot]
    merge_policy: MergePolicy

    def placements(self) -> list[Placement]:
        placements = []
        for item in self.assignments:
            info = self.sessions.get(item.class_session_id)
            if info is None:
                continue
            placements.append(
                Placement(
                    session=info,
                    class_group_id=item.class_group_id,
                    period_index=item.period_index,
                    status=item.status,
                )
            )
        return placements

    def calendar(self, view: ViewMode, resources: Iterable[ResourceRef]) -> ResourceCalendar:
        return build_calendar(
            view,
            resources,
            self.placements(),
            periods_per_day=self.config.periods_per_day,
            total_periods=self.config.total_periods,
            merge_policy=self.merge_policy,
        )

    def assignments_of(self, session_id: str) -> list[AssignmentSnapshot]:
        return [item for item in self.assignments if item.class_session_id == session_id]


def load_context(
    db: Session,
    cache: CalendarCache,
    *,
    merge_policy: MergePolicy | None = None,
) -> TimetableContext:
    semester = get_active_semester(db)
    return TimetableContext(
        semester=semester,
        config=get_schedule_config(db, semester),
        sessions=load_session_infos(db),
        assignments=cached_assignments(db, cache, semester.id),
        merge_policy=merge_policy or default_merge_policy(),
    )


def group_calendar(db: Session, context: TimetableContext) -> ResourceCalendar:
    return context.calendar(ViewMode.class_group, view_resources(db, ViewMode.class_group))
