"""Grid model of the weekly timetable.

A calendar maps a row resource (class group, classroom or instructor, depending
on the view) to a fixed-length list of period cells. Each cell holds the
entries occupying it: none, one, or several when sections are combined.
Calendars are derived from the assignment list and never written to directly.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
import logging

from app.models.class_group import ClassGroup
from app.models.classroom import Classroom
from app.models.instructor import Instructor
from app.models.semester import ScheduleConfiguration

logger = logging.getLogger(__name__)


class ViewMode(str, Enum):
    class_group = "class-group"
    classroom = "classroom"
    instructor = "instructor"


class ResourceKind(str, Enum):
    class_group = "class_group"
    classroom = "classroom"
    instructor = "instructor"


@dataclass(frozen=True)
class ResourceRef:
    kind: ResourceKind
    id: str
    name: str
    department_id: str | None = None
    program_id: str | None = None
    capacity: int | None = None

    @property
    def label(self) -> str:
        if self.kind is ResourceKind.class_group:
            return f"group '{self.name}'"
        if self.kind is ResourceKind.classroom:
            return f"classroom '{self.name}'"
        return f"instructor {self.name}"


def group_ref(group: ClassGroup) -> ResourceRef:
    return ResourceRef(
        kind=ResourceKind.class_group,
        id=group.id,
        name=group.name,
        program_id=group.program_id,
        capacity=group.student_count,
    )


def classroom_ref(classroom: Classroom) -> ResourceRef:
    return ResourceRef(
        kind=ResourceKind.classroom,
        id=classroom.id,
        name=classroom.name,
        department_id=classroom.preferred_department_id,
        capacity=classroom.capacity,
    )


def instructor_ref(instructor: Instructor) -> ResourceRef:
    return ResourceRef(
        kind=ResourceKind.instructor,
        id=instructor.id,
        name=instructor.full_name,
        department_id=instructor.department_id,
    )


@dataclass(frozen=True)
class SessionInfo:
    id: str
    course_id: str
    course_code: str
    course_name: str
    group: ResourceRef
    instructor: ResourceRef
    classroom: ResourceRef
    period_count: int = 1
    program_id: str | None = None
    program_name: str | None = None

    @property
    def span(self) -> int:
        return max(1, self.period_count or 1)

    def resource_for(self, view: ViewMode) -> ResourceRef:
        if view is ViewMode.classroom:
            return self.classroom
        if view is ViewMode.instructor:
            return self.instructor
        return self.group


@dataclass(frozen=True)
class Placement:
    session: SessionInfo
    class_group_id: str
    period_index: int
    status: str = "confirmed"

    def row_id(self, view: ViewMode) -> str:
        if view is ViewMode.class_group:
            return self.class_group_id
        return self.session.resource_for(view).id


@dataclass(frozen=True)
class CalendarEntry:
    session: SessionInfo
    start_period: int
    status: str
    class_group_id: str


@dataclass(frozen=True)
class MergePolicy:
    """Which views let combined sections share a cell."""

    views: frozenset[ViewMode] = frozenset(ViewMode)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> MergePolicy:
        return cls(views=frozenset(ViewMode(name) for name in names))

    def allows(self, view: ViewMode) -> bool:
        return view in self.views

    def can_merge(self, first: SessionInfo, second: SessionInfo, view: ViewMode) -> bool:
        if not self.allows(view):
            return False
        return (
            first.course_code == second.course_code
            and first.instructor.id == second.instructor.id
            and first.classroom.id == second.classroom.id
        )


def merge_key(session: SessionInfo) -> tuple[str, str, str]:
    return (session.course_code, session.instructor.id, session.classroom.id)


def day_index(period: int, periods_per_day: int) -> int:
    return period // periods_per_day


def period_in_day(period: int, periods_per_day: int) -> int:
    return period % periods_per_day


def spans_same_day(period: int, span: int, periods_per_day: int) -> bool:
    last = period + max(1, span) - 1
    return day_index(period, periods_per_day) == day_index(last, periods_per_day)


def is_last_period_of_day(period: int, span: int, periods_per_day: int) -> bool:
    return (period + max(1, span) - 1) % periods_per_day == periods_per_day - 1


def total_periods(config: ScheduleConfiguration) -> int:
    return config.periods_per_day * config.class_days_per_week


def _minutes_to_hhmm(minutes: int) -> str:
    return f"{(minutes // 60) % 24:02d}:{minutes % 60:02d}"


def period_label(period: int, config: ScheduleConfiguration) -> str:
    hours, minutes = (int(part) for part in config.start_time.split(":"))
    start = hours * 60 + minutes + period_in_day(period, config.periods_per_day) * config.period_duration_mins
    end = start + config.period_duration_mins
    day = day_index(period, config.periods_per_day) + 1
    return f"Day {day}, {_minutes_to_hhmm(start)}-{_minutes_to_hhmm(end)}"


@dataclass
class ResourceCalendar:
    view: ViewMode
    periods_per_day: int
    total_periods: int
    resources: dict[str, ResourceRef] = field(default_factory=dict)
    rows: dict[str, list[list[CalendarEntry]]] = field(default_factory=dict)

    def get_cell(self, resource_id: str, period: int) -> list[CalendarEntry]:
        row = self.rows.get(resource_id)
        if row is None or not 0 <= period < self.total_periods:
            return []
        return list(row[period])

    def occupants(self, resource_id: str, start: int, span: int) -> Iterator[tuple[int, CalendarEntry]]:
        for period in range(start, start + max(1, span)):
            for entry in self.get_cell(resource_id, period):
                yield period, entry

    def is_empty(self) -> bool:
        return not any(cell for row in self.rows.values() for cell in row)

    def _fill(self, row_id: str, entry: CalendarEntry) -> None:
        row = self.rows.get(row_id)
        if row is None:
            return
        for offset in range(entry.session.span):
            index = entry.start_period + offset
            if index >= self.total_periods:
                break
            row[index].append(entry)


def build_calendar(
    view: ViewMode,
    resources: Iterable[ResourceRef],
    placements: Iterable[Placement],
    *,
    periods_per_day: int,
    total_periods: int,
    merge_policy: MergePolicy | None = None,
) -> ResourceCalendar:
    policy = merge_policy or MergePolicy()
    resource_list = list(resources)
    calendar = ResourceCalendar(
        view=view,
        periods_per_day=periods_per_day,
        total_periods=total_periods,
        resources={resource.id: resource for resource in resource_list},
        rows={resource.id: [[] for _ in range(total_periods)] for resource in resource_list},
    )

    by_period: dict[int, list[Placement]] = defaultdict(list)
    for placement in placements:
        if not 0 <= placement.period_index < total_periods:
            logger.warning(
                "Skipping assignment of session %s at out-of-range period %s",
                placement.session.id,
                placement.period_index,
            )
            continue
        by_period[placement.period_index].append(placement)

    for period_index in sorted(by_period):
        in_period = by_period[period_index]
        for placement in in_period:
            calendar._fill(
                placement.row_id(view),
                CalendarEntry(
                    session=placement.session,
                    start_period=period_index,
                    status=placement.status,
                    class_group_id=placement.class_group_id,
                ),
            )

        # Combined sections show up in every participating group's row.
        if view is not ViewMode.class_group or not policy.allows(view):
            continue
        merge_groups: dict[tuple[str, str, str], list[Placement]] = defaultdict(list)
        for placement in in_period:
            merge_groups[merge_key(placement.session)].append(placement)
        for merged in merge_groups.values():
            if len({item.class_group_id for item in merged}) < 2:
                continue
            for placement in merged:
                for partner in merged:
                    if partner.class_group_id == placement.class_group_id:
                        continue
                    calendar._fill(
                        placement.class_group_id,
                        CalendarEntry(
                            session=partner.session,
                            start_period=period_index,
                            status=partner.status,
                            class_group_id=partner.class_group_id,
                        ),
                    )
    return calendar
