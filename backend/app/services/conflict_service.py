from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging

from app.services.calendar import (
    CalendarEntry,
    MergePolicy,
    ResourceCalendar,
    SessionInfo,
    ViewMode,
    day_index,
    merge_key,
)

logger = logging.getLogger(__name__)


class ConflictKind(str, Enum):
    boundary = "boundary"
    mismatch = "mismatch"
    group = "group"
    instructor = "instructor"
    classroom = "classroom"


@dataclass(frozen=True)
class ConflictResult:
    ok: bool = True
    noop: bool = False
    kind: ConflictKind | None = None
    message: str = ""
    competing_resource: str | None = None
    competing_group: str | None = None

    @classmethod
    def clear(cls) -> ConflictResult:
        return cls()

    @classmethod
    def unchanged(cls) -> ConflictResult:
        return cls(noop=True)

    @classmethod
    def conflict(
        cls,
        kind: ConflictKind,
        message: str,
        *,
        competing_resource: str | None = None,
        competing_group: str | None = None,
    ) -> ConflictResult:
        return cls(
            ok=False,
            kind=kind,
            message=message,
            competing_resource=competing_resource,
            competing_group=competing_group,
        )


def check_boundary(period: int, span: int, *, periods_per_day: int, total_periods: int) -> ConflictResult:
    span = max(1, span)
    if period < 0 or period >= total_periods:
        return ConflictResult.conflict(
            ConflictKind.boundary,
            f"Placement conflict: Period {period + 1} is outside the timetable (1-{total_periods}).",
        )
    if period + span > total_periods:
        return ConflictResult.conflict(
            ConflictKind.boundary,
            f"Placement conflict: Class extends beyond timetable limit of {total_periods} periods.",
        )
    first_day = day_index(period, periods_per_day)
    last_day = day_index(period + span - 1, periods_per_day)
    if first_day != last_day:
        return ConflictResult.conflict(
            ConflictKind.boundary,
            f"Placement conflict: Class cannot span multiple days (spans from day {first_day + 1} to day {last_day + 1}).",
        )
    return ConflictResult.clear()


def check_view_mismatch(candidate: SessionInfo, view: ViewMode, target_resource_id: str) -> ConflictResult:
    """A session may only be dropped on the row of its own resource in every view."""
    own = candidate.resource_for(view)
    if own.id == target_resource_id:
        return ConflictResult.clear()
    if view is ViewMode.classroom:
        message = (
            f"Classroom mismatch: Cannot move session using classroom '{own.name}' to a row for another "
            "classroom. Sessions can only be moved within their own classroom row."
        )
    elif view is ViewMode.instructor:
        message = (
            f"Instructor mismatch: Cannot move session taught by '{own.name}' to a row for another "
            "instructor. Sessions can only be moved within their own instructor row."
        )
    else:
        message = (
            f"Group mismatch: Cannot move session for class group '{own.name}' to a row for another "
            "class group. Sessions can only be moved within their own class group row."
        )
    return ConflictResult.conflict(ConflictKind.mismatch, message, competing_resource=own.name)


def _is_excluded(entry: CalendarEntry, candidate: SessionInfo, exclude_source: tuple[str, int] | None) -> bool:
    if entry.session.id == candidate.id:
        return True
    if exclude_source is None:
        return False
    return (entry.class_group_id, entry.start_period) == exclude_source


def _program_suffix(session: SessionInfo) -> str:
    if session.program_name:
        return f" (Program: {session.program_name})"
    if session.program_id:
        return f" (Program ID: {session.program_id})"
    return ""


def _check_row(
    calendar: ResourceCalendar,
    candidate: SessionInfo,
    target_group_id: str,
    target_period: int,
    exclude_source: tuple[str, int] | None,
    merge_policy: MergePolicy,
) -> ConflictResult:
    for period, entry in calendar.occupants(target_group_id, target_period, candidate.span):
        if _is_excluded(entry, candidate, exclude_source):
            continue
        # A group stores one session per cell, so only partner-row copies merge.
        if entry.class_group_id != target_group_id and merge_policy.can_merge(
            entry.session, candidate, ViewMode.class_group
        ):
            continue
        occupant = entry.session
        return ConflictResult.conflict(
            ConflictKind.group,
            f"Group conflict: Period {period + 1} is already occupied by class "
            f"'{occupant.course_code}' for group '{occupant.group.name}'.",
            competing_resource=occupant.group.name,
            competing_group=occupant.group.name,
        )
    return ConflictResult.clear()


def _foreign_entries(
    calendar: ResourceCalendar,
    candidate: SessionInfo,
    target_group_id: str,
    target_period: int,
    exclude_source: tuple[str, int] | None,
):
    """Entries owned by other rows that overlap the candidate's span."""
    for row_id in calendar.rows:
        if row_id == target_group_id:
            continue
        for _, entry in calendar.occupants(row_id, target_period, candidate.span):
            # Merged copies are reported once, from their owning row.
            if entry.class_group_id != row_id or entry.class_group_id == target_group_id:
                continue
            if _is_excluded(entry, candidate, exclude_source):
                continue
            yield entry


def _check_instructor(
    calendar: ResourceCalendar,
    candidate: SessionInfo,
    target_group_id: str,
    target_period: int,
    exclude_source: tuple[str, int] | None,
    merge_policy: MergePolicy,
) -> ConflictResult:
    for entry in _foreign_entries(calendar, candidate, target_group_id, target_period, exclude_source):
        other = entry.session
        if other.instructor.id != candidate.instructor.id:
            continue
        if merge_policy.allows(ViewMode.instructor) and other.course_code == candidate.course_code:
            continue
        return ConflictResult.conflict(
            ConflictKind.instructor,
            f"Instructor conflict: {other.instructor.name} is already scheduled to teach group "
            f"'{other.group.name}'{_program_suffix(other)} at this time (class: '{other.course_code}').",
            competing_resource=other.instructor.name,
            competing_group=other.group.name,
        )
    return ConflictResult.clear()


def _check_classroom(
    calendar: ResourceCalendar,
    candidate: SessionInfo,
    target_group_id: str,
    target_period: int,
    exclude_source: tuple[str, int] | None,
    merge_policy: MergePolicy,
) -> ConflictResult:
    for entry in _foreign_entries(calendar, candidate, target_group_id, target_period, exclude_source):
        other = entry.session
        if other.classroom.id != candidate.classroom.id:
            continue
        if merge_policy.allows(ViewMode.classroom) and other.course_code == candidate.course_code:
            continue
        return ConflictResult.conflict(
            ConflictKind.classroom,
            f"Classroom conflict: Classroom '{other.classroom.name}' is already booked by group "
            f"'{other.group.name}' at this time (class: '{other.course_code}').",
            competing_resource=other.classroom.name,
            competing_group=other.group.name,
        )
    return ConflictResult.clear()


def _already_placed(calendar: ResourceCalendar, candidate: SessionInfo, target_group_id: str, target_period: int) -> bool:
    return any(
        entry.session.id == candidate.id
        and entry.class_group_id == target_group_id
        and entry.start_period == target_period
        for entry in calendar.get_cell(target_group_id, target_period)
    )


def check_placement(
    calendar: ResourceCalendar,
    candidate: SessionInfo,
    target_group_id: str,
    target_period: int,
    exclude_source: tuple[str, int] | None = None,
    *,
    merge_policy: MergePolicy | None = None,
) -> ConflictResult:
    """Validate placing ``candidate`` on ``target_group_id`` starting at ``target_period``.

    ``calendar`` must be the class-group view built from every group of the
    semester, so that instructor and classroom bookings of other programs are
    visible. ``exclude_source`` names the (group, period) cell being vacated by a
    move. Checks run boundary, group row, instructor, classroom; the first
    failure wins.
    """
    policy = merge_policy or MergePolicy()

    result = check_boundary(
        target_period,
        candidate.span,
        periods_per_day=calendar.periods_per_day,
        total_periods=calendar.total_periods,
    )
    if not result.ok:
        return result

    if _already_placed(calendar, candidate, target_group_id, target_period):
        return ConflictResult.unchanged()

    for check in (_check_row, _check_instructor, _check_classroom):
        result = check(calendar, candidate, target_group_id, target_period, exclude_source, policy)
        if not result.ok:
            logger.info(
                "Placement of session %s at period %s rejected: %s",
                candidate.id,
                target_period,
                result.message,
            )
            return result
    return ConflictResult.clear()


def capacity_warning(candidate: SessionInfo) -> str | None:
    students = candidate.group.capacity
    seats = candidate.classroom.capacity
    if students is None or seats is None or students <= seats:
        return None
    return (
        f"Capacity conflict: The group \"{candidate.group.name}\" ({students} students) exceeds the "
        f"capacity of classroom \"{candidate.classroom.name}\" ({seats} seats)."
    )


def merged_capacity_warning(
    calendar: ResourceCalendar,
    candidate: SessionInfo,
    target_group_id: str,
    target_period: int,
) -> str | None:
    seats = candidate.classroom.capacity
    if seats is None:
        return None
    key = merge_key(candidate)
    groups = {candidate.group.id: candidate.group}
    for row_id in calendar.rows:
        if row_id == target_group_id:
            continue
        for entry in calendar.get_cell(row_id, target_period):
            if entry.class_group_id == row_id and entry.session.id != candidate.id and merge_key(entry.session) == key:
                groups[entry.session.group.id] = entry.session.group
    if len(groups) < 2:
        return None
    total = sum(group.capacity or 0 for group in groups.values())
    if total <= seats:
        return None
    names = ", ".join(group.name for group in groups.values())
    return (
        f"Capacity conflict: The combined student count ({total}) of merged groups ({names}) exceeds the "
        f"capacity of classroom \"{candidate.classroom.name}\" ({seats} seats)."
    )


def soft_warnings(
    calendar: ResourceCalendar,
    candidate: SessionInfo,
    target_group_id: str,
    target_period: int,
) -> list[str]:
    warnings = []
    single = capacity_warning(candidate)
    if single:
        warnings.append(single)
    merged = merged_capacity_warning(calendar, candidate, target_group_id, target_period)
    if merged:
        warnings.append(merged)
    return warnings
