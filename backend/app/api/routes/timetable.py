from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_calendar_cache, get_current_user, get_db, get_merge_policy
from app.models.user import User
from app.schemas.timetable import (
    AssignmentCreate,
    AssignmentMove,
    CellEntryOut,
    MutationOut,
    TimetableOut,
    TimetableRowOut,
)
from app.services.assignment_coordinator import AssignmentCoordinator, MutationResult
from app.services.calendar import MergePolicy, ViewMode, period_label
from app.services.calendar_cache import CalendarCache
from app.services.timetable_context import load_context, view_resources

router = APIRouter()

ERROR_STATUS = {
    "conflict": status.HTTP_409_CONFLICT,
    "validation": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _respond(result: MutationResult) -> JSONResponse:
    payload = MutationOut(
        ok=result.ok,
        error=result.error,
        noop=result.noop,
        warnings=result.warnings,
        status=result.status,
        request_id=result.request_id,
    )
    status_code = status.HTTP_200_OK
    if not result.ok:
        status_code = ERROR_STATUS.get(result.error_kind or "conflict", status.HTTP_409_CONFLICT)
    return JSONResponse(status_code=status_code, content=payload.model_dump(mode="json"))


@router.get("", response_model=TimetableOut)
def get_timetable(
    view: ViewMode = Query(default=ViewMode.class_group),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
    merge_policy: MergePolicy = Depends(get_merge_policy),
) -> TimetableOut:
    context = load_context(db, cache, merge_policy=merge_policy)
    resources = view_resources(db, view)
    calendar = context.calendar(view, resources)
    rows = []
    for resource in resources:
        cells = []
        for period in range(calendar.total_periods):
            cells.append(
                [
                    CellEntryOut(
                        class_session_id=entry.session.id,
                        course_code=entry.session.course_code,
                        course_name=entry.session.course_name,
                        class_group_id=entry.class_group_id,
                        group_name=entry.session.group.name,
                        instructor_name=entry.session.instructor.name,
                        classroom_name=entry.session.classroom.name,
                        start_period=entry.start_period,
                        period_count=entry.session.span,
                        status=entry.status,
                    )
                    for entry in calendar.get_cell(resource.id, period)
                ]
            )
        rows.append(TimetableRowOut(resource_id=resource.id, resource_name=resource.name, cells=cells))
    return TimetableOut(
        view=view,
        semester_id=context.semester.id,
        periods_per_day=context.config.periods_per_day,
        class_days_per_week=context.config.class_days_per_week,
        total_periods=calendar.total_periods,
        period_labels=[period_label(period, context.config) for period in range(calendar.total_periods)],
        rows=rows,
    )


@router.post("/assignments", response_model=MutationOut)
def assign_session(
    payload: AssignmentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
    merge_policy: MergePolicy = Depends(get_merge_policy),
) -> JSONResponse:
    coordinator = AssignmentCoordinator(db, cache, current_user, merge_policy=merge_policy)
    return _respond(coordinator.assign(payload.resource_id, payload.period_index, payload.class_session_id, payload.view))


@router.post("/assignments/move", response_model=MutationOut)
def move_session(
    payload: AssignmentMove,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
    merge_policy: MergePolicy = Depends(get_merge_policy),
) -> JSONResponse:
    coordinator = AssignmentCoordinator(db, cache, current_user, merge_policy=merge_policy)
    result = coordinator.move(
        payload.from_resource_id,
        payload.from_period_index,
        payload.to_resource_id,
        payload.to_period_index,
        payload.class_session_id,
        payload.view,
    )
    return _respond(result)


@router.delete("/assignments", response_model=MutationOut)
def remove_session(
    resource_id: str = Query(min_length=1, max_length=36),
    period_index: int = Query(ge=0),
    view: ViewMode = Query(default=ViewMode.class_group),
    class_session_id: str | None = Query(default=None, max_length=36),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
    merge_policy: MergePolicy = Depends(get_merge_policy),
) -> JSONResponse:
    coordinator = AssignmentCoordinator(db, cache, current_user, merge_policy=merge_policy)
    return _respond(coordinator.remove(resource_id, period_index, view, class_session_id))
