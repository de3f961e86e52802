from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_calendar_cache, get_current_user, get_db, require_roles
from app.models.resource_request import RequestStatus
from app.models.user import User, UserRole
from app.schemas.resource_request import (
    ResourceRequestActionOut,
    ResourceRequestCreate,
    ResourceRequestOut,
    ResourceRequestReject,
)
from app.services.calendar_cache import CalendarCache
from app.services.resource_requests import ResourceRequestWorkflow, WorkflowResult

router = APIRouter()


def _workflow(db: Session, cache: CalendarCache) -> ResourceRequestWorkflow:
    return ResourceRequestWorkflow(db, cache)


def _action_out(result: WorkflowResult) -> ResourceRequestActionOut:
    return ResourceRequestActionOut(
        request=ResourceRequestOut.model_validate(result.request),
        created=result.created,
        action=result.action,
        restored_to_period=result.restored_to_period,
        warnings=result.warnings,
    )


@router.get("/mine", response_model=list[ResourceRequestOut])
def list_my_requests(
    request_status: RequestStatus | None = Query(default=None, alias="status"),
    include_dismissed: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> list[ResourceRequestOut]:
    return _workflow(db, cache).list_for_requester(
        current_user,
        status=request_status,
        include_dismissed=include_dismissed,
    )


@router.get("/department", response_model=list[ResourceRequestOut])
def list_department_requests(
    request_status: RequestStatus | None = Query(default=None, alias="status"),
    department_id: str | None = Query(default=None, max_length=36),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.department_head)),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> list[ResourceRequestOut]:
    return _workflow(db, cache).list_for_department(
        current_user,
        department_id=department_id,
        status=request_status,
    )


@router.post("", response_model=ResourceRequestActionOut, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: ResourceRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> ResourceRequestActionOut:
    result = _workflow(db, cache).create(payload.class_session_id, current_user, notes=payload.notes)
    return _action_out(result)


@router.post("/{request_id}/approve", response_model=ResourceRequestActionOut)
def approve_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> ResourceRequestActionOut:
    return _action_out(_workflow(db, cache).approve(request_id, current_user))


@router.post("/{request_id}/reject", response_model=ResourceRequestActionOut)
def reject_request(
    request_id: str,
    payload: ResourceRequestReject,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> ResourceRequestActionOut:
    return _action_out(_workflow(db, cache).reject(request_id, current_user, payload.message))


@router.post("/{request_id}/cancel", response_model=ResourceRequestActionOut)
def cancel_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> ResourceRequestActionOut:
    return _action_out(_workflow(db, cache).cancel(request_id, current_user))


@router.post("/{request_id}/dismiss", response_model=ResourceRequestActionOut)
def dismiss_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> ResourceRequestActionOut:
    return _action_out(_workflow(db, cache).dismiss(request_id, current_user))
