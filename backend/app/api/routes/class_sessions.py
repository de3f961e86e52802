from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_calendar_cache, get_current_user, get_db
from app.models.user import User
from app.schemas.class_session import ClassSessionCreate, ClassSessionDeleteOut, ClassSessionOut
from app.services.calendar_cache import CalendarCache
from app.services.class_sessions import create_class_session, delete_class_session, list_class_sessions

router = APIRouter()


@router.get("", response_model=list[ClassSessionOut])
def list_sessions(
    program_id: str | None = Query(default=None, max_length=36),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ClassSessionOut]:
    return list_class_sessions(db, current_user, program_id=program_id)


@router.post("", response_model=ClassSessionOut, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: ClassSessionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ClassSessionOut:
    return create_class_session(db, current_user, **payload.model_dump())


@router.delete("/{class_session_id}", response_model=ClassSessionDeleteOut)
def delete_session(
    class_session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    cache: CalendarCache = Depends(get_calendar_cache),
) -> ClassSessionDeleteOut:
    warnings = delete_class_session(db, cache, current_user, class_session_id)
    return ClassSessionDeleteOut(success=True, warnings=warnings)
