from __future__ import annotations

from app.core.exceptions import PermissionDeniedError
from app.models.user import User, UserRole


def is_admin(user: User | None) -> bool:
    return user is not None and user.role == UserRole.admin


def is_department_head(user: User | None, department_id: str | None = None) -> bool:
    if user is None or user.role != UserRole.department_head:
        return False
    return department_id is None or user.department_id == department_id


def is_program_head(user: User | None, program_id: str | None = None) -> bool:
    if user is None or user.role != UserRole.program_head:
        return False
    return program_id is None or user.program_id == program_id


def can_review_requests_for_department(user: User | None, department_id: str | None) -> bool:
    if is_admin(user):
        return True
    return department_id is not None and is_department_head(user, department_id)


def can_manage_assignments_for_program(user: User | None, program_id: str | None) -> bool:
    if is_admin(user):
        return True
    return program_id is not None and is_program_head(user, program_id)


def ensure_can_manage_program(user: User | None, program_id: str | None) -> None:
    if not can_manage_assignments_for_program(user, program_id):
        raise PermissionDeniedError("You can only manage the timetable of your own program")


def ensure_can_review_department(user: User | None, department_id: str | None) -> None:
    if not can_review_requests_for_department(user, department_id):
        raise PermissionDeniedError("You can only review requests addressed to your department")
