from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from app.services.calendar import ViewMode


class AssignmentCreate(BaseModel):
    class_session_id: str = Field(min_length=1, max_length=36)
    period_index: int = Field(ge=0)
    resource_id: str | None = Field(default=None, max_length=36)
    class_group_id: str | None = Field(default=None, max_length=36)
    view: ViewMode = ViewMode.class_group

    @model_validator(mode="after")
    def resolve_resource(self) -> "AssignmentCreate":
        self.resource_id = self.resource_id or self.class_group_id
        if not self.resource_id:
            raise ValueError("resource_id (or class_group_id) is required")
        return self


class AssignmentMove(BaseModel):
    class_session_id: str = Field(min_length=1, max_length=36)
    from_resource_id: str = Field(min_length=1, max_length=36)
    from_period_index: int = Field(ge=0)
    to_resource_id: str = Field(min_length=1, max_length=36)
    to_period_index: int = Field(ge=0)
    view: ViewMode = ViewMode.class_group


class MutationOut(BaseModel):
    ok: bool
    error: str | None = None
    noop: bool = False
    warnings: list[str] = Field(default_factory=list)
    status: str | None = None
    request_id: str | None = None


class CellEntryOut(BaseModel):
    class_session_id: str
    course_code: str
    course_name: str
    class_group_id: str
    group_name: str
    instructor_name: str
    classroom_name: str
    start_period: int
    period_count: int
    status: str


class TimetableRowOut(BaseModel):
    resource_id: str
    resource_name: str
    cells: list[list[CellEntryOut]]


class TimetableOut(BaseModel):
    view: ViewMode
    semester_id: str
    periods_per_day: int
    class_days_per_week: int
    total_periods: int
    period_labels: list[str]
    rows: list[TimetableRowOut]
