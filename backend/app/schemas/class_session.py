from datetime import datetime

from pydantic import BaseModel, Field


class ClassSessionCreate(BaseModel):
    course_id: str = Field(min_length=1, max_length=36)
    class_group_id: str = Field(min_length=1, max_length=36)
    instructor_id: str = Field(min_length=1, max_length=36)
    classroom_id: str = Field(min_length=1, max_length=36)
    period_count: int = Field(default=1, ge=1, le=12)


class ClassSessionOut(BaseModel):
    id: str
    course_id: str
    class_group_id: str
    instructor_id: str
    classroom_id: str
    period_count: int
    program_id: str | None = None
    user_id: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ClassSessionDeleteOut(BaseModel):
    success: bool
    warnings: list[str] = Field(default_factory=list)
