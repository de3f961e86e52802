from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.resource_request import RequestStatus, ResourceType


class ResourceRequestCreate(BaseModel):
    class_session_id: str = Field(min_length=1, max_length=36)
    notes: str | None = Field(default=None, max_length=2000)


class ResourceRequestReject(BaseModel):
    message: str = Field(max_length=2000)

    @field_validator("message")
    @classmethod
    def strip_message(cls, value: str) -> str:
        return value.strip()


class ResourceRequestOut(BaseModel):
    id: str
    resource_type: ResourceType
    resource_id: str
    class_session_id: str
    requester_id: str
    requesting_program_id: str
    target_department_id: str
    status: RequestStatus
    notes: str | None = None
    rejection_message: str | None = None
    original_class_group_id: str | None = None
    original_period_index: int | None = None
    dismissed: bool
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    requested_at: datetime | None = None

    model_config = {"from_attributes": True}


class ResourceRequestActionOut(BaseModel):
    request: ResourceRequestOut
    created: bool = False
    action: str | None = None
    restored_to_period: int | None = None
    warnings: list[str] = Field(default_factory=list)
