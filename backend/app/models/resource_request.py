import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class ResourceType(str, Enum):
    instructor = "instructor"
    classroom = "classroom"


class RequestStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


ACTIVE_REQUEST_STATUSES = (RequestStatus.pending, RequestStatus.approved)


class ResourceRequest(Base):
    __tablename__ = "resource_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    resource_type: Mapped[ResourceType] = mapped_column(SAEnum(ResourceType, name="resource_type"), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    class_session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    requester_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    requesting_program_id: Mapped[str] = mapped_column(String(36), nullable=False)
    target_department_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[RequestStatus] = mapped_column(
        SAEnum(RequestStatus, name="request_status"),
        nullable=False,
        default=RequestStatus.pending,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Placement recorded when the request was approved; rejection after approval restores it.
    original_class_group_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    original_period_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    dismissed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reviewed_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
