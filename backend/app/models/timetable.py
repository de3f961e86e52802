import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class AssignmentStatus(str, Enum):
    tentative = "tentative"
    confirmed = "confirmed"


class TimetableAssignment(Base):
    __tablename__ = "timetable_assignments"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "class_group_id",
            "period_index",
            "semester_id",
            name="uq_timetable_assignments_cell",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    class_session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    class_group_id: Mapped[str] = mapped_column(String(36), nullable=False)
    period_index: Mapped[int] = mapped_column(Integer, nullable=False)
    semester_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        SAEnum(AssignmentStatus, name="assignment_status"),
        nullable=False,
        default=AssignmentStatus.confirmed,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
