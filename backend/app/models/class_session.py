import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class ClassSession(Base):
    __tablename__ = "class_sessions"
    __table_args__ = (
        CheckConstraint("period_count >= 1", name="ck_class_sessions_period_count"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id: Mapped[str] = mapped_column(String(36), nullable=False)
    class_group_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    instructor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    classroom_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    period_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    program_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
