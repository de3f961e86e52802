import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class Semester(Base):
    __tablename__ = "semesters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ScheduleConfiguration(Base):
    __tablename__ = "schedule_configurations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    semester_id: Mapped[str | None] = mapped_column(String(36), nullable=True, unique=True)
    periods_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    class_days_per_week: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    period_duration_mins: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False, default="07:30")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def total_periods(self) -> int:
        return self.periods_per_day * self.class_days_per_week
