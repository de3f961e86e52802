"""create classgrid schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())]
    if with_updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade() -> None:
    user_role = sa.Enum("admin", "department_head", "program_head", name="user_role")
    assignment_status = sa.Enum("tentative", "confirmed", name="assignment_status")
    resource_type = sa.Enum("instructor", "classroom", name="resource_type")
    request_status = sa.Enum("pending", "approved", "rejected", "cancelled", name="request_status")
    notification_type = sa.Enum(
        "request_created",
        "request_approved",
        "request_rejected",
        "request_cancelled",
        "system",
        name="notification_type",
    )

    op.create_table(
        "departments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_departments_code", "departments", ["code"], unique=True)

    op.create_table(
        "programs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("short_code", sa.String(length=20), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_programs_short_code", "programs", ["short_code"], unique=True)
    op.create_index("ix_programs_department_id", "programs", ["department_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("program_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_department_id", "users", ["department_id"])
    op.create_index("ix_users_program_id", "users", ["program_id"])

    op.create_table(
        "semesters",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_semesters_is_active", "semesters", ["is_active"])

    op.create_table(
        "schedule_configurations",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("semester_id", sa.String(length=36), nullable=True, unique=True),
        sa.Column("periods_per_day", sa.Integer(), nullable=False, server_default="8"),
        sa.Column("class_days_per_week", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("period_duration_mins", sa.Integer(), nullable=False, server_default="90"),
        sa.Column("start_time", sa.String(length=5), nullable=False, server_default="07:30"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "instructors",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("prefix", sa.String(length=20), nullable=True),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_instructors_department_id", "instructors", ["department_id"])

    op.create_table(
        "classrooms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("preferred_department_id", sa.String(length=36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_classrooms_name", "classrooms", ["name"], unique=True)
    op.create_index("ix_classrooms_preferred_department_id", "classrooms", ["preferred_department_id"])

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("program_id", sa.String(length=36), nullable=True),
        sa.Column("units", sa.Integer(), nullable=True),
        sa.Column("lecture_hours", sa.Integer(), nullable=True),
        sa.Column("lab_hours", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_courses_code", "courses", ["code"])
    op.create_index("ix_courses_program_id", "courses", ["program_id"])

    op.create_table(
        "class_groups",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("program_id", sa.String(length=36), nullable=False),
        sa.Column("student_count", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_class_groups_program_id", "class_groups", ["program_id"])

    op.create_table(
        "class_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("class_group_id", sa.String(length=36), nullable=False),
        sa.Column("instructor_id", sa.String(length=36), nullable=False),
        sa.Column("classroom_id", sa.String(length=36), nullable=False),
        sa.Column("period_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("program_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        *_timestamps(with_updated=False),
        sa.CheckConstraint("period_count >= 1", name="ck_class_sessions_period_count"),
    )
    op.create_index("ix_class_sessions_class_group_id", "class_sessions", ["class_group_id"])
    op.create_index("ix_class_sessions_instructor_id", "class_sessions", ["instructor_id"])
    op.create_index("ix_class_sessions_classroom_id", "class_sessions", ["classroom_id"])
    op.create_index("ix_class_sessions_program_id", "class_sessions", ["program_id"])

    op.create_table(
        "timetable_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("class_session_id", sa.String(length=36), nullable=False),
        sa.Column("class_group_id", sa.String(length=36), nullable=False),
        sa.Column("period_index", sa.Integer(), nullable=False),
        sa.Column("semester_id", sa.String(length=36), nullable=False),
        sa.Column("status", assignment_status, nullable=False, server_default="confirmed"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "user_id",
            "class_group_id",
            "period_index",
            "semester_id",
            name="uq_timetable_assignments_cell",
        ),
    )
    op.create_index("ix_timetable_assignments_class_session_id", "timetable_assignments", ["class_session_id"])
    op.create_index("ix_timetable_assignments_semester_id", "timetable_assignments", ["semester_id"])

    op.create_table(
        "resource_requests",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("resource_type", resource_type, nullable=False),
        sa.Column("resource_id", sa.String(length=36), nullable=False),
        sa.Column("class_session_id", sa.String(length=36), nullable=False),
        sa.Column("requester_id", sa.String(length=36), nullable=False),
        sa.Column("requesting_program_id", sa.String(length=36), nullable=False),
        sa.Column("target_department_id", sa.String(length=36), nullable=False),
        sa.Column("status", request_status, nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("rejection_message", sa.Text(), nullable=True),
        sa.Column("original_class_group_id", sa.String(length=36), nullable=True),
        sa.Column("original_period_index", sa.Integer(), nullable=True),
        sa.Column("dismissed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("reviewed_by", sa.String(length=36), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_resource_requests_class_session_id", "resource_requests", ["class_session_id"])
    op.create_index("ix_resource_requests_requester_id", "resource_requests", ["requester_id"])
    op.create_index("ix_resource_requests_target_department_id", "resource_requests", ["target_department_id"])
    op.create_index("ix_resource_requests_status", "resource_requests", ["status"])

    op.create_table(
        "request_notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("request_id", sa.String(length=36), nullable=False),
        sa.Column("target_department_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type, nullable=False, server_default="system"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_request_notifications_request_id", "request_notifications", ["request_id"])
    op.create_index(
        "ix_request_notifications_target_department_id", "request_notifications", ["target_department_id"]
    )
    op.create_index("ix_request_notifications_user_id", "request_notifications", ["user_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    for table_name in (
        "activity_logs",
        "request_notifications",
        "resource_requests",
        "timetable_assignments",
        "class_sessions",
        "class_groups",
        "courses",
        "classrooms",
        "instructors",
        "schedule_configurations",
        "semesters",
        "users",
        "programs",
        "departments",
    ):
        op.drop_table(table_name)

    bind = op.get_bind()
    for enum_name in ("notification_type", "request_status", "resource_type", "assignment_status", "user_role"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
