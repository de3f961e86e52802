import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import date  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_db  # noqa: E402
from app.core.security import get_password_hash  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models import (  # noqa: E402
    ClassGroup,
    ClassSession,
    Classroom,
    Course,
    Department,
    Instructor,
    Program,
    ScheduleConfiguration,
    Semester,
    User,
    UserRole,
)
from app.services.calendar_cache import CalendarCache  # noqa: E402

PASSWORD = "password123"


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def cache():
    return CalendarCache()


@pytest.fixture()
def client(session_factory, cache):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.calendar_cache = cache

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _user(db, *, name, email, role, department_id=None, program_id=None):
    # Cheap bcrypt rounds keep the suite fast.
    user = User(
        name=name,
        email=email,
        hashed_password=get_password_hash(PASSWORD, rounds=4),
        role=role,
        department_id=department_id,
        program_id=program_id,
    )
    db.add(user)
    return user


@pytest.fixture()
def world(db):
    """Two departments, one program in department A, and resources on both sides.

    Department A (Computer Science) owns program BSCS, instructor Ada Lovelace
    and no classrooms. Department B (Mathematics) owns instructor Carl Gauss
    and room M-101. Room R-1 is shared (no preferred department).
    """
    dept_a = Department(name="Computer Science", code="CS")
    dept_b = Department(name="Mathematics", code="MATH")
    db.add_all([dept_a, dept_b])
    db.flush()

    program = Program(name="BS Computer Science", short_code="BSCS", department_id=dept_a.id)
    other_program = Program(name="BS Applied Math", short_code="BSAM", department_id=dept_b.id)
    db.add_all([program, other_program])
    db.flush()

    semester = Semester(name="Fall", start_date=date(2026, 8, 1), end_date=date(2026, 12, 15), is_active=True)
    db.add(semester)
    db.flush()
    config = ScheduleConfiguration(
        semester_id=semester.id,
        periods_per_day=8,
        class_days_per_week=5,
        period_duration_mins=90,
        start_time="07:30",
    )
    db.add(config)

    group_1 = ClassGroup(name="CS-1A", code="1A", program_id=program.id, student_count=30)
    group_2 = ClassGroup(name="CS-1B", code="1B", program_id=program.id, student_count=25)
    math_group = ClassGroup(name="AM-1A", code="AM1", program_id=other_program.id, student_count=20)
    db.add_all([group_1, group_2, math_group])

    ada = Instructor(first_name="Ada", last_name="Lovelace", department_id=dept_a.id)
    grace = Instructor(first_name="Grace", last_name="Hopper", department_id=dept_a.id)
    gauss = Instructor(first_name="Carl", last_name="Gauss", department_id=dept_b.id)
    db.add_all([ada, grace, gauss])

    shared_room = Classroom(name="R-1", capacity=40)
    small_room = Classroom(name="R-2", capacity=10)
    math_room = Classroom(name="M-101", capacity=40, preferred_department_id=dept_b.id)
    db.add_all([shared_room, small_room, math_room])

    cs101 = Course(code="CS101", name="Intro to Programming", program_id=program.id)
    cs102 = Course(code="CS102", name="Data Structures", program_id=program.id)
    ma101 = Course(code="MA101", name="Calculus", program_id=program.id)
    db.add_all([cs101, cs102, ma101])
    db.flush()

    admin = _user(db, name="Admin", email="admin@example.com", role=UserRole.admin)
    program_head = _user(
        db,
        name="Program Head A",
        email="ph-a@example.com",
        role=UserRole.program_head,
        department_id=dept_a.id,
        program_id=program.id,
    )
    other_program_head = _user(
        db,
        name="Program Head M",
        email="ph-m@example.com",
        role=UserRole.program_head,
        department_id=dept_b.id,
        program_id=other_program.id,
    )
    head_a = _user(
        db, name="Head A", email="dh-a@example.com", role=UserRole.department_head, department_id=dept_a.id
    )
    head_b = _user(
        db, name="Head B", email="dh-b@example.com", role=UserRole.department_head, department_id=dept_b.id
    )
    db.commit()

    return SimpleNamespace(
        dept_a=dept_a,
        dept_b=dept_b,
        program=program,
        other_program=other_program,
        semester=semester,
        config=config,
        group_1=group_1,
        group_2=group_2,
        math_group=math_group,
        ada=ada,
        grace=grace,
        gauss=gauss,
        shared_room=shared_room,
        small_room=small_room,
        math_room=math_room,
        cs101=cs101,
        cs102=cs102,
        ma101=ma101,
        admin=admin,
        program_head=program_head,
        other_program_head=other_program_head,
        head_a=head_a,
        head_b=head_b,
    )


@pytest.fixture()
def make_session(db):
    def factory(*, course, group, instructor, classroom, owner, period_count=1):
        session = ClassSession(
            course_id=course.id,
            class_group_id=group.id,
            instructor_id=instructor.id,
            classroom_id=classroom.id,
            period_count=period_count,
            program_id=group.program_id,
            user_id=owner.id,
        )
        db.add(session)
        db.commit()
        return session

    return factory
