import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.exceptions import ConfigurationError, PermissionDeniedError, TransientIOError
from app.models import RequestNotification, RequestStatus, ResourceRequest, TimetableAssignment
from app.services import assignment_store
from app.services.assignment_coordinator import DIVERGENCE_WARNING, AssignmentCoordinator
from app.services.calendar import ViewMode
from app.services.timetable_context import cached_assignments


def assignments(db):
    db.expire_all()
    return list(db.execute(select(TimetableAssignment).order_by(TimetableAssignment.period_index)).scalars())


@pytest.fixture()
def coordinator(db, cache, world):
    return AssignmentCoordinator(db, cache, world.program_head)


@pytest.fixture()
def own_session(world, make_session):
    return make_session(
        course=world.cs101,
        group=world.group_1,
        instructor=world.ada,
        classroom=world.shared_room,
        owner=world.program_head,
    )


@pytest.fixture()
def borrowed_session(world, make_session):
    return make_session(
        course=world.ma101,
        group=world.group_1,
        instructor=world.gauss,
        classroom=world.shared_room,
        owner=world.program_head,
    )


def test_assign_own_department_session_is_confirmed(db, coordinator, world, own_session):
    result = coordinator.assign(world.group_1.id, 0, own_session.id)

    assert result.ok
    assert result.status == "confirmed"
    assert result.request_id is None
    rows = assignments(db)
    assert [(row.class_group_id, row.period_index, row.status.value) for row in rows] == [
        (world.group_1.id, 0, "confirmed")
    ]
    assert rows[0].user_id == world.program_head.id


def test_assign_then_remove_restores_prior_state(db, coordinator, world, own_session):
    assert coordinator.assign(world.group_1.id, 3, own_session.id).ok

    result = coordinator.remove(world.group_1.id, 3)

    assert result.ok
    assert assignments(db) == []


def test_remove_empty_cell_is_noop(coordinator, world):
    result = coordinator.remove(world.group_1.id, 5)
    assert result.ok
    assert result.noop


def test_assigning_same_cell_twice_is_noop(db, coordinator, world, own_session):
    assert coordinator.assign(world.group_1.id, 1, own_session.id).ok

    result = coordinator.assign(world.group_1.id, 1, own_session.id)

    assert result.noop
    assert len(assignments(db)) == 1


def test_instructor_conflict_blocks_second_group(db, coordinator, world, own_session, make_session):
    other = make_session(
        course=world.cs102,
        group=world.group_2,
        instructor=world.ada,
        classroom=world.small_room,
        owner=world.program_head,
    )
    assert coordinator.assign(world.group_1.id, 0, own_session.id).ok

    result = coordinator.assign(world.group_2.id, 0, other.id)

    assert not result.ok
    assert result.error_kind == "conflict"
    assert result.error.startswith("Instructor conflict: Ada Lovelace is already scheduled to teach group 'CS-1A'")
    assert len(assignments(db)) == 1


def test_multi_period_class_rejected_across_day_boundary(db, coordinator, world, make_session):
    lab = make_session(
        course=world.cs102,
        group=world.group_1,
        instructor=world.grace,
        classroom=world.shared_room,
        owner=world.program_head,
        period_count=2,
    )

    result = coordinator.assign(world.group_1.id, 7, lab.id)

    assert not result.ok
    assert "Class cannot span multiple days" in result.error
    assert assignments(db) == []
    assert coordinator.assign(world.group_1.id, 6, lab.id).ok


def test_three_period_class_from_last_period_of_day_is_rejected(db, coordinator, world, make_session):
    lab = make_session(
        course=world.cs102,
        group=world.group_1,
        instructor=world.grace,
        classroom=world.shared_room,
        owner=world.program_head,
        period_count=3,
    )

    result = coordinator.assign(world.group_1.id, 7, lab.id)

    assert not result.ok
    assert result.error_kind == "conflict"
    assert "Class cannot span multiple days" in result.error
    assert assignments(db) == []
    assert coordinator.assign(world.group_1.id, 5, lab.id).ok


def test_identical_sessions_of_one_group_cannot_share_a_cell(db, coordinator, world, own_session, make_session):
    twin = make_session(
        course=world.cs101,
        group=world.group_1,
        instructor=world.ada,
        classroom=world.shared_room,
        owner=world.program_head,
    )
    assert coordinator.assign(world.group_1.id, 0, own_session.id).ok

    result = coordinator.assign(world.group_1.id, 0, twin.id)

    assert not result.ok
    assert result.error.startswith("Group conflict: Period 1 is already occupied by class 'CS101'")
    assert [row.class_session_id for row in assignments(db)] == [own_session.id]


def test_move_vacates_source_cell(db, coordinator, world, own_session):
    assert coordinator.assign(world.group_1.id, 0, own_session.id).ok

    result = coordinator.move(world.group_1.id, 0, world.group_1.id, 9, own_session.id)

    assert result.ok
    assert [row.period_index for row in assignments(db)] == [9]


def test_move_to_same_cell_is_noop(coordinator, world, own_session):
    assert coordinator.assign(world.group_1.id, 0, own_session.id).ok
    assert coordinator.move(world.group_1.id, 0, world.group_1.id, 0, own_session.id).noop


def test_classroom_view_refuses_other_classroom_row(db, coordinator, world, own_session):
    result = coordinator.assign(world.math_room.id, 0, own_session.id, ViewMode.classroom)

    assert not result.ok
    assert result.error.startswith("Classroom mismatch")
    assert coordinator.assign(world.shared_room.id, 0, own_session.id, ViewMode.classroom).ok
    assert assignments(db)[0].class_group_id == world.group_1.id


def test_foreign_instructor_creates_tentative_assignment_and_request(db, coordinator, world, borrowed_session):
    result = coordinator.assign(world.group_1.id, 2, borrowed_session.id)

    assert result.ok
    assert result.status == "tentative"
    request = db.get(ResourceRequest, result.request_id)
    assert request.status == RequestStatus.pending
    assert request.resource_id == world.gauss.id
    assert request.target_department_id == world.dept_b.id
    assert assignments(db)[0].status.value == "tentative"
    notes = list(db.execute(select(RequestNotification)).scalars())
    assert [note.target_department_id for note in notes] == [world.dept_b.id]


def test_removing_pending_session_withdraws_its_request(db, coordinator, world, borrowed_session):
    placed = coordinator.assign(world.group_1.id, 2, borrowed_session.id)

    result = coordinator.remove(world.group_1.id, 2)

    assert result.ok
    db.expire_all()
    assert db.get(ResourceRequest, placed.request_id).status == RequestStatus.cancelled
    messages = [note.message for note in db.execute(select(RequestNotification)).scalars()]
    assert any("cancelled by the program head" in message for message in messages)


def test_other_program_head_cannot_place_session(db, cache, world, own_session):
    intruder = AssignmentCoordinator(db, cache, world.other_program_head)
    with pytest.raises(PermissionDeniedError):
        intruder.assign(world.group_1.id, 0, own_session.id)


def test_failed_write_rolls_back_store_and_cache(db, cache, coordinator, world, own_session, monkeypatch):
    cached_assignments(db, cache, world.semester.id)
    before = cache.snapshot(world.semester.id)

    def broken_upsert(*args, **kwargs):
        raise OperationalError("INSERT INTO timetable_assignments", {}, Exception("disk I/O error"))

    monkeypatch.setattr(assignment_store, "upsert_assignment", broken_upsert)

    with pytest.raises(TransientIOError):
        coordinator.assign(world.group_1.id, 0, own_session.id)

    assert cache.snapshot(world.semester.id) == before
    assert assignments(db) == []


def test_lost_cell_race_adds_divergence_warning(coordinator, world, own_session, monkeypatch):
    monkeypatch.setattr(assignment_store, "get_cell", lambda *args, **kwargs: None)

    result = coordinator.assign(world.group_1.id, 0, own_session.id)

    assert result.ok
    assert DIVERGENCE_WARNING in result.warnings


def test_successful_write_invalidates_cache(db, cache, coordinator, world, own_session):
    cached_assignments(db, cache, world.semester.id)
    assert cache.snapshot(world.semester.id) is not None

    coordinator.assign(world.group_1.id, 0, own_session.id)

    assert cache.snapshot(world.semester.id) is None


def test_degenerate_schedule_configuration_is_refused(db, coordinator, world, own_session):
    world.config.periods_per_day = 0
    db.commit()

    with pytest.raises(ConfigurationError):
        coordinator.assign(world.group_1.id, 0, own_session.id)


def test_assigning_placed_session_elsewhere_asks_for_move(db, coordinator, world, own_session):
    coordinator.assign(world.group_1.id, 0, own_session.id)

    result = coordinator.assign(world.group_1.id, 5, own_session.id)

    assert not result.ok
    assert result.error_kind == "validation"
    assert "move it instead" in result.error
    assert [row.period_index for row in assignments(db)] == [0]
