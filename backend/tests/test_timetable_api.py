from sqlalchemy import select

from app.models import ResourceRequest, TimetableAssignment
from app.models.resource_request import RequestStatus

PASSWORD = "password123"


def _login(client, email: str) -> dict[str, str]:
    response = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _assign(client, headers, *, session_id: str, group_id: str, period_index: int):
    return client.post(
        "/api/timetable/assignments",
        headers=headers,
        json={"class_session_id": session_id, "class_group_id": group_id, "period_index": period_index},
    )


def _assignments(session_factory, session_id: str) -> list[TimetableAssignment]:
    with session_factory() as fresh:
        return list(
            fresh.execute(select(TimetableAssignment).where(TimetableAssignment.class_session_id == session_id)).scalars()
        )


def test_instructor_double_booking_is_rejected_with_competitor(client, world, make_session):
    first = make_session(
        course=world.cs101, group=world.group_1, instructor=world.ada, classroom=world.shared_room, owner=world.program_head
    )
    second = make_session(
        course=world.cs102, group=world.group_2, instructor=world.ada, classroom=world.small_room, owner=world.program_head
    )
    first_id, second_id = first.id, second.id
    group_1_id, group_2_id = world.group_1.id, world.group_2.id
    headers = _login(client, "ph-a@example.com")

    placed = _assign(client, headers, session_id=first_id, group_id=group_1_id, period_index=0)
    assert placed.status_code == 200
    assert placed.json()["status"] == "confirmed"

    blocked = _assign(client, headers, session_id=second_id, group_id=group_2_id, period_index=0)
    assert blocked.status_code == 409
    body = blocked.json()
    assert body["ok"] is False
    assert body["error"].startswith("Instructor conflict")
    assert "CS-1A" in body["error"]
    assert "CS101" in body["error"]


def test_foreign_instructor_request_is_approved(client, session_factory, world, make_session):
    session = make_session(
        course=world.ma101, group=world.group_1, instructor=world.gauss, classroom=world.shared_room, owner=world.program_head
    )
    session_id, group_id = session.id, world.group_1.id
    requester = _login(client, "ph-a@example.com")

    placed = _assign(client, requester, session_id=session_id, group_id=group_id, period_index=2)
    assert placed.status_code == 200
    assert placed.json()["status"] == "tentative"
    request_id = placed.json()["request_id"]
    assert request_id

    reviewer = _login(client, "dh-b@example.com")
    pending = client.get("/api/resource-requests/department", headers=reviewer, params={"status": "pending"})
    assert pending.status_code == 200
    assert [item["id"] for item in pending.json()] == [request_id]

    approved = client.post(f"/api/resource-requests/{request_id}/approve", headers=reviewer)
    assert approved.status_code == 200
    assert approved.json()["request"]["status"] == "approved"
    assert approved.json()["request"]["original_period_index"] == 2

    rows = _assignments(session_factory, session_id)
    assert [(row.period_index, row.status.value) for row in rows] == [(2, "confirmed")]

    mine = client.get("/api/resource-requests/mine", headers=requester)
    assert [item["status"] for item in mine.json()] == ["approved"]


def test_other_department_head_cannot_approve(client, world, make_session):
    session = make_session(
        course=world.ma101, group=world.group_1, instructor=world.gauss, classroom=world.shared_room, owner=world.program_head
    )
    session_id, group_id = session.id, world.group_1.id
    requester = _login(client, "ph-a@example.com")
    request_id = _assign(client, requester, session_id=session_id, group_id=group_id, period_index=0).json()["request_id"]

    response = client.post(f"/api/resource-requests/{request_id}/approve", headers=_login(client, "dh-a@example.com"))
    assert response.status_code == 403


def test_rejection_removes_tentative_class_and_notifies_requester(client, session_factory, world, make_session):
    session = make_session(
        course=world.ma101, group=world.group_1, instructor=world.gauss, classroom=world.shared_room, owner=world.program_head
    )
    session_id, group_id = session.id, world.group_1.id
    requester = _login(client, "ph-a@example.com")
    request_id = _assign(client, requester, session_id=session_id, group_id=group_id, period_index=1).json()["request_id"]

    reviewer = _login(client, "dh-b@example.com")
    empty = client.post(f"/api/resource-requests/{request_id}/reject", headers=reviewer, json={"message": "   "})
    assert empty.status_code == 422

    rejected = client.post(
        f"/api/resource-requests/{request_id}/reject",
        headers=reviewer,
        json={"message": "Instructor unavailable"},
    )
    assert rejected.status_code == 200
    assert rejected.json()["request"]["status"] == "rejected"
    assert rejected.json()["action"] == "removed_from_timetable"
    assert _assignments(session_factory, session_id) == []

    inbox = client.get("/api/notifications", headers=requester)
    assert inbox.status_code == 200
    messages = [item["message"] for item in inbox.json() if item["request_id"] == request_id]
    assert messages == ["Instructor unavailable"]

    dismissed = client.post(f"/api/resource-requests/{request_id}/dismiss", headers=requester)
    assert dismissed.status_code == 200
    assert client.get("/api/resource-requests/mine", headers=requester).json() == []
    assert all(item["is_read"] for item in client.get("/api/notifications", headers=requester).json())


def test_requester_cancels_pending_request(client, session_factory, world, make_session):
    session = make_session(
        course=world.ma101, group=world.group_1, instructor=world.gauss, classroom=world.shared_room, owner=world.program_head
    )
    session_id, group_id = session.id, world.group_1.id
    requester = _login(client, "ph-a@example.com")
    reviewer = _login(client, "dh-b@example.com")
    request_id = _assign(client, requester, session_id=session_id, group_id=group_id, period_index=3).json()["request_id"]

    pending_before = client.get("/api/resource-requests/department", headers=reviewer, params={"status": "pending"}).json()
    assert len(pending_before) == 1

    not_mine = client.post(f"/api/resource-requests/{request_id}/cancel", headers=reviewer)
    assert not_mine.status_code == 403

    cancelled = client.post(f"/api/resource-requests/{request_id}/cancel", headers=requester)
    assert cancelled.status_code == 200
    assert cancelled.json()["request"]["status"] == "cancelled"
    assert _assignments(session_factory, session_id) == []

    pending_after = client.get("/api/resource-requests/department", headers=reviewer, params={"status": "pending"}).json()
    assert pending_after == []

    again = client.post(f"/api/resource-requests/{request_id}/cancel", headers=requester)
    assert again.status_code == 409


def test_timetable_views_render_placements(client, world, make_session):
    session = make_session(
        course=world.cs101,
        group=world.group_1,
        instructor=world.ada,
        classroom=world.shared_room,
        owner=world.program_head,
        period_count=2,
    )
    session_id, group_id = session.id, world.group_1.id
    ada_id, room_id = world.ada.id, world.shared_room.id
    headers = _login(client, "ph-a@example.com")
    assert _assign(client, headers, session_id=session_id, group_id=group_id, period_index=4).status_code == 200

    grid = client.get("/api/timetable", headers=headers)
    assert grid.status_code == 200
    payload = grid.json()
    assert payload["view"] == "class-group"
    assert payload["total_periods"] == 40
    assert payload["period_labels"][0] == "Day 1, 07:30-09:00"
    row = next(item for item in payload["rows"] if item["resource_id"] == group_id)
    assert [entry["class_session_id"] for entry in row["cells"][4]] == [session_id]
    assert [entry["class_session_id"] for entry in row["cells"][5]] == [session_id]
    assert row["cells"][6] == []

    by_instructor = client.get("/api/timetable", headers=headers, params={"view": "instructor"}).json()
    instructor_row = next(item for item in by_instructor["rows"] if item["resource_id"] == ada_id)
    assert instructor_row["resource_name"] == "Ada Lovelace"
    assert instructor_row["cells"][4][0]["start_period"] == 4

    by_room = client.get("/api/timetable", headers=headers, params={"view": "classroom"}).json()
    room_row = next(item for item in by_room["rows"] if item["resource_id"] == room_id)
    assert room_row["cells"][5][0]["course_code"] == "CS101"


def test_move_and_remove_over_http(client, session_factory, world, make_session):
    session = make_session(
        course=world.cs101, group=world.group_1, instructor=world.ada, classroom=world.shared_room, owner=world.program_head
    )
    session_id, group_id = session.id, world.group_1.id
    headers = _login(client, "ph-a@example.com")
    _assign(client, headers, session_id=session_id, group_id=group_id, period_index=0)

    beyond = client.post(
        "/api/timetable/assignments/move",
        headers=headers,
        json={
            "class_session_id": session_id,
            "from_resource_id": group_id,
            "from_period_index": 0,
            "to_resource_id": group_id,
            "to_period_index": 40,
        },
    )
    assert beyond.status_code == 409

    moved = client.post(
        "/api/timetable/assignments/move",
        headers=headers,
        json={
            "class_session_id": session_id,
            "from_resource_id": group_id,
            "from_period_index": 0,
            "to_resource_id": group_id,
            "to_period_index": 9,
        },
    )
    assert moved.status_code == 200
    assert [row.period_index for row in _assignments(session_factory, session_id)] == [9]

    removed = client.delete(
        "/api/timetable/assignments",
        headers=headers,
        params={"resource_id": group_id, "period_index": 9},
    )
    assert removed.status_code == 200
    assert removed.json()["ok"] is True
    assert _assignments(session_factory, session_id) == []


def test_other_program_head_cannot_assign(client, world, make_session):
    session = make_session(
        course=world.cs101, group=world.group_1, instructor=world.ada, classroom=world.shared_room, owner=world.program_head
    )
    session_id, group_id = session.id, world.group_1.id

    response = _assign(client, _login(client, "ph-m@example.com"), session_id=session_id, group_id=group_id, period_index=0)
    assert response.status_code == 403


def test_class_session_lifecycle(client, session_factory, world):
    payload = {
        "course_id": world.ma101.id,
        "class_group_id": world.group_1.id,
        "instructor_id": world.gauss.id,
        "classroom_id": world.shared_room.id,
    }
    group_id = world.group_1.id
    requester = _login(client, "ph-a@example.com")

    created = client.post("/api/class-sessions", headers=requester, json=payload)
    assert created.status_code == 201
    session_id = created.json()["id"]
    assert created.json()["period_count"] == 1

    listed = client.get("/api/class-sessions", headers=requester)
    assert [item["id"] for item in listed.json()] == [session_id]

    request_id = _assign(client, requester, session_id=session_id, group_id=group_id, period_index=0).json()["request_id"]

    deleted = client.delete(f"/api/class-sessions/{session_id}", headers=requester)
    assert deleted.status_code == 200
    assert deleted.json()["success"] is True
    assert _assignments(session_factory, session_id) == []
    with session_factory() as fresh:
        assert fresh.get(ResourceRequest, request_id).status == RequestStatus.cancelled

    missing = client.delete(f"/api/class-sessions/{session_id}", headers=requester)
    assert missing.status_code == 404


def test_notifications_read_and_read_all(client, world, make_session):
    for course, period in ((world.ma101, 0), (world.cs102, 1)):
        session = make_session(
            course=course, group=world.group_1, instructor=world.gauss, classroom=world.shared_room, owner=world.program_head
        )
        _assign(
            client,
            _login(client, "ph-a@example.com"),
            session_id=session.id,
            group_id=world.group_1.id,
            period_index=period,
        )

    reviewer = _login(client, "dh-b@example.com")
    inbox = client.get("/api/notifications", headers=reviewer, params={"unread_only": True}).json()
    assert len(inbox) == 2

    first = client.post(f"/api/notifications/{inbox[0]['id']}/read", headers=reviewer)
    assert first.status_code == 200
    assert first.json()["is_read"] is True

    rest = client.post("/api/notifications/read-all", headers=reviewer)
    assert rest.json() == {"updated": 1}
    assert client.get("/api/notifications", headers=reviewer, params={"unread_only": True}).json() == []

    outsider = client.post(f"/api/notifications/{inbox[0]['id']}/read", headers=_login(client, "dh-a@example.com"))
    assert outsider.status_code == 404


def test_department_queue_is_reserved_for_reviewers(client, world):
    response = client.get("/api/resource-requests/department", headers=_login(client, "ph-a@example.com"))
    assert response.status_code == 403
