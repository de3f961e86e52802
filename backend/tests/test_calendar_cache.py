from types import SimpleNamespace

import pytest

from app.models.timetable import AssignmentStatus
from app.services.calendar_cache import (
    CACHE_SCHEMA_VERSION,
    AssignmentSnapshot,
    CacheFormatError,
    CalendarCache,
    decode,
    migrate_blob,
)


def row(period_index, session_id="s1"):
    return SimpleNamespace(
        id=f"a-{period_index}",
        user_id="u1",
        class_session_id=session_id,
        class_group_id="g1",
        period_index=period_index,
        semester_id="sem",
        status=AssignmentStatus.confirmed,
    )


def test_read_through_loads_once():
    cache = CalendarCache()
    calls = []

    def loader():
        calls.append(1)
        return [row(0)]

    first = cache.get("sem", loader)
    second = cache.get("sem", loader)

    assert first == second
    assert first[0].status == "confirmed"
    assert len(calls) == 1


def test_disabled_cache_always_loads():
    cache = CalendarCache(enabled=False)
    calls = []

    def loader():
        calls.append(1)
        return []

    cache.get("sem", loader)
    cache.get("sem", loader)
    assert len(calls) == 2
    assert cache.snapshot("sem") is None


def test_apply_and_restore_snapshot():
    cache = CalendarCache()
    cache.get("sem", lambda: [row(0)])
    before = cache.snapshot("sem")

    moved = AssignmentSnapshot(None, "u1", "s1", "g1", 5, "sem", "confirmed")
    cache.apply("sem", upsert=moved, remove_cell=("u1", "g1", 0, "sem"))
    assert [item.period_index for item in cache.get("sem", list)] == [5]

    cache.restore("sem", before)
    assert [item.period_index for item in cache.get("sem", list)] == [0]


def test_upsert_replaces_the_same_cell():
    cache = CalendarCache()
    cache.get("sem", lambda: [row(0)])

    cache.apply("sem", upsert=AssignmentSnapshot(None, "u1", "s2", "g1", 0, "sem", "tentative"))

    items = cache.get("sem", list)
    assert [(item.class_session_id, item.status) for item in items] == [("s2", "tentative")]


def test_version_one_blob_is_migrated():
    legacy = {
        "schema_version": 1,
        "semester_id": "sem",
        "assignments": [
            {
                "user_id": "u1",
                "class_session_id": "s1",
                "class_group_id": "g1",
                "period": 3,
                "semester_id": "sem",
            }
        ],
    }

    migrated = migrate_blob(legacy)

    assert migrated["schema_version"] == CACHE_SCHEMA_VERSION
    assert decode(legacy) == [AssignmentSnapshot(None, "u1", "s1", "g1", 3, "sem", "confirmed")]


@pytest.mark.parametrize("blob", [{"assignments": []}, {"schema_version": 99, "assignments": []}, []])
def test_unversioned_or_unknown_blobs_are_refused(blob):
    with pytest.raises(CacheFormatError):
        migrate_blob(blob)


def test_invalidate_drops_entries():
    cache = CalendarCache()
    cache.get("a", list)
    cache.get("b", list)

    cache.invalidate("a")
    assert cache.snapshot("a") is None
    assert cache.snapshot("b") is not None

    cache.invalidate()
    assert cache.snapshot("b") is None


@pytest.mark.parametrize("scope", ["sem", None])
def test_load_racing_a_write_is_not_stored(scope):
    cache = CalendarCache()

    def loader():
        cache.invalidate(scope)
        return [row(0)]

    loaded = cache.get("sem", loader)

    assert [item.period_index for item in loaded] == [0]
    assert cache.snapshot("sem") is None
    cache.get("sem", lambda: [row(3)])
    assert [item["period_index"] for item in cache.snapshot("sem")["assignments"]] == [3]


def test_apply_during_load_discards_the_loaded_list():
    cache = CalendarCache()

    def loader():
        cache.apply("sem", remove_cell=("u1", "g1", 0, "sem"))
        return [row(0)]

    cache.get("sem", loader)

    assert cache.snapshot("sem") is None
