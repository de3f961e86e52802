"""Per-semester read-through cache of timetable assignments.

Entries are stored as versioned blobs so a snapshot taken before an optimistic
update can be restored byte-for-byte, and so blobs written by an older layout
are migrated explicitly instead of being read by guesswork.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
import copy
from dataclasses import asdict, dataclass
import logging
import threading

from app.models.timetable import TimetableAssignment

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 2


class CacheFormatError(ValueError):
    pass


@dataclass(frozen=True)
class AssignmentSnapshot:
    id: str | None
    user_id: str
    class_session_id: str
    class_group_id: str
    period_index: int
    semester_id: str
    status: str

    @classmethod
    def from_model(cls, record: TimetableAssignment) -> AssignmentSnapshot:
        status = record.status.value if hasattr(record.status, "value") else str(record.status)
        return cls(
            id=record.id,
            user_id=record.user_id,
            class_session_id=record.class_session_id,
            class_group_id=record.class_group_id,
            period_index=record.period_index,
            semester_id=record.semester_id,
            status=status,
        )

    @property
    def cell(self) -> tuple[str, str, int, str]:
        return (self.user_id, self.class_group_id, self.period_index, self.semester_id)


def _migrate_v1(blob: dict) -> dict:
    # v1 stored the start period as "period" and had no status column.
    assignments = []
    for item in blob.get("assignments", []):
        migrated = dict(item)
        migrated["period_index"] = migrated.pop("period")
        migrated.setdefault("status", "confirmed")
        migrated.setdefault("id", None)
        assignments.append(migrated)
    return {"schema_version": 2, "semester_id": blob.get("semester_id"), "assignments": assignments}


MIGRATIONS: dict[int, Callable[[dict], dict]] = {
    1: _migrate_v1,
}


def migrate_blob(blob: dict) -> dict:
    if not isinstance(blob, dict) or "schema_version" not in blob:
        raise CacheFormatError("Refusing to load an unversioned calendar cache blob")
    version = blob["schema_version"]
    if not isinstance(version, int) or version < 1 or version > CACHE_SCHEMA_VERSION:
        raise CacheFormatError(f"Unknown calendar cache schema version: {version!r}")
    while version < CACHE_SCHEMA_VERSION:
        blob = MIGRATIONS[version](blob)
        logger.info("Migrated calendar cache blob from v%s to v%s", version, blob["schema_version"])
        version = blob["schema_version"]
    return blob


def encode(semester_id: str, assignments: Iterable[AssignmentSnapshot]) -> dict:
    return {
        "schema_version": CACHE_SCHEMA_VERSION,
        "semester_id": semester_id,
        "assignments": [asdict(item) for item in assignments],
    }


def decode(blob: dict) -> list[AssignmentSnapshot]:
    current = migrate_blob(blob)
    return [AssignmentSnapshot(**item) for item in current["assignments"]]


class CalendarCache:
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._lock = threading.Lock()
        self._entries: dict[str, dict] = {}
        # Bumped on every write so a load that raced a write is not stored.
        self._versions: dict[str, int] = {}
        self._epoch = 0

    def _version(self, semester_id: str) -> tuple[int, int]:
        return self._epoch, self._versions.get(semester_id, 0)

    def _bump(self, semester_id: str) -> None:
        self._versions[semester_id] = self._versions.get(semester_id, 0) + 1

    def get(
        self,
        semester_id: str,
        loader: Callable[[], Iterable[TimetableAssignment]],
    ) -> list[AssignmentSnapshot]:
        if not self.enabled:
            return [AssignmentSnapshot.from_model(item) for item in loader()]
        with self._lock:
            blob = self._entries.get(semester_id)
            version = self._version(semester_id)
        if blob is not None:
            return decode(blob)
        snapshots = [AssignmentSnapshot.from_model(item) for item in loader()]
        with self._lock:
            if self._version(semester_id) == version:
                self._entries.setdefault(semester_id, encode(semester_id, snapshots))
            else:
                logger.debug("Calendar cache for %s changed during load; not storing", semester_id)
        return snapshots

    def snapshot(self, semester_id: str) -> dict | None:
        with self._lock:
            blob = self._entries.get(semester_id)
            return copy.deepcopy(blob) if blob is not None else None

    def restore(self, semester_id: str, blob: dict | None) -> None:
        with self._lock:
            self._bump(semester_id)
            if blob is None:
                self._entries.pop(semester_id, None)
            else:
                self._entries[semester_id] = migrate_blob(copy.deepcopy(blob))

    def apply(
        self,
        semester_id: str,
        *,
        upsert: AssignmentSnapshot | None = None,
        remove_cell: tuple[str, str, int, str] | None = None,
    ) -> None:
        """Optimistically edit the cached list. No-op when nothing is cached."""
        with self._lock:
            self._bump(semester_id)
            blob = self._entries.get(semester_id)
            if blob is None:
                return
            assignments = decode(blob)
            if remove_cell is not None:
                assignments = [item for item in assignments if item.cell != remove_cell]
            if upsert is not None:
                assignments = [item for item in assignments if item.cell != upsert.cell]
                assignments.append(upsert)
            self._entries[semester_id] = encode(semester_id, assignments)

    def invalidate(self, semester_id: str | None = None) -> None:
        with self._lock:
            if semester_id is None:
                self._entries.clear()
                self._epoch += 1
            else:
                self._bump(semester_id)
                self._entries.pop(semester_id, None)
