"""Double-booking detection for teachers, booths and students.

Two sessions on the same date collide when their half-open intervals
``[start, end)`` overlap, so back-to-back lessons never conflict. Cancelled
sessions no longer hold their teacher, booth or student.
"""
from __future__ import annotations

import enum
from datetime import date, time
from typing import Iterable, Optional

from sqlalchemy import or_, select

from .auth import Identity, require_identity
from .errors import InvalidIntervalError, SchedulingConflictError
from .models import ClassSession, StudentClassEnrollment
from .store import ResourceStore


class ResourceKind(enum.Enum):
    BOOTH = "booth"
    TEACHER = "teacher"
    STUDENT = "student"


CHECK_ORDER = (ResourceKind.BOOTH, ResourceKind.TEACHER, ResourceKind.STUDENT)


def _resource_clause(kind: ResourceKind, resource_id: int):
    if kind is ResourceKind.BOOTH:
        return ClassSession.booth_id == resource_id
    if kind is ResourceKind.TEACHER:
        return ClassSession.teacher_id == resource_id
    # A student is busy through the denormalised column or any enrollment row.
    return or_(
        ClassSession.student_id == resource_id,
        ClassSession.enrollments.any(StudentClassEnrollment.student_id == resource_id),
    )


def find_conflicts(
    store: ResourceStore,
    kind: ResourceKind,
    resource_id: int,
    day: date,
    start: time,
    end: time,
    *,
    exclude_session_id: Optional[int] = None,
) -> list[ClassSession]:
    """Sessions of ``resource_id`` on ``day`` that overlap ``[start, end)``."""

    stmt = select(ClassSession).where(
        _resource_clause(kind, resource_id),
        ClassSession.date == day,
        ClassSession.is_cancelled.is_(False),
        ClassSession.start_time < end,
        ClassSession.end_time > start,
    )
    if exclude_session_id is not None:
        stmt = stmt.where(ClassSession.id != exclude_session_id)
    stmt = stmt.order_by(ClassSession.start_time, ClassSession.id)
    return list(store.session.scalars(stmt))


def has_conflict(
    store: ResourceStore,
    kind: ResourceKind,
    resource_id: int,
    day: date,
    start: time,
    end: time,
    *,
    exclude_session_id: Optional[int] = None,
) -> bool:
    return bool(
        find_conflicts(
            store, kind, resource_id, day, start, end, exclude_session_id=exclude_session_id
        )
    )


def ensure_available(
    store: ResourceStore,
    checks: Iterable[tuple[ResourceKind, int]],
    day: date,
    start: time,
    end: time,
    *,
    exclude_session_id: Optional[int] = None,
) -> None:
    """Raise :class:`SchedulingConflictError` for the first busy resource."""

    for kind, resource_id in checks:
        conflicts = find_conflicts(
            store, kind, resource_id, day, start, end, exclude_session_id=exclude_session_id
        )
        if conflicts:
            raise SchedulingConflictError(kind.value, conflicts)


def conflict_report(
    actor: Identity | None,
    *,
    day: date,
    start: time,
    end: time,
    teacher_id: Optional[int] = None,
    booth_id: Optional[int] = None,
    student_id: Optional[int] = None,
    exclude_session_id: Optional[int] = None,
    store: ResourceStore | None = None,
) -> dict[ResourceKind, list[ClassSession]]:
    """Read-only preview of which resources are busy for a proposed slot."""

    require_identity(actor)
    if end <= start:
        raise InvalidIntervalError()
    store = store or ResourceStore()
    requested = {
        ResourceKind.BOOTH: booth_id,
        ResourceKind.TEACHER: teacher_id,
        ResourceKind.STUDENT: student_id,
    }
    report: dict[ResourceKind, list[ClassSession]] = {}
    for kind in CHECK_ORDER:
        resource_id = requested[kind]
        if resource_id is None:
            continue
        report[kind] = find_conflicts(
            store, kind, resource_id, day, start, end, exclude_session_id=exclude_session_id
        )
    return report
