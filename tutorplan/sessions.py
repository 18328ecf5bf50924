"""Lifecycle of class sessions: create, expand templates, update, cancel,
confirm and delete.

Each operation runs in one transaction. Existence checks lock the teacher,
student and booth rows in that order, then the conflict queries and the
writes follow inside the same transaction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from typing import Iterable, Mapping, Optional

from flask import current_app

from .auth import Identity, require_admin
from .conflicts import ResourceKind, ensure_available, find_conflicts
from .errors import (
    DateBlockedError,
    ImmutableFieldError,
    InvalidIntervalError,
    NoStudentsAssignedError,
    ValidationError,
)
from .models import (
    SESSION_STATUS_CONFIRMED,
    ClassSession,
    SessionVariant,
    Standalone,
    Subject,
    TemplateDerived,
)
from .store import EntityKind, ResourceStore


STANDALONE_FIELDS = frozenset(
    {
        "date",
        "start_time",
        "end_time",
        "teacher_id",
        "student_id",
        "subject_id",
        "subject_type_id",
        "booth_id",
        "class_type_id",
        "notes",
    }
)
TEMPLATE_MUTABLE_FIELDS = frozenset(
    {"start_time", "end_time", "booth_id", "subject_type_id", "notes"}
)
REQUIRED_FIELDS = frozenset(
    {"date", "start_time", "end_time", "teacher_id", "student_id", "subject_id", "booth_id", "class_type_id"}
)
TIME_FIELDS = frozenset({"date", "start_time", "end_time"})


@dataclass
class SkippedStudent:
    student_id: int
    date: date
    conflicting_session_ids: list[int] = field(default_factory=list)
    template_id: Optional[int] = None


@dataclass
class TemplateSessionsResult:
    template_id: int
    date: date
    created: list[ClassSession] = field(default_factory=list)
    skipped: list[SkippedStudent] = field(default_factory=list)

    @property
    def created_ids(self) -> list[int]:
        return [class_session.id for class_session in self.created]


@dataclass
class ConfirmationFailure:
    class_id: int
    reason: str


@dataclass
class ConfirmationResult:
    confirmed_ids: list[int] = field(default_factory=list)
    failed: list[ConfirmationFailure] = field(default_factory=list)


def mutable_fields(variant: SessionVariant) -> frozenset[str]:
    match variant:
        case TemplateDerived():
            return TEMPLATE_MUTABLE_FIELDS
        case Standalone():
            return STANDALONE_FIELDS
    raise TypeError(f"Unsupported session variant: {variant!r}")


def _require_interval(start: time, end: time) -> None:
    if end <= start:
        raise InvalidIntervalError()


def _ensure_compatible(subject: Subject, subject_type_id: Optional[int]) -> None:
    if not subject.allows_type(subject_type_id):
        raise ValidationError(
            f"Subject type {subject_type_id} is not offered for subject {subject.name!r}"
        )


def _ensure_open_day(store: ResourceStore, day: date, *, force_create: bool = False) -> None:
    vacations = store.vacations_on(day)
    if not vacations:
        return
    if not force_create:
        raise DateBlockedError(day, vacations)
    current_app.logger.warning(
        "Booking on %s inside closed period(s): %s",
        day.isoformat(),
        ", ".join(vacation.name for vacation in vacations),
    )


def create_standalone_session(
    actor: Identity | None,
    *,
    date: date,
    start_time: time,
    end_time: time,
    teacher_id: int,
    student_id: int,
    subject_id: int,
    booth_id: int,
    class_type_id: int,
    subject_type_id: Optional[int] = None,
    notes: Optional[str] = None,
    force_create: bool = False,
    store: ResourceStore | None = None,
) -> ClassSession:
    """Book a one-off session together with its enrollment row.

    ``force_create`` books the session even when the date lies inside a
    closed period. It never overrides a double booking.
    """

    require_admin(actor)
    _require_interval(start_time, end_time)
    store = store or ResourceStore()

    with store.transaction():
        store.require(EntityKind.TEACHER, teacher_id, lock=True)
        store.require(EntityKind.STUDENT, student_id, lock=True)
        subject = store.require(EntityKind.SUBJECT, subject_id)
        if subject_type_id is not None:
            store.require(EntityKind.SUBJECT_TYPE, subject_type_id)
        store.require(EntityKind.BOOTH, booth_id, lock=True)
        store.require(EntityKind.CLASS_TYPE, class_type_id)
        _ensure_compatible(subject, subject_type_id)
        _ensure_open_day(store, date, force_create=force_create)

        ensure_available(
            store,
            (
                (ResourceKind.BOOTH, booth_id),
                (ResourceKind.TEACHER, teacher_id),
                (ResourceKind.STUDENT, student_id),
            ),
            date,
            start_time,
            end_time,
        )

        class_session = ClassSession(
            date=date,
            start_time=start_time,
            end_time=end_time,
            teacher_id=teacher_id,
            student_id=student_id,
            subject_id=subject_id,
            subject_type_id=subject_type_id,
            booth_id=booth_id,
            class_type_id=class_type_id,
            notes=notes,
        )
        class_session.refresh_duration()
        store.add_session(class_session)
        store.add_enrollment(class_session, student_id)
        class_id = class_session.id

    current_app.logger.info(
        "Created session %s for student %s with teacher %s", class_id, student_id, teacher_id
    )
    return store.load_session(class_id)


def expand_template(
    store: ResourceStore,
    template_id: int,
    day: date,
    *,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
    booth_id: Optional[int] = None,
    subject_type_id: Optional[int] = None,
    notes: Optional[str] = None,
    force_create: bool = False,
) -> TemplateSessionsResult:
    """Insert one session per assigned student inside the caller's transaction.

    Booth and teacher conflicts abort the whole expansion. A student who is
    busy is skipped and reported while the others still get their session.
    """

    template = store.require(EntityKind.TEMPLATE, template_id)
    student_ids = template.student_ids
    if not student_ids:
        raise NoStudentsAssignedError(template_id)

    start = start_time if start_time is not None else template.start_time
    end = end_time if end_time is not None else template.end_time
    _require_interval(start, end)
    booth_id = booth_id if booth_id is not None else template.booth_id
    if subject_type_id is None:
        subject_type_id = template.subject_type_id
    else:
        store.require(EntityKind.SUBJECT_TYPE, subject_type_id)
        _ensure_compatible(template.subject, subject_type_id)
    _ensure_open_day(store, day, force_create=force_create)

    store.require(EntityKind.TEACHER, template.teacher_id, lock=True)
    for student_id in student_ids:
        store.require(EntityKind.STUDENT, student_id, lock=True)
    store.require(EntityKind.BOOTH, booth_id, lock=True)

    ensure_available(
        store,
        ((ResourceKind.BOOTH, booth_id), (ResourceKind.TEACHER, template.teacher_id)),
        day,
        start,
        end,
    )

    result = TemplateSessionsResult(template_id=template.id, date=day)
    for student_id in student_ids:
        busy = find_conflicts(store, ResourceKind.STUDENT, student_id, day, start, end)
        if busy:
            result.skipped.append(
                SkippedStudent(
                    student_id=student_id,
                    date=day,
                    conflicting_session_ids=[item.id for item in busy],
                    template_id=template.id,
                )
            )
            continue
        class_session = ClassSession(
            date=day,
            start_time=start,
            end_time=end,
            teacher_id=template.teacher_id,
            student_id=student_id,
            subject_id=template.subject_id,
            subject_type_id=subject_type_id,
            booth_id=booth_id,
            class_type_id=template.class_type_id,
            template_id=template.id,
            notes=notes if notes is not None else template.notes,
        )
        class_session.refresh_duration()
        store.add_session(class_session)
        store.add_enrollment(class_session, student_id)
        result.created.append(class_session)
    return result


def create_sessions_from_template(
    actor: Identity | None,
    template_id: int,
    day: date,
    *,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
    booth_id: Optional[int] = None,
    subject_type_id: Optional[int] = None,
    notes: Optional[str] = None,
    force_create: bool = False,
    store: ResourceStore | None = None,
) -> TemplateSessionsResult:
    require_admin(actor)
    store = store or ResourceStore()
    with store.transaction():
        result = expand_template(
            store,
            template_id,
            day,
            start_time=start_time,
            end_time=end_time,
            booth_id=booth_id,
            subject_type_id=subject_type_id,
            notes=notes,
            force_create=force_create,
        )
        created_ids = result.created_ids

    for skipped in result.skipped:
        current_app.logger.warning(
            "Skipped student %s for template %s on %s: overlaps sessions %s",
            skipped.student_id,
            template_id,
            day.isoformat(),
            skipped.conflicting_session_ids,
        )
    current_app.logger.info(
        "Template %s on %s produced %d session(s)", template_id, day.isoformat(), len(created_ids)
    )
    result.created = [store.load_session(class_id) for class_id in created_ids]
    return result


def update_session(
    actor: Identity | None,
    class_id: int,
    changes: Mapping[str, object],
    *,
    store: ResourceStore | None = None,
) -> ClassSession:
    """Apply a partial update, re-checking only what the change can affect."""

    require_admin(actor)
    unknown = set(changes) - STANDALONE_FIELDS
    if unknown:
        raise ValidationError("Unknown fields: " + ", ".join(sorted(unknown)))
    store = store or ResourceStore()

    with store.transaction():
        class_session = store.require(EntityKind.SESSION, class_id, lock=True)
        rejected = set(changes) - mutable_fields(class_session.variant)
        if rejected:
            raise ImmutableFieldError(rejected)

        current = {name: getattr(class_session, name) for name in STANDALONE_FIELDS}
        target = {**current, **changes}
        missing = sorted(name for name in REQUIRED_FIELDS if target[name] is None)
        if missing:
            raise ValidationError("Fields cannot be empty: " + ", ".join(missing))
        _require_interval(target["start_time"], target["end_time"])

        changed = {name for name in changes if changes[name] != current[name]}
        if not changed:
            return store.load_session(class_id)
        moved = bool(changed & TIME_FIELDS)
        recheck_teacher = moved or "teacher_id" in changed
        recheck_student = moved or "student_id" in changed
        recheck_booth = moved or "booth_id" in changed

        # Every resource that is re-checked is locked, teacher then student then booth.
        if recheck_teacher:
            store.require(EntityKind.TEACHER, target["teacher_id"], lock=True)
        if recheck_student:
            store.require(EntityKind.STUDENT, target["student_id"], lock=True)
        if "subject_id" in changed or "subject_type_id" in changed:
            subject = store.require(EntityKind.SUBJECT, target["subject_id"])
            if target["subject_type_id"] is not None:
                store.require(EntityKind.SUBJECT_TYPE, target["subject_type_id"])
            _ensure_compatible(subject, target["subject_type_id"])
        if recheck_booth:
            store.require(EntityKind.BOOTH, target["booth_id"], lock=True)
        if "class_type_id" in changed:
            store.require(EntityKind.CLASS_TYPE, target["class_type_id"])
        if "date" in changed:
            _ensure_open_day(store, target["date"])

        checks = []
        if recheck_booth:
            checks.append((ResourceKind.BOOTH, target["booth_id"]))
        if recheck_teacher:
            checks.append((ResourceKind.TEACHER, target["teacher_id"]))
        if recheck_student:
            checks.append((ResourceKind.STUDENT, target["student_id"]))
        ensure_available(
            store,
            checks,
            target["date"],
            target["start_time"],
            target["end_time"],
            exclude_session_id=class_session.id,
        )

        previous_student = class_session.student_id
        for name in changed:
            setattr(class_session, name, target[name])
        class_session.refresh_duration()
        if "student_id" in changed:
            store.remove_enrollment(class_session, previous_student)
            store.add_enrollment(class_session, target["student_id"])
        store.session.flush()

    current_app.logger.info(
        "Updated session %s (%s)", class_id, ", ".join(sorted(changed))
    )
    return store.load_session(class_id)


def delete_session(
    actor: Identity | None,
    class_id: int,
    *,
    store: ResourceStore | None = None,
) -> None:
    require_admin(actor)
    store = store or ResourceStore()
    with store.transaction():
        class_session = store.require(EntityKind.SESSION, class_id, lock=True)
        removed = store.remove_enrollments(class_session)
        store.delete_session(class_session)
    current_app.logger.info("Deleted session %s and %d enrollment(s)", class_id, removed)


def _unique_ids(class_ids: Iterable[int]) -> list[int]:
    ids = sorted(set(class_ids))
    if not ids:
        raise ValidationError("class_ids must not be empty")
    return ids


def cancel_sessions(
    actor: Identity | None,
    class_ids: Iterable[int],
    *,
    reason: Optional[str] = None,
    store: ResourceStore | None = None,
) -> list[int]:
    """Mark sessions as cancelled and return the ids that changed.

    Sessions that are already cancelled keep their original cancellation
    stamp. A missing id aborts the whole batch.
    """

    actor = require_admin(actor)
    ids = _unique_ids(class_ids)
    store = store or ResourceStore()
    cancelled: list[int] = []
    with store.transaction():
        for class_id in ids:
            class_session = store.require(EntityKind.SESSION, class_id, lock=True)
            if class_session.is_cancelled:
                continue
            class_session.cancel(actor.user_id, reason)
            cancelled.append(class_id)
        store.session.flush()

    current_app.logger.info(
        "Cancelled %d of %d session(s) requested by %s", len(cancelled), len(ids), actor.user_id
    )
    return cancelled


def confirm_sessions(
    actor: Identity | None,
    class_ids: Iterable[int],
    *,
    store: ResourceStore | None = None,
) -> ConfirmationResult:
    """Confirm each session that is live and free of double bookings.

    Every id is judged on its own; the ones that cannot be confirmed are
    reported with a reason instead of failing the batch.
    """

    require_admin(actor)
    ids = _unique_ids(class_ids)
    store = store or ResourceStore()
    result = ConfirmationResult()
    with store.transaction():
        for class_id in ids:
            class_session = store.get(EntityKind.SESSION, class_id, lock=True)
            if class_session is None:
                result.failed.append(ConfirmationFailure(class_id, "Session not found"))
                continue
            if class_session.is_cancelled:
                result.failed.append(ConfirmationFailure(class_id, "Session is cancelled"))
                continue
            busy = [
                kind.value
                for kind, resource_id in (
                    (ResourceKind.BOOTH, class_session.booth_id),
                    (ResourceKind.TEACHER, class_session.teacher_id),
                    (ResourceKind.STUDENT, class_session.student_id),
                )
                if find_conflicts(
                    store,
                    kind,
                    resource_id,
                    class_session.date,
                    class_session.start_time,
                    class_session.end_time,
                    exclude_session_id=class_session.id,
                )
            ]
            if busy:
                result.failed.append(
                    ConfirmationFailure(class_id, "Overlapping booking for " + ", ".join(busy))
                )
                continue
            class_session.status = SESSION_STATUS_CONFIRMED
            result.confirmed_ids.append(class_id)
        store.session.flush()

    current_app.logger.info(
        "Confirmed %d session(s), %d rejected", len(result.confirmed_ids), len(result.failed)
    )
    return result
