"""Relational access to scheduling records.

Every write performed by the scheduling core goes through a
:class:`ResourceStore` bound to one SQLAlchemy session. ``transaction()``
commits when the block succeeds and rolls back on any exception, so a
booking's conflict checks and its inserts share a single transaction.
"""
from __future__ import annotations

import enum
from contextlib import contextmanager
from datetime import date
from typing import Iterator

from sqlalchemy import or_, select
from sqlalchemy.orm import Session as OrmSession, selectinload

from .errors import ResourceNotFoundError
from .extensions import db
from .models import (
    Booth,
    ClassSession,
    ClassType,
    RegularClassTemplate,
    Student,
    StudentClassEnrollment,
    Subject,
    SubjectType,
    Teacher,
    Vacation,
)


class EntityKind(enum.Enum):
    TEACHER = "teacher"
    STUDENT = "student"
    SUBJECT = "subject"
    SUBJECT_TYPE = "subject_type"
    BOOTH = "booth"
    CLASS_TYPE = "class_type"
    TEMPLATE = "template"
    SESSION = "session"
    VACATION = "vacation"


MODELS: dict[EntityKind, type] = {
    EntityKind.TEACHER: Teacher,
    EntityKind.STUDENT: Student,
    EntityKind.SUBJECT: Subject,
    EntityKind.SUBJECT_TYPE: SubjectType,
    EntityKind.BOOTH: Booth,
    EntityKind.CLASS_TYPE: ClassType,
    EntityKind.TEMPLATE: RegularClassTemplate,
    EntityKind.SESSION: ClassSession,
    EntityKind.VACATION: Vacation,
}


SESSION_RELATIONS = (
    ClassSession.teacher,
    ClassSession.student,
    ClassSession.subject,
    ClassSession.subject_type,
    ClassSession.booth,
    ClassSession.class_type,
    ClassSession.template,
    ClassSession.enrollments,
)


class ResourceStore:
    def __init__(self, session: OrmSession | None = None) -> None:
        self.session = session if session is not None else db.session

    @contextmanager
    def transaction(self) -> Iterator["ResourceStore"]:
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # Reads ----------------------------------------------------------
    def get(self, kind: EntityKind, ident: object, *, lock: bool = False):
        if ident is None:
            return None
        model = MODELS[kind]
        return self.session.get(model, ident, with_for_update=True if lock else None)

    def require(self, kind: EntityKind, ident: object, *, lock: bool = False):
        """Return the entity or raise :class:`ResourceNotFoundError`.

        ``lock`` reads the row with ``SELECT ... FOR UPDATE`` so concurrent
        bookings of the same teacher, booth or student queue up behind the
        current transaction on databases that support row locks.
        """

        instance = self.get(kind, ident, lock=lock)
        if instance is None:
            raise ResourceNotFoundError(kind.value, ident)
        return instance

    def load_session(self, class_id: int) -> ClassSession | None:
        stmt = (
            select(ClassSession)
            .options(*(selectinload(relation) for relation in SESSION_RELATIONS))
            .where(ClassSession.id == class_id)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def template_has_session_on(self, template_id: int, day: date) -> bool:
        stmt = select(ClassSession.id).where(
            ClassSession.template_id == template_id,
            ClassSession.date == day,
        )
        return self.session.execute(stmt.limit(1)).first() is not None

    def templates_overlapping(self, start: date, end: date) -> list[RegularClassTemplate]:
        stmt = (
            select(RegularClassTemplate)
            .options(selectinload(RegularClassTemplate.assignments))
            .where(
                or_(
                    RegularClassTemplate.start_date.is_(None),
                    RegularClassTemplate.start_date <= end,
                ),
                or_(
                    RegularClassTemplate.end_date.is_(None),
                    RegularClassTemplate.end_date >= start,
                ),
            )
            .order_by(RegularClassTemplate.id)
        )
        return list(self.session.scalars(stmt))

    def vacations_between(self, start: date, end: date) -> list[Vacation]:
        stmt = (
            select(Vacation)
            .where(Vacation.start_date <= end, Vacation.end_date >= start)
            .order_by(Vacation.start_date, Vacation.id)
        )
        return list(self.session.scalars(stmt))

    def vacations_on(self, day: date) -> list[Vacation]:
        return self.vacations_between(day, day)

    # Writes ---------------------------------------------------------
    def add_session(self, class_session: ClassSession) -> ClassSession:
        self.session.add(class_session)
        self.session.flush()
        return class_session

    def add_enrollment(
        self, class_session: ClassSession, student_id: int
    ) -> StudentClassEnrollment:
        enrollment = StudentClassEnrollment(class_session=class_session, student_id=student_id)
        self.session.add(enrollment)
        self.session.flush()
        return enrollment

    def remove_enrollment(self, class_session: ClassSession, student_id: int) -> None:
        for enrollment in list(class_session.enrollments):
            if enrollment.student_id == student_id:
                class_session.enrollments.remove(enrollment)
                self.session.delete(enrollment)
        self.session.flush()

    def remove_enrollments(self, class_session: ClassSession) -> int:
        enrollments = list(class_session.enrollments)
        for enrollment in enrollments:
            self.session.delete(enrollment)
        self.session.flush()
        return len(enrollments)

    def delete_session(self, class_session: ClassSession) -> None:
        self.session.delete(class_session)
        self.session.flush()

    def add_vacation(self, vacation: Vacation) -> Vacation:
        self.session.add(vacation)
        self.session.flush()
        return vacation

    def delete_vacation(self, vacation: Vacation) -> None:
        self.session.delete(vacation)
        self.session.flush()
