from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Union

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Time,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .extensions import db


ENROLLMENT_STATUS_ENROLLED = "enrolled"
SESSION_STATUS_PENDING = "pending"
SESSION_STATUS_CONFIRMED = "confirmed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def minutes_between(start: time, end: time) -> int:
    delta = datetime.combine(date.min, end) - datetime.combine(date.min, start)
    return int(delta.total_seconds() // 60)


class DayOfWeek(enum.Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @property
    def weekday(self) -> int:
        """Index compatible with :meth:`datetime.date.weekday` (Monday is 0)."""
        return list(DayOfWeek).index(self)


subject_subject_type = Table(
    "subject_subject_type",
    db.Model.metadata,
    Column("subject_id", ForeignKey("subject.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "subject_type_id",
        ForeignKey("subject_type.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class TimeStampedModel:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class Vacation(db.Model, TimeStampedModel):
    """A closed period (holiday, school break) on which no lesson is booked."""

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="chk_vacation_range"),
        Index("ix_vacation_range", "start_date", "end_date"),
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Vacation<{self.name} {self.start_date}→{self.end_date}>"


class Teacher(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    sessions: Mapped[List["ClassSession"]] = relationship(back_populates="teacher")
    templates: Mapped[List["RegularClassTemplate"]] = relationship(back_populates="teacher")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Teacher<{self.id} {self.name}>"


class Student(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    grade_year: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    sessions: Mapped[List["ClassSession"]] = relationship(back_populates="student")
    enrollments: Mapped[List["StudentClassEnrollment"]] = relationship(
        back_populates="student"
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"Student<{self.id} {self.name}>"


class Booth(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    sessions: Mapped[List["ClassSession"]] = relationship(back_populates="booth")

    def __repr__(self) -> str:  # pragma: no cover
        return f"Booth<{self.id} {self.name}>"


class SubjectType(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)

    subjects: Mapped[List["Subject"]] = relationship(
        secondary=subject_subject_type, back_populates="subject_types"
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"SubjectType<{self.id} {self.name}>"


class Subject(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)

    subject_types: Mapped[List[SubjectType]] = relationship(
        secondary=subject_subject_type, back_populates="subjects"
    )

    def allows_type(self, subject_type_id: int | None) -> bool:
        if subject_type_id is None:
            return True
        return any(item.id == subject_type_id for item in self.subject_types)

    def __repr__(self) -> str:  # pragma: no cover
        return f"Subject<{self.id} {self.name}>"


class ClassType(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"ClassType<{self.id} {self.name}>"


class RegularClassTemplate(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    day_of_week: Mapped[DayOfWeek] = mapped_column(
        Enum(DayOfWeek, name="day_of_week"), nullable=False, index=True
    )
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id"), nullable=False)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subject.id"), nullable=False)
    subject_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("subject_type.id"))
    booth_id: Mapped[int] = mapped_column(ForeignKey("booth.id"), nullable=False)
    class_type_id: Mapped[int] = mapped_column(ForeignKey("class_type.id"), nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(String(255))

    teacher: Mapped[Teacher] = relationship(back_populates="templates")
    subject: Mapped[Subject] = relationship()
    subject_type: Mapped[Optional[SubjectType]] = relationship()
    booth: Mapped[Booth] = relationship()
    class_type: Mapped[ClassType] = relationship()
    assignments: Mapped[List["TemplateStudentAssignment"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateStudentAssignment.student_id",
    )
    sessions: Mapped[List["ClassSession"]] = relationship(back_populates="template")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="chk_template_time_order"),
    )

    @property
    def student_ids(self) -> list[int]:
        return [assignment.student_id for assignment in self.assignments]

    def occurrences_between(self, start: date, end: date) -> list[date]:
        """Dates in ``[start, end]`` on which the template is active."""

        if self.start_date is not None:
            start = max(start, self.start_date)
        if self.end_date is not None:
            end = min(end, self.end_date)
        if start > end:
            return []
        offset = (self.day_of_week.weekday - start.weekday()) % 7
        current = start + timedelta(days=offset)
        days: list[date] = []
        while current <= end:
            days.append(current)
            current += timedelta(days=7)
        return days

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            f"RegularClassTemplate<{self.id} {self.day_of_week.value} "
            f"{self.start_time:%H:%M}-{self.end_time:%H:%M}>"
        )


class TemplateStudentAssignment(db.Model):
    template_id: Mapped[int] = mapped_column(
        ForeignKey("regular_class_template.id", ondelete="CASCADE"), primary_key=True
    )
    student_id: Mapped[int] = mapped_column(
        ForeignKey("student.id", ondelete="CASCADE"), primary_key=True
    )

    template: Mapped[RegularClassTemplate] = relationship(back_populates="assignments")
    student: Mapped[Student] = relationship()


@dataclass(frozen=True)
class Standalone:
    class_id: int


@dataclass(frozen=True)
class TemplateDerived:
    class_id: int
    template_id: int


SessionVariant = Union[Standalone, TemplateDerived]


class ClassSession(db.Model, TimeStampedModel):
    id: Mapped[int] = mapped_column(primary_key=True)
    date = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id"), nullable=False)
    student_id: Mapped[int] = mapped_column(ForeignKey("student.id"), nullable=False)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subject.id"), nullable=False)
    subject_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("subject_type.id"))
    booth_id: Mapped[int] = mapped_column(ForeignKey("booth.id"), nullable=False)
    class_type_id: Mapped[int] = mapped_column(ForeignKey("class_type.id"), nullable=False)
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("regular_class_template.id")
    )
    notes: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SESSION_STATUS_PENDING,
        server_default=SESSION_STATUS_PENDING,
    )
    is_cancelled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(64))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(255))

    teacher: Mapped[Teacher] = relationship(back_populates="sessions")
    student: Mapped[Student] = relationship(back_populates="sessions")
    subject: Mapped[Subject] = relationship()
    subject_type: Mapped[Optional[SubjectType]] = relationship()
    booth: Mapped[Booth] = relationship(back_populates="sessions")
    class_type: Mapped[ClassType] = relationship()
    template: Mapped[Optional[RegularClassTemplate]] = relationship(back_populates="sessions")
    enrollments: Mapped[List["StudentClassEnrollment"]] = relationship(
        back_populates="class_session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="chk_class_session_time_order"),
        UniqueConstraint(
            "template_id", "date", "student_id", name="uq_template_date_student"
        ),
        Index("ix_class_session_teacher_date", "teacher_id", "date"),
        Index("ix_class_session_booth_date", "booth_id", "date"),
        Index("ix_class_session_student_date", "student_id", "date"),
    )

    @property
    def variant(self) -> SessionVariant:
        if self.template_id is None:
            return Standalone(class_id=self.id)
        return TemplateDerived(class_id=self.id, template_id=self.template_id)

    @property
    def is_template_instance(self) -> bool:
        return self.template_id is not None

    def refresh_duration(self) -> None:
        self.duration = minutes_between(self.start_time, self.end_time)

    def cancel(self, cancelled_by: str, reason: str | None = None) -> None:
        self.is_cancelled = True
        self.cancelled_at = _utcnow()
        self.cancelled_by = cancelled_by
        self.cancellation_reason = reason

    def label(self) -> str:
        return (
            f"#{self.id} {self.date.isoformat()} "
            f"{self.start_time:%H:%M}-{self.end_time:%H:%M}"
        )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"ClassSession<{self.label()}>"


class StudentClassEnrollment(db.Model, TimeStampedModel):
    class_id: Mapped[int] = mapped_column(
        ForeignKey("class_session.id", ondelete="CASCADE"), primary_key=True
    )
    student_id: Mapped[int] = mapped_column(ForeignKey("student.id"), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ENROLLMENT_STATUS_ENROLLED
    )

    class_session: Mapped[ClassSession] = relationship(back_populates="enrollments")
    student: Mapped[Student] = relationship(back_populates="enrollments")
