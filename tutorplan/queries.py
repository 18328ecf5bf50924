"""Read-only listing of sessions and templates."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from .models import (
    ClassSession,
    DayOfWeek,
    RegularClassTemplate,
    StudentClassEnrollment,
    TemplateStudentAssignment,
)
from .store import SESSION_RELATIONS, ResourceStore


@dataclass
class SessionFilters:
    date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    teacher_ids: Sequence[int] = field(default_factory=tuple)
    student_ids: Sequence[int] = field(default_factory=tuple)
    subject_ids: Sequence[int] = field(default_factory=tuple)
    subject_type_ids: Sequence[int] = field(default_factory=tuple)
    booth_ids: Sequence[int] = field(default_factory=tuple)
    class_type_ids: Sequence[int] = field(default_factory=tuple)
    template_id: Optional[int] = None
    days_of_week: Sequence[DayOfWeek] = field(default_factory=tuple)
    is_template_instance: Optional[bool] = None
    is_cancelled: Optional[bool] = None
    status: Optional[str] = None


@dataclass
class TemplateFilters:
    days_of_week: Sequence[DayOfWeek] = field(default_factory=tuple)
    teacher_ids: Sequence[int] = field(default_factory=tuple)
    student_ids: Sequence[int] = field(default_factory=tuple)
    subject_ids: Sequence[int] = field(default_factory=tuple)
    booth_ids: Sequence[int] = field(default_factory=tuple)


def list_sessions(
    filters: SessionFilters | None = None, store: ResourceStore | None = None
) -> list[ClassSession]:
    filters = filters or SessionFilters()
    store = store or ResourceStore()
    stmt = select(ClassSession).options(
        *(selectinload(relation) for relation in SESSION_RELATIONS)
    )

    if filters.date is not None:
        stmt = stmt.where(ClassSession.date == filters.date)
    else:
        if filters.start_date is not None:
            stmt = stmt.where(ClassSession.date >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(ClassSession.date <= filters.end_date)

    if filters.teacher_ids:
        stmt = stmt.where(ClassSession.teacher_id.in_(filters.teacher_ids))
    if filters.student_ids:
        stmt = stmt.where(
            or_(
                ClassSession.student_id.in_(filters.student_ids),
                ClassSession.enrollments.any(
                    StudentClassEnrollment.student_id.in_(filters.student_ids)
                ),
            )
        )
    if filters.subject_ids:
        stmt = stmt.where(ClassSession.subject_id.in_(filters.subject_ids))
    if filters.subject_type_ids:
        stmt = stmt.where(ClassSession.subject_type_id.in_(filters.subject_type_ids))
    if filters.booth_ids:
        stmt = stmt.where(ClassSession.booth_id.in_(filters.booth_ids))
    if filters.class_type_ids:
        stmt = stmt.where(ClassSession.class_type_id.in_(filters.class_type_ids))
    if filters.template_id is not None:
        stmt = stmt.where(ClassSession.template_id == filters.template_id)
    if filters.is_template_instance is True:
        stmt = stmt.where(ClassSession.template_id.is_not(None))
    elif filters.is_template_instance is False:
        stmt = stmt.where(ClassSession.template_id.is_(None))
    if filters.is_cancelled is not None:
        stmt = stmt.where(ClassSession.is_cancelled.is_(filters.is_cancelled))
    if filters.status is not None:
        stmt = stmt.where(ClassSession.status == filters.status)
    if filters.days_of_week:
        # Weekday extraction differs per dialect; go through the template.
        stmt = stmt.join(ClassSession.template).where(
            RegularClassTemplate.day_of_week.in_(filters.days_of_week)
        )

    stmt = stmt.order_by(ClassSession.date, ClassSession.start_time, ClassSession.id)
    return list(store.session.scalars(stmt))


def list_templates(
    filters: TemplateFilters | None = None, store: ResourceStore | None = None
) -> list[RegularClassTemplate]:
    filters = filters or TemplateFilters()
    store = store or ResourceStore()
    stmt = select(RegularClassTemplate).options(
        selectinload(RegularClassTemplate.assignments),
        selectinload(RegularClassTemplate.teacher),
        selectinload(RegularClassTemplate.subject),
        selectinload(RegularClassTemplate.booth),
    )
    if filters.days_of_week:
        stmt = stmt.where(RegularClassTemplate.day_of_week.in_(filters.days_of_week))
    if filters.teacher_ids:
        stmt = stmt.where(RegularClassTemplate.teacher_id.in_(filters.teacher_ids))
    if filters.subject_ids:
        stmt = stmt.where(RegularClassTemplate.subject_id.in_(filters.subject_ids))
    if filters.booth_ids:
        stmt = stmt.where(RegularClassTemplate.booth_id.in_(filters.booth_ids))
    if filters.student_ids:
        stmt = stmt.where(
            RegularClassTemplate.assignments.any(
                TemplateStudentAssignment.student_id.in_(filters.student_ids)
            )
        )
    stmt = stmt.order_by(
        RegularClassTemplate.day_of_week,
        RegularClassTemplate.start_time,
        RegularClassTemplate.id,
    )
    return list(store.session.scalars(stmt))
