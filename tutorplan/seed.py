from datetime import date, time, timedelta

from .extensions import db
from .models import (
    Booth,
    ClassType,
    DayOfWeek,
    RegularClassTemplate,
    Student,
    Subject,
    SubjectType,
    Teacher,
    TemplateStudentAssignment,
    Vacation,
)


def seed_data() -> None:
    if db.session.query(Teacher).count():
        return

    today = date.today()
    term_start = today - timedelta(days=today.weekday())
    term_end = term_start + timedelta(weeks=12)

    regular = ClassType(name="Regular")
    special = ClassType(name="Special")

    secondary = SubjectType(name="Secondary")
    exam_prep = SubjectType(name="Exam preparation")

    maths = Subject(name="Mathematics", subject_types=[secondary, exam_prep])
    english = Subject(name="English", subject_types=[secondary])

    alice = Teacher(name="Alice Martin", email="alice@example.com")
    bruno = Teacher(name="Bruno Keller", email="bruno@example.com")

    booth_a = Booth(name="Booth A")
    booth_b = Booth(name="Booth B")

    students = [
        Student(name="Chloé Durand", grade_year=10),
        Student(name="Daniel Sato", grade_year=11),
        Student(name="Emma Rossi", grade_year=12),
    ]

    db.session.add_all(
        [regular, special, secondary, exam_prep, maths, english, alice, bruno, booth_a, booth_b]
    )
    db.session.add_all(students)
    db.session.flush()

    maths_group = RegularClassTemplate(
        day_of_week=DayOfWeek.MONDAY,
        start_time=time(16, 0),
        end_time=time(17, 30),
        teacher=alice,
        subject=maths,
        subject_type=secondary,
        booth=booth_a,
        class_type=regular,
        start_date=term_start,
        end_date=term_end,
        notes="Weekly maths group",
    )
    maths_group.assignments.extend(
        TemplateStudentAssignment(student_id=student.id) for student in students[:2]
    )

    english_lesson = RegularClassTemplate(
        day_of_week=DayOfWeek.WEDNESDAY,
        start_time=time(17, 0),
        end_time=time(18, 0),
        teacher=bruno,
        subject=english,
        subject_type=secondary,
        booth=booth_b,
        class_type=regular,
        start_date=term_start,
    )
    english_lesson.assignments.append(TemplateStudentAssignment(student_id=students[2].id))

    mid_term_break = Vacation(
        name="Mid-term break",
        start_date=term_start + timedelta(weeks=6),
        end_date=term_start + timedelta(weeks=6, days=4),
    )

    db.session.add_all([maths_group, english_lesson, mid_term_break])
    db.session.commit()
