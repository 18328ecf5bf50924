from __future__ import annotations

import unittest
from datetime import date, time

from config import TestConfig
from tutorplan import create_app, db
from tutorplan.auth import Identity, Role
from tutorplan.models import (
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
from tutorplan.sessions import create_standalone_session


ADMIN = Identity(user_id="admin-1", role=Role.ADMIN)
STAFF = Identity(user_id="staff-1", role=Role.STAFF)

ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}
STAFF_HEADERS = {"X-User-Id": "staff-1", "X-User-Role": "STAFF"}

# 2025-04-07 is a Monday.
MONDAY = date(2025, 4, 7)


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()

    def tearDown(self) -> None:
        db.session.remove()
        db.drop_all()
        self.app_context.pop()


class SchedulingTestCase(DatabaseTestCase):
    """Database test case preloaded with teachers, students and booths."""

    def setUp(self) -> None:
        super().setUp()
        self.secondary = SubjectType(name="Secondary")
        self.exam_prep = SubjectType(name="Exam preparation")
        self.maths = Subject(name="Mathematics", subject_types=[self.secondary])
        self.class_type = ClassType(name="Regular")
        self.t1 = Teacher(name="T1")
        self.t2 = Teacher(name="T2")
        self.s1 = Student(name="S1")
        self.s2 = Student(name="S2")
        self.s3 = Student(name="S3")
        self.b1 = Booth(name="B1")
        self.b2 = Booth(name="B2")
        db.session.add_all(
            [
                self.secondary,
                self.exam_prep,
                self.maths,
                self.class_type,
                self.t1,
                self.t2,
                self.s1,
                self.s2,
                self.s3,
                self.b1,
                self.b2,
            ]
        )
        db.session.commit()

    def book(self, **overrides):
        values = {
            "date": MONDAY,
            "start_time": time(9, 0),
            "end_time": time(10, 0),
            "teacher_id": self.t1.id,
            "student_id": self.s1.id,
            "subject_id": self.maths.id,
            "subject_type_id": self.secondary.id,
            "booth_id": self.b1.id,
            "class_type_id": self.class_type.id,
        }
        values.update(overrides)
        actor = values.pop("actor", ADMIN)
        return create_standalone_session(actor, **values)

    def make_template(self, student_ids, **overrides) -> RegularClassTemplate:
        values = {
            "day_of_week": DayOfWeek.MONDAY,
            "start_time": time(16, 0),
            "end_time": time(17, 0),
            "teacher_id": self.t1.id,
            "subject_id": self.maths.id,
            "subject_type_id": self.secondary.id,
            "booth_id": self.b1.id,
            "class_type_id": self.class_type.id,
        }
        values.update(overrides)
        template = RegularClassTemplate(**values)
        template.assignments.extend(
            TemplateStudentAssignment(student_id=student_id) for student_id in student_ids
        )
        db.session.add(template)
        db.session.commit()
        return template

    def make_vacation(self, start, end=None, name="Holiday") -> Vacation:
        vacation = Vacation(name=name, start_date=start, end_date=end or start)
        db.session.add(vacation)
        db.session.commit()
        return vacation
