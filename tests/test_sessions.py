import unittest
from datetime import time, timedelta
from unittest.mock import patch

from tutorplan.errors import (
    AuthenticationRequiredError,
    DateBlockedError,
    ForbiddenError,
    ImmutableFieldError,
    InvalidIntervalError,
    NoStudentsAssignedError,
    ResourceNotFoundError,
    SchedulingConflictError,
    ValidationError,
)
from tutorplan.extensions import db
from tutorplan.models import (
    SESSION_STATUS_CONFIRMED,
    SESSION_STATUS_PENDING,
    ClassSession,
    StudentClassEnrollment,
    TemplateDerived,
)
from tutorplan.sessions import (
    STANDALONE_FIELDS,
    TEMPLATE_MUTABLE_FIELDS,
    cancel_sessions,
    confirm_sessions,
    create_sessions_from_template,
    delete_session,
    mutable_fields,
    update_session,
)
from tutorplan.store import EntityKind, ResourceStore

from .support import ADMIN, MONDAY, STAFF, SchedulingTestCase


def _session_count() -> int:
    return db.session.query(ClassSession).count()


def _enrollment_count() -> int:
    return db.session.query(StudentClassEnrollment).count()


class StandaloneSessionTestCase(SchedulingTestCase):
    def test_booking_scenario(self) -> None:
        first = self.book()
        self.assertEqual(first.duration, 60)
        self.assertIsNone(first.template_id)
        self.assertEqual([item.student_id for item in first.enrollments], [self.s1.id])

        with self.assertRaises(SchedulingConflictError) as booth_ctx:
            self.book(start_time=time(9, 30), end_time=time(10, 30))
        self.assertEqual(booth_ctx.exception.kind, "booth")
        self.assertEqual(booth_ctx.exception.conflict_ids, [first.id])

        with self.assertRaises(SchedulingConflictError) as teacher_ctx:
            self.book(start_time=time(9, 30), end_time=time(10, 30), booth_id=self.b2.id)
        self.assertEqual(teacher_ctx.exception.kind, "teacher")

        with self.assertRaises(SchedulingConflictError) as student_ctx:
            self.book(
                start_time=time(9, 30),
                end_time=time(10, 30),
                booth_id=self.b2.id,
                teacher_id=self.t2.id,
            )
        self.assertEqual(student_ctx.exception.kind, "student")
        self.assertEqual(_session_count(), 1)

    def test_back_to_back_sessions_are_allowed(self) -> None:
        self.book()
        second = self.book(start_time=time(10, 0), end_time=time(11, 0))
        self.assertEqual(second.start_time, time(10, 0))
        self.assertEqual(_session_count(), 2)

    def test_rejects_callers_without_admin_role(self) -> None:
        with self.assertRaises(AuthenticationRequiredError):
            self.book(actor=None)
        with self.assertRaises(ForbiddenError):
            self.book(actor=STAFF)
        self.assertEqual(_session_count(), 0)

    def test_rejects_empty_or_reversed_interval(self) -> None:
        with self.assertRaises(InvalidIntervalError):
            self.book(start_time=time(10), end_time=time(10))
        with self.assertRaises(InvalidIntervalError):
            self.book(start_time=time(11), end_time=time(10))

    def test_unknown_reference_is_reported_by_kind(self) -> None:
        with self.assertRaises(ResourceNotFoundError) as ctx:
            self.book(booth_id=9999)
        self.assertEqual(ctx.exception.kind, "booth")
        self.assertEqual(ctx.exception.resource_id, 9999)

    def test_subject_type_must_be_offered_for_subject(self) -> None:
        with self.assertRaises(ValidationError):
            self.book(subject_type_id=self.exam_prep.id)

    def test_failed_enrollment_rolls_back_session(self) -> None:
        with patch.object(
            ResourceStore, "add_enrollment", side_effect=RuntimeError("enrollment insert failed")
        ):
            with self.assertRaises(RuntimeError):
                self.book()

        self.assertEqual(_session_count(), 0)
        self.assertEqual(_enrollment_count(), 0)


class TemplateSessionTestCase(SchedulingTestCase):
    def test_creates_one_session_per_assigned_student(self) -> None:
        template = self.make_template([self.s1.id, self.s2.id])

        result = create_sessions_from_template(ADMIN, template.id, MONDAY)

        self.assertEqual(sorted(item.student_id for item in result.created), [self.s1.id, self.s2.id])
        self.assertEqual(result.skipped, [])
        for class_session in result.created:
            self.assertEqual(class_session.template_id, template.id)
            self.assertEqual(class_session.start_time, time(16, 0))
            self.assertEqual(class_session.duration, 60)
        self.assertEqual(_enrollment_count(), 2)

    def test_busy_student_is_skipped_and_others_created(self) -> None:
        template = self.make_template([self.s1.id, self.s2.id])
        busy = self.book(
            student_id=self.s2.id,
            teacher_id=self.t2.id,
            booth_id=self.b2.id,
            start_time=time(16, 30),
            end_time=time(17, 30),
        )

        result = create_sessions_from_template(ADMIN, template.id, MONDAY)

        self.assertEqual([item.student_id for item in result.created], [self.s1.id])
        self.assertEqual(len(result.skipped), 1)
        self.assertEqual(result.skipped[0].student_id, self.s2.id)
        self.assertEqual(result.skipped[0].conflicting_session_ids, [busy.id])
        self.assertEqual(_session_count(), 2)

    def test_overrides_replace_template_values(self) -> None:
        template = self.make_template([self.s1.id])

        result = create_sessions_from_template(
            ADMIN,
            template.id,
            MONDAY,
            start_time=time(18, 0),
            end_time=time(19, 30),
            booth_id=self.b2.id,
            notes="moved",
        )

        created = result.created[0]
        self.assertEqual((created.start_time, created.end_time), (time(18, 0), time(19, 30)))
        self.assertEqual(created.duration, 90)
        self.assertEqual(created.booth_id, self.b2.id)
        self.assertEqual(created.notes, "moved")

    def test_booth_conflict_aborts_whole_expansion(self) -> None:
        template = self.make_template([self.s1.id, self.s2.id])
        self.book(
            student_id=self.s3.id,
            teacher_id=self.t2.id,
            start_time=time(16, 0),
            end_time=time(17, 0),
        )

        with self.assertRaises(SchedulingConflictError) as ctx:
            create_sessions_from_template(ADMIN, template.id, MONDAY)

        self.assertEqual(ctx.exception.kind, "booth")
        self.assertEqual(_session_count(), 1)

    def test_template_without_students_is_rejected(self) -> None:
        template = self.make_template([])

        with self.assertRaises(NoStudentsAssignedError):
            create_sessions_from_template(ADMIN, template.id, MONDAY)

    def test_unknown_template(self) -> None:
        with self.assertRaises(ResourceNotFoundError) as ctx:
            create_sessions_from_template(ADMIN, 4242, MONDAY)
        self.assertEqual(ctx.exception.kind, "template")


class UpdateSessionTestCase(SchedulingTestCase):
    def test_mutable_fields_follow_variant(self) -> None:
        self.assertEqual(mutable_fields(TemplateDerived(class_id=1, template_id=2)), TEMPLATE_MUTABLE_FIELDS)
        standalone = self.book()
        self.assertEqual(mutable_fields(standalone.variant), STANDALONE_FIELDS)

    def test_moving_session_excludes_itself(self) -> None:
        class_session = self.book()

        updated = update_session(
            ADMIN, class_session.id, {"start_time": time(9, 30), "end_time": time(10, 30)}
        )

        self.assertEqual(updated.start_time, time(9, 30))
        self.assertEqual(updated.duration, 60)

    def test_rechecked_resources_are_locked_before_checking(self) -> None:
        class_session = self.book()
        original_require = ResourceStore.require
        locked = []

        def recording_require(store, kind, ident, *, lock=False):
            if lock:
                locked.append(kind)
            return original_require(store, kind, ident, lock=lock)

        with patch.object(ResourceStore, "require", autospec=True, side_effect=recording_require):
            update_session(ADMIN, class_session.id, {"start_time": time(11), "end_time": time(12)})
            moved = list(locked)
            locked.clear()
            update_session(ADMIN, class_session.id, {"notes": "bring the workbook"})

        self.assertEqual(
            moved,
            [EntityKind.SESSION, EntityKind.TEACHER, EntityKind.STUDENT, EntityKind.BOOTH],
        )
        self.assertEqual(locked, [EntityKind.SESSION])

    def test_moving_into_closed_period_is_rejected(self) -> None:
        class_session = self.book()
        self.make_vacation(MONDAY + timedelta(days=1))

        with self.assertRaises(DateBlockedError):
            update_session(ADMIN, class_session.id, {"date": MONDAY + timedelta(days=1)})

        updated = update_session(ADMIN, class_session.id, {"date": MONDAY + timedelta(days=2)})
        self.assertEqual(updated.date, MONDAY + timedelta(days=2))

    def test_move_onto_other_booking_conflicts(self) -> None:
        self.book()
        other = self.book(
            student_id=self.s2.id,
            teacher_id=self.t2.id,
            booth_id=self.b2.id,
            start_time=time(11, 0),
            end_time=time(12, 0),
        )

        with self.assertRaises(SchedulingConflictError) as ctx:
            update_session(ADMIN, other.id, {"booth_id": self.b1.id, "start_time": time(9, 0)})

        self.assertEqual(ctx.exception.kind, "booth")
        db.session.expire_all()
        self.assertEqual(db.session.get(ClassSession, other.id).booth_id, self.b2.id)

    def test_template_derived_rejects_structural_changes(self) -> None:
        template = self.make_template([self.s1.id])
        created = create_sessions_from_template(ADMIN, template.id, MONDAY).created[0]

        with self.assertRaises(ImmutableFieldError) as ctx:
            update_session(ADMIN, created.id, {"teacher_id": self.t2.id, "notes": "x"})

        self.assertEqual(ctx.exception.fields, ["teacher_id"])
        db.session.expire_all()
        row = db.session.get(ClassSession, created.id)
        self.assertEqual(row.teacher_id, self.t1.id)
        self.assertIsNone(row.notes)

    def test_template_derived_accepts_allowed_changes(self) -> None:
        template = self.make_template([self.s1.id])
        created = create_sessions_from_template(ADMIN, template.id, MONDAY).created[0]

        updated = update_session(
            ADMIN,
            created.id,
            {"booth_id": self.b2.id, "end_time": time(17, 30), "notes": "longer"},
        )

        self.assertEqual(updated.booth_id, self.b2.id)
        self.assertEqual(updated.duration, 90)
        self.assertEqual(updated.notes, "longer")
        self.assertEqual(updated.template_id, template.id)

    def test_changing_student_moves_enrollment(self) -> None:
        class_session = self.book()

        updated = update_session(ADMIN, class_session.id, {"student_id": self.s2.id})

        self.assertEqual(updated.student_id, self.s2.id)
        self.assertEqual([item.student_id for item in updated.enrollments], [self.s2.id])
        self.assertEqual(_enrollment_count(), 1)

    def test_unknown_fields_and_invalid_interval(self) -> None:
        class_session = self.book()

        with self.assertRaises(ValidationError):
            update_session(ADMIN, class_session.id, {"room": 3})
        with self.assertRaises(InvalidIntervalError):
            update_session(ADMIN, class_session.id, {"end_time": time(8, 0)})
        with self.assertRaises(ValidationError):
            update_session(ADMIN, class_session.id, {"teacher_id": None})

    def test_missing_session(self) -> None:
        with self.assertRaises(ResourceNotFoundError):
            update_session(ADMIN, 999, {"notes": "x"})

    def test_update_requires_admin(self) -> None:
        class_session = self.book()
        with self.assertRaises(ForbiddenError):
            update_session(STAFF, class_session.id, {"notes": "x"})


class DeleteSessionTestCase(SchedulingTestCase):
    def test_delete_removes_session_and_enrollments(self) -> None:
        class_session = self.book()

        delete_session(ADMIN, class_session.id)

        self.assertEqual(_session_count(), 0)
        self.assertEqual(_enrollment_count(), 0)

    def test_delete_frees_the_slot(self) -> None:
        class_session = self.book()
        delete_session(ADMIN, class_session.id)

        rebooked = self.book()

        self.assertNotEqual(rebooked.id, None)
        self.assertEqual(_session_count(), 1)

    def test_delete_missing_session(self) -> None:
        with self.assertRaises(ResourceNotFoundError):
            delete_session(ADMIN, 12345)


class ClosedPeriodTestCase(SchedulingTestCase):
    def test_booking_inside_vacation_is_blocked(self) -> None:
        vacation = self.make_vacation(MONDAY, MONDAY + timedelta(days=4), name="Spring break")

        with self.assertRaises(DateBlockedError) as ctx:
            self.book()

        self.assertEqual(ctx.exception.day, MONDAY)
        self.assertEqual(ctx.exception.to_dict()["vacations"], [{"id": vacation.id, "name": "Spring break"}])
        self.assertEqual(_session_count(), 0)

    def test_force_create_overrides_vacation_but_not_conflicts(self) -> None:
        self.make_vacation(MONDAY)

        forced = self.book(force_create=True)

        self.assertEqual(forced.date, MONDAY)
        with self.assertRaises(SchedulingConflictError):
            self.book(force_create=True)

    def test_template_expansion_is_blocked_on_vacation(self) -> None:
        template = self.make_template([self.s1.id])
        self.make_vacation(MONDAY)

        with self.assertRaises(DateBlockedError):
            create_sessions_from_template(ADMIN, template.id, MONDAY)
        result = create_sessions_from_template(ADMIN, template.id, MONDAY, force_create=True)

        self.assertEqual(len(result.created), 1)


class CancelSessionsTestCase(SchedulingTestCase):
    def test_cancel_marks_sessions_once(self) -> None:
        first = self.book()
        second = self.book(start_time=time(11), end_time=time(12))

        cancelled = cancel_sessions(ADMIN, [second.id, first.id], reason="teacher ill")
        again = cancel_sessions(ADMIN, [first.id])

        self.assertEqual(cancelled, [first.id, second.id])
        self.assertEqual(again, [])
        db.session.expire_all()
        row = db.session.get(ClassSession, first.id)
        self.assertTrue(row.is_cancelled)
        self.assertIsNotNone(row.cancelled_at)
        self.assertEqual(row.cancelled_by, ADMIN.user_id)
        self.assertEqual(row.cancellation_reason, "teacher ill")

    def test_missing_id_aborts_batch(self) -> None:
        class_session = self.book()

        with self.assertRaises(ResourceNotFoundError):
            cancel_sessions(ADMIN, [class_session.id, 999])

        db.session.expire_all()
        self.assertFalse(db.session.get(ClassSession, class_session.id).is_cancelled)

    def test_requires_admin_and_ids(self) -> None:
        class_session = self.book()
        with self.assertRaises(ForbiddenError):
            cancel_sessions(STAFF, [class_session.id])
        with self.assertRaises(ValidationError):
            cancel_sessions(ADMIN, [])


class ConfirmSessionsTestCase(SchedulingTestCase):
    def test_confirms_live_sessions_and_reports_the_rest(self) -> None:
        live = self.book()
        cancelled = self.book(start_time=time(11), end_time=time(12))
        cancel_sessions(ADMIN, [cancelled.id])

        result = confirm_sessions(ADMIN, [live.id, cancelled.id, 999])

        self.assertEqual(result.confirmed_ids, [live.id])
        self.assertEqual(
            [(item.class_id, item.reason) for item in result.failed],
            [(cancelled.id, "Session is cancelled"), (999, "Session not found")],
        )
        db.session.expire_all()
        self.assertEqual(db.session.get(ClassSession, live.id).status, SESSION_STATUS_CONFIRMED)
        self.assertEqual(
            db.session.get(ClassSession, cancelled.id).status, SESSION_STATUS_PENDING
        )

    def test_overlapping_session_is_not_confirmed(self) -> None:
        first = self.book()
        # Rows written directly bypass the booking checks.
        overlapping = ClassSession(
            date=MONDAY,
            start_time=time(9, 30),
            end_time=time(10, 30),
            duration=60,
            teacher_id=self.t2.id,
            student_id=self.s2.id,
            subject_id=self.maths.id,
            booth_id=self.b1.id,
            class_type_id=self.class_type.id,
        )
        db.session.add(overlapping)
        db.session.commit()

        result = confirm_sessions(ADMIN, [first.id, overlapping.id])

        self.assertEqual(result.confirmed_ids, [])
        self.assertEqual(
            [item.reason for item in result.failed],
            ["Overlapping booking for booth", "Overlapping booking for booth"],
        )


if __name__ == "__main__":
    unittest.main()
