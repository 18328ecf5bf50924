import threading
import unittest
from datetime import date, time, timedelta
from unittest.mock import patch

from tutorplan.errors import ForbiddenError, ValidationError
from tutorplan.extensions import db
from tutorplan.generation import (
    GenerationReport,
    RecurringSessionGenerator,
    SlotOutcome,
    enqueue_generation,
    generate_sessions,
)
from tutorplan.models import ClassSession, DayOfWeek
from tutorplan.progress import GenerationProgressTracker

from .support import ADMIN, MONDAY, STAFF, SchedulingTestCase


SUNDAY_AFTER_TWO_WEEKS = MONDAY + timedelta(days=13)


class RecurringGenerationTestCase(SchedulingTestCase):
    def test_generates_each_occurrence_for_each_student(self) -> None:
        template = self.make_template([self.s1.id, self.s2.id])

        report = generate_sessions(ADMIN, MONDAY, SUNDAY_AFTER_TWO_WEEKS)

        self.assertEqual(report.total_slots, 2)
        self.assertEqual(report.sessions_created, 4)
        dates = sorted({item.date for item in db.session.query(ClassSession).all()})
        self.assertEqual(dates, [MONDAY, MONDAY + timedelta(days=7)])
        self.assertTrue(
            all(item.template_id == template.id for item in db.session.query(ClassSession))
        )

    def test_rerun_is_idempotent(self) -> None:
        template = self.make_template([self.s1.id, self.s2.id])
        generate_sessions(ADMIN, MONDAY, SUNDAY_AFTER_TWO_WEEKS)

        report = generate_sessions(ADMIN, MONDAY, SUNDAY_AFTER_TWO_WEEKS)

        self.assertEqual(report.sessions_created, 0)
        self.assertEqual(
            report.skipped_existing,
            [(template.id, MONDAY), (template.id, MONDAY + timedelta(days=7))],
        )
        self.assertEqual(report.failures, [])
        self.assertEqual(db.session.query(ClassSession).count(), 4)

    def test_student_conflict_is_reported_without_blocking_others(self) -> None:
        template = self.make_template([self.s1.id, self.s2.id])
        busy = self.book(
            student_id=self.s2.id,
            teacher_id=self.t2.id,
            booth_id=self.b2.id,
            start_time=time(16, 0),
            end_time=time(17, 0),
        )

        report = generate_sessions(ADMIN, MONDAY, MONDAY + timedelta(days=6))

        self.assertEqual(report.sessions_created, 1)
        self.assertEqual(len(report.student_conflicts), 1)
        conflict = report.student_conflicts[0]
        self.assertEqual(conflict.student_id, self.s2.id)
        self.assertEqual(conflict.template_id, template.id)
        self.assertEqual(conflict.conflicting_session_ids, [busy.id])

    def test_failing_template_does_not_stop_others(self) -> None:
        empty = self.make_template([])
        working = self.make_template(
            [self.s3.id], teacher_id=self.t2.id, booth_id=self.b2.id
        )

        report = generate_sessions(ADMIN, MONDAY, MONDAY + timedelta(days=6))

        self.assertEqual(report.sessions_created, 1)
        self.assertEqual(len(report.failures), 1)
        self.assertEqual(report.failures[0].template_id, empty.id)
        self.assertEqual(report.failures[0].error, "NO_STUDENTS_ASSIGNED")
        created = db.session.query(ClassSession).one()
        self.assertEqual(created.template_id, working.id)

    def test_template_window_limits_occurrences(self) -> None:
        self.make_template(
            [self.s1.id],
            start_date=MONDAY + timedelta(days=7),
            end_date=MONDAY + timedelta(days=7),
        )

        report = generate_sessions(ADMIN, MONDAY, MONDAY + timedelta(days=27))

        self.assertEqual(report.total_slots, 1)
        self.assertEqual(
            db.session.query(ClassSession).one().date, MONDAY + timedelta(days=7)
        )

    def test_plan_orders_slots_by_date(self) -> None:
        monday = self.make_template([self.s1.id])
        wednesday = self.make_template(
            [self.s2.id], day_of_week=DayOfWeek.WEDNESDAY, booth_id=self.b2.id
        )

        slots = RecurringSessionGenerator(workers=1).plan(MONDAY, MONDAY + timedelta(days=9))

        self.assertEqual(
            slots,
            [
                (monday.id, MONDAY),
                (wednesday.id, MONDAY + timedelta(days=2)),
                (monday.id, MONDAY + timedelta(days=7)),
                (wednesday.id, MONDAY + timedelta(days=9)),
            ],
        )

    def test_parallel_workers_generate_every_slot(self) -> None:
        self.make_template([self.s1.id, self.s2.id])
        self.make_template(
            [self.s3.id],
            day_of_week=DayOfWeek.WEDNESDAY,
            teacher_id=self.t2.id,
            booth_id=self.b2.id,
        )

        report = generate_sessions(ADMIN, MONDAY, MONDAY + timedelta(days=27), workers=4)

        self.assertEqual(report.total_slots, 8)
        self.assertEqual(report.sessions_created, 12)
        self.assertEqual(report.failures, [])
        db.session.expire_all()
        self.assertEqual(db.session.query(ClassSession).count(), 12)

    def test_closed_dates_are_reported_as_blocked(self) -> None:
        template = self.make_template([self.s1.id])
        self.make_vacation(MONDAY + timedelta(days=7), MONDAY + timedelta(days=11))

        report = generate_sessions(ADMIN, MONDAY, SUNDAY_AFTER_TWO_WEEKS)

        self.assertEqual(report.sessions_created, 1)
        self.assertEqual(report.blocked_slots, [(template.id, MONDAY + timedelta(days=7))])
        self.assertEqual(report.failures, [])
        self.assertIn("1 slot(s) on closed dates", report.summary())
        self.assertEqual(db.session.query(ClassSession).one().date, MONDAY)

    def test_cancelled_run_creates_nothing(self) -> None:
        self.make_template([self.s1.id])
        cancel_event = threading.Event()
        cancel_event.set()

        report = RecurringSessionGenerator(workers=1, cancel_event=cancel_event).run(
            ADMIN, MONDAY, SUNDAY_AFTER_TWO_WEEKS
        )

        self.assertTrue(report.cancelled)
        self.assertEqual(report.sessions_created, 0)
        self.assertEqual(db.session.query(ClassSession).count(), 0)

    def test_progress_tracker_follows_run(self) -> None:
        self.make_template([self.s1.id, self.s2.id])
        tracker = GenerationProgressTracker("test")

        RecurringSessionGenerator(workers=1, progress=tracker).run(
            ADMIN, MONDAY, SUNDAY_AFTER_TWO_WEEKS
        )

        snapshot = tracker.snapshot()
        self.assertEqual(snapshot.state, "success")
        self.assertEqual(snapshot.total_slots, 2)
        self.assertEqual(snapshot.processed_slots, 2)
        self.assertEqual(snapshot.sessions_created, 4)
        self.assertEqual(snapshot.percent, 100)

    def test_rejects_invalid_ranges_and_non_admins(self) -> None:
        with self.assertRaises(ValidationError):
            generate_sessions(ADMIN, MONDAY, MONDAY - timedelta(days=1))
        self.app.config["GENERATION_MAX_DAYS"] = 7
        with self.assertRaises(ValidationError):
            generate_sessions(ADMIN, MONDAY, MONDAY + timedelta(days=7))
        with self.assertRaises(ForbiddenError):
            generate_sessions(STAFF, MONDAY, MONDAY)


    def test_background_job_validates_range_before_starting(self) -> None:
        self.app.config["GENERATION_MAX_DAYS"] = 7
        with patch("tutorplan.generation.threading.Thread") as thread_cls:
            with self.assertRaises(ValidationError):
                enqueue_generation(ADMIN, MONDAY, MONDAY + timedelta(days=7))
        thread_cls.assert_not_called()


class GenerationReportTestCase(unittest.TestCase):
    def test_record_and_serialise(self) -> None:
        report = GenerationReport(start_date=date(2025, 4, 7), end_date=date(2025, 4, 13))
        report.record(SlotOutcome(template_id=1, date=date(2025, 4, 7), created_ids=[5, 6]))
        report.record(
            SlotOutcome(template_id=2, date=date(2025, 4, 9), already_generated=True)
        )

        payload = report.to_dict()

        self.assertEqual(payload["sessions_created"], 2)
        self.assertEqual(payload["created_session_ids"], [5, 6])
        self.assertEqual(payload["skipped_existing"], [{"template_id": 2, "date": "2025-04-09"}])
        self.assertFalse(payload["cancelled"])
        self.assertEqual(payload["summary"], "2 session(s) created, 1 slot(s) already generated")

    def test_cancelled_outcome_marks_report(self) -> None:
        report = GenerationReport(start_date=date(2025, 4, 7), end_date=date(2025, 4, 7))
        report.record(SlotOutcome(template_id=1, date=date(2025, 4, 7), cancelled=True))
        self.assertTrue(report.cancelled)
        self.assertEqual(report.sessions_created, 0)


if __name__ == "__main__":
    unittest.main()
