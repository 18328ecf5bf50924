import unittest
from datetime import timedelta

from tutorplan.extensions import db
from tutorplan.models import ClassSession, RegularClassTemplate, Teacher

from .support import MONDAY, DatabaseTestCase, SchedulingTestCase


class GenerateSessionsCommandTestCase(SchedulingTestCase):
    def test_prints_summary(self) -> None:
        self.make_template([self.s1.id, self.s2.id])
        runner = self.app.test_cli_runner()

        result = runner.invoke(
            args=[
                "generate-sessions",
                "--start",
                MONDAY.isoformat(),
                "--end",
                (MONDAY + timedelta(days=6)).isoformat(),
            ]
        )

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("2 session(s) created", result.output)
        self.assertEqual(db.session.query(ClassSession).count(), 2)

    def test_rejects_bad_dates(self) -> None:
        runner = self.app.test_cli_runner()

        malformed = runner.invoke(args=["generate-sessions", "--start", "April", "--end", "May"])
        reversed_range = runner.invoke(
            args=[
                "generate-sessions",
                "--start",
                MONDAY.isoformat(),
                "--end",
                (MONDAY - timedelta(days=1)).isoformat(),
            ]
        )

        self.assertNotEqual(malformed.exit_code, 0)
        self.assertNotEqual(reversed_range.exit_code, 0)
        self.assertIn("end_date", reversed_range.output)


class SeedCommandTestCase(DatabaseTestCase):
    def test_seed_is_idempotent(self) -> None:
        runner = self.app.test_cli_runner()

        first = runner.invoke(args=["seed"])
        second = runner.invoke(args=["seed"])

        self.assertEqual(first.exit_code, 0, first.output)
        self.assertEqual(second.exit_code, 0, second.output)
        self.assertEqual(db.session.query(Teacher).count(), 2)
        self.assertEqual(db.session.query(RegularClassTemplate).count(), 2)


if __name__ == "__main__":
    unittest.main()
