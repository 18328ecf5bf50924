"""Expansion of recurring templates into concrete sessions over a date range.

Every (template, date) slot runs in its own transaction, so one failing
slot never rolls back the sessions produced for another. Slots that
already hold a session of the template are skipped, which makes reruns
over the same range idempotent. Dates inside a closed period are reported
as blocked and left empty.
"""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from flask import Flask, current_app
from sqlalchemy.exc import IntegrityError

from .auth import Identity, require_admin
from .errors import DateBlockedError, SchedulingError, ValidationError
from .extensions import db
from .progress import (
    GenerationProgress,
    GenerationProgressTracker,
    NullGenerationProgress,
    progress_registry,
)
from .sessions import SkippedStudent, expand_template
from .store import ResourceStore


@dataclass
class SlotFailure:
    template_id: int
    date: date
    error: str
    message: str


@dataclass
class SlotOutcome:
    template_id: int
    date: date
    created_ids: list[int] = field(default_factory=list)
    skipped: list[SkippedStudent] = field(default_factory=list)
    already_generated: bool = False
    blocked: bool = False
    failure: Optional[SlotFailure] = None
    cancelled: bool = False


@dataclass
class GenerationReport:
    start_date: date
    end_date: date
    total_slots: int = 0
    created_session_ids: list[int] = field(default_factory=list)
    skipped_existing: list[tuple[int, date]] = field(default_factory=list)
    blocked_slots: list[tuple[int, date]] = field(default_factory=list)
    student_conflicts: list[SkippedStudent] = field(default_factory=list)
    failures: list[SlotFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def sessions_created(self) -> int:
        return len(self.created_session_ids)

    def record(self, outcome: SlotOutcome) -> None:
        if outcome.cancelled:
            self.cancelled = True
            return
        if outcome.already_generated:
            self.skipped_existing.append((outcome.template_id, outcome.date))
        if outcome.blocked:
            self.blocked_slots.append((outcome.template_id, outcome.date))
        if outcome.failure is not None:
            self.failures.append(outcome.failure)
        self.created_session_ids.extend(outcome.created_ids)
        self.student_conflicts.extend(outcome.skipped)

    def summary(self) -> str:
        parts = [f"{self.sessions_created} session(s) created"]
        if self.skipped_existing:
            parts.append(f"{len(self.skipped_existing)} slot(s) already generated")
        if self.blocked_slots:
            parts.append(f"{len(self.blocked_slots)} slot(s) on closed dates")
        if self.student_conflicts:
            parts.append(f"{len(self.student_conflicts)} student conflict(s)")
        if self.failures:
            parts.append(f"{len(self.failures)} slot(s) failed")
        if self.cancelled:
            parts.append("cancelled")
        return ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_slots": self.total_slots,
            "sessions_created": self.sessions_created,
            "created_session_ids": list(self.created_session_ids),
            "skipped_existing": [
                {"template_id": template_id, "date": day.isoformat()}
                for template_id, day in self.skipped_existing
            ],
            "blocked_slots": [
                {"template_id": template_id, "date": day.isoformat()}
                for template_id, day in self.blocked_slots
            ],
            "student_conflicts": [
                {
                    "template_id": item.template_id,
                    "student_id": item.student_id,
                    "date": item.date.isoformat(),
                    "conflicting_session_ids": list(item.conflicting_session_ids),
                }
                for item in self.student_conflicts
            ],
            "failures": [
                {
                    "template_id": item.template_id,
                    "date": item.date.isoformat(),
                    "error": item.error,
                    "message": item.message,
                }
                for item in self.failures
            ],
            "cancelled": self.cancelled,
            "summary": self.summary(),
        }


def validate_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")
    max_days = int(current_app.config.get("GENERATION_MAX_DAYS", 366) or 0)
    if max_days and (end_date - start_date).days + 1 > max_days:
        raise ValidationError(f"Date range cannot exceed {max_days} days")


class RecurringSessionGenerator:
    """Materialise template occurrences between two dates (inclusive)."""

    def __init__(
        self,
        *,
        workers: int | None = None,
        cancel_event: threading.Event | None = None,
        progress: GenerationProgress | None = None,
    ) -> None:
        if workers is None:
            workers = int(current_app.config.get("GENERATION_WORKERS", 1) or 1)
        self.workers = max(int(workers), 1)
        self.cancel_event = cancel_event or threading.Event()
        self.progress = progress or NullGenerationProgress()

    def plan(self, start_date: date, end_date: date) -> list[tuple[int, date]]:
        store = ResourceStore()
        slots: list[tuple[int, date]] = []
        for template in store.templates_overlapping(start_date, end_date):
            for day in template.occurrences_between(start_date, end_date):
                slots.append((template.id, day))
        slots.sort(key=lambda slot: (slot[1], slot[0]))
        return slots

    def run(self, actor: Identity | None, start_date: date, end_date: date) -> GenerationReport:
        require_admin(actor)
        validate_range(start_date, end_date)

        slots = self.plan(start_date, end_date)
        report = GenerationReport(start_date=start_date, end_date=end_date, total_slots=len(slots))
        self.progress.initialise(len(slots))
        current_app.logger.info(
            "Generating sessions from %s to %s: %d slot(s), %d worker(s)",
            start_date.isoformat(),
            end_date.isoformat(),
            len(slots),
            self.workers,
        )

        if self.workers == 1 or len(slots) <= 1:
            for template_id, day in slots:
                outcome = self._run_slot(template_id, day)
                self._collect(report, outcome)
                if outcome.cancelled:
                    break
        else:
            app = current_app._get_current_object()
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                futures = [
                    executor.submit(self._run_slot_in_context, app, template_id, day)
                    for template_id, day in slots
                ]
                for future in futures:
                    self._collect(report, future.result())

        if report.cancelled:
            self.progress.mark_cancelled(report.summary())
            current_app.logger.warning("Session generation cancelled: %s", report.summary())
        else:
            self.progress.complete(report.summary())
            current_app.logger.info("Session generation finished: %s", report.summary())
        return report

    # Internal helpers -----------------------------------------------
    def _collect(self, report: GenerationReport, outcome: SlotOutcome) -> None:
        report.record(outcome)
        if not outcome.cancelled:
            self.progress.record(slots=1, sessions=len(outcome.created_ids))

    def _run_slot_in_context(self, app: Flask, template_id: int, day: date) -> SlotOutcome:
        with app.app_context():
            try:
                return self._run_slot(template_id, day)
            finally:
                db.session.remove()

    def _run_slot(self, template_id: int, day: date) -> SlotOutcome:
        outcome = SlotOutcome(template_id=template_id, date=day)
        if self.cancel_event.is_set():
            outcome.cancelled = True
            return outcome

        store = ResourceStore()
        try:
            with store.transaction():
                if store.template_has_session_on(template_id, day):
                    outcome.already_generated = True
                    return outcome
                result = expand_template(store, template_id, day)
                outcome.created_ids = result.created_ids
                outcome.skipped = result.skipped
        except IntegrityError:
            # Another run inserted the same (template, date, student) first.
            current_app.logger.info(
                "Template %s on %s was generated concurrently", template_id, day.isoformat()
            )
            outcome.created_ids = []
            outcome.skipped = []
            outcome.already_generated = True
        except DateBlockedError as exc:
            current_app.logger.info(
                "Template %s skipped on %s: %s", template_id, day.isoformat(), exc.message
            )
            outcome.blocked = True
        except SchedulingError as exc:
            current_app.logger.warning(
                "Template %s on %s failed: %s", template_id, day.isoformat(), exc
            )
            outcome.created_ids = []
            outcome.skipped = []
            outcome.failure = SlotFailure(
                template_id=template_id,
                date=day,
                error=exc.code.value,
                message=exc.message,
            )
        for skipped in outcome.skipped:
            current_app.logger.warning(
                "Skipped student %s for template %s on %s: overlaps sessions %s",
                skipped.student_id,
                template_id,
                day.isoformat(),
                skipped.conflicting_session_ids,
            )
        return outcome


def generate_sessions(
    actor: Identity | None,
    start_date: date,
    end_date: date,
    *,
    workers: int | None = None,
) -> GenerationReport:
    return RecurringSessionGenerator(workers=workers).run(actor, start_date, end_date)


def _run_generation_job(
    app: Flask, tracker_id: str, actor: Identity, start_date: date, end_date: date
) -> None:
    with app.app_context():
        tracker = progress_registry.get(tracker_id)
        if tracker is None:
            return
        try:
            generator = RecurringSessionGenerator(
                cancel_event=tracker.cancel_event, progress=tracker
            )
            report = generator.run(actor, start_date, end_date)
            tracker.attach_report(report.to_dict())
        except SchedulingError as exc:
            db.session.rollback()
            tracker.fail(exc.message)
        except Exception:
            db.session.rollback()
            tracker.fail("Unexpected error while generating sessions")
            current_app.logger.exception(
                "Session generation failed for %s..%s", start_date, end_date
            )
        finally:
            db.session.remove()


def enqueue_generation(
    actor: Identity | None, start_date: date, end_date: date
) -> GenerationProgressTracker:
    """Validate the request, then run the generator on a background thread."""

    actor = require_admin(actor)
    validate_range(start_date, end_date)
    app = current_app._get_current_object()
    tracker = progress_registry.create(
        f"Sessions {start_date.isoformat()} to {end_date.isoformat()}"
    )
    progress_registry.purge()
    thread = threading.Thread(
        target=_run_generation_job,
        args=(app, tracker.job_id, actor, start_date, end_date),
        daemon=True,
    )
    thread.start()
    return tracker
