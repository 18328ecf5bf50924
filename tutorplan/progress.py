from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict


class GenerationProgress:
    """Interface used by the generator to report progress."""

    def initialise(self, total_slots: int) -> None:  # pragma: no cover - interface
        """Declare how many (template, date) slots will be processed."""

    def record(self, slots: int = 1, sessions: int = 0) -> None:  # pragma: no cover
        """Record processed slots and the sessions they produced."""

    def complete(self, message: str | None = None) -> None:  # pragma: no cover
        """Mark the run as finished successfully."""

    def mark_cancelled(self, message: str | None = None) -> None:  # pragma: no cover
        """Mark the run as stopped before every slot was processed."""


class NullGenerationProgress(GenerationProgress):
    """Fallback progress adapter used when no tracking is requested."""

    def initialise(self, total_slots: int) -> None:
        return

    def record(self, slots: int = 1, sessions: int = 0) -> None:
        return

    def complete(self, message: str | None = None) -> None:
        return

    def mark_cancelled(self, message: str | None = None) -> None:
        return


@dataclass
class ProgressSnapshot:
    job_id: str
    label: str
    state: str
    percent: int
    eta_seconds: float | None
    sessions_created: int
    processed_slots: int
    total_slots: int
    message: str | None
    finished: bool
    cancel_requested: bool
    report: dict[str, Any] | None = field(default=None)


class GenerationProgressTracker(GenerationProgress):
    """Thread-safe tracker collecting generation progress for one job."""

    FINAL_STATES = {"success", "error", "cancelled"}

    def __init__(self, label: str) -> None:
        self.job_id = uuid.uuid4().hex
        self.label = label
        self.cancel_event = threading.Event()
        self._total_slots = 0
        self._processed_slots = 0
        self._sessions_created = 0
        self._state = "pending"
        self._message: str | None = None
        self._report: dict[str, Any] | None = None
        self._lock = threading.Lock()
        self._started_at: float | None = None
        self._finished_at: float | None = None

    # Public helpers -------------------------------------------------
    def initialise(self, total_slots: int) -> None:
        with self._lock:
            self._total_slots = max(int(total_slots), 0)
            self._processed_slots = min(self._processed_slots, self._total_slots)
            self._state = "running"
            if self._started_at is None:
                self._started_at = time.monotonic()
            self._finished_at = None

    def record(self, slots: int = 1, sessions: int = 0) -> None:
        if slots <= 0 and sessions <= 0:
            return
        with self._lock:
            self._processed_slots = min(
                self._total_slots, self._processed_slots + max(int(slots), 0)
            )
            if sessions > 0:
                self._sessions_created += sessions
            if self._state == "pending":
                self._state = "running"
            if self._started_at is None:
                self._started_at = time.monotonic()

    def complete(self, message: str | None = None) -> None:
        with self._lock:
            self._state = "success"
            self._processed_slots = self._total_slots
            self._finish_locked(message)

    def mark_cancelled(self, message: str | None = None) -> None:
        with self._lock:
            self._state = "cancelled"
            self._finish_locked(message)

    def fail(self, message: str) -> None:
        with self._lock:
            self._state = "error"
            self._finish_locked(message)

    def cancel(self) -> bool:
        """Ask the running job to stop; returns False once it already ended."""

        with self._lock:
            if self._state in self.FINAL_STATES:
                return False
        self.cancel_event.set()
        return True

    def attach_report(self, report: dict[str, Any]) -> None:
        with self._lock:
            self._report = report

    # Snapshot -------------------------------------------------------
    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                job_id=self.job_id,
                label=self.label,
                state=self._state,
                percent=self._percent_locked(),
                eta_seconds=self._eta_locked(),
                sessions_created=self._sessions_created,
                processed_slots=self._processed_slots,
                total_slots=self._total_slots,
                message=self._message,
                finished=self._state in self.FINAL_STATES,
                cancel_requested=self.cancel_event.is_set(),
                report=self._report,
            )

    def is_finished(self) -> bool:
        with self._lock:
            return self._state in self.FINAL_STATES

    def age(self) -> float:
        reference = self._finished_at or self._started_at or time.monotonic()
        return time.monotonic() - reference

    # Internal helpers -----------------------------------------------
    def _finish_locked(self, message: str | None) -> None:
        self._message = message.strip() if message else self._message
        if self._started_at is None:
            self._started_at = time.monotonic()
        self._finished_at = time.monotonic()

    def _percent_locked(self) -> int:
        if self._total_slots <= 0:
            return 100 if self._state == "success" else 0
        if self._state == "success":
            return 100
        ratio = self._processed_slots / self._total_slots
        return max(0, min(int(round(ratio * 100)), 100))

    def _eta_locked(self) -> float | None:
        if self._state != "running" or self._total_slots <= 0 or self._processed_slots <= 0:
            return None
        if self._processed_slots >= self._total_slots:
            return 0.0
        if self._started_at is None:
            return None
        elapsed = time.monotonic() - self._started_at
        ratio = self._processed_slots / self._total_slots
        return max(elapsed * (1.0 / ratio - 1.0), 0.0)


class ProgressRegistry:
    """In-memory registry storing generation trackers by job id."""

    def __init__(self) -> None:
        self._trackers: Dict[str, GenerationProgressTracker] = {}
        self._lock = threading.Lock()

    def create(self, label: str) -> GenerationProgressTracker:
        tracker = GenerationProgressTracker(label)
        with self._lock:
            self._trackers[tracker.job_id] = tracker
        return tracker

    def get(self, job_id: str) -> GenerationProgressTracker | None:
        with self._lock:
            return self._trackers.get(job_id)

    def purge(self, max_age_seconds: float = 600.0) -> None:
        with self._lock:
            stale_ids = [
                job_id
                for job_id, tracker in self._trackers.items()
                if tracker.is_finished() and tracker.age() > max_age_seconds
            ]
            for job_id in stale_ids:
                self._trackers.pop(job_id, None)


progress_registry = ProgressRegistry()
