"""Error taxonomy raised by the scheduling core."""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from datetime import date

    from .models import ClassSession, Vacation


class ErrorCode(Enum):
    INVALID_INTERVAL = "INVALID_INTERVAL"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    IMMUTABLE_FIELD = "IMMUTABLE_FIELD"
    NO_STUDENTS_ASSIGNED = "NO_STUDENTS_ASSIGNED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    SCHEDULING_CONFLICT = "SCHEDULING_CONFLICT"
    DATE_BLOCKED = "DATE_BLOCKED"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHENTICATED = "UNAUTHENTICATED"


class SchedulingError(Exception):
    """Base error with a stable code, a user-safe message and an HTTP status."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code.value, "code": self.code.value, "message": self.message}


class InvalidIntervalError(SchedulingError):
    code = ErrorCode.INVALID_INTERVAL

    def __init__(self, message: str = "End time must be after start time") -> None:
        super().__init__(message)


class ValidationError(SchedulingError):
    code = ErrorCode.VALIDATION_ERROR


class ImmutableFieldError(SchedulingError):
    code = ErrorCode.IMMUTABLE_FIELD

    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = sorted(fields)
        super().__init__(
            "Fields cannot be changed on a template-derived session: "
            + ", ".join(self.fields)
        )

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["fields"] = list(self.fields)
        return payload


class NoStudentsAssignedError(SchedulingError):
    code = ErrorCode.NO_STUDENTS_ASSIGNED

    def __init__(self, template_id: int) -> None:
        super().__init__(f"No students assigned to template {template_id}")
        self.template_id = template_id


class ResourceNotFoundError(SchedulingError):
    code = ErrorCode.RESOURCE_NOT_FOUND
    status_code = 404

    def __init__(self, kind: str, resource_id: object) -> None:
        super().__init__(f"{kind.replace('_', ' ').capitalize()} not found")
        self.kind = kind
        self.resource_id = resource_id

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["kind"] = self.kind
        payload["id"] = self.resource_id
        return payload


class SchedulingConflictError(SchedulingError):
    code = ErrorCode.SCHEDULING_CONFLICT
    status_code = 409

    def __init__(self, kind: str, conflicts: Sequence["ClassSession"]) -> None:
        super().__init__(f"{kind.capitalize()} is already booked for this time")
        self.kind = kind
        self.conflicts = list(conflicts)

    @property
    def conflict_ids(self) -> list[int]:
        return [session.id for session in self.conflicts]

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["kind"] = self.kind
        payload["conflicts"] = [
            {
                "class_id": session.id,
                "date": session.date.isoformat(),
                "start_time": session.start_time.strftime("%H:%M"),
                "end_time": session.end_time.strftime("%H:%M"),
            }
            for session in self.conflicts
        ]
        return payload


class ForbiddenError(SchedulingError):
    code = ErrorCode.FORBIDDEN
    status_code = 403

    def __init__(self, message: str = "Administrator role required") -> None:
        super().__init__(message)


class AuthenticationRequiredError(SchedulingError):
    code = ErrorCode.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class DateBlockedError(SchedulingError):
    code = ErrorCode.DATE_BLOCKED
    status_code = 409

    def __init__(self, day: "date", vacations: Sequence["Vacation"]) -> None:
        self.day = day
        self.vacations = list(vacations)
        names = ", ".join(vacation.name for vacation in self.vacations)
        super().__init__(f"{day.isoformat()} falls within a closed period ({names})")

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["date"] = self.day.isoformat()
        payload["vacations"] = [
            {"id": vacation.id, "name": vacation.name} for vacation in self.vacations
        ]
        return payload
