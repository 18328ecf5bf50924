"""Class session endpoints: listing, booking, updates and conflict preview."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields

from ..auth import identity_from_request, require_admin, require_identity
from ..conflicts import conflict_report
from ..errors import ResourceNotFoundError, ValidationError
from ..models import ClassSession
from ..queries import SessionFilters, list_sessions
from ..sessions import (
    STANDALONE_FIELDS,
    SkippedStudent,
    cancel_sessions,
    confirm_sessions,
    create_sessions_from_template,
    create_standalone_session,
    delete_session,
    update_session,
)
from ..store import ResourceStore
from ..utils import (
    format_date,
    format_time,
    parse_bool,
    parse_date,
    parse_days_of_week,
    parse_id_list,
    parse_optional_int,
    parse_time,
)


ns = Namespace("class-sessions", description="Booking and maintenance of class sessions")

enrollment_model = ns.model(
    "Enrollment",
    {
        "student_id": fields.Integer,
        "status": fields.String,
    },
)

session_model = ns.model(
    "ClassSession",
    {
        "id": fields.Integer(readonly=True),
        "date": fields.String(example="2025-04-07"),
        "start_time": fields.String(example="09:00"),
        "end_time": fields.String(example="10:00"),
        "duration": fields.Integer(description="Length in minutes"),
        "teacher_id": fields.Integer,
        "teacher_name": fields.String,
        "student_id": fields.Integer,
        "student_name": fields.String,
        "subject_id": fields.Integer,
        "subject_name": fields.String,
        "subject_type_id": fields.Integer,
        "booth_id": fields.Integer,
        "booth_name": fields.String,
        "class_type_id": fields.Integer,
        "template_id": fields.Integer,
        "is_template_instance": fields.Boolean,
        "notes": fields.String,
        "status": fields.String(example="pending"),
        "is_cancelled": fields.Boolean,
        "cancelled_at": fields.DateTime,
        "cancellation_reason": fields.String,
        "enrollments": fields.List(fields.Nested(enrollment_model)),
    },
)

session_input = ns.model(
    "ClassSessionInput",
    {
        "date": fields.String(required=True, example="2025-04-07"),
        "start_time": fields.String(required=True, example="09:00"),
        "end_time": fields.String(required=True, example="10:00"),
        "teacher_id": fields.Integer(required=True),
        "student_id": fields.Integer(required=True),
        "subject_id": fields.Integer(required=True),
        "subject_type_id": fields.Integer,
        "booth_id": fields.Integer(required=True),
        "class_type_id": fields.Integer(required=True),
        "notes": fields.String,
        "force_create": fields.Boolean(
            default=False, description="Book even inside a closed period"
        ),
    },
)

session_patch = ns.model(
    "ClassSessionPatch",
    {
        "date": fields.String(example="2025-04-07"),
        "start_time": fields.String(example="09:00"),
        "end_time": fields.String(example="10:00"),
        "teacher_id": fields.Integer,
        "student_id": fields.Integer,
        "subject_id": fields.Integer,
        "subject_type_id": fields.Integer,
        "booth_id": fields.Integer,
        "class_type_id": fields.Integer,
        "notes": fields.String,
    },
)

from_template_input = ns.model(
    "FromTemplateInput",
    {
        "template_id": fields.Integer(required=True),
        "date": fields.String(required=True, example="2025-04-07"),
        "start_time": fields.String(example="09:00"),
        "end_time": fields.String(example="10:00"),
        "booth_id": fields.Integer,
        "subject_type_id": fields.Integer,
        "notes": fields.String,
        "force_create": fields.Boolean(default=False),
    },
)

skipped_model = ns.model(
    "SkippedStudent",
    {
        "student_id": fields.Integer,
        "date": fields.String,
        "conflicting_session_ids": fields.List(fields.Integer),
    },
)

from_template_response = ns.model(
    "FromTemplateResponse",
    {
        "template_id": fields.Integer,
        "date": fields.String,
        "created": fields.List(fields.Nested(session_model)),
        "skipped": fields.List(fields.Nested(skipped_model)),
    },
)

conflict_input = ns.model(
    "ConflictCheckInput",
    {
        "date": fields.String(required=True, example="2025-04-07"),
        "start_time": fields.String(required=True, example="09:00"),
        "end_time": fields.String(required=True, example="10:00"),
        "teacher_id": fields.Integer,
        "booth_id": fields.Integer,
        "student_id": fields.Integer,
        "exclude_session_id": fields.Integer,
    },
)

conflict_entry = ns.model(
    "ConflictEntry",
    {
        "class_id": fields.Integer,
        "date": fields.String,
        "start_time": fields.String,
        "end_time": fields.String,
    },
)

conflict_response = ns.model(
    "ConflictCheckResponse",
    {
        "has_conflicts": fields.Boolean,
        "booth": fields.List(fields.Nested(conflict_entry)),
        "teacher": fields.List(fields.Nested(conflict_entry)),
        "student": fields.List(fields.Nested(conflict_entry)),
    },
)


cancel_input = ns.model(
    "CancelInput",
    {
        "class_ids": fields.List(fields.Integer, required=True, min_items=1),
        "reason": fields.String,
    },
)

confirm_input = ns.model(
    "ConfirmInput",
    {"class_ids": fields.List(fields.Integer, required=True, min_items=1)},
)


def serialize_session(class_session: ClassSession) -> dict[str, Any]:
    return {
        "id": class_session.id,
        "date": format_date(class_session.date),
        "start_time": format_time(class_session.start_time),
        "end_time": format_time(class_session.end_time),
        "duration": class_session.duration,
        "teacher_id": class_session.teacher_id,
        "teacher_name": class_session.teacher.name if class_session.teacher else None,
        "student_id": class_session.student_id,
        "student_name": class_session.student.name if class_session.student else None,
        "subject_id": class_session.subject_id,
        "subject_name": class_session.subject.name if class_session.subject else None,
        "subject_type_id": class_session.subject_type_id,
        "booth_id": class_session.booth_id,
        "booth_name": class_session.booth.name if class_session.booth else None,
        "class_type_id": class_session.class_type_id,
        "template_id": class_session.template_id,
        "is_template_instance": class_session.is_template_instance,
        "notes": class_session.notes,
        "status": class_session.status,
        "is_cancelled": class_session.is_cancelled,
        "cancelled_at": class_session.cancelled_at,
        "cancellation_reason": class_session.cancellation_reason,
        "enrollments": [
            {"student_id": enrollment.student_id, "status": enrollment.status}
            for enrollment in class_session.enrollments
        ],
    }


def serialize_skipped(skipped: SkippedStudent) -> dict[str, Any]:
    return {
        "student_id": skipped.student_id,
        "date": format_date(skipped.date),
        "conflicting_session_ids": list(skipped.conflicting_session_ids),
    }


def _conflict_entry(class_session: ClassSession) -> dict[str, Any]:
    return {
        "class_id": class_session.id,
        "date": format_date(class_session.date),
        "start_time": format_time(class_session.start_time),
        "end_time": format_time(class_session.end_time),
    }


def _filters_from_args() -> SessionFilters:
    args = request.args
    return SessionFilters(
        date=parse_date(args["date"], "date") if args.get("date") else None,
        start_date=parse_date(args["start_date"], "start_date") if args.get("start_date") else None,
        end_date=parse_date(args["end_date"], "end_date") if args.get("end_date") else None,
        teacher_ids=parse_id_list(args.getlist("teacher_id"), "teacher_id"),
        student_ids=parse_id_list(args.getlist("student_id"), "student_id"),
        subject_ids=parse_id_list(args.getlist("subject_id"), "subject_id"),
        subject_type_ids=parse_id_list(args.getlist("subject_type_id"), "subject_type_id"),
        booth_ids=parse_id_list(args.getlist("booth_id"), "booth_id"),
        class_type_ids=parse_id_list(args.getlist("class_type_id"), "class_type_id"),
        template_id=parse_optional_int(args.get("template_id"), "template_id"),
        days_of_week=parse_days_of_week(args.getlist("day_of_week")),
        is_template_instance=parse_bool(args.get("is_template_instance"), "is_template_instance"),
        is_cancelled=parse_bool(args.get("is_cancelled"), "is_cancelled"),
        status=args.get("status") or None,
    )


def _parse_changes(payload: dict[str, Any]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for name, value in payload.items():
        if name not in STANDALONE_FIELDS:
            changes[name] = value
        elif name == "date":
            changes[name] = parse_date(value, name)
        elif name in {"start_time", "end_time"}:
            changes[name] = parse_time(value, name)
        elif name == "notes":
            if value is not None and not isinstance(value, str):
                raise ValidationError("notes must be a string")
            changes[name] = value
        else:
            changes[name] = parse_optional_int(value, name)
    return changes


@ns.route("")
class ClassSessionList(Resource):
    @ns.marshal_list_with(session_model)
    def get(self) -> list[dict[str, Any]]:
        require_identity(identity_from_request())
        return [serialize_session(item) for item in list_sessions(_filters_from_args())]

    @ns.expect(session_input, validate=True)
    @ns.marshal_with(session_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        actor = require_admin(identity_from_request())
        payload = request.json or {}
        class_session = create_standalone_session(
            actor,
            date=parse_date(payload["date"], "date"),
            start_time=parse_time(payload["start_time"], "start_time"),
            end_time=parse_time(payload["end_time"], "end_time"),
            teacher_id=payload["teacher_id"],
            student_id=payload["student_id"],
            subject_id=payload["subject_id"],
            subject_type_id=payload.get("subject_type_id"),
            booth_id=payload["booth_id"],
            class_type_id=payload["class_type_id"],
            notes=payload.get("notes"),
            force_create=bool(payload.get("force_create", False)),
        )
        return serialize_session(class_session), 201


@ns.route("/from-template")
class ClassSessionFromTemplate(Resource):
    @ns.expect(from_template_input, validate=True)
    @ns.marshal_with(from_template_response, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        actor = require_admin(identity_from_request())
        payload = request.json or {}
        start_time = payload.get("start_time")
        end_time = payload.get("end_time")
        result = create_sessions_from_template(
            actor,
            payload["template_id"],
            parse_date(payload["date"], "date"),
            start_time=parse_time(start_time, "start_time") if start_time else None,
            end_time=parse_time(end_time, "end_time") if end_time else None,
            booth_id=payload.get("booth_id"),
            subject_type_id=payload.get("subject_type_id"),
            notes=payload.get("notes"),
            force_create=bool(payload.get("force_create", False)),
        )
        return {
            "template_id": result.template_id,
            "date": format_date(result.date),
            "created": [serialize_session(item) for item in result.created],
            "skipped": [serialize_skipped(item) for item in result.skipped],
        }, 201


@ns.route("/conflicts")
class ClassSessionConflicts(Resource):
    @ns.expect(conflict_input, validate=True)
    @ns.marshal_with(conflict_response)
    def post(self) -> dict[str, Any]:
        actor = identity_from_request()
        payload = request.json or {}
        report = conflict_report(
            actor,
            day=parse_date(payload["date"], "date"),
            start=parse_time(payload["start_time"], "start_time"),
            end=parse_time(payload["end_time"], "end_time"),
            teacher_id=payload.get("teacher_id"),
            booth_id=payload.get("booth_id"),
            student_id=payload.get("student_id"),
            exclude_session_id=payload.get("exclude_session_id"),
        )
        response: dict[str, Any] = {
            kind.value: [_conflict_entry(item) for item in sessions]
            for kind, sessions in report.items()
        }
        response["has_conflicts"] = any(report.values())
        return response


@ns.route("/cancel")
class ClassSessionCancel(Resource):
    @ns.expect(cancel_input, validate=True)
    def post(self) -> dict[str, Any]:
        actor = identity_from_request()
        payload = request.json or {}
        cancelled = cancel_sessions(actor, payload["class_ids"], reason=payload.get("reason"))
        return {"cancelled_ids": cancelled, "count": len(cancelled)}


@ns.route("/confirm")
class ClassSessionConfirm(Resource):
    @ns.expect(confirm_input, validate=True)
    def post(self) -> dict[str, Any]:
        result = confirm_sessions(identity_from_request(), request.json["class_ids"])
        return {
            "confirmed_ids": list(result.confirmed_ids),
            "failed": [
                {"class_id": item.class_id, "reason": item.reason} for item in result.failed
            ],
        }


@ns.route("/<int:class_id>")
class ClassSessionResource(Resource):
    @ns.marshal_with(session_model)
    def get(self, class_id: int) -> dict[str, Any]:
        require_identity(identity_from_request())
        class_session = ResourceStore().load_session(class_id)
        if class_session is None:
            raise ResourceNotFoundError("session", class_id)
        return serialize_session(class_session)

    @ns.expect(session_patch)
    @ns.marshal_with(session_model)
    def patch(self, class_id: int) -> dict[str, Any]:
        actor = require_admin(identity_from_request())
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        class_session = update_session(actor, class_id, _parse_changes(payload))
        return serialize_session(class_session)

    def delete(self, class_id: int) -> tuple[str, int]:
        delete_session(identity_from_request(), class_id)
        return "", 204
