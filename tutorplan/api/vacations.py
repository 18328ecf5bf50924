"""Closed periods (holidays) that block bookings and generation."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields

from ..auth import identity_from_request, require_admin, require_identity
from ..models import Vacation
from ..queries import SessionFilters, list_sessions
from ..store import EntityKind, ResourceStore
from ..utils import format_date, parse_date
from ..vacations import create_vacation, delete_vacation, list_vacations
from .class_sessions import serialize_session, session_model


ns = Namespace("vacations", description="Holidays and other closed periods")

vacation_model = ns.model(
    "Vacation",
    {
        "id": fields.Integer(readonly=True),
        "name": fields.String(required=True, example="Spring break"),
        "start_date": fields.String(required=True, example="2025-04-21"),
        "end_date": fields.String(required=True, example="2025-04-25"),
        "notes": fields.String,
    },
)


def serialize_vacation(vacation: Vacation) -> dict[str, Any]:
    return {
        "id": vacation.id,
        "name": vacation.name,
        "start_date": format_date(vacation.start_date),
        "end_date": format_date(vacation.end_date),
        "notes": vacation.notes,
    }


@ns.route("")
class VacationList(Resource):
    @ns.marshal_list_with(vacation_model)
    def get(self) -> list[dict[str, Any]]:
        require_identity(identity_from_request())
        args = request.args
        start_date = parse_date(args["start_date"], "start_date") if args.get("start_date") else None
        end_date = parse_date(args["end_date"], "end_date") if args.get("end_date") else None
        return [serialize_vacation(item) for item in list_vacations(start_date, end_date)]

    @ns.expect(vacation_model, validate=True)
    @ns.marshal_with(vacation_model, code=201)
    def post(self) -> tuple[dict[str, Any], int]:
        actor = require_admin(identity_from_request())
        payload = request.json or {}
        vacation = create_vacation(
            actor,
            name=payload["name"],
            start_date=parse_date(payload["start_date"], "start_date"),
            end_date=parse_date(payload["end_date"], "end_date"),
            notes=payload.get("notes"),
        )
        return serialize_vacation(vacation), 201


@ns.route("/<int:vacation_id>")
class VacationResource(Resource):
    @ns.marshal_with(vacation_model)
    def get(self, vacation_id: int) -> dict[str, Any]:
        require_identity(identity_from_request())
        return serialize_vacation(ResourceStore().require(EntityKind.VACATION, vacation_id))

    def delete(self, vacation_id: int) -> tuple[str, int]:
        delete_vacation(identity_from_request(), vacation_id)
        return "", 204


@ns.route("/<int:vacation_id>/sessions")
class VacationSessions(Resource):
    @ns.marshal_list_with(session_model)
    def get(self, vacation_id: int) -> list[dict[str, Any]]:
        require_identity(identity_from_request())
        vacation = ResourceStore().require(EntityKind.VACATION, vacation_id)
        filters = SessionFilters(start_date=vacation.start_date, end_date=vacation.end_date)
        return [serialize_session(item) for item in list_sessions(filters)]
