"""Read-only access to recurring class templates."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields

from ..auth import identity_from_request, require_identity
from ..models import RegularClassTemplate
from ..queries import TemplateFilters, list_templates
from ..store import EntityKind, ResourceStore
from ..utils import format_date, format_time, parse_days_of_week, parse_id_list


ns = Namespace("templates", description="Recurring class templates")

template_model = ns.model(
    "RegularClassTemplate",
    {
        "id": fields.Integer(readonly=True),
        "day_of_week": fields.String(example="MONDAY"),
        "start_time": fields.String(example="16:00"),
        "end_time": fields.String(example="17:00"),
        "teacher_id": fields.Integer,
        "teacher_name": fields.String,
        "subject_id": fields.Integer,
        "subject_name": fields.String,
        "subject_type_id": fields.Integer,
        "booth_id": fields.Integer,
        "booth_name": fields.String,
        "class_type_id": fields.Integer,
        "start_date": fields.String,
        "end_date": fields.String,
        "notes": fields.String,
        "student_ids": fields.List(fields.Integer),
    },
)


def serialize_template(template: RegularClassTemplate) -> dict[str, Any]:
    return {
        "id": template.id,
        "day_of_week": template.day_of_week.value,
        "start_time": format_time(template.start_time),
        "end_time": format_time(template.end_time),
        "teacher_id": template.teacher_id,
        "teacher_name": template.teacher.name if template.teacher else None,
        "subject_id": template.subject_id,
        "subject_name": template.subject.name if template.subject else None,
        "subject_type_id": template.subject_type_id,
        "booth_id": template.booth_id,
        "booth_name": template.booth.name if template.booth else None,
        "class_type_id": template.class_type_id,
        "start_date": format_date(template.start_date),
        "end_date": format_date(template.end_date),
        "notes": template.notes,
        "student_ids": template.student_ids,
    }


@ns.route("")
class TemplateList(Resource):
    @ns.marshal_list_with(template_model)
    def get(self) -> list[dict[str, Any]]:
        require_identity(identity_from_request())
        args = request.args
        filters = TemplateFilters(
            days_of_week=parse_days_of_week(args.getlist("day_of_week")),
            teacher_ids=parse_id_list(args.getlist("teacher_id"), "teacher_id"),
            student_ids=parse_id_list(args.getlist("student_id"), "student_id"),
            subject_ids=parse_id_list(args.getlist("subject_id"), "subject_id"),
            booth_ids=parse_id_list(args.getlist("booth_id"), "booth_id"),
        )
        return [serialize_template(template) for template in list_templates(filters)]


@ns.route("/<int:template_id>")
class TemplateResource(Resource):
    @ns.marshal_with(template_model)
    def get(self, template_id: int) -> dict[str, Any]:
        require_identity(identity_from_request())
        template = ResourceStore().require(EntityKind.TEMPLATE, template_id)
        return serialize_template(template)
