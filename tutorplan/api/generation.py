"""Endpoints driving recurring session generation."""
from __future__ import annotations

from dataclasses import asdict
from typing import Any

from flask import request
from flask_restx import Namespace, Resource, fields

from ..auth import identity_from_request, require_admin
from ..errors import ResourceNotFoundError
from ..generation import enqueue_generation, generate_sessions
from ..progress import progress_registry
from ..utils import parse_date


ns = Namespace("generation", description="Expand templates into concrete sessions")

range_input = ns.model(
    "GenerationRange",
    {
        "start_date": fields.String(required=True, example="2025-04-01"),
        "end_date": fields.String(required=True, example="2025-04-30"),
    },
)


def _range_from_payload() -> tuple[Any, Any]:
    payload = request.json or {}
    return (
        parse_date(payload["start_date"], "start_date"),
        parse_date(payload["end_date"], "end_date"),
    )


@ns.route("/run")
class GenerationRun(Resource):
    @ns.expect(range_input, validate=True)
    def post(self) -> dict[str, Any]:
        start_date, end_date = _range_from_payload()
        report = generate_sessions(identity_from_request(), start_date, end_date)
        return report.to_dict()


@ns.route("/jobs")
class GenerationJobList(Resource):
    @ns.expect(range_input, validate=True)
    def post(self) -> tuple[dict[str, Any], int]:
        start_date, end_date = _range_from_payload()
        tracker = enqueue_generation(identity_from_request(), start_date, end_date)
        return asdict(tracker.snapshot()), 202


@ns.route("/jobs/<string:job_id>")
class GenerationJob(Resource):
    def get(self, job_id: str) -> dict[str, Any]:
        require_admin(identity_from_request())
        tracker = progress_registry.get(job_id)
        if tracker is None:
            raise ResourceNotFoundError("job", job_id)
        return asdict(tracker.snapshot())

    def delete(self, job_id: str) -> tuple[dict[str, Any], int]:
        require_admin(identity_from_request())
        tracker = progress_registry.get(job_id)
        if tracker is None:
            raise ResourceNotFoundError("job", job_id)
        tracker.cancel()
        return asdict(tracker.snapshot()), 202
