"""REST API definition using Flask-RESTX."""
from __future__ import annotations

from flask import Blueprint, Flask
from flask_restx import Api

from ..errors import SchedulingError
from .class_sessions import ns as class_sessions_ns
from .generation import ns as generation_ns
from .health import ns as health_ns
from .templates import ns as templates_ns
from .vacations import ns as vacations_ns


def register_namespaces(api: Api) -> None:
    """Register all API namespaces."""
    api.add_namespace(health_ns, path="/health")
    api.add_namespace(class_sessions_ns, path="/class-sessions")
    api.add_namespace(templates_ns, path="/templates")
    api.add_namespace(generation_ns, path="/generation")
    api.add_namespace(vacations_ns, path="/vacations")


def create_api_blueprint(app: Flask) -> Blueprint:
    blueprint = Blueprint("api", __name__)
    api = Api(
        blueprint,
        title=app.config.get("API_TITLE", "Tutorplan API"),
        version=app.config.get("API_VERSION", "0.1.0"),
        doc="/docs",
    )
    register_namespaces(api)

    @api.errorhandler(SchedulingError)
    def handle_scheduling_error(error: SchedulingError):
        return error.to_dict(), error.status_code

    return blueprint
