import logging
from datetime import datetime

import click
from flask import Flask
from flask.cli import with_appcontext

from config import Config, _normalise_prefix

from .extensions import db, migrate


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_class)

    url_prefix = _normalise_prefix(app.config.get("URL_PREFIX", ""))
    app.config["URL_PREFIX"] = url_prefix

    app.logger.setLevel(
        logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    )

    db.init_app(app)
    migrate.init_app(app, db)

    from . import models  # noqa: F401  # Ensure models registered for migrations

    if app.config.get("AUTO_CREATE_SCHEMA", True):
        with app.app_context():
            db.create_all()

    from .api import create_api_blueprint

    app.register_blueprint(create_api_blueprint(app), url_prefix=f"{url_prefix}/api")

    @app.cli.command("seed")
    @with_appcontext
    def seed() -> None:
        """Seed initial data for development."""
        from .seed import seed_data

        seed_data()
        click.echo("Database seeded with sample data.")

    @app.cli.command("generate-sessions")
    @click.option("--start", "start", required=True, help="First date (YYYY-MM-DD).")
    @click.option("--end", "end", required=True, help="Last date (YYYY-MM-DD).")
    @click.option("--workers", type=int, default=None, help="Parallel slot workers.")
    @with_appcontext
    def generate_sessions_command(start: str, end: str, workers: int | None) -> None:
        """Expand recurring templates into sessions for a date range."""
        from .auth import SYSTEM_ADMIN
        from .errors import SchedulingError
        from .generation import generate_sessions

        try:
            start_date = datetime.strptime(start, "%Y-%m-%d").date()
            end_date = datetime.strptime(end, "%Y-%m-%d").date()
        except ValueError as exc:
            raise click.BadParameter(str(exc)) from exc
        try:
            report = generate_sessions(SYSTEM_ADMIN, start_date, end_date, workers=workers)
        except SchedulingError as exc:
            raise click.ClickException(exc.message) from exc
        click.echo(report.summary())
        for failure in report.failures:
            click.echo(
                f"  template {failure.template_id} on {failure.date.isoformat()}: "
                f"{failure.error} {failure.message}"
            )

    return app


__all__ = ["create_app", "db", "migrate"]
