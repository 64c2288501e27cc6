"""Application factory for CCIS Connect."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

import click
from flask import Flask, render_template
from flask_login import LoginManager, current_user
from flask_wtf import CSRFProtect
from flask_wtf.csrf import generate_csrf

from .config import BaseConfig, get_config
from .data_access import seed, users_dao
from .data_access.db import init_app as init_db_app, init_db
from .models.entities import Guest, User
from .services import store

csrf = CSRFProtect()
login_manager = LoginManager()
login_manager.login_view = "auth.login"
login_manager.login_message_category = "info"
login_manager.anonymous_user = Guest


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    """Look up a user for Flask-Login session handling.

    A row whose role no longer maps to a known role is a stale session; the
    visitor is treated as signed out and must authenticate again.
    """
    if not user_id:
        return None
    try:
        return users_dao.get_user_by_id(int(user_id))
    except users_dao.StaleUserError as exc:
        logging.getLogger(__name__).warning("Stale session dropped: %s", exc)
        return None


def create_app(config_object: type[BaseConfig] | None = None) -> Flask:
    """Create and configure the Flask application instance."""

    app = Flask(
        __name__,
        template_folder=str(Path(__file__).parent / "views"),
    )

    config_cls = config_object or get_config()
    app.config.from_object(config_cls)
    configure_logging(app)

    csrf.init_app(app)
    login_manager.init_app(app)
    init_db_app(app)
    store.init_app(app)

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    @app.route("/")
    def index() -> str:
        """Render the campus map with room assignments and inventory."""

        ledger = store.get_ledger()
        return render_template(
            "index.html",
            rooms=list(ledger.rooms.values()),
            equipment=list(ledger.equipment.values()),
            recent_requests=ledger.recent_requests(app.config["RECENT_REQUESTS_LIMIT"]),
            pending_total=len(ledger.pending_requests()),
        )

    @app.context_processor
    def inject_globals() -> Dict[str, Any]:
        """Expose common template variables."""

        return {
            "current_user": current_user,
            "current_year": datetime.now(timezone.utc).year,
            "csrf_token": generate_csrf,
        }

    return app


def configure_logging(app: Flask) -> None:
    """Apply LOG_LEVEL to the app logger and the package loggers."""

    level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(level)
    logging.getLogger("ccis_connect").setLevel(level)


def register_blueprints(app: Flask) -> None:
    """Import and register application blueprints."""

    from .controllers import (  # pylint: disable=import-outside-toplevel
        admin,
        auth,
        borrow,
        rooms,
    )

    app.register_blueprint(auth.bp)
    app.register_blueprint(rooms.bp)
    app.register_blueprint(borrow.bp)
    app.register_blueprint(admin.bp)


def register_error_handlers(app: Flask) -> None:
    """Register user-friendly error handlers."""

    @app.errorhandler(403)
    def forbidden(error: Exception) -> tuple[str, int]:
        return (
            render_template(
                "error.html",
                title="Access Denied",
                message="Your role does not allow this action.",
            ),
            403,
        )

    @app.errorhandler(404)
    def not_found(error: Exception) -> tuple[str, int]:
        return (
            render_template(
                "error.html",
                title="Page Not Found",
                message="We could not locate the page you requested.",
            ),
            404,
        )

    @app.errorhandler(500)
    def server_error(error: Exception) -> tuple[str, int]:
        return (
            render_template(
                "error.html",
                title="Server Error",
                message="An unexpected error occurred. The team has been notified.",
            ),
            500,
        )


def register_commands(app: Flask) -> None:
    """Flask CLI commands for database and ledger upkeep."""

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Clear existing data and create new tables."""

        init_db(app)
        click.echo("Initialized the database.")

    @app.cli.command("seed-db")
    def seed_db_command() -> None:
        """Insert the demo accounts."""

        seed.seed()
        click.echo(f"Seeded {len(seed.USERS)} demo users (password: {seed.DEMO_PASSWORD}).")

    @app.cli.command("reset-ledger")
    def reset_ledger_command() -> None:
        """Discard persisted snapshots and restore the seed ledger."""

        ledger = store.reset_ledger(app)
        click.echo(f"Ledger reset: {len(ledger.rooms)} rooms, {len(ledger.equipment)} equipment types.")
