"""
projectflow/__init__.py

Flask application factory for the Technical Services Project Workflow API.

Requirements:
- Clear architecture, stable imports, server-side security.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- The status transition graph is built once here and shared by reference
  through app.extensions["transitions"].
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify

from .errors import WorkflowError, register_error_handlers
from .extensions import csrf, db, login_manager, mailer, migrate, storage
from .models import User
from .security import field_readonly_guard
from .status import build_default_graph

# Blueprint imports kept inside create_app() where possible to reduce import side effects.


def create_app(config_object: str = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.getLogger(__name__).setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    mailer.init_app(app)
    storage.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            user = db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None
        if user is None or not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "unauthorized", "message": "Authentication required"}), 401

    # Workflow state machine (immutable, one instance per app)
    app.extensions["transitions"] = build_default_graph()

    register_error_handlers(app)

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: field roles are read-only (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _field_guard_hook():
        """
        Worker / driver read-only enforcement (POST/PUT/PATCH/DELETE blocked).

        This is a safety net. Each route must still enforce its own permissions.
        """
        field_readonly_guard()

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.clients import clients_bp
    from .blueprints.completion import completion_bp
    from .blueprints.estimations import estimations_bp
    from .blueprints.expenses import expenses_bp
    from .blueprints.lpos import lpos_bp
    from .blueprints.projects import projects_bp
    from .blueprints.quotations import quotations_bp
    from .blueprints.users import users_bp
    from .blueprints.uploads import uploads_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(estimations_bp)
    app.register_blueprint(quotations_bp)
    app.register_blueprint(lpos_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(completion_bp)
    app.register_blueprint(uploads_bp, url_prefix=app.config.get("UPLOAD_URL_PREFIX", "/uploads"))

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("create-admin")
    @click.option("--username", prompt=True)
    @click.option("--email", default="")
    @click.password_option()
    def create_admin_command(username: str, email: str, password: str):
        """Create the first super_admin account."""
        from .seed import create_admin

        try:
            create_admin(username=username, password=password, email=email)
        except WorkflowError as exc:
            raise click.ClickException(exc.message) from exc
        click.echo(f"Admin user '{username}' created.")

    @app.route("/health")
    def health():
        return jsonify({"success": True, "message": "OK", "data": {"app": app.config.get("APP_NAME")}})

    return app
