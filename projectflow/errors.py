"""
projectflow/errors.py

Error taxonomy of the workflow engine and its JSON error handlers.

Rules:
- Domain errors are raised BEFORE any flush/commit, so a failed operation
  leaves no partial writes.
- Routes never catch domain errors; the handlers registered here turn them
  into the JSON error envelope.
- Database failures roll the session back and surface as "internal".
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Base class for all errors the API reports to clients."""

    status_code = 500
    kind = "internal"
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None, *, details: Any = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.kind, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(WorkflowError):
    status_code = 400
    kind = "validation"
    default_message = "Invalid request data"


class Unauthorized(WorkflowError):
    status_code = 401
    kind = "unauthorized"
    default_message = "Authentication required"


class Forbidden(WorkflowError):
    status_code = 403
    kind = "forbidden"
    default_message = "You are not allowed to perform this action"


class NotFound(WorkflowError):
    status_code = 404
    kind = "not_found"
    default_message = "Resource not found"


class Conflict(WorkflowError):
    status_code = 409
    kind = "conflict"
    default_message = "Resource already exists"


class PreconditionFailed(WorkflowError):
    status_code = 412
    kind = "precondition_failed"
    default_message = "Operation not allowed in the current state"


class InvalidTransition(PreconditionFailed):
    """Requested project status is not reachable from the current one."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Invalid status transition from {current} to {requested}",
            details={"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class InternalError(WorkflowError):
    status_code = 500
    kind = "internal"


def register_error_handlers(app) -> None:
    """Map domain, HTTP and database errors to the JSON error envelope."""
    from .extensions import db

    @app.errorhandler(WorkflowError)
    def _workflow_error(exc: WorkflowError):
        db.session.rollback()
        if exc.status_code >= 500:
            logger.error("Workflow error: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def _database_error(exc: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error")
        return jsonify(InternalError("Database operation failed").to_dict()), 500

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        payload = {
            "success": False,
            "error": (exc.name or "error").lower().replace(" ", "_"),
            "message": exc.description,
        }
        return jsonify(payload), exc.code or 500
