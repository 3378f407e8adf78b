"""
projectflow/workflow/__init__.py

Project lifecycle orchestrator.

Each public function in this package is one business operation and follows
the same order:

    validate inputs -> validate status edge -> recalc totals -> flush
    -> log activity -> commit -> notify (best effort)

Operations are the only code allowed to touch more than one aggregate
(Project + Estimation, Project + Quotation, ...). The whole operation is one
database transaction; @transactional rolls the session back on any error so
a failed operation leaves neither partial rows nor stale in-memory totals.
"""

from __future__ import annotations

import inspect
import logging
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from werkzeug.datastructures import FileStorage

from ..errors import Conflict, InternalError, Unauthorized
from ..extensions import db, storage
from ..models import Project
from ..status import ProjectStatus, transitions

logger = logging.getLogger(__name__)


def transactional(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Roll the session back when the operation raises.

    Operations taking an ``actor`` argument refuse to run without one.
    """
    signature = inspect.signature(func)
    needs_actor = "actor" in signature.parameters

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        if needs_actor:
            bound = signature.bind_partial(*args, **kwargs)
            if bound.arguments.get("actor") is None:
                raise Unauthorized()
        try:
            return func(*args, **kwargs)
        except Exception:
            db.session.rollback()
            raise

    return wrapper


def flush_or_conflict(message: str) -> None:
    """Flush pending rows; a unique-constraint violation becomes Conflict."""
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(message) from None


def upload_file(file: FileStorage, folder: str) -> Dict[str, Any]:
    """Store an attachment through the object storage collaborator."""
    try:
        return storage.upload(file, folder)
    except (OSError, ValueError) as exc:
        logger.exception("Upload of %r failed", file.filename)
        raise InternalError("File upload failed") from exc


def discard_files(keys: Iterable[Optional[str]]) -> None:
    """Best-effort removal of stored objects. Failures are logged only."""
    for key in keys:
        if not key:
            continue
        try:
            storage.delete(key)
        except (OSError, ValueError):
            logger.warning("Could not delete stored object %s", key, exc_info=True)


def change_status(project: Project, requested: ProjectStatus, actor=None) -> bool:
    """
    Move ``project`` to ``requested`` through the transition graph.

    Returns True when the status actually changed. Raises InvalidTransition
    (nothing mutated) when the edge does not exist.
    """
    target = transitions().require(project.status, requested)
    if project.status == target.value:
        return False

    logger.info("Project %s: %s -> %s", project.project_number, project.status, target.value)
    project.status = target.value
    if actor is not None:
        project.updated_by_id = actor.id
    return True
