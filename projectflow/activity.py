"""
projectflow/activity.py

Project activity log helpers.

Goals:
- Every gated transition (check, approval, rejection, progress update)
  leaves exactly one Comment entry on the project.
- Entries are append-only: this module only ever ADDS rows.

IMPORTANT:
- log_activity() ADDS a Comment to the current SQLAlchemy session.
  The calling workflow controls transaction boundaries (commit/rollback), so
  the entry is written together with the status change it describes.
"""

from __future__ import annotations

from typing import List, Optional, Union

from .errors import ValidationError
from .extensions import db
from .models import ActivityType, Comment, Project, User


def log_activity(
    project: Project,
    actor: Optional[User],
    action_type: Union[ActivityType, str],
    content: str,
    *,
    progress: Optional[int] = None,
) -> Comment:
    """
    Add a Comment entry for ``project`` to the current db session.

    Parameters:
        project: owning project (must already have an id, i.e. after flush)
        actor: acting user (None for system actions)
        action_type: one of ActivityType
        content: human readable text
        progress: progress value for progress_update entries
    """
    try:
        action_type = ActivityType(action_type)
    except ValueError:
        raise ValidationError(f"Unknown activity type: {action_type!r}") from None

    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment content is required")

    if project.id is None:
        raise ValueError("log_activity project must have an id (after flush).")

    entry = Comment(
        project_id=project.id,
        user_id=actor.id if actor is not None else None,
        content=content,
        action_type=action_type.value,
        progress=progress,
    )
    db.session.add(entry)
    return entry


def project_activity(project_id: int, action_type: Optional[ActivityType] = None) -> List[Comment]:
    """Activity entries of a project, newest first."""
    query = Comment.query.filter_by(project_id=project_id)
    if action_type is not None:
        query = query.filter_by(action_type=ActivityType(action_type).value)
    return query.order_by(Comment.created_at.desc(), Comment.id.desc()).all()
