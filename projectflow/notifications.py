"""
projectflow/notifications.py

Best-effort project notifications.

Recipients: the project's assigned engineer plus every admin / super_admin
user with an email address, de-duplicated by email. One message is sent to
NOTIFICATION_INBOX with the recipients in BCC.

notify() never raises: delivery problems are logged at WARNING and reported
through the boolean return value only. It is called AFTER the business
transaction has committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from flask import current_app, render_template

from .models import ADMIN_ROLES, Project, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    email: str
    name: str


def _recipient(user: User, fallback_name: str) -> Optional[Recipient]:
    email = (user.email or "").strip()
    if not email:
        return None
    return Recipient(email=email, name=user.first_name or fallback_name)


def dedupe_recipients(recipients: Iterable[Optional[Recipient]]) -> List[Recipient]:
    seen = set()
    unique = []
    for recipient in recipients:
        if recipient is None:
            continue
        key = recipient.email.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(recipient)
    return unique


def project_recipients(project: Project) -> List[Recipient]:
    """Assigned engineer first, then admins."""
    candidates = []
    if project.assigned_to is not None:
        candidates.append(_recipient(project.assigned_to, "Engineer"))

    admins = (
        User.query.filter(User.role.in_(ADMIN_ROLES), User.email.isnot(None), User.email != "")
        .order_by(User.id.asc())
        .all()
    )
    candidates.extend(_recipient(admin, "Admin") for admin in admins)
    return dedupe_recipients(candidates)


def project_url(project: Project) -> str:
    base = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return f"{base}/app/project-details/{project.id}"


def notify(
    project: Project,
    *,
    subject: str,
    title: str,
    message: str,
    actor: Optional[User] = None,
    details: Optional[Sequence[tuple]] = None,
    recipients: Optional[Sequence[Recipient]] = None,
) -> bool:
    """
    Render and send one notification about ``project``.

    ``details`` is an optional list of (label, value) rows shown in the email.
    Returns True when the mailer accepted the message.
    """
    try:
        if recipients is None:
            recipients = project_recipients(project)
        if not recipients:
            logger.info("No notification recipients for project %s", project.project_number)
            return False

        context = {
            "app_name": current_app.config.get("APP_NAME", ""),
            "title": title,
            "message": message,
            "project": project,
            "actor_name": actor.full_name() if actor is not None else None,
            "details": list(details or []),
            "action_url": project_url(project),
            "contact_email": current_app.config.get("CONTACT_EMAIL"),
        }
        html = render_template("emails/notification.html", **context)
        text = render_template("emails/notification.txt", **context)

        mailer = current_app.extensions["mailer"]
        mailer.send(
            to=current_app.config["NOTIFICATION_INBOX"],
            subject=subject,
            html=html,
            text=text,
            bcc=[r.email for r in recipients],
        )
    except Exception:
        logger.warning(
            "Notification %r for project %s failed", subject, project.project_number, exc_info=True
        )
        return False

    logger.info("Notification %r sent to %d recipient(s)", subject, len(recipients))
    return True
