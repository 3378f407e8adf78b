"""
projectflow/seed.py

Bootstrap data.

Rules:
- Safe to run multiple times (idempotent).
- create_admin() only creates the first account; once any user exists it
  refuses and leaves the database untouched.
"""

from __future__ import annotations

import logging
from typing import Optional

from .errors import Conflict, ValidationError
from .extensions import db
from .models import Role, User

logger = logging.getLogger(__name__)


def create_admin(
    username: str,
    password: str,
    email: Optional[str] = None,
    first_name: str = "",
    last_name: str = "",
) -> User:
    """Create the initial super_admin user."""
    username = (username or "").strip()
    if not username or not password:
        raise ValidationError("Username and password are required")

    if User.query.count() > 0:
        raise Conflict("Users already exist; create further accounts through the API")

    user = User(
        username=username,
        email=(email or "").strip() or None,
        first_name=first_name,
        last_name=last_name,
        role=Role.SUPER_ADMIN.value,
        is_active=True,
    )
    user.set_password(password)

    db.session.add(user)
    db.session.commit()

    logger.info("Initial admin %s created", username)
    return user
