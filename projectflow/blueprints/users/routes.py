"""
User Management (Admin Only).

Rules enforced:
- Usernames are unique.
- Role must be one of the known roles; daily_salary feeds the labour rollup.
- UI never trusted: we validate server-side.
"""

import logging

from flask import Blueprint, request
from flask_login import login_required
from sqlalchemy.exc import IntegrityError

from ...errors import Conflict, ValidationError
from ...extensions import db
from ...models import Role, User
from ...security import admin_required
from ...utils import api_response, json_payload, optional_text, require_decimal, require_text

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__, url_prefix="/users")


def _parse_role(value) -> str:
    try:
        return Role(str(value or "").strip()).value
    except ValueError:
        raise ValidationError(f"Unknown role: {value}") from None


# ---------------------------------------------------------------------
# LIST USERS
# ---------------------------------------------------------------------

@users_bp.route("", methods=["GET"])
@login_required
@admin_required
def list_users():
    """Optional ?role= filter (e.g. role=worker for team pickers)."""
    query = User.query
    role = request.args.get("role")
    if role:
        query = query.filter_by(role=_parse_role(role))
    users = query.order_by(User.last_name.asc(), User.first_name.asc()).all()
    return api_response([u.to_dict() for u in users])


# ---------------------------------------------------------------------
# CREATE USER
# ---------------------------------------------------------------------

@users_bp.route("", methods=["POST"])
@login_required
@admin_required
def create_user():
    payload = json_payload()

    username = require_text(payload.get("username"), "username", max_length=80)
    password = require_text(payload.get("password"), "password")
    if len(password) < 6:
        raise ValidationError("password must be at least 6 characters")

    if User.query.filter_by(username=username).first():
        raise Conflict("Username already exists")

    user = User(
        username=username,
        email=optional_text(payload.get("email")),
        first_name=optional_text(payload.get("first_name")) or "",
        last_name=optional_text(payload.get("last_name")) or "",
        role=_parse_role(payload.get("role")),
        daily_salary=require_decimal(payload.get("daily_salary", 0), "daily_salary"),
        is_active=True,
    )
    user.set_password(password)

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Username already exists") from None

    logger.info("User %s (%s) created", user.username, user.role)
    return api_response(user.to_dict(), "User created", 201)
