"""
Authentication Routes

Provides:
- /auth/login
- /auth/logout
- /auth/me
- /auth/csrf-token (token for the X-CSRFToken header)

Rules:
- Only active users may log in.
- Credentials validated via password hash.
"""

import logging

from flask import Blueprint
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...errors import Unauthorized
from ...models import User
from ...utils import api_response, json_payload

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    payload = json_payload()
    username = str(payload.get("username") or "").strip()
    password = str(payload.get("password") or "")

    user = User.query.filter_by(username=username).first()

    # Same message for unknown user / wrong password
    if not user or not user.check_password(password):
        logger.info("Failed login for %r", username)
        raise Unauthorized("Invalid username or password")

    if not user.is_active:
        raise Unauthorized("Account is inactive")

    login_user(user)
    return api_response(user.to_dict(), "Logged in")


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return api_response(message="Logged out")


@auth_bp.route("/me")
@login_required
def me():
    return api_response(current_user.to_dict())


@auth_bp.route("/csrf-token")
def csrf_token():
    return api_response({"csrf_token": generate_csrf()})
