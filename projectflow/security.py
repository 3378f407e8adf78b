"""
projectflow/security.py

Access control helpers for the project workflow API.

Key rules:
- Clients are never trusted; all permission checks are server-side.
- super_admin / admin: full access.
- engineer / finance: office roles, allowed to prepare and review documents
  as granted per endpoint through roles_required().
- worker / driver: field roles, read-only (no mutating requests), except
  explicit self-service actions.

This module also provides a global safety net:
- field_readonly_guard() blocks POST/PUT/PATCH/DELETE for field roles.
  Wire it via app.before_request in the app factory.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint
  collisions. We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional

from flask import request
from flask_login import current_user

from .errors import Forbidden, Unauthorized
from .models import ADMIN_ROLES, Role, User

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

FIELD_ROLES = {Role.WORKER.value, Role.DRIVER.value}

# Self-service mutating endpoints open to field roles
FIELD_ALLOWED_ENDPOINTS = {
    "auth.login",
    "auth.logout",
    "projects.add_comment",
    "projects.mark_attendance",
}


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and current_user.role in ADMIN_ROLES)


def has_role(*roles: str) -> bool:
    if not current_user.is_authenticated:
        return False
    return is_admin() or current_user.role in roles


def acting_user() -> User:
    """
    The authenticated user performing the current operation.

    Workflow operations require an actor; anonymous calls raise Unauthorized.
    """
    if not current_user.is_authenticated:
        raise Unauthorized()
    # Unwrap the LocalProxy so the instance can be stored on models
    return current_user._get_current_object()


def field_readonly_guard() -> Optional[Any]:
    """
    Global guard: field roles cannot mutate data.

    Blocks POST/PUT/PATCH/DELETE for authenticated worker / driver users,
    except for FIELD_ALLOWED_ENDPOINTS.
    """
    if request.method not in MUTATING_METHODS:
        return None

    if not current_user.is_authenticated:
        return None

    if current_user.role not in FIELD_ROLES:
        return None

    endpoint = (request.endpoint or "").strip()
    if endpoint in FIELD_ALLOWED_ENDPOINTS:
        return None

    raise Forbidden("Field staff accounts are read-only")


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            raise Unauthorized()
        if not is_admin():
            raise Forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def roles_required(*roles: Role) -> Callable[..., Any]:
    """
    Decorator factory: allow admins plus the given roles.

    Usage:
        @roles_required(Role.ENGINEER, Role.FINANCE)
        def create_estimation(): ...
    """
    allowed = tuple(Role(r).value for r in roles)

    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not current_user.is_authenticated:
                raise Unauthorized()
            if not has_role(*allowed):
                raise Forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
