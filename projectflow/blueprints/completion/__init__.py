"""
Completion blueprint package.

This file just exposes the Blueprint object to be imported in projectflow.__init__.
The actual routes are in routes.py.
"""

from .routes import completion_bp  # noqa: F401
