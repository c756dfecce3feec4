"""
Imports blueprint package.

This file just exposes the Blueprint object to be imported in salesdesk.__init__.
The actual routes and logic are in routes.py.
"""

from .routes import imports_bp  # noqa: F401
