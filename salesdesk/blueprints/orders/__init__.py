"""
Orders blueprint package.

Exposes two Blueprints:
- orders_bp: JSON API under /api/orders (incl. the PDF export)
- print_bp: server-rendered print view under /orders
"""

from .routes import orders_bp, print_bp  # noqa: F401
