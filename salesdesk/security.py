"""
salesdesk/security.py

Access control helpers for the SalesDesk API.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Admin: full access.
- Representative: only their own clients and orders; cannot reassign a client
  to somebody else and is always the representative of orders they create.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask_login import current_user

from .errors import APIError, forbidden


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def api_login_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: any authenticated user (401 JSON otherwise)."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            raise APIError("Não autenticado.", status_code=401, code="unauthorized")
        return view_func(*args, **kwargs)

    return wrapper


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only (401 when anonymous, 403 when not admin)."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            raise APIError("Não autenticado.", status_code=401, code="unauthorized")
        if not is_admin():
            raise forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def scope_representative_id() -> int | None:
    """
    Representative id used to scope queries.

    None for admins (no scoping), the user's own id for representatives.
    """
    if is_admin():
        return None
    return current_user.id


def ensure_client_access(client: Any) -> None:
    """Representatives may only touch their own clients."""
    if is_admin():
        return
    if getattr(client, "representative_id", None) != current_user.id:
        raise forbidden("Não autorizado a acessar este cliente.")


def ensure_order_access(order: Any) -> None:
    """Representatives may only touch their own orders."""
    if is_admin():
        return
    if getattr(order, "representative_id", None) != current_user.id:
        raise forbidden("Não autorizado a acessar este pedido.")
