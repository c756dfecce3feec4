"""
salesdesk/audit.py

Audit logging and client history helpers.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store a username snapshot so identity survives later renames.
- Keep a per-client timeline (ClientHistory) readable from the clients API.

IMPORTANT:
- These helpers ADD rows to the current SQLAlchemy session.
  The calling route controls transaction boundaries (commit/rollback).
  Pattern: db.session.flush() -> log_action(...) -> db.session.commit()
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog, ClientHistory


def _safe_str(value: Any) -> Optional[str]:
    """Stable string for JSON/DB storage; None stays None."""
    if value is None:
        return None
    return str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Convert a SQLAlchemy model instance to a dict snapshot based on table columns.

    NOTES:
    - Captures only scalar column values (not relationships).
    - The password hash is never captured.
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        if column.name == "password_hash":
            continue
        data[column.name] = _safe_str(getattr(instance, column.name))
    return data


def _actor():
    if has_request_context() and current_user.is_authenticated:
        return current_user
    return None


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    user: Any = None,
) -> None:
    """
    Add an AuditLog entry to the current db session.

    Parameters:
        entity: SQLAlchemy model instance with .id (flush first)
        action: CREATE / UPDATE / DELETE / STATUS / IMPORT
        before: dict snapshot (optional)
        after: dict snapshot (optional)
        user: acting user when there is no request (CLI); defaults to current_user
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    actor = user or _actor()

    entry = AuditLog(
        user_id=actor.id if actor else None,
        username_snapshot=actor.email if actor else None,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)


def record_client_history(client: Any, action: str, details: Optional[Dict[str, Any]] = None, user: Any = None) -> None:
    """Append a ClientHistory row for `client` (must be flushed)."""
    actor = user or _actor()
    db.session.add(
        ClientHistory(
            client_id=client.id,
            user_id=actor.id if actor else None,
            action=action,
            details=details,
        )
    )
