"""
Utility functions shared across the app. This includes:
- Parsing helpers for user input (decimals with comma, optional ints, booleans, digits).
- JSON body access for API routes.
- List helpers: text filter, sort and pagination for collection endpoints.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable

from flask import current_app, request
from sqlalchemy import func, or_

from .errors import APIError

TRUTHY = {"1", "true", "t", "yes", "y", "sim", "s", "on", "ativo"}
FALSY = {"0", "false", "f", "no", "n", "nao", "não", "off", "inativo"}


def parse_decimal(value: Any) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot). Returns None if empty/invalid/NaN/Infinity."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        result = Decimal(str(value))
        return result if result.is_finite() else None
    raw = str(value).strip().replace(" ", "")
    if raw == "":
        return None
    # "1.234,56" -> "1234.56"; "12,5" -> "12.5"
    if "," in raw and "." in raw:
        raw = raw.replace(".", "").replace(",", ".")
    else:
        raw = raw.replace(",", ".")
    try:
        result = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def parse_optional_int(value: Any) -> int | None:
    """Parse optional int from form/query/JSON. Returns None if empty/invalid."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_bool(value: Any, default: bool | None = None) -> bool | None:
    """Parse a loose boolean ("sim", "yes", "1", True ...)."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    raw = str(value).strip().lower()
    if raw in TRUTHY:
        return True
    if raw in FALSY:
        return False
    return default


def only_digits(value: Any) -> str:
    """Keep only digits (used for CNPJ)."""
    if not value:
        return ""
    return "".join(ch for ch in str(value) if ch.isdigit())


def clean_str(value: Any) -> str | None:
    """Trimmed string or None when blank."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def json_body() -> Dict[str, Any]:
    """Return the request JSON object, or raise a 400."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise APIError("Corpo da requisição inválido (JSON esperado).", code="invalid_body")
    return data


# ---------------------------------------------------------------------
# Collection helpers (server-side filter / sort / paginate)
# ---------------------------------------------------------------------
def apply_text_search(q, columns: Iterable[Any], term: str | None):
    """Case-insensitive "contains" match on any of `columns`."""
    term = (term or "").strip()
    if not term:
        return q
    pattern = f"%{term}%"
    return q.filter(or_(*[func.coalesce(col, "").ilike(pattern) for col in columns]))


def apply_sort(q, model, allowed: Iterable[str], default: str):
    """
    Sort by ?sort=<field> or ?sort=-<field> (descending).

    Only fields listed in `allowed` are accepted; anything else falls back to `default`.
    """
    raw = (request.args.get("sort") or default).strip()
    descending = raw.startswith("-")
    field = raw.lstrip("-")
    if field not in set(allowed):
        descending = default.startswith("-")
        field = default.lstrip("-")

    column = getattr(model, field)
    return q.order_by(column.desc() if descending else column.asc(), model.id.asc())


def paginate(q, serializer) -> Dict[str, Any]:
    """
    Paginate a query from ?page= and ?per_page=.

    Returns {"items": [...], "page", "per_page", "total", "pages"}.
    """
    page = parse_optional_int(request.args.get("page")) or 1
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 50)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 500)
    per_page = parse_optional_int(request.args.get("per_page")) or default_size
    per_page = max(1, min(per_page, max_size))
    page = max(1, page)

    total = q.order_by(None).count()
    items = q.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serializer(obj) for obj in items],
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }
