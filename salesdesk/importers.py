"""
salesdesk/importers.py

Commit normalized CSV rows (see csv_import) into clients and products.

IMPORTANT:
- All-or-nothing. Every row is validated first; if any row fails, nothing is
  written and the caller gets the full list of row errors.
- Uniqueness (code, cnpj, client reference) is checked here against the
  database AND against earlier rows of the same batch, so the final flush
  does not hit the unique constraints.
- These functions do not commit. Routes and CLI commands own the transaction.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from .audit import log_action, record_client_history, serialize_model
from .errors import APIError
from .extensions import db
from .models import Client, Product, Region, User
from .utils import clean_str, only_digits, parse_bool, parse_decimal

logger = logging.getLogger(__name__)

CNPJ_LENGTH = 14

CLIENT_FIELDS = ("name", "address", "city", "state", "phone", "email")
PRODUCT_TEXT_FIELDS = ("description", "barcode", "category", "brand", "conversion", "conversion_brand")


class ImportRejected(APIError):
    """One or more rows failed validation; the whole batch is discarded."""

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__(
            f"Importação cancelada: {len(errors)} registro(s) com erro. Nenhum dado foi gravado.",
            status_code=422,
            code="import_rejected",
            payload={"errors": errors},
        )
        self.errors = errors


def _require_rows(rows: Any) -> List[Dict[str, Any]]:
    if not isinstance(rows, list) or not rows:
        raise APIError("Nenhum registro para importar.", code="empty_import")
    if not all(isinstance(r, dict) for r in rows):
        raise APIError("Formato inválido: esperado uma lista de registros.", code="invalid_body")
    return rows


def generate_client_code() -> str:
    return "CL" + uuid.uuid4().hex[:10].upper()


def generate_product_code() -> str:
    return "PROD" + uuid.uuid4().hex[:8].upper()


def normalize_cnpj(value: Any) -> str | None:
    """Digits only, left-padded with zeros to 14. None when there are no digits or too many."""
    digits = only_digits(value)
    if not digits or len(digits) > CNPJ_LENGTH:
        return None
    return digits.zfill(CNPJ_LENGTH)


def _region_by_name(name: str | None) -> Region | None:
    if not name:
        return None
    return Region.query.filter(func.lower(Region.name) == name.lower()).first()


# ---------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------
def _validate_client_row(row: Dict[str, Any], seen_codes: set, seen_cnpjs: set, acting_user: User) -> Dict[str, Any]:
    """Return clean values for one row or raise ValueError with the row message."""
    name = clean_str(row.get("name"))
    if not name:
        raise ValueError("Nome é obrigatório.")

    raw_cnpj = clean_str(row.get("cnpj"))
    if not raw_cnpj:
        raise ValueError("CNPJ é obrigatório.")
    cnpj = normalize_cnpj(raw_cnpj)
    if not cnpj:
        raise ValueError(f"CNPJ inválido: {raw_cnpj}.")

    code = clean_str(row.get("code")) or generate_client_code()
    if code in seen_codes:
        raise ValueError(f"Código '{code}' repetido no arquivo.")
    if cnpj in seen_cnpjs:
        raise ValueError(f"CNPJ {cnpj} repetido no arquivo.")

    email = clean_str(row.get("email"))
    if email and "@" not in email:
        raise ValueError(f"Email inválido: {email}.")

    existing = Client.query.filter_by(code=code).first()

    other = Client.query.filter(Client.cnpj == cnpj).first()
    if other and (existing is None or other.id != existing.id):
        raise ValueError(f"CNPJ {cnpj} já pertence ao cliente {other.code}.")

    if existing and not acting_user.is_admin and existing.representative_id != acting_user.id:
        raise ValueError(f"Cliente {code} pertence a outro representante.")

    values = {field: clean_str(row.get(field)) for field in CLIENT_FIELDS}
    values["name"] = name
    values["email"] = email
    values["cnpj"] = cnpj
    values["code"] = code

    region = _region_by_name(clean_str(row.get("region")))
    if region:
        values["region_id"] = region.id

    return {"existing": existing, "values": values}


def import_clients(rows: Any, user: User, representative_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Upsert clients by code.

    Representatives always import into their own portfolio; admins may pass
    `representative_id` (None keeps the current representative on updates).
    """
    rows = _require_rows(rows)

    if not user.is_admin:
        representative_id = user.id
    elif representative_id is not None:
        rep = db.session.get(User, representative_id)
        if not rep or not rep.is_representative:
            raise APIError("Representante não encontrado.", status_code=404, code="not_found")

    errors: List[Dict[str, Any]] = []
    planned: List[Dict[str, Any]] = []
    seen_codes: set = set()
    seen_cnpjs: set = set()

    for index, row in enumerate(rows, start=1):
        try:
            plan = _validate_client_row(row, seen_codes, seen_cnpjs, user)
        except ValueError as exc:
            errors.append({"row": index, "error": str(exc), "data": row})
            continue
        seen_codes.add(plan["values"]["code"])
        seen_cnpjs.add(plan["values"]["cnpj"])
        planned.append(plan)

    if errors:
        logger.warning("Client import rejected: %s of %s rows invalid", len(errors), len(rows))
        raise ImportRejected(errors)

    created: List[Client] = []
    updated: List[Client] = []

    for plan in planned:
        values = plan["values"]
        client = plan["existing"]

        if client is None:
            client = Client(active=True, representative_id=representative_id, **values)
            db.session.add(client)
            db.session.flush()
            record_client_history(client, "created_via_import", {"representative_id": representative_id}, user=user)
            log_action(client, "IMPORT", after=serialize_model(client), user=user)
            created.append(client)
            continue

        before = serialize_model(client)
        changed = []
        for field, value in values.items():
            if value is not None and getattr(client, field) != value:
                setattr(client, field, value)
                changed.append(field)
        if representative_id is not None and client.representative_id != representative_id:
            client.representative_id = representative_id
            changed.append("representative_id")

        db.session.flush()
        record_client_history(
            client,
            "updated_via_import",
            {"representative_id": client.representative_id, "changed_fields": changed},
            user=user,
        )
        log_action(client, "IMPORT", before=before, after=serialize_model(client), user=user)
        updated.append(client)

    logger.info("Client import: %s created, %s updated", len(created), len(updated))

    return {
        "created": len(created),
        "updated": len(updated),
        "total": len(rows),
        "clients": [c.to_dict() for c in created + updated],
    }


# ---------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------
def _parse_stock(value: Any) -> int:
    number = parse_decimal(value)
    if number is None:
        return 0
    try:
        return int(number)
    except (ValueError, ArithmeticError):
        return 0


def _parse_active(value: Any) -> bool:
    raw = clean_str(value)
    if raw is None:
        return True
    return bool(parse_bool(raw, default=False))


def _parse_brand_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    raw = clean_str(value)
    if not raw:
        return []
    for sep in (";", "/", "|"):
        raw = raw.replace(sep, ",")
    return [part.strip() for part in raw.split(",") if part.strip()]


def _validate_product_row(row: Dict[str, Any], seen_codes: set, seen_refs: set) -> Dict[str, Any]:
    code = clean_str(row.get("code"))
    if code:
        if code in seen_codes:
            raise ValueError(f"Código '{code}' repetido no arquivo.")
        if Product.query.filter_by(code=code).first():
            raise ValueError(f"Produto com código '{code}' já existe no sistema.")
    else:
        code = generate_product_code()

    price = parse_decimal(row.get("price"))
    if price is None or price < 0:
        price = Decimal("0")

    values = {field: clean_str(row.get(field)) for field in PRODUCT_TEXT_FIELDS}
    values.update(
        code=code,
        name=clean_str(row.get("name")) or f"Produto {code}",
        price=price,
        stock_quantity=_parse_stock(row.get("stock_quantity")),
        active=_parse_active(row.get("active")),
        equivalent_brands=_parse_brand_list(row.get("equivalent_brands")),
    )

    ref = values.get("conversion")
    if ref:
        if ref in seen_refs:
            raise ValueError(f"Referência '{ref}' repetida no arquivo.")
        owner = Product.query.filter_by(conversion=ref).first()
        if owner:
            raise ValueError(f"Referência '{ref}' já vinculada ao produto {owner.code}.")

    return values


def import_products(rows: Any, user: User) -> Dict[str, Any]:
    """Create products from normalized rows. Existing codes are rejected, never overwritten."""
    rows = _require_rows(rows)

    errors: List[Dict[str, Any]] = []
    planned: List[Dict[str, Any]] = []
    seen_codes: set = set()
    seen_refs: set = set()

    for index, row in enumerate(rows, start=1):
        try:
            values = _validate_product_row(row, seen_codes, seen_refs)
        except ValueError as exc:
            errors.append({"row": index, "error": str(exc), "data": row})
            continue
        seen_codes.add(values["code"])
        if values.get("conversion"):
            seen_refs.add(values["conversion"])
        planned.append(values)

    if errors:
        logger.warning("Product import rejected: %s of %s rows invalid", len(errors), len(rows))
        raise ImportRejected(errors)

    products = [Product(**values) for values in planned]
    db.session.add_all(products)
    db.session.flush()

    for product in products:
        log_action(product, "IMPORT", after=serialize_model(product), user=user)

    logger.info("Product import: %s created", len(products))

    return {
        "created": len(products),
        "total": len(rows),
        "products": [p.to_dict() for p in products],
    }
