"""
Discount tiers ("2*5", "3*5", ...).

- Any authenticated user lists tiers (order form dropdown).
- Admins create and update them. Tiers are not deleted: order lines keep a
  snapshot of the percentages anyway, but the name is shown on old orders.
"""

from decimal import Decimal

from flask import Blueprint, jsonify

from ...audit import log_action, serialize_model
from ...errors import APIError
from ...extensions import db
from ...models import Discount
from ...security import admin_required, api_login_required
from ...utils import clean_str, json_body, parse_decimal


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


def _percent(data, key: str) -> Decimal:
    value = parse_decimal(data.get(key))
    if value is None or value < 0 or value > 100:
        raise APIError(f"Percentual inválido em '{key}' (0 a 100).", code="validation_error")
    return value


def _check_name_free(name: str, discount: Discount | None):
    clash = Discount.query.filter(Discount.name == name).first()
    if clash and (discount is None or clash.id != discount.id):
        raise APIError("Já existe um desconto com este nome.", status_code=409, code="conflict")


@discounts_bp.route("")
@api_login_required
def list_discounts():
    discounts = Discount.query.order_by(Discount.percentage.asc(), Discount.name.asc()).all()
    return jsonify([d.to_dict() for d in discounts])


@discounts_bp.route("/<int:discount_id>")
@api_login_required
def get_discount(discount_id: int):
    discount = db.get_or_404(Discount, discount_id, description="Desconto não encontrado.")
    return jsonify(discount.to_dict())


@discounts_bp.route("", methods=["POST"])
@admin_required
def create_discount():
    data = json_body()
    name = clean_str(data.get("name"))
    if not name:
        raise APIError("Nome é obrigatório.", code="validation_error")
    _check_name_free(name, None)

    discount = Discount(
        name=name,
        percentage=_percent(data, "percentage"),
        commission=_percent(data, "commission"),
    )

    db.session.add(discount)
    db.session.flush()
    log_action(discount, "CREATE", after=serialize_model(discount))
    db.session.commit()

    return jsonify(discount.to_dict()), 201


@discounts_bp.route("/<int:discount_id>", methods=["PUT", "PATCH"])
@admin_required
def update_discount(discount_id: int):
    discount = db.get_or_404(Discount, discount_id, description="Desconto não encontrado.")
    data = json_body()
    before = serialize_model(discount)

    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            raise APIError("Nome é obrigatório.", code="validation_error")
        _check_name_free(name, discount)
        discount.name = name

    if "percentage" in data:
        discount.percentage = _percent(data, "percentage")
    if "commission" in data:
        discount.commission = _percent(data, "commission")

    db.session.flush()
    log_action(discount, "UPDATE", before=before, after=serialize_model(discount))
    db.session.commit()

    return jsonify(discount.to_dict())
