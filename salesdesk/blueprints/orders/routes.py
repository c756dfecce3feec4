"""
Orders (quotations and confirmed sales)

Routes:
- GET    /api/orders                 list (status, client_id, representative_id, q, sort, page, per_page)
- GET    /api/orders/<id>            read with items and the priced summary
- POST   /api/orders                 create with items
- PUT    /api/orders/<id>            update (items are replaced)
- PUT    /api/orders/<id>/status     quotation -> confirmed
- DELETE /api/orders/<id>            delete (admin or owner representative)
- GET    /api/orders/<id>/items      items only
- GET    /api/orders/<id>/pdf        PDF export
- GET    /orders/<id>/print          printable HTML page

IMPORTANT:
- Money is NEVER taken from the client. Unit prices are snapshotted from the
  product, percentages from the discount tier, and every total is computed by
  salesdesk.pricing.
- Status is one-way. A confirmed order never goes back to quotation.
- Representatives only order for their own clients and are always the order's
  representative.
"""

import logging
from decimal import Decimal
from io import BytesIO

from flask import Blueprint, current_app, jsonify, render_template, request, send_file
from flask_login import current_user
from sqlalchemy import func

from ...audit import log_action, serialize_model
from ...errors import APIError, not_found
from ...extensions import db
from ...models import Client, Discount, Order, OrderItem, Product, User
from ...order_pdf import build_order_pdf
from ...pricing import STATUS_CONFIRMED, STATUS_QUOTATION, normalize_status
from ...security import api_login_required, ensure_client_access, ensure_order_access, is_admin, scope_representative_id
from ...utils import apply_sort, clean_str, json_body, paginate, parse_decimal, parse_optional_int

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
print_bp = Blueprint("orders_print", __name__, url_prefix="/orders")

SORTABLE_FIELDS = ("id", "created_at", "updated_at", "status", "total")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _get_order_or_404(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise not_found("Pedido não encontrado.")
    ensure_order_access(order)
    return order


def _parse_status(value, default: str | None = None) -> str:
    if value is None or value == "":
        if default is None:
            raise APIError("Status é obrigatório.", code="validation_error")
        return default
    status = normalize_status(value)
    if status is None:
        raise APIError(f"Status inválido: {value}.", code="validation_error")
    return status


def _apply_status(order: Order, new_status: str) -> bool:
    """Move order to new_status. Returns True if it changed."""
    if new_status == order.status:
        return False
    if order.status == STATUS_CONFIRMED and new_status == STATUS_QUOTATION:
        raise APIError(
            "Pedido confirmado não pode voltar para cotação.",
            status_code=409,
            code="invalid_transition",
        )
    order.status = new_status
    return True


def _percent(value, label: str, line_no: int) -> Decimal | None:
    if value is None or value == "":
        return None
    pct = parse_decimal(value)
    if pct is None or pct < 0 or pct > 100:
        raise APIError(f"Item {line_no}: {label} inválido (0 a 100).", code="validation_error")
    return pct


def _parse_taxes(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    taxes = parse_decimal(value)
    if taxes is None or taxes < 0:
        raise APIError("Valor de frete/impostos inválido.", code="validation_error")
    return taxes


def _resolve_client(client_id) -> Client:
    client_id = parse_optional_int(client_id)
    if client_id is None:
        raise APIError("Cliente é obrigatório.", code="validation_error")
    client = db.session.get(Client, client_id)
    if not client:
        raise APIError("Cliente não encontrado.", status_code=404, code="not_found")
    ensure_client_access(client)
    return client


def _resolve_representative_id(data, client: Client, current: int | None = None) -> int:
    """Representatives are always their own orders' representative; admins may choose."""
    if not is_admin():
        return current_user.id

    rep_id = parse_optional_int(data.get("representative_id"))
    if rep_id is None:
        return current or client.representative_id or current_user.id

    rep = db.session.get(User, rep_id)
    if not rep:
        raise APIError("Representante não encontrado.", code="validation_error")
    return rep_id


def _build_items(items_data, existing: dict[int, OrderItem] | None = None) -> list[OrderItem]:
    """
    Build OrderItems from request data.

    Each item: {product_id, quantity, discount_id?, discount_percentage?,
    commission_percentage?, client_ref?, id?}. An `id` of an existing line
    keeps that line's unit price snapshot.
    """
    if not isinstance(items_data, list) or not items_data:
        raise APIError("O pedido precisa de pelo menos um item.", code="validation_error")

    existing = existing or {}
    discounts: dict[int, Discount] = {}
    built: list[OrderItem] = []

    for line_no, raw in enumerate(items_data, start=1):
        if not isinstance(raw, dict):
            raise APIError(f"Item {line_no}: formato inválido.", code="validation_error")

        product_id = parse_optional_int(raw.get("product_id"))
        product = db.session.get(Product, product_id) if product_id is not None else None
        if not product:
            raise APIError(f"Item {line_no}: produto não encontrado.", code="validation_error")

        quantity = parse_optional_int(raw.get("quantity"))
        if quantity is None or quantity < 1:
            raise APIError(f"Item {line_no}: quantidade inválida.", code="validation_error")

        previous = existing.get(parse_optional_int(raw.get("id")))
        if previous is not None and previous.product_id == product.id:
            unit_price = previous.unit_price
        else:
            if not product.active:
                raise APIError(f"Item {line_no}: produto {product.code} está inativo.", code="validation_error")
            unit_price = product.price

        discount = None
        discount_id = parse_optional_int(raw.get("discount_id"))
        if discount_id is not None:
            discount = discounts.get(discount_id) or db.session.get(Discount, discount_id)
            if not discount:
                raise APIError(f"Item {line_no}: desconto não encontrado.", code="validation_error")
            discounts[discount_id] = discount
            discount_pct = discount.percentage
            commission_pct = discount.commission
        else:
            discount_pct = _percent(raw.get("discount_percentage"), "desconto", line_no)
            commission_pct = _percent(raw.get("commission_percentage"), "comissão", line_no)

        built.append(
            OrderItem(
                product_id=product.id,
                product=product,
                quantity=quantity,
                unit_price=unit_price,
                discount_id=discount.id if discount else None,
                discount=discount,
                discount_percentage=discount_pct,
                commission_percentage=commission_pct,
                client_ref=clean_str(raw.get("client_ref")),
            )
        )

    return built


def _pieces_by_order(order_ids) -> dict[int, int]:
    if not order_ids:
        return {}
    rows = (
        db.session.query(OrderItem.order_id, func.coalesce(func.sum(OrderItem.quantity), 0))
        .filter(OrderItem.order_id.in_(order_ids))
        .group_by(OrderItem.order_id)
        .all()
    )
    return {order_id: int(total) for order_id, total in rows}


def _order_row(order: Order, pieces: int | None = None) -> dict:
    data = order.to_dict()
    data["client_name"] = order.client.name if order.client else None
    data["client_code"] = order.client.code if order.client else None
    data["representative_name"] = order.representative.name if order.representative else None
    if pieces is not None:
        data["total_pieces"] = pieces
    return data


def _order_detail(order: Order) -> dict:
    data = order.to_dict(with_items=True)
    data["client"] = order.client.to_dict() if order.client else None
    data["representative_name"] = order.representative.name if order.representative else None
    data["total_pieces"] = data["summary"]["total_pieces"]
    return data


# ---------------------------------------------------------------------
# LIST / READ
# ---------------------------------------------------------------------

@orders_bp.route("")
@api_login_required
def list_orders():
    q = Order.query.join(Client, Order.client_id == Client.id)

    rep_scope = scope_representative_id()
    if rep_scope is not None:
        q = q.filter(Order.representative_id == rep_scope)
    else:
        rep_id = parse_optional_int(request.args.get("representative_id"))
        if rep_id is not None:
            q = q.filter(Order.representative_id == rep_id)

    status = request.args.get("status")
    if status:
        q = q.filter(Order.status == _parse_status(status))

    client_id = parse_optional_int(request.args.get("client_id"))
    if client_id is not None:
        q = q.filter(Order.client_id == client_id)

    term = (request.args.get("q") or "").strip()
    if term:
        pattern = f"%{term}%"
        q = q.filter((Client.name.ilike(pattern)) | (Client.code.ilike(pattern)))

    q = apply_sort(q, Order, SORTABLE_FIELDS, default="-created_at")

    result = paginate(q, lambda o: o)
    pieces = _pieces_by_order([o.id for o in result["items"]])
    result["items"] = [_order_row(o, pieces.get(o.id, 0)) for o in result["items"]]
    return jsonify(result)


@orders_bp.route("/<int:order_id>")
@api_login_required
def get_order(order_id: int):
    return jsonify(_order_detail(_get_order_or_404(order_id)))


@orders_bp.route("/<int:order_id>/items")
@api_login_required
def order_items(order_id: int):
    order = _get_order_or_404(order_id)
    summary = order.pricing()
    return jsonify([item.to_dict(line) for item, line in zip(order.items, summary["lines"])])


# ---------------------------------------------------------------------
# CREATE / UPDATE
# ---------------------------------------------------------------------

@orders_bp.route("", methods=["POST"])
@api_login_required
def create_order():
    """
    Body:
      {client_id, status?, payment_terms?, taxes?, notes?, representative_id? (admin),
       items: [{product_id, quantity, discount_id? | discount_percentage?, commission_percentage?, client_ref?}]}
    """
    data = json_body()

    client = _resolve_client(data.get("client_id"))
    if not client.active:
        raise APIError("Cliente inativo.", code="validation_error")

    order = Order(
        client_id=client.id,
        representative_id=_resolve_representative_id(data, client),
        status=_parse_status(data.get("status"), default=STATUS_QUOTATION),
        payment_terms=clean_str(data.get("payment_terms")),
        taxes=_parse_taxes(data.get("taxes")),
        notes=clean_str(data.get("notes")),
    )
    order.items = _build_items(data.get("items"))
    order.recalc_totals()

    db.session.add(order)
    db.session.flush()
    log_action(order, "CREATE", after=serialize_model(order))
    db.session.commit()

    logger.info("Order created (%s)", order.status, extra={"order_id": order.id, "client_id": client.id})

    return jsonify(_order_detail(order)), 201


@orders_bp.route("/<int:order_id>", methods=["PUT", "PATCH"])
@api_login_required
def update_order(order_id: int):
    """
    Update header fields and, when `items` is sent, replace the lines.

    Lines sent back with their `id` keep the original unit price snapshot.
    """
    order = _get_order_or_404(order_id)
    data = json_body()
    before = serialize_model(order)

    if "client_id" in data:
        client = _resolve_client(data.get("client_id"))
        order.client_id = client.id
    else:
        client = order.client

    if "representative_id" in data:
        order.representative_id = _resolve_representative_id(data, client, current=order.representative_id)

    if "status" in data:
        _apply_status(order, _parse_status(data.get("status")))

    if "payment_terms" in data:
        order.payment_terms = clean_str(data.get("payment_terms"))
    if "notes" in data:
        order.notes = clean_str(data.get("notes"))
    if "taxes" in data:
        order.taxes = _parse_taxes(data.get("taxes"))

    if "items" in data:
        existing = {item.id: item for item in order.items}
        order.items = _build_items(data.get("items"), existing)

    order.recalc_totals()

    db.session.flush()
    log_action(order, "UPDATE", before=before, after=serialize_model(order))
    db.session.commit()

    return jsonify(_order_detail(order))


@orders_bp.route("/<int:order_id>/status", methods=["PUT", "PATCH", "POST"])
@api_login_required
def update_order_status(order_id: int):
    """Body: {status}. Accepts quotation/confirmed and the aliases cotacao/confirmado."""
    order = _get_order_or_404(order_id)
    data = json_body()
    before = serialize_model(order)

    new_status = _parse_status(data.get("status"))
    if _apply_status(order, new_status):
        order.recalc_totals()
        db.session.flush()
        log_action(order, "STATUS", before=before, after=serialize_model(order))
        db.session.commit()
        logger.info("Order status -> %s", new_status, extra={"order_id": order.id})

    return jsonify(_order_detail(order))


# ---------------------------------------------------------------------
# DELETE
# ---------------------------------------------------------------------

@orders_bp.route("/<int:order_id>", methods=["DELETE"])
@api_login_required
def delete_order(order_id: int):
    """Hard delete (items cascade). Admin or the owner representative."""
    order = _get_order_or_404(order_id)
    before = serialize_model(order)

    log_action(order, "DELETE", before=before)
    db.session.delete(order)
    db.session.commit()

    logger.info("Order deleted", extra={"order_id": order_id})
    return jsonify({"message": "Pedido excluído."})


# ---------------------------------------------------------------------
# PDF / PRINT
# ---------------------------------------------------------------------

@orders_bp.route("/<int:order_id>/pdf")
@api_login_required
def order_pdf(order_id: int):
    order = _get_order_or_404(order_id)
    pdf_bytes = build_order_pdf(order, app_name=current_app.config.get("APP_NAME"))
    return send_file(
        BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=request.args.get("download") == "1",
        download_name=f"{order.code}.pdf",
    )


@print_bp.route("/<int:order_id>/print")
@api_login_required
def print_order(order_id: int):
    order = _get_order_or_404(order_id)
    summary = order.pricing()
    return render_template(
        "orders/print.html",
        order=order,
        lines=list(zip(order.items, summary["lines"])),
        summary=summary,
    )
