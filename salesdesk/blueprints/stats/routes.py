"""
Dashboard statistics.

- Admins see everything; representatives only their own orders and clients.
- Sales figures (value, pieces, commission) count CONFIRMED orders only.
- Money is derived with salesdesk.pricing, never summed from percentages.
"""

from collections import defaultdict
from decimal import Decimal

from flask import Blueprint, jsonify, request
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from ...extensions import db
from ...models import ROLE_REPRESENTATIVE, Client, Order, OrderItem, Product, User
from ...pricing import STATUS_CONFIRMED, STATUS_QUOTATION, money, price_order
from ...security import api_login_required, scope_representative_id
from ...utils import parse_optional_int


stats_bp = Blueprint("stats", __name__, url_prefix="/api/stats")

TOP_PRODUCTS_LIMIT = 20
MAX_TOP_PRODUCTS_LIMIT = 200


def _money(value) -> str:
    return str(money(value))


def _confirmed_orders(rep_id: int | None):
    q = (
        Order.query
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .filter(Order.status == STATUS_CONFIRMED)
    )
    if rep_id is not None:
        q = q.filter(Order.representative_id == rep_id)
    return q.all()


def _priced_lines(orders):
    """Yield (order, item, priced line) for every item of `orders`."""
    for order in orders:
        summary = price_order(order.items, status=order.status, taxes=order.taxes)
        for item, line in zip(order.items, summary["lines"]):
            yield order, item, line


# ---------------------------------------------------------------------
# DASHBOARD
# ---------------------------------------------------------------------

@stats_bp.route("/dashboard")
@api_login_required
def dashboard():
    rep_id = scope_representative_id()

    orders_q = db.session.query(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.total), 0))
    if rep_id is not None:
        orders_q = orders_q.filter(Order.representative_id == rep_id)
    by_status = {status: (count, total) for status, count, total in orders_q.group_by(Order.status).all()}

    confirmed_count, confirmed_value = by_status.get(STATUS_CONFIRMED, (0, 0))
    quotation_count, quotation_value = by_status.get(STATUS_QUOTATION, (0, 0))

    clients_q = Client.query
    if rep_id is not None:
        clients_q = clients_q.filter(Client.representative_id == rep_id)

    return jsonify(
        {
            "orders": {
                "total": confirmed_count + quotation_count,
                "confirmed": confirmed_count,
                "quotation": quotation_count,
                "total_value": _money(confirmed_value),
                "quotation_value": _money(quotation_value),
            },
            "products": {
                "total": Product.query.count(),
                "active": Product.query.filter(Product.active.is_(True)).count(),
            },
            "clients": {
                "total": clients_q.count(),
                "active": clients_q.filter(Client.active.is_(True)).count(),
            },
        }
    )


# ---------------------------------------------------------------------
# SALES BREAKDOWNS
# ---------------------------------------------------------------------

@stats_bp.route("/sales-by-representative")
@api_login_required
def sales_by_representative():
    rep_id = scope_representative_id()

    reps_q = User.query.filter(User.role == ROLE_REPRESENTATIVE)
    if rep_id is not None:
        reps_q = reps_q.filter(User.id == rep_id)
    reps = reps_q.order_by(User.name.asc()).all()

    counts_q = db.session.query(Order.representative_id, Order.status, func.count(Order.id))
    if rep_id is not None:
        counts_q = counts_q.filter(Order.representative_id == rep_id)
    counts = defaultdict(dict)
    for owner_id, status, count in counts_q.group_by(Order.representative_id, Order.status).all():
        counts[owner_id][status] = count

    value = defaultdict(Decimal)
    pieces = defaultdict(int)
    commission = defaultdict(Decimal)
    for order in _confirmed_orders(rep_id):
        summary = price_order(order.items, status=order.status, taxes=order.taxes)
        # Same per-order rounding as the stored Order.total the dashboard sums
        value[order.representative_id] += money(summary["total"])
        commission[order.representative_id] += summary["total_commission"]
        pieces[order.representative_id] += summary["total_pieces"]

    result = []
    for rep in reps:
        rep_counts = counts.get(rep.id, {})
        result.append(
            {
                "id": rep.id,
                "name": rep.name,
                "total_orders": sum(rep_counts.values()),
                "confirmed_orders": rep_counts.get(STATUS_CONFIRMED, 0),
                "total_value": _money(value[rep.id]),
                "total_pieces": pieces[rep.id],
                "total_commission": _money(commission[rep.id]),
            }
        )
    return jsonify(result)


@stats_bp.route("/sales-by-brand")
@api_login_required
def sales_by_brand():
    rep_id = scope_representative_id()

    brands = defaultdict(lambda: {"total_value": Decimal("0"), "total_pieces": 0, "orders": set()})
    for order, item, line in _priced_lines(_confirmed_orders(rep_id)):
        brand = (item.product.brand if item.product else None) or "Sem marca"
        entry = brands[brand]
        entry["total_value"] += line["subtotal"]
        entry["total_pieces"] += item.quantity or 0
        entry["orders"].add(order.id)

    result = [
        {
            "brand": brand,
            "total_value": _money(entry["total_value"]),
            "total_pieces": entry["total_pieces"],
            "order_count": len(entry["orders"]),
        }
        for brand, entry in brands.items()
    ]
    result.sort(key=lambda row: Decimal(row["total_value"]), reverse=True)
    return jsonify(result)


@stats_bp.route("/top-selling-products")
@api_login_required
def top_selling_products():
    rep_id = scope_representative_id()

    limit = parse_optional_int(request.args.get("limit")) or TOP_PRODUCTS_LIMIT
    limit = max(1, min(limit, MAX_TOP_PRODUCTS_LIMIT))

    products = {}
    for order, item, line in _priced_lines(_confirmed_orders(rep_id)):
        entry = products.get(item.product_id)
        if entry is None:
            product = item.product
            entry = products[item.product_id] = {
                "id": item.product_id,
                "code": product.code if product else None,
                "name": product.name if product else None,
                "brand": product.brand if product else None,
                "total_quantity": 0,
                "total_value": Decimal("0"),
            }
        entry["total_quantity"] += item.quantity or 0
        entry["total_value"] += line["subtotal"]

    ranked = sorted(products.values(), key=lambda e: (-e["total_quantity"], -e["total_value"], e["id"]))[:limit]
    for entry in ranked:
        entry["total_value"] = _money(entry["total_value"])
    return jsonify(ranked)
