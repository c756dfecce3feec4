"""
Products (catalog)

Routes:
- GET  /api/products                         list (q, brand, category, active, sort, page, per_page)
- GET  /api/products/<id>                    read
- GET  /api/products/by-code/<code>          by code, or exact name
- GET  /api/products/search?q=               quick search for order forms
- GET  /api/products/by-client-ref/<ref>     product linked to a client reference
- POST /api/products/<id>/conversion         link a client reference (admin)
- GET  /api/products/<id>/price?discount_id= unit price calculator
- POST /api/products                         create (admin)
- PUT  /api/products/<id>                    update (admin)
- DELETE /api/products/<id>                  deactivate (admin)
- POST /api/products/import                  commit normalized CSV rows (admin)

NOTE:
- A client reference ("conversion") points to exactly one product.
"""

import logging
from decimal import Decimal

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy import func

from ...audit import log_action, serialize_model
from ...errors import APIError, not_found
from ...extensions import db
from ...importers import generate_product_code, import_products
from ...models import Discount, Product
from ...pricing import STATUS_CONFIRMED, money, price_line, serialize_pricing
from ...security import admin_required, api_login_required
from ...utils import (
    apply_sort,
    apply_text_search,
    clean_str,
    json_body,
    paginate,
    parse_bool,
    parse_decimal,
    parse_optional_int,
)

logger = logging.getLogger(__name__)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")

TEXT_FIELDS = ("name", "description", "barcode", "category", "brand", "conversion", "conversion_brand")
SORTABLE_FIELDS = ("name", "code", "brand", "category", "price", "stock_quantity", "created_at")
SEARCH_COLUMNS = (Product.name, Product.code, Product.barcode, Product.conversion, Product.brand, Product.description)
SEARCH_LIMIT = 20


def _get_product_or_404(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise not_found("Produto não encontrado.")
    return product


def _check_conversion_free(ref: str, product: Product | None):
    owner = Product.query.filter(Product.conversion == ref).first()
    if owner and (product is None or owner.id != product.id):
        raise APIError(
            f"Referência '{ref}' já vinculada ao produto {owner.code}.",
            status_code=409,
            code="conflict",
        )


def _parse_price(value) -> Decimal:
    price = parse_decimal(value)
    if price is None or price < 0:
        raise APIError("Preço inválido.", code="validation_error")
    return price


def _parse_stock(value) -> int:
    stock = parse_optional_int(value)
    if stock is None or stock < 0:
        raise APIError("Estoque inválido.", code="validation_error")
    return stock


def _parse_brands(value) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [b.strip() for b in value.split(",") if b.strip()]
    if isinstance(value, list):
        return [str(b).strip() for b in value if str(b).strip()]
    raise APIError("Marcas equivalentes inválidas.", code="validation_error")


# ---------------------------------------------------------------------
# LIST / LOOKUPS
# ---------------------------------------------------------------------

@products_bp.route("")
@api_login_required
def list_products():
    q = apply_text_search(Product.query, SEARCH_COLUMNS, request.args.get("q"))

    brand = clean_str(request.args.get("brand"))
    if brand:
        q = q.filter(Product.brand.ilike(brand))

    category = clean_str(request.args.get("category"))
    if category:
        q = q.filter(Product.category.ilike(category))

    active = parse_bool(request.args.get("active"))
    if active is not None:
        q = q.filter(Product.active.is_(active))

    q = apply_sort(q, Product, SORTABLE_FIELDS, default="name")
    return jsonify(paginate(q, lambda p: p.to_dict()))


@products_bp.route("/<int:product_id>")
@api_login_required
def get_product(product_id: int):
    return jsonify(_get_product_or_404(product_id).to_dict())


@products_bp.route("/by-code/<path:code>")
@api_login_required
def product_by_code(code: str):
    """Exact code first, then exact (case-insensitive) name."""
    code = code.strip()
    product = Product.query.filter(Product.code == code).first()
    if not product:
        product = Product.query.filter(func.lower(Product.name) == code.lower()).first()
    if not product:
        raise not_found("Produto não encontrado.")
    return jsonify(product.to_dict())


@products_bp.route("/search")
@api_login_required
def search_products():
    term = (request.args.get("q") or "").strip()
    if not term:
        return jsonify([])

    q = Product.query.filter(Product.active.is_(True))

    exact = q.filter(Product.code == term).first()
    if exact:
        return jsonify([exact.to_dict()])

    limit = parse_optional_int(request.args.get("limit")) or SEARCH_LIMIT
    results = apply_text_search(q, SEARCH_COLUMNS, term).order_by(Product.name.asc()).limit(limit).all()
    return jsonify([p.to_dict() for p in results])


@products_bp.route("/by-client-ref/<path:ref>")
@api_login_required
def product_by_client_ref(ref: str):
    product = Product.query.filter(Product.conversion == ref.strip()).first()
    if not product:
        raise not_found("Nenhum produto vinculado a esta referência.")
    return jsonify(product.to_dict())


@products_bp.route("/<int:product_id>/conversion", methods=["POST", "PUT"])
@admin_required
def save_conversion(product_id: int):
    """Body: {client_ref, conversion_brand?}"""
    product = _get_product_or_404(product_id)
    data = json_body()

    ref = clean_str(data.get("client_ref") or data.get("conversion"))
    if not ref:
        raise APIError("Referência do cliente é obrigatória.", code="validation_error")
    _check_conversion_free(ref, product)

    before = serialize_model(product)
    product.conversion = ref
    if "conversion_brand" in data:
        product.conversion_brand = clean_str(data.get("conversion_brand"))

    db.session.flush()
    log_action(product, "UPDATE", before=before, after=serialize_model(product))
    db.session.commit()

    return jsonify(product.to_dict())


@products_bp.route("/<int:product_id>/price")
@api_login_required
def product_price(product_id: int):
    """
    Price of ONE unit under a discount tier (for the price calculator).

    Commission is shown as it would be on a confirmed order.
    """
    product = _get_product_or_404(product_id)

    discount = None
    discount_id = parse_optional_int(request.args.get("discount_id"))
    if discount_id is not None:
        discount = db.session.get(Discount, discount_id)
        if not discount:
            raise not_found("Desconto não encontrado.")

    quantity = parse_optional_int(request.args.get("quantity")) or 1

    line = price_line(
        quantity,
        product.price,
        discount.percentage if discount else None,
        discount.commission if discount else None,
        status=STATUS_CONFIRMED,
    )

    return jsonify(
        {
            "product_id": product.id,
            "quantity": quantity,
            "unit_price": str(money(product.price)),
            "discount": discount.to_dict() if discount else None,
            **serialize_pricing(line),
        }
    )


# ---------------------------------------------------------------------
# CREATE / UPDATE / DEACTIVATE
# ---------------------------------------------------------------------

@products_bp.route("", methods=["POST"])
@admin_required
def create_product():
    data = json_body()

    name = clean_str(data.get("name"))
    if not name:
        raise APIError("Nome é obrigatório.", code="validation_error")

    code = clean_str(data.get("code")) or generate_product_code()
    if Product.query.filter_by(code=code).first():
        raise APIError(f"Produto com código '{code}' já existe.", status_code=409, code="conflict")

    ref = clean_str(data.get("conversion"))
    if ref:
        _check_conversion_free(ref, None)

    product = Product(
        code=code,
        price=_parse_price(data.get("price", 0)),
        stock_quantity=_parse_stock(data.get("stock_quantity", 0)),
        equivalent_brands=_parse_brands(data.get("equivalent_brands")),
        active=parse_bool(data.get("active"), default=True),
        **{field: clean_str(data.get(field)) for field in TEXT_FIELDS},
    )

    db.session.add(product)
    db.session.flush()
    log_action(product, "CREATE", after=serialize_model(product))
    db.session.commit()

    return jsonify(product.to_dict()), 201


@products_bp.route("/<int:product_id>", methods=["PUT", "PATCH"])
@admin_required
def update_product(product_id: int):
    product = _get_product_or_404(product_id)
    data = json_body()
    before = serialize_model(product)

    if "code" in data:
        code = clean_str(data.get("code"))
        if not code:
            raise APIError("Código é obrigatório.", code="validation_error")
        clash = Product.query.filter(Product.code == code, Product.id != product.id).first()
        if clash:
            raise APIError(f"Produto com código '{code}' já existe.", status_code=409, code="conflict")
        product.code = code

    if "name" in data and not clean_str(data.get("name")):
        raise APIError("Nome é obrigatório.", code="validation_error")

    if clean_str(data.get("conversion")):
        _check_conversion_free(clean_str(data.get("conversion")), product)

    for field in TEXT_FIELDS:
        if field in data:
            setattr(product, field, clean_str(data.get(field)))

    if "price" in data:
        product.price = _parse_price(data.get("price"))
    if "stock_quantity" in data:
        product.stock_quantity = _parse_stock(data.get("stock_quantity"))
    if "equivalent_brands" in data:
        product.equivalent_brands = _parse_brands(data.get("equivalent_brands"))
    if "active" in data:
        product.active = bool(parse_bool(data.get("active"), default=product.active))

    db.session.flush()
    log_action(product, "UPDATE", before=before, after=serialize_model(product))
    db.session.commit()

    return jsonify(product.to_dict())


@products_bp.route("/<int:product_id>", methods=["DELETE"])
@admin_required
def deactivate_product(product_id: int):
    """Soft delete: existing order lines keep pointing at the product."""
    product = _get_product_or_404(product_id)
    before = serialize_model(product)

    product.active = False
    db.session.flush()
    log_action(product, "DEACTIVATE", before=before, after=serialize_model(product))
    db.session.commit()

    return jsonify({"message": "Produto desativado.", "product": product.to_dict()})


# ---------------------------------------------------------------------
# IMPORT
# ---------------------------------------------------------------------

@products_bp.route("/import", methods=["POST"])
@admin_required
def import_products_route():
    """
    Commit previewed rows.

    Body: {products: [normalized rows]} or the bare list.
    All-or-nothing: one invalid row rejects the batch (422 with per-row errors).
    """
    data = request.get_json(silent=True)
    rows = data.get("products") if isinstance(data, dict) else data

    try:
        result = import_products(rows, current_user)
    except APIError:
        db.session.rollback()
        raise

    db.session.commit()

    result["message"] = f"{result['created']} produtos importados com sucesso."
    return jsonify(result), 201
