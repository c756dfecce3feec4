"""
SalesDesk – Domain Models

Entities:
- User (admin / representative, approval + active flags)
- Region
- Client, ClientHistory
- Product (catalog, incl. client reference "conversion")
- Discount (named discount/commission tier, e.g. "2*5")
- Order, OrderItem (quotation -> confirmed)
- AuditLog

IMPORTANT:
- Reference data (users, regions, clients, products) is never hard-deleted;
  it is deactivated through the `active` flag.
- Order money columns are derived from the pricing module (recalc_totals).
- UI is never trusted. Ownership and role checks happen server-side in routes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .pricing import (
    STATUS_CONFIRMED,
    STATUS_QUOTATION,
    money,
    price_order,
    serialize_pricing,
)

ROLE_ADMIN = "admin"
ROLE_REPRESENTATIVE = "representative"
USER_ROLES = (ROLE_ADMIN, ROLE_REPRESENTATIVE)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _money_str(value) -> str | None:
    return None if value is None else str(money(value))


# ---------------------------------------------------------------------
# Users & regions
# ---------------------------------------------------------------------
class Region(db.Model):
    __tablename__ = "regions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, index=True)
    active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "active": self.active,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Region {self.name}>"


class User(UserMixin, db.Model):
    """System login user. Representatives must be approved by an admin before logging in."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(150), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_REPRESENTATIVE, index=True)
    active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    approved = db.Column(db.Boolean, default=False, nullable=False, index=True)

    theme = db.Column(db.String(20), nullable=True, default="default")

    region_id = db.Column(
        db.Integer,
        db.ForeignKey("regions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    region = db.relationship("Region", backref=db.backref("users", lazy=True))

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_representative(self) -> bool:
        return self.role == ROLE_REPRESENTATIVE

    @property
    def is_active(self) -> bool:
        # Flask-Login refuses login_user() for inactive users
        return bool(self.active)

    def can_login(self) -> bool:
        if not self.active:
            return False
        return self.is_admin or bool(self.approved)

    def to_dict(self) -> dict:
        """Public representation (never includes the password hash)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "active": self.active,
            "approved": self.approved,
            "region_id": self.region_id,
            "theme": self.theme,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email}>"


# ---------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------
class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    cnpj = db.Column(db.String(20), nullable=False, unique=True, index=True)
    code = db.Column(db.String(50), nullable=False, unique=True, index=True)

    address = db.Column(db.String(255))
    city = db.Column(db.String(120), index=True)
    state = db.Column(db.String(50))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(255))

    representative_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    region_id = db.Column(
        db.Integer,
        db.ForeignKey("regions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    representative = db.relationship("User", backref=db.backref("clients", lazy=True))
    region = db.relationship("Region", backref=db.backref("clients", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cnpj": self.cnpj,
            "code": self.code,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "phone": self.phone,
            "email": self.email,
            "representative_id": self.representative_id,
            "region_id": self.region_id,
            "active": self.active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Client {self.code} - {self.name}>"


class ClientHistory(db.Model):
    """Per-client timeline of actions (created, updated, assigned, imported)."""

    __tablename__ = "client_history"

    id = db.Column(db.Integer, primary_key=True)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    action = db.Column(db.String(50), nullable=False, index=True)
    details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    client = db.relationship(
        "Client",
        backref=db.backref("history", lazy=True, cascade="all, delete-orphan"),
    )
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "user_id": self.user_id,
            "action": self.action,
            "details": self.details,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Catalog & discounts
# ---------------------------------------------------------------------
class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text)
    code = db.Column(db.String(80), nullable=False, unique=True, index=True)
    barcode = db.Column(db.String(80), index=True)
    category = db.Column(db.String(120), index=True)
    brand = db.Column(db.String(120), index=True)

    # Client reference for this product and the brand it came from
    conversion = db.Column(db.String(120), index=True)
    conversion_brand = db.Column(db.String(120))
    equivalent_brands = db.Column(db.JSON, nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    stock_quantity = db.Column(db.Integer, default=0, nullable=False)

    active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "code": self.code,
            "barcode": self.barcode,
            "category": self.category,
            "brand": self.brand,
            "conversion": self.conversion,
            "conversion_brand": self.conversion_brand,
            "equivalent_brands": self.equivalent_brands or [],
            "price": _money_str(self.price),
            "stock_quantity": self.stock_quantity,
            "active": self.active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Product {self.code}>"


class Discount(db.Model):
    """
    Discount tier applied per order line.

    Both fields are stored as percents: percentage=9.75 means 9.75 %.
    """

    __tablename__ = "discounts"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(50), nullable=False, unique=True, index=True)
    percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    commission = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "percentage": _money_str(self.percentage),
            "commission": _money_str(self.commission),
        }

    def __repr__(self):
        return f"<Discount {self.name}>"


# ---------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------
class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id"),
        nullable=False,
        index=True,
    )
    representative_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    status = db.Column(db.String(20), nullable=False, default=STATUS_QUOTATION, index=True)
    payment_terms = db.Column(db.String(255))

    subtotal = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    # Freight / extra charges typed by the representative
    taxes = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship("Client", backref=db.backref("orders", lazy=True))
    representative = db.relationship("User", backref=db.backref("orders", lazy=True))

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def code(self) -> str:
        return f"ORD-{self.id:04d}" if self.id else "ORD-NOVO"

    @property
    def is_confirmed(self) -> bool:
        return self.status == STATUS_CONFIRMED

    def pricing(self) -> dict:
        """Priced summary of the current items (unrounded Decimals)."""
        return price_order(self.items, status=self.status, taxes=self.taxes)

    def recalc_totals(self) -> dict:
        """Recompute item subtotals and order money columns from the pricing module."""
        summary = self.pricing()
        for item, line in zip(self.items, summary["lines"]):
            item.subtotal = money(line["subtotal"])

        self.subtotal = money(summary["subtotal"])
        self.discount = money(summary["total_discount"])
        self.total = money(summary["total"])
        return summary

    def to_dict(self, with_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "client_id": self.client_id,
            "representative_id": self.representative_id,
            "status": self.status,
            "payment_terms": self.payment_terms,
            "subtotal": _money_str(self.subtotal),
            "discount": _money_str(self.discount),
            "taxes": _money_str(self.taxes),
            "total": _money_str(self.total),
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if with_items:
            summary = self.pricing()
            data["items"] = [
                item.to_dict(line) for item, line in zip(self.items, summary["lines"])
            ]
            data["summary"] = serialize_pricing(
                {k: v for k, v in summary.items() if k != "lines"}
            )
        return data

    def __repr__(self):
        return f"<Order {self.code} {self.status}>"


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)

    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id"),
        nullable=False,
        index=True,
    )

    quantity = db.Column(db.Integer, nullable=False, default=1)
    # Snapshot of product price at order time
    unit_price = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    discount_id = db.Column(
        db.Integer,
        db.ForeignKey("discounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Snapshots of the Discount tier at order time
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=True)

    subtotal = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    # Client's own reference for the line (shown on PDF / print only)
    client_ref = db.Column(db.String(120), nullable=True)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")
    discount = db.relationship("Discount")

    def to_dict(self, line: dict | None = None) -> dict:
        data = {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "product_name": self.product.name if self.product else None,
            "brand": self.product.brand if self.product else None,
            "quantity": self.quantity,
            "unit_price": _money_str(self.unit_price),
            "discount_id": self.discount_id,
            "discount_name": self.discount.name if self.discount else None,
            "discount_percentage": _money_str(self.discount_percentage or 0),
            "commission_percentage": _money_str(self.commission_percentage or 0),
            "subtotal": _money_str(self.subtotal),
            "client_ref": self.client_ref,
        }
        if line is not None:
            data.update(serialize_pricing(line))
        return data


class AuditLog(db.Model):
    """Audit trail for mutations (who, what, before/after)."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    username_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
