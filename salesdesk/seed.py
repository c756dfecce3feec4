"""
salesdesk/seed.py

Seed default discount tiers and bootstrap the first admin.

Rules:
- Safe to run multiple times (idempotent).
- Tiers are matched by name; existing tiers get their percentages re-synced.
"""

from __future__ import annotations

from decimal import Decimal

from .extensions import db
from .models import Discount, User, ROLE_ADMIN


DEFAULT_DISCOUNTS = [
    # name, discount %, commission %
    ("2*5", Decimal("9.75"), Decimal("7.00")),
    ("3*5", Decimal("14.26"), Decimal("6.00")),
    ("4*5", Decimal("18.54"), Decimal("5.00")),
    ("5*5", Decimal("22.62"), Decimal("4.00")),
    ("6*5", Decimal("26.50"), Decimal("3.00")),
    ("7*5", Decimal("30.17"), Decimal("2.00")),
    ("8*5", Decimal("33.64"), Decimal("2.00")),
    ("8*5+3", Decimal("35.65"), Decimal("2.00")),
]


def seed_default_discounts() -> int:
    """
    Create the default Discount tiers if they don't exist.

    Returns the number of tiers created.
    """
    created = 0
    for name, percentage, commission in DEFAULT_DISCOUNTS:
        exists = Discount.query.filter_by(name=name).first()
        if exists:
            # keep core values in sync
            exists.percentage = percentage
            exists.commission = commission
            continue

        db.session.add(Discount(name=name, percentage=percentage, commission=commission))
        created += 1

    db.session.commit()
    return created


def create_admin(email: str, password: str, name: str = "Administrador") -> User:
    """Create an approved, active admin user. Caller checks for duplicates."""
    user = User(
        email=email.strip().lower(),
        name=name,
        role=ROLE_ADMIN,
        active=True,
        approved=True,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    return user
