"""
salesdesk/pricing.py

Line pricing and commission, shared by the API, the PDF export and the print view.

Rules:
- discounted unit price = unit price x (1 - discount% / 100)
- line subtotal         = quantity x discounted unit price
- commission            = subtotal x commission% / 100, confirmed orders only
- order discount        = sum of (unit price - discounted unit price) x quantity
- order total           = subtotal + taxes

IMPORTANT:
- Commission is computed on the DISCOUNTED price, never on the list price.
- Nothing here rounds. Callers quantize with money() when persisting into
  Numeric(…, 2) columns and format_money() when rendering, so the three
  render targets always agree.
- Inputs are not validated (negative values are a caller concern).
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

STATUS_QUOTATION = "quotation"
STATUS_CONFIRMED = "confirmed"
ORDER_STATUSES = (STATUS_QUOTATION, STATUS_CONFIRMED)

# Legacy values still sent by older clients.
STATUS_ALIASES = {
    "cotacao": STATUS_QUOTATION,
    "cotação": STATUS_QUOTATION,
    "confirmado": STATUS_CONFIRMED,
}

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convert Numeric/str/int/float/None to Decimal; None and "" become 0."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Any) -> Decimal:
    """Quantize to cents (half-up), for persistence."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> str:
    """Display format: 2 fractional digits, Brazilian separators (1.234,56)."""
    text = f"{money(value):,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def normalize_status(status: str | None) -> str | None:
    """Map a raw status (incl. legacy aliases) to a canonical status, or None if unknown."""
    if status is None:
        return None
    raw = str(status).strip().lower()
    raw = STATUS_ALIASES.get(raw, raw)
    return raw if raw in ORDER_STATUSES else None


def discounted_unit_price(unit_price: Any, discount_percentage: Any = None) -> Decimal:
    price = to_decimal(unit_price)
    return price * (1 - to_decimal(discount_percentage) / HUNDRED)


def price_line(
    quantity: Any,
    unit_price: Any,
    discount_percentage: Any = None,
    commission_percentage: Any = None,
    status: str = STATUS_QUOTATION,
) -> dict:
    """
    Price a single order line.

    Returns a dict with Decimal values:
      discounted_unit_price, subtotal, discount_amount, commission_amount
    """
    qty = to_decimal(quantity)
    price = to_decimal(unit_price)
    net_price = discounted_unit_price(price, discount_percentage)

    subtotal = qty * net_price

    if status == STATUS_CONFIRMED:
        commission_amount = subtotal * to_decimal(commission_percentage) / HUNDRED
    else:
        commission_amount = ZERO

    return {
        "discounted_unit_price": net_price,
        "subtotal": subtotal,
        "discount_amount": (price - net_price) * qty,
        "commission_amount": commission_amount,
    }


def _line_value(line: Any, key: str) -> Any:
    if isinstance(line, Mapping):
        return line.get(key)
    return getattr(line, key, None)


def price_order(lines: Iterable[Any], status: str = STATUS_QUOTATION, taxes: Any = None) -> dict:
    """
    Price a whole order.

    `lines` may be mappings or objects (e.g. OrderItem rows) exposing
    quantity, unit_price, discount_percentage and commission_percentage.

    Returns:
      {
        "lines": [per-line dicts, in input order],
        "subtotal", "total_discount", "total_commission", "taxes", "total",
        "total_pieces"
      }
    """
    priced = []
    subtotal = ZERO
    total_discount = ZERO
    total_commission = ZERO
    total_pieces = 0

    for line in lines:
        quantity = _line_value(line, "quantity")
        result = price_line(
            quantity,
            _line_value(line, "unit_price"),
            _line_value(line, "discount_percentage"),
            _line_value(line, "commission_percentage"),
            status=status,
        )
        priced.append(result)

        subtotal += result["subtotal"]
        total_discount += result["discount_amount"]
        total_commission += result["commission_amount"]
        total_pieces += int(quantity or 0)

    taxes_value = to_decimal(taxes)

    return {
        "lines": priced,
        "subtotal": subtotal,
        "total_discount": total_discount,
        "total_commission": total_commission,
        "taxes": taxes_value,
        "total": subtotal + taxes_value,
        "total_pieces": total_pieces,
    }


def serialize_pricing(values: Mapping[str, Any]) -> dict:
    """JSON-ready copy of a pricing dict: Decimals become 2-decimal strings."""
    out = {}
    for key, value in values.items():
        if isinstance(value, Decimal):
            out[key] = str(money(value))
        elif isinstance(value, list):
            out[key] = [serialize_pricing(v) for v in value]
        else:
            out[key] = value
    return out
