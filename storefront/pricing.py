from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable

from .schemas import CartItem

CENT = Decimal("0.01")

FREE_SHIPPING_THRESHOLD = Decimal("100")

# Flat shipping rate per destination country.
SHIPPING_RATES = {
    "AR": Decimal("15.00"),
    "US": Decimal("25.00"),
    "BR": Decimal("20.00"),
    "UY": Decimal("18.00"),
    "CL": Decimal("20.00"),
}
DEFAULT_SHIPPING_RATE = Decimal("30.00")

HOME_COUNTRY = "AR"
HOME_TAX_RATE = Decimal("0.21")
DEFAULT_TAX_RATE = Decimal("0.10")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def cart_subtotal(items: Iterable[CartItem]) -> Decimal:
    return to_money(sum((item.product.price * item.quantity for item in items), Decimal("0")))


def calculate_shipping(subtotal, country: str = HOME_COUNTRY) -> Decimal:
    if Decimal(str(subtotal)) >= FREE_SHIPPING_THRESHOLD:
        return Decimal("0.00")
    return SHIPPING_RATES.get(country, DEFAULT_SHIPPING_RATE)


def calculate_tax(subtotal, country: str = HOME_COUNTRY) -> Decimal:
    rate = HOME_TAX_RATE if country == HOME_COUNTRY else DEFAULT_TAX_RATE
    return to_money(Decimal(str(subtotal)) * rate)


def calculate_totals(subtotal, country: str = HOME_COUNTRY) -> Dict[str, Decimal]:
    """Recompute shipping, tax and total from scratch for a subtotal and destination."""
    subtotal = to_money(subtotal)
    shipping = calculate_shipping(subtotal, country)
    tax = calculate_tax(subtotal, country)
    return {
        "subtotal": subtotal,
        "shipping": shipping,
        "tax": tax,
        "total": subtotal + shipping + tax,
    }
