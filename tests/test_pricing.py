from decimal import Decimal

import pytest

from storefront.pricing import calculate_shipping, calculate_tax, calculate_totals, cart_subtotal
from storefront.schemas import CartItem, Product


@pytest.mark.parametrize("subtotal", [100, 150, Decimal("100.00")])
def test_free_shipping_from_threshold(subtotal):
    assert calculate_shipping(subtotal, "AR") == 0
    assert calculate_shipping(subtotal, "US") == 0


def test_shipping_uses_country_rate_below_threshold():
    assert calculate_shipping(50, "AR") == Decimal("15.00")
    assert calculate_shipping(50, "US") == Decimal("25.00")
    assert calculate_shipping(Decimal("99.99"), "UY") == Decimal("18.00")


def test_shipping_falls_back_to_default_rate():
    assert calculate_shipping(50, "FR") == Decimal("30.00")


def test_shipping_defaults_to_home_country():
    assert calculate_shipping(50) == Decimal("15.00")


def test_tax_rates():
    assert calculate_tax(100, "AR") == Decimal("21.00")
    assert calculate_tax(100, "US") == Decimal("10.00")


def test_tax_rounds_to_cents():
    assert calculate_tax(Decimal("10.05"), "AR") == Decimal("2.11")


def test_totals_add_up():
    totals = calculate_totals(Decimal("80"), "AR")
    assert totals == {
        "subtotal": Decimal("80.00"),
        "shipping": Decimal("15.00"),
        "tax": Decimal("16.80"),
        "total": Decimal("111.80"),
    }
    assert totals["total"] == totals["subtotal"] + totals["shipping"] + totals["tax"]


def test_totals_follow_country_change():
    assert calculate_totals(80, "AR")["total"] == Decimal("111.80")
    assert calculate_totals(80, "US")["total"] == Decimal("113.00")


def test_cart_subtotal():
    items = [
        CartItem(product=Product(id=1, name="A", price=Decimal("40"), stock=5), quantity=2),
        CartItem(product=Product(id=2, name="B", price=Decimal("9.99"), stock=5), quantity=1),
    ]
    assert cart_subtotal(items) == Decimal("89.99")
