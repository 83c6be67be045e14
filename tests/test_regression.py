from decimal import Decimal

from storefront.paystack import callback_url_for, from_minor_units, to_minor_units
from storefront.utils import round_amount


def test_minor_units_to_major_units():
    # Paystack reports 500000 kobo for a 5000 Naira charge
    assert from_minor_units(500000) == Decimal("5000.00")
    assert str(from_minor_units(500000)) == "5000.00"
    assert from_minor_units(12345) == Decimal("123.45")


def test_major_units_to_minor_units():
    assert to_minor_units(Decimal("5000")) == 500000
    assert to_minor_units(Decimal("2500.50")) == 250050
    assert to_minor_units(Decimal("0.005")) == 1


def test_amount_rounding_regression():
    # Guard against regressions: 2-decimal rounding half up
    assert str(round_amount(Decimal("2.675"))) == "2.68"


def test_callback_url_strips_success_page():
    assert callback_url_for("http://shop.example.com/success.html") == "http://shop.example.com/checkout/success"
    assert callback_url_for("http://shop.example.com/") == "http://shop.example.com/checkout/success"
