from decimal import Decimal

from bazaar.services.checkout_service import allocate_discount
from bazaar.utils.money import PricingPolicy, percent_of, to_major


def test_percent_of_floors():
    assert percent_of(999, Decimal("5")) == 49
    assert percent_of(1000, "12.5") == 125
    assert percent_of(0, 50) == 0


def test_shipping_waived_strictly_above_threshold():
    policy = PricingPolicy(shipping_flat_fee=500, free_shipping_threshold=5000)
    assert policy.shipping(4000) == 500
    assert policy.shipping(5000) == 500
    assert policy.shipping(5001) == 0


def test_tax_is_floored_percent():
    assert PricingPolicy(tax_percent=Decimal("7.5")).tax(1001) == 75


def test_to_major_is_display_only():
    assert to_major(123456) == "1234.56"
    assert to_major(5) == "0.05"


def test_discount_lands_on_primary_order():
    assert allocate_discount([4700, 6300], 1000) == [1000, 0]
    assert allocate_discount([4700, 6300], 1000, primary=1) == [0, 1000]


def test_discount_overflow_spills_and_never_goes_negative():
    shares = allocate_discount([500, 800, 300], 1200, primary=1)
    assert shares == [400, 800, 0]
    assert allocate_discount([100, 200], 10_000) == [100, 200]
    assert allocate_discount([100], 0) == [0]
