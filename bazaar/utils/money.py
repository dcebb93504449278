# bazaar/utils/money.py
"""
Integer money helpers. Every amount is in the currency's minor unit; percents
are Decimal and only floored back to an integer at the end of a computation.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

HUNDRED = Decimal("100")


def D(x) -> Decimal:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def floor_int(x: Decimal) -> int:
    return int(D(x).to_integral_value(rounding=ROUND_FLOOR))


def percent_of(amount: int, percent) -> int:
    """floor(amount * percent / 100)"""
    return floor_int(Decimal(int(amount)) * D(percent) / HUNDRED)


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def to_major(amount: int, places: int = 2) -> str:
    # display only, never stored
    return str((Decimal(int(amount)) / (Decimal(10) ** places)).quantize(Decimal(1).scaleb(-places)))


@dataclass(frozen=True)
class PricingPolicy:
    """Per-vendor shipping and flat-rate tax."""
    shipping_flat_fee: int = 500
    free_shipping_threshold: int = 5000
    tax_percent: Decimal = Decimal("5")

    @classmethod
    def from_config(cls, config) -> "PricingPolicy":
        return cls(
            shipping_flat_fee=int(config["SHIPPING_FLAT_FEE"]),
            free_shipping_threshold=int(config["FREE_SHIPPING_THRESHOLD"]),
            tax_percent=D(config["TAX_PERCENT"]),
        )

    def shipping(self, vendor_subtotal: int) -> int:
        # waived strictly above the threshold
        if vendor_subtotal > self.free_shipping_threshold:
            return 0
        return self.shipping_flat_fee

    def tax(self, subtotal: int) -> int:
        return percent_of(subtotal, self.tax_percent)
