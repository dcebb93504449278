# bazaar/model/cart.py
"""
Cart values kept in the cart cache. Not database rows: a cart lives only as
long as its cache entry does.
"""
from __future__ import annotations
from dataclasses import dataclass, field

from ..utils.money import PricingPolicy


@dataclass
class CartLine:
    id: str
    product_id: int
    vendor_id: int
    vendor_name: str
    name: str
    price: int
    quantity: int
    category: str | None = None
    variant_id: int | None = None
    variant_name: str | None = None

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity

    def matches(self, product_id: int, variant_id: int | None) -> bool:
        return self.product_id == product_id and self.variant_id == variant_id

    def as_api(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant": {"id": self.variant_id, "name": self.variant_name} if self.variant_id else None,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "quantity": self.quantity,
            "subtotal": self.subtotal,
        }


@dataclass
class VendorGroup:
    vendor_id: int
    vendor_name: str
    subtotal: int = 0
    shipping: int = 0
    items: int = 0

    def as_api(self):
        return {
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "subtotal": self.subtotal,
            "shipping": self.shipping,
            "items": self.items,
        }


@dataclass
class Cart:
    user_id: int
    items: list[CartLine] = field(default_factory=list)
    subtotal: int = 0
    shipping: int = 0
    tax: int = 0
    total: int = 0
    vendors: list[VendorGroup] = field(default_factory=list)

    def find(self, item_id: str) -> CartLine | None:
        return next((i for i in self.items if i.id == item_id), None)

    def find_product(self, product_id: int, variant_id: int | None) -> CartLine | None:
        return next((i for i in self.items if i.matches(product_id, variant_id)), None)

    def lines_by_vendor(self) -> dict[int, list[CartLine]]:
        # first-appearance order of vendors
        groups: dict[int, list[CartLine]] = {}
        for line in self.items:
            groups.setdefault(line.vendor_id, []).append(line)
        return groups

    def recalculate(self, pricing: PricingPolicy) -> "Cart":
        """
        Re-derive every total from the lines:
          1) subtotal = sum of line subtotals
          2) per-vendor groups, each with flat shipping unless above threshold
          3) tax on the whole subtotal
          4) total = subtotal + shipping + tax
        """
        groups: dict[int, VendorGroup] = {}
        for line in self.items:
            g = groups.get(line.vendor_id)
            if g is None:
                g = groups[line.vendor_id] = VendorGroup(line.vendor_id, line.vendor_name)
            g.subtotal += line.subtotal
            g.items += 1

        for g in groups.values():
            g.shipping = pricing.shipping(g.subtotal)

        self.vendors = list(groups.values())
        self.subtotal = sum(line.subtotal for line in self.items)
        self.shipping = sum(g.shipping for g in self.vendors)
        self.tax = pricing.tax(self.subtotal)
        self.total = self.subtotal + self.shipping + self.tax
        return self

    def as_api(self):
        return {
            "user_id": self.user_id,
            "items": [i.as_api() for i in self.items],
            "totals": {
                "subtotal": self.subtotal,
                "shipping": self.shipping,
                "tax": self.tax,
                "total": self.total,
            },
            "vendors": [v.as_api() for v in self.vendors],
        }
