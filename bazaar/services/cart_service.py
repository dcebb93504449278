# bazaar/services/cart_service.py
from __future__ import annotations
import logging
import uuid
from collections import Counter

from ..cache import CartCache
from ..errors import InvalidQuantity, NotFoundError, OutOfStock, ProductUnavailable
from ..model import Cart, CartLine
from ..utils.money import PricingPolicy
from .inventory import SqlCatalog

log = logging.getLogger(__name__)


def _key(user_id: int) -> str:
    return f"cart:{user_id}"


class CartService:
    """
    Per-user carts kept in the cart cache. Every mutation goes through
    ``CartCache.update`` so it runs under the user's key lock and is discarded
    if it raises.
    """

    def __init__(self, cache: CartCache, catalog: SqlCatalog, pricing: PricingPolicy):
        self.cache = cache
        self.catalog = catalog
        self.pricing = pricing

    def get_cart(self, user_id: int) -> Cart:
        cart = self.cache.get(_key(user_id))
        return cart if cart is not None else Cart(user_id=user_id)

    def _ensure_stock(self, cart: Cart, product_id: int, variant_id: int | None, name: str) -> None:
        # base and variant lines all draw on the parent product's stock
        checks = [(None, sum(i.quantity for i in cart.items if i.product_id == product_id))]
        if variant_id is not None:
            checks.append((variant_id, sum(i.quantity for i in cart.items if i.variant_id == variant_id)))
        for vid, wanted in checks:
            available = self.catalog.get_available_quantity(product_id, vid)
            if available < wanted:
                raise OutOfStock(
                    f'Product "{name}" not available in requested quantity',
                    product_id=product_id, variant_id=vid, available=available, requested=wanted,
                )

    def add_item(self, user_id: int, product_id: int, variant_id: int | None = None, quantity: int = 1) -> Cart:
        if quantity < 1:
            raise InvalidQuantity()
        product = self.catalog.get_product(product_id, variant_id)
        if product is None:
            raise NotFoundError("Product variant not found" if variant_id else "Product not found",
                                product_id=product_id, variant_id=variant_id)
        if not product.is_active:
            raise ProductUnavailable(product_id=product_id)

        def mutate(cart: Cart | None) -> Cart:
            cart = cart or Cart(user_id=user_id)
            line = cart.find_product(product_id, variant_id)
            if line:
                line.quantity += quantity
            else:
                cart.items.append(CartLine(
                    id=uuid.uuid4().hex[:12],
                    product_id=product.product_id,
                    variant_id=product.variant_id,
                    variant_name=product.variant_name,
                    vendor_id=product.vendor_id,
                    vendor_name=product.vendor_name,
                    name=product.name,
                    category=product.category,
                    price=product.price,
                    quantity=quantity,
                ))
            self._ensure_stock(cart, product_id, variant_id, product.name)
            return cart.recalculate(self.pricing)

        return self.cache.update(_key(user_id), mutate)

    def update_item(self, user_id: int, item_id: str, quantity: int) -> Cart:
        if quantity <= 0:
            return self.remove_item(user_id, item_id)

        def mutate(cart: Cart | None) -> Cart:
            if cart is None:
                raise NotFoundError("Cart not found")
            line = cart.find(item_id)
            if line is None:
                raise NotFoundError("Cart item not found", item_id=item_id)
            grows = quantity > line.quantity
            line.quantity = quantity
            if grows:
                self._ensure_stock(cart, line.product_id, line.variant_id, line.name)
            return cart.recalculate(self.pricing)

        return self.cache.update(_key(user_id), mutate)

    def remove_item(self, user_id: int, item_id: str) -> Cart:
        def mutate(cart: Cart | None) -> Cart:
            if cart is None:
                raise NotFoundError("Cart not found")
            if cart.find(item_id) is None:
                raise NotFoundError("Cart item not found", item_id=item_id)
            cart.items = [i for i in cart.items if i.id != item_id]
            return cart.recalculate(self.pricing)

        return self.cache.update(_key(user_id), mutate)

    def clear(self, user_id: int) -> None:
        self.cache.delete(_key(user_id))

    def validate_for_checkout(self, cart: Cart) -> list[str]:
        """Every reason the cart cannot be checked out right now, not just the first."""
        errors: list[str] = []
        per_product: Counter = Counter()
        per_variant: Counter = Counter()
        labels = {}
        for line in cart.items:
            product = self.catalog.get_product(line.product_id, line.variant_id)
            if product is None or not product.is_active:
                errors.append(f'Product "{line.name}" is no longer available')
                continue
            if product.price != line.price:
                errors.append(f'Price for "{line.name}" has changed')
            per_product[line.product_id] += line.quantity
            labels.setdefault((line.product_id, None), line.name)
            if line.variant_id is not None:
                per_variant[(line.product_id, line.variant_id)] += line.quantity
                labels[(line.product_id, line.variant_id)] = f"{line.name} ({line.variant_name})"

        short = set()
        for product_id, wanted in per_product.items():
            if self.catalog.get_available_quantity(product_id) < wanted:
                short.add(product_id)
                errors.append(f'Product "{labels[(product_id, None)]}" has insufficient stock')
        for (product_id, variant_id), wanted in per_variant.items():
            if product_id not in short and self.catalog.get_available_quantity(product_id, variant_id) < wanted:
                errors.append(f'Product "{labels[(product_id, variant_id)]}" has insufficient stock')
        return errors
