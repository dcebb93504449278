# bazaar/services/inventory.py
"""Catalog/inventory collaborator backed by the product tables."""
from __future__ import annotations
from dataclasses import dataclass

from ..errors import OutOfStock
from ..extensions import db
from ..model import Product, ProductVariant


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: int
    name: str
    vendor_id: int
    vendor_name: str
    vendor_owner_id: int
    price: int
    is_active: bool
    category: str | None = None
    variant_id: int | None = None
    variant_name: str | None = None


class SqlCatalog:
    def get_product(self, product_id: int, variant_id: int | None = None) -> ProductSnapshot | None:
        product = db.session.get(Product, product_id)
        if not product:
            return None
        price = product.price
        variant_name = None
        if variant_id is not None:
            variant = db.session.get(ProductVariant, variant_id)
            if not variant or variant.product_id != product.id:
                return None
            price = variant.price if variant.price is not None else product.price
            variant_name = variant.name
        return ProductSnapshot(
            product_id=product.id,
            name=product.name,
            vendor_id=product.store_id,
            vendor_name=product.store.name,
            vendor_owner_id=product.store.owner_id,
            price=int(price),
            is_active=bool(product.is_active),
            category=product.category,
            variant_id=variant_id,
            variant_name=variant_name,
        )

    def get_available_quantity(self, product_id: int, variant_id: int | None = None) -> int:
        product = db.session.get(Product, product_id)
        if not product:
            return 0
        available = int(product.quantity or 0)
        if variant_id is not None:
            variant = db.session.get(ProductVariant, variant_id)
            if not variant:
                return 0
            # a variant unit also consumes a unit of the parent product
            available = min(available, int(variant.quantity or 0))
        return available

    def decrement(self, product_id: int, variant_id: int | None, quantity: int) -> None:
        """Guarded decrement; never lets stock go negative."""
        rows = (
            Product.query
            .filter(Product.id == product_id, Product.quantity >= quantity)
            .update({Product.quantity: Product.quantity - quantity}, synchronize_session="fetch")
        )
        if rows != 1:
            raise OutOfStock(f"product {product_id} has insufficient stock", product_id=product_id)
        if variant_id is not None:
            rows = (
                ProductVariant.query
                .filter(ProductVariant.id == variant_id, ProductVariant.quantity >= quantity)
                .update({ProductVariant.quantity: ProductVariant.quantity - quantity}, synchronize_session="fetch")
            )
            if rows != 1:
                raise OutOfStock(
                    f"variant {variant_id} has insufficient stock",
                    product_id=product_id, variant_id=variant_id,
                )

    def restock(self, product_id: int, variant_id: int | None, quantity: int) -> None:
        Product.query.filter(Product.id == product_id).update(
            {Product.quantity: Product.quantity + quantity}, synchronize_session="fetch"
        )
        if variant_id is not None:
            ProductVariant.query.filter(ProductVariant.id == variant_id).update(
                {ProductVariant.quantity: ProductVariant.quantity + quantity}, synchronize_session="fetch"
            )
