# bazaar/model/product.py
from ..extensions import db
from sqlalchemy.sql import func

class Store(db.Model):
    __tablename__ = "store"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    owner = db.relationship("User", lazy="joined")

    def as_dict(self):
        return {"id": self.id, "name": self.name, "owner_id": self.owner_id}


class Product(db.Model):
    __tablename__ = "product"
    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("store.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    category = db.Column(db.String(64), index=True)

    price = db.Column(db.BigInteger, nullable=False, default=0)   # minor units
    quantity = db.Column(db.Integer, nullable=False, default=0)   # stock on hand
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    store = db.relationship("Store", backref="products", lazy="joined")
    variants = db.relationship(
        "ProductVariant",
        backref="product",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProductVariant.id.asc()",
    )

    def as_api(self):
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "quantity": self.quantity,
            "is_active": self.is_active,
            "variants": [v.as_api() for v in self.variants],
        }


class ProductVariant(db.Model):
    __tablename__ = "product_variant"
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.BigInteger, nullable=True)   # falls back to product price
    quantity = db.Column(db.Integer, nullable=False, default=0)

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
        }
