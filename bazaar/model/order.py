from datetime import datetime
from ..extensions import db


class OrderStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    TRANSITIONS = {
        PENDING: {CONFIRMED, CANCELLED},
        CONFIRMED: {SHIPPED, CANCELLED},
        SHIPPED: {DELIVERED},
        DELIVERED: set(),
        CANCELLED: set(),
    }


class PaymentStatus:
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod:
    WALLET = "WALLET"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), unique=True, index=True, nullable=False)  # e.g. "BZR12345678042"
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("store.id"), nullable=False, index=True)
    status = db.Column(db.String(20), default=OrderStatus.PENDING, nullable=False, index=True)

    # Money snapshot, minor units
    subtotal = db.Column(db.BigInteger, nullable=False, default=0)
    shipping = db.Column(db.BigInteger, nullable=False, default=0)
    tax = db.Column(db.BigInteger, nullable=False, default=0)
    discount = db.Column(db.BigInteger, nullable=False, default=0)
    total = db.Column(db.BigInteger, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    coupon_code = db.Column(db.String(64))

    payment_method = db.Column(db.String(20), nullable=False)
    payment_status = db.Column(db.String(20), default=PaymentStatus.PENDING, nullable=False, index=True)
    payment_reference = db.Column(db.String(80), index=True)

    # Address snapshot
    shipping_address = db.Column(db.JSON)
    billing_address = db.Column(db.JSON)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    paid_at = db.Column(db.DateTime)
    shipped_at = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)

    store = db.relationship("Store", lazy="joined")
    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id.asc()",
    )
    escrow = db.relationship("EscrowLedger", back_populates="order", uselist=False, lazy="selectin")

    def can_move_to(self, status: str) -> bool:
        return status in OrderStatus.TRANSITIONS.get(self.status, set())

    def as_summary(self):
        return {
            "order_id": self.id,
            "vendor_id": self.store_id,
            "order_number": self.order_number,
            "subtotal": self.subtotal,
            "shipping": self.shipping,
            "tax": self.tax,
            "discount": self.discount,
            "total": self.total,
        }

    def as_api(self):
        return {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "vendor": self.store.as_dict() if self.store else {"id": self.store_id},
            "status": self.status,
            "money": {
                "subtotal": self.subtotal,
                "shipping": self.shipping,
                "tax": self.tax,
                "discount": self.discount,
                "total": self.total,
                "currency": self.currency,
            },
            "coupon_code": self.coupon_code,
            "payment": {
                "method": self.payment_method,
                "status": self.payment_status,
                "reference": self.payment_reference,
            },
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "notes": self.notes,
            "items": [i.as_api() for i in self.items],
            "escrow": self.escrow.as_api() if self.escrow else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "shipped_at": self.shipped_at.isoformat() if self.shipped_at else None,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # Catalog snapshot; not a FK so later catalog edits never touch history
    product_id = db.Column(db.Integer, index=True, nullable=False)
    variant_id = db.Column(db.Integer)
    name = db.Column(db.String(255), nullable=False)
    variant_name = db.Column(db.String(120))
    category = db.Column(db.String(64))

    unit_price = db.Column(db.BigInteger, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.BigInteger, nullable=False)

    def as_api(self):
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "variant_name": self.variant_name,
            "category": self.category,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "line_total": self.line_total,
        }
