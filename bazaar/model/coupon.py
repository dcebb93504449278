# --- bazaar/model/coupon.py ---

from datetime import datetime
from ..extensions import db


class DiscountType:
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class Coupon(db.Model):
    __tablename__ = "coupon"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)  # stored upper-case
    description = db.Column(db.String(255))

    discount_type = db.Column(db.String(16), nullable=False, default=DiscountType.PERCENTAGE)
    value = db.Column(db.Numeric(12, 2), nullable=False, default=0)   # percent, or minor units for FIXED
    max_discount = db.Column(db.BigInteger, nullable=True)
    min_order_amount = db.Column(db.BigInteger, nullable=True)
    store_id = db.Column(db.Integer, db.ForeignKey("store.id"), nullable=True, index=True)

    usage_limit = db.Column(db.Integer, nullable=False, default=0)    # 0 == unlimited
    used_count = db.Column(db.Integer, nullable=False, default=0)

    starts_at = db.Column(db.DateTime, nullable=True)
    ends_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "value": str(self.value),
            "max_discount": self.max_discount,
            "min_order_amount": self.min_order_amount,
            "store_id": self.store_id,
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "is_active": self.is_active,
        }


class CouponUsage(db.Model):
    __tablename__ = "coupon_usage"
    __table_args__ = (
        db.UniqueConstraint("coupon_id", "user_id", name="uq_coupon_usage_coupon_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupon.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = db.Column(db.Integer, index=True, nullable=False)
    order_amount = db.Column(db.BigInteger, nullable=False)
    discount_amount = db.Column(db.BigInteger, nullable=False)
    used_at = db.Column(db.DateTime, default=datetime.utcnow)
