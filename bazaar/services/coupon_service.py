# bazaar/services/coupon_service.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ConflictError, CouponAlreadyUsed, CouponExhausted, CouponExpired, CouponMinimumNotMet,
    CouponNotApplicable, CouponNotFound, ValidationError,
)
from ..extensions import db
from ..model import Coupon, CouponUsage, DiscountType
from ..utils.money import D, percent_of

log = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def compute_discount(coupon: Coupon, order_amount: int) -> int:
    """PERCENTAGE is capped by max_discount; FIXED never exceeds the order amount."""
    order_amount = max(int(order_amount), 0)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = percent_of(order_amount, coupon.value)
        if coupon.max_discount is not None and discount > coupon.max_discount:
            discount = int(coupon.max_discount)
        return min(discount, order_amount)
    return min(int(D(coupon.value)), order_amount)


@dataclass(frozen=True)
class CouponRedemption:
    discount_amount: int
    coupon: Coupon

    def as_api(self):
        return {"discount_amount": self.discount_amount, "coupon": self.coupon.as_api()}


class CouponEngine:
    def lookup(self, code: str) -> Coupon:
        coupon = Coupon.query.filter(
            Coupon.code == normalize_code(code), Coupon.is_active.is_(True)
        ).first()
        if not coupon:
            raise CouponNotFound()
        return coupon

    def validate(self, code: str, order_amount: int, store_id: int | None = None,
                 at: datetime | None = None) -> Coupon:
        coupon = self.lookup(code)
        now = at or datetime.utcnow()

        if coupon.store_id is not None and coupon.store_id != store_id:
            raise CouponNotApplicable(code=coupon.code, store_id=coupon.store_id)
        if (coupon.starts_at and now < coupon.starts_at) or (coupon.ends_at and now > coupon.ends_at):
            raise CouponExpired(code=coupon.code)
        if coupon.usage_limit > 0 and coupon.used_count >= coupon.usage_limit:
            raise CouponExhausted(code=coupon.code)
        if coupon.min_order_amount and order_amount < coupon.min_order_amount:
            raise CouponMinimumNotMet(
                f"Minimum order amount of {coupon.min_order_amount} required",
                code=coupon.code, min_order_amount=coupon.min_order_amount,
            )
        return coupon

    def already_used(self, coupon_id: int, user_id: int) -> bool:
        return CouponUsage.query.filter_by(coupon_id=coupon_id, user_id=user_id).first() is not None

    def apply(self, user_id: int, code: str, order_amount: int, store_id: int | None = None,
              at: datetime | None = None) -> CouponRedemption:
        """
        Redeem once per user. Flushes the usage row and the counter bump in the
        caller's transaction; on any error the caller must roll back.
        """
        coupon = self.validate(code, order_amount, store_id=store_id, at=at)

        if self.already_used(coupon.id, user_id):
            raise CouponAlreadyUsed(code=coupon.code)

        discount = compute_discount(coupon, order_amount)
        db.session.add(CouponUsage(
            coupon_id=coupon.id,
            user_id=user_id,
            order_amount=order_amount,
            discount_amount=discount,
        ))
        try:
            db.session.flush()
        except IntegrityError:
            # a concurrent request won the (coupon_id, user_id) race
            db.session.rollback()
            raise CouponAlreadyUsed(code=normalize_code(code))

        rows = (
            Coupon.query
            .filter(Coupon.id == coupon.id,
                    or_(Coupon.usage_limit == 0, Coupon.used_count < Coupon.usage_limit))
            .update({Coupon.used_count: Coupon.used_count + 1}, synchronize_session="fetch")
        )
        if rows != 1:
            raise CouponExhausted(code=coupon.code)

        log.info("coupon %s redeemed by user=%s discount=%s", coupon.code, user_id, discount)
        return CouponRedemption(discount, coupon)

    def create_coupon(self, code: str, discount_type: str, value, description: str | None = None,
                      max_discount: int | None = None, min_order_amount: int | None = None,
                      store_id: int | None = None, usage_limit: int = 0,
                      starts_at: datetime | None = None, ends_at: datetime | None = None) -> Coupon:
        code = normalize_code(code)
        if not code:
            raise ValidationError("code is required")
        if discount_type not in (DiscountType.PERCENTAGE, DiscountType.FIXED):
            raise ValidationError("discount_type must be 'PERCENTAGE' or 'FIXED'")
        value = D(value)
        if value <= 0:
            raise ValidationError("value must be > 0")
        if discount_type == DiscountType.PERCENTAGE and value > 100:
            raise ValidationError("percentage coupon must be <= 100")
        if usage_limit < 0:
            raise ValidationError("usage_limit must be >= 0")
        if starts_at and ends_at and ends_at < starts_at:
            raise ValidationError("ends_at must be after starts_at")

        # unique case-insensitive
        if Coupon.query.filter(func.upper(Coupon.code) == code).first():
            raise ConflictError("Coupon code already exists", code=code)

        c = Coupon(
            code=code, description=description, discount_type=discount_type, value=value,
            max_discount=max_discount, min_order_amount=min_order_amount, store_id=store_id,
            usage_limit=usage_limit, used_count=0, starts_at=starts_at, ends_at=ends_at,
            is_active=True,
        )
        db.session.add(c)
        db.session.flush()
        return c

    def list_coupons(self, store_id: int | None = None) -> list[Coupon]:
        q = Coupon.query.filter(Coupon.is_active.is_(True))
        if store_id is not None:
            q = q.filter(or_(Coupon.store_id == store_id, Coupon.store_id.is_(None)))
        return q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()
