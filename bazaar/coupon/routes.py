# bazaar/coupon/routes.py
from __future__ import annotations
from flask import request

from ..extensions import db
from ..schemas import CouponCreate, CouponValidate
from ..services.coupon_service import CouponEngine, compute_discount
from ..utils.api import ok
from ..utils.decorators import login_required, parse_body, role_at_least
from . import bp


@bp.post("")
@role_at_least("admin", "Only admins can create coupons")
def create_coupon(user):
    body = parse_body(CouponCreate)
    c = CouponEngine().create_coupon(**body.model_dump())
    db.session.commit()
    return ok("Coupon created", c.as_api(), 201)


@bp.get("")
@role_at_least("admin", "Only admins can list coupons")
def list_coupons(user):
    store_id = request.args.get("store_id", type=int)
    return ok("coupons", [c.as_api() for c in CouponEngine().list_coupons(store_id)])


@bp.post("/validate")
@login_required
def validate_coupon(user):
    """Check a code against an amount without redeeming it."""
    body = parse_body(CouponValidate)
    c = CouponEngine().validate(body.code, body.order_amount, store_id=body.store_id)
    return ok("Coupon is valid", {
        "coupon": c.as_api(),
        "discount_amount": compute_discount(c, body.order_amount),
    })
