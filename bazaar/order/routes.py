# bazaar/order/routes.py
from __future__ import annotations
from flask import request

from ..schemas import CancelOrderRequest, CheckoutRequest, ConfirmPaymentRequest
from ..services import checkout_service, order_service
from ..model import PaymentStatus
from ..utils.api import ok, err
from ..utils.decorators import login_required, parse_body
from . import bp


@bp.post("/checkout")
@login_required
def checkout(user):
    body = parse_body(CheckoutRequest)
    result = checkout_service().checkout(user.id, body, payer_email=user.email)
    return ok("Order created successfully", result.as_api(), 201)


@bp.get("")
@login_required
def list_orders(user):
    """
    Query params:
      - page, per_page (max 100)
      - status=PENDING|CONFIRMED|SHIPPED|DELIVERED|CANCELLED
    """
    page = request.args.get("page", 1, type=int)
    per = request.args.get("per_page", 20, type=int)
    paged = order_service().list_orders(user.id, page, per, request.args.get("status"))
    return ok("orders", {
        "page": paged.page,
        "per_page": paged.per_page,
        "total": paged.total,
        "items": [o.as_api() for o in paged.items],
    })


@bp.get("/<int:order_id>")
@login_required
def get_order(user, order_id: int):
    order = order_service().get_order(order_id, actor=user)
    return ok("order", order.as_api())


@bp.post("/payments/confirm")
@login_required
def confirm_payment(user):
    body = parse_body(ConfirmPaymentRequest)
    orders = order_service().confirm_payment(body.reference)
    data = {"reference": body.reference, "orders": [o.as_summary() | {"status": o.status,
            "payment_status": o.payment_status} for o in orders]}
    if all(o.payment_status in (PaymentStatus.SUCCESS, PaymentStatus.REFUNDED) for o in orders):
        return ok("Payment confirmed", data)
    return err("Payment not confirmed", 402, {"code": "payment_not_confirmed", **data})


@bp.post("/<int:order_id>/ship")
@login_required
def ship(user, order_id: int):
    order = order_service().mark_shipped(order_id, user)
    return ok("Order marked as shipped", order.as_api())


@bp.post("/<int:order_id>/deliver")
@login_required
def deliver(user, order_id: int):
    order = order_service().confirm_delivery(user.id, order_id)
    return ok("Delivery confirmed", order.as_api())


@bp.post("/<int:order_id>/cancel")
@login_required
def cancel(user, order_id: int):
    body = parse_body(CancelOrderRequest)
    order = order_service().cancel(order_id, user, body.reason)
    return ok("Order cancelled", order.as_api())
