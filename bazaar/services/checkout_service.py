# bazaar/services/checkout_service.py
"""
Cart -> one order per vendor -> escrow -> payment.

Everything up to and including escrow (and a wallet debit) happens in one
database transaction. The payment gateway is only called after that commit,
so a gateway failure leaves the orders in place for manual verification.
"""
from __future__ import annotations
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    BazaarError, CartEmpty, CartValidationFailed, CheckoutFailed, CouponNotApplicable,
    PaymentInitializationFailed,
)
from ..extensions import db
from ..model import Cart, CartLine, Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus, Store
from ..schemas import CheckoutRequest
from ..utils.money import PricingPolicy
from .cart_service import CartService
from .coupon_service import CouponEngine, CouponRedemption
from .escrow_service import EscrowService
from .inventory import SqlCatalog
from .outbox import OutboxDispatcher, record_event
from .payment import PaymentGateway, PaymentInitRequest, initialize_with_timeout
from .wallet import SqlWallet

log = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


@dataclass(frozen=True)
class PaymentBlock:
    reference: str
    amount: int
    authorization_url: str | None = None

    def as_api(self):
        return {"reference": self.reference, "authorization_url": self.authorization_url, "amount": self.amount}


@dataclass(frozen=True)
class CheckoutResult:
    orders: list[Order]
    payment: PaymentBlock | None = None

    @property
    def total(self) -> int:
        return sum(o.total for o in self.orders)

    def as_api(self):
        return {
            "orders": [o.as_summary() for o in self.orders],
            "payment": self.payment.as_api() if self.payment else None,
        }


def allocate_discount(totals: list[int], discount: int, primary: int = 0) -> list[int]:
    """
    Put the whole discount on the primary order; whatever exceeds that order's
    total spills over to the others in cart order. No order goes below zero.
    """
    shares = [0] * len(totals)
    remaining = max(int(discount), 0)
    order = [primary] + [i for i in range(len(totals)) if i != primary]
    for i in order:
        if remaining <= 0:
            break
        take = min(remaining, totals[i])
        shares[i] = take
        remaining -= take
    return shares


def default_order_number(prefix: str = "BZR") -> str:
    timestamp = str(int(time.time() * 1000))[-8:]
    return f"{prefix}{timestamp}{secrets.randbelow(1000):03d}"


class CheckoutService:
    def __init__(self, carts: CartService, catalog: SqlCatalog, coupons: CouponEngine,
                 escrow: EscrowService, wallet: SqlWallet, gateway: PaymentGateway,
                 dispatcher: OutboxDispatcher, pricing: PricingPolicy, config,
                 order_number_factory: Callable[[], str] | None = None):
        self.carts = carts
        self.catalog = catalog
        self.coupons = coupons
        self.escrow = escrow
        self.wallet = wallet
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.pricing = pricing
        self.currency = config["CURRENCY"]
        self.payment_timeout = float(config["PAYMENT_TIMEOUT_SECONDS"])
        self.callback_url = config["PAYMENT_CALLBACK_URL"]
        self.reference_prefix = config["PAYMENT_REFERENCE_PREFIX"]
        prefix = config["ORDER_NUMBER_PREFIX"]
        self.order_number_factory = order_number_factory or (lambda: default_order_number(prefix))

    # ---- entry point --------------------------------------------------------
    def checkout(self, user_id: int, request: CheckoutRequest, payer_email: str | None = None) -> CheckoutResult:
        cart = self.carts.get_cart(user_id)
        if not cart.items:
            raise CartEmpty()

        # 1) validate, no mutation yet
        reasons = self.carts.validate_for_checkout(cart)
        if reasons:
            log.info("checkout rejected for user=%s: %s", user_id, reasons)
            raise CartValidationFailed(reasons)

        reference = self._payment_reference()
        try:
            orders = self._persist(user_id, cart, request, reference)
            db.session.commit()
        except BazaarError:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            log.exception("checkout persistence failed for user=%s", user_id)
            raise CheckoutFailed(f"Order creation failed: {e.__class__.__name__}") from e

        log.info("checkout user=%s orders=%s total=%s method=%s",
                 user_id, [o.order_number for o in orders], sum(o.total for o in orders),
                 request.payment_method)

        payment = None
        amount_due = sum(o.total for o in orders)
        if amount_due == 0:
            pass  # covered by the coupon, already marked paid
        elif request.payment_method == PaymentMethod.WALLET:
            payment = PaymentBlock(reference=reference, amount=amount_due)
        else:
            payment = self._initialize_payment(user_id, orders, reference, amount_due,
                                               request.payer_email or payer_email)

        # 7) only on full success
        self.carts.clear(user_id)
        self._dispatch_notifications()
        return CheckoutResult(orders=orders, payment=payment)

    # ---- persistence (single transaction) -----------------------------------
    def _persist(self, user_id: int, cart: Cart, request: CheckoutRequest, reference: str) -> list[Order]:
        # 2) group by vendor, first-appearance order
        groups = cart.lines_by_vendor()
        vendor_ids = list(groups)

        # 3) coupon
        redemption, primary = self._redeem_coupon(user_id, groups, request.coupon_code)

        # 4) per vendor group
        drafts = []
        for vendor_id in vendor_ids:
            lines = groups[vendor_id]
            subtotal = sum(line.subtotal for line in lines)
            shipping = self.pricing.shipping(subtotal)
            tax = self.pricing.tax(subtotal)
            drafts.append((vendor_id, lines, subtotal, shipping, tax))

        discounts = allocate_discount(
            [subtotal + shipping + tax for _, _, subtotal, shipping, tax in drafts],
            redemption.discount_amount if redemption else 0,
            primary,
        )

        orders = []
        for (vendor_id, lines, subtotal, shipping, tax), discount in zip(drafts, discounts):
            order = self._create_vendor_order(
                user_id, vendor_id, lines, subtotal, shipping, tax, discount, request,
                redemption.coupon.code if redemption and discount else None,
            )
            order.payment_reference = reference
            orders.append(order)

        # 5) escrow
        for order in orders:
            store = db.session.get(Store, order.store_id)
            self.escrow.open(order, seller_ids=[store.owner_id])
            record_event("order.created", user_id, {"order_id": order.id, "order_number": order.order_number})
            record_event("order.received", store.owner_id,
                         {"order_id": order.id, "order_number": order.order_number})

        # 6) wallet pays synchronously, inside the same transaction
        amount_due = sum(o.total for o in orders)
        if request.payment_method == PaymentMethod.WALLET and amount_due > 0:
            self.wallet.debit(user_id, amount_due, reference=reference,
                              description="Marketplace order payment")
            self._mark_paid(orders)
        elif amount_due == 0:
            self._mark_paid(orders)

        db.session.flush()
        return orders

    def _redeem_coupon(self, user_id: int, groups: dict[int, list[CartLine]],
                       code: str | None) -> tuple[CouponRedemption | None, int]:
        if not code:
            return None, 0
        coupon = self.coupons.lookup(code)
        if coupon.store_id is not None:
            # store-scoped coupons price against, and land on, that vendor's order
            if coupon.store_id not in groups:
                raise CouponNotApplicable(code=coupon.code, store_id=coupon.store_id)
            amount = sum(line.subtotal for line in groups[coupon.store_id])
            redemption = self.coupons.apply(user_id, code, amount, store_id=coupon.store_id)
            return redemption, list(groups).index(coupon.store_id)

        amount = sum(line.subtotal for lines in groups.values() for line in lines)
        return self.coupons.apply(user_id, code, amount), 0

    def _create_vendor_order(self, user_id, vendor_id, lines, subtotal, shipping, tax, discount,
                             request: CheckoutRequest, coupon_code) -> Order:
        order = Order(
            user_id=user_id,
            store_id=vendor_id,
            status=OrderStatus.PENDING,
            subtotal=subtotal,
            shipping=shipping,
            tax=tax,
            discount=discount,
            total=subtotal + shipping + tax - discount,
            currency=self.currency,
            coupon_code=coupon_code,
            payment_method=request.payment_method,
            payment_status=PaymentStatus.PENDING,
            shipping_address=request.shipping_address.model_dump(),
            billing_address=request.billing_address.model_dump() if request.billing_address else None,
            notes=request.notes,
        )
        order.items = [
            OrderItem(
                product_id=line.product_id,
                variant_id=line.variant_id,
                name=line.name,
                variant_name=line.variant_name,
                category=line.category,
                unit_price=line.price,
                quantity=line.quantity,
                line_total=line.subtotal,
            )
            for line in lines
        ]
        self._insert_with_order_number(order)

        for line in lines:
            self.catalog.decrement(line.product_id, line.variant_id, line.quantity)
        return order

    def _insert_with_order_number(self, order: Order) -> Order:
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order.order_number = self.order_number_factory()
            try:
                with db.session.begin_nested():
                    db.session.add(order)
            except IntegrityError:
                log.warning("order number %s collided (attempt %d)", order.order_number, attempt)
                continue
            return order
        raise CheckoutFailed("Could not allocate a unique order number")

    def _mark_paid(self, orders: list[Order]) -> None:
        now = datetime.utcnow()
        for order in orders:
            order.payment_status = PaymentStatus.SUCCESS
            order.status = OrderStatus.CONFIRMED
            order.paid_at = now

    # ---- payment gateway (after commit) -------------------------------------
    def _payment_reference(self) -> str:
        return f"{self.reference_prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"

    def _initialize_payment(self, user_id: int, orders: list[Order], reference: str,
                            amount: int, payer_email: str | None) -> PaymentBlock:
        request = PaymentInitRequest(
            amount=amount,
            payer_email=payer_email,
            reference=reference,
            callback_url=self.callback_url,
            metadata={
                "order_ids": [o.id for o in orders],
                "type": "marketplace_order",
                "user_id": user_id,
            },
        )
        try:
            result = initialize_with_timeout(self.gateway, request, self.payment_timeout)
        except PaymentInitializationFailed as e:
            # orders and escrow stay committed so the payment can be verified later
            log.error("payment initialization failed for %s: %s", reference, e.message)
            e.details.update(reference=reference, order_ids=[o.id for o in orders])
            raise

        if result.reference and result.reference != reference:
            for order in orders:
                order.payment_reference = result.reference
            db.session.commit()
        return PaymentBlock(reference=result.reference or reference, amount=amount,
                            authorization_url=result.authorization_url)

    def _dispatch_notifications(self) -> None:
        try:
            self.dispatcher.drain()
        except Exception:
            # events stay in the outbox for the next drain
            db.session.rollback()
            log.exception("order notification dispatch failed")
