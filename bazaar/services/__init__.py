# bazaar/services/__init__.py
"""Service wiring for the current app. Routes and CLI commands build services here."""
from flask import current_app

from ..utils.money import PricingPolicy
from .cart_service import CartService
from .checkout_service import CheckoutService
from .commission_service import CommissionResolver
from .coupon_service import CouponEngine
from .escrow_service import EscrowService
from .inventory import SqlCatalog
from .order_service import OrderService
from .outbox import OutboxDispatcher
from .wallet import SqlWallet


def pricing_policy() -> PricingPolicy:
    return PricingPolicy.from_config(current_app.config)


def cart_service() -> CartService:
    return CartService(current_app.extensions["cart_cache"], SqlCatalog(), pricing_policy())


def outbox_dispatcher() -> OutboxDispatcher:
    return OutboxDispatcher(current_app.extensions["notifier"])


def checkout_service() -> CheckoutService:
    return CheckoutService(
        carts=cart_service(),
        catalog=SqlCatalog(),
        coupons=CouponEngine(),
        escrow=EscrowService(),
        wallet=SqlWallet(),
        gateway=current_app.extensions["payment_gateway"],
        dispatcher=outbox_dispatcher(),
        pricing=pricing_policy(),
        config=current_app.config,
        order_number_factory=current_app.extensions.get("order_number_factory"),
    )


def order_service() -> OrderService:
    return OrderService(
        escrow=EscrowService(),
        commissions=CommissionResolver(),
        wallet=SqlWallet(),
        catalog=SqlCatalog(),
        gateway=current_app.extensions["payment_gateway"],
        dispatcher=outbox_dispatcher(),
        payment_timeout=current_app.config["PAYMENT_TIMEOUT_SECONDS"],
    )
