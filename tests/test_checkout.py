from decimal import Decimal

import pytest

from bazaar.errors import (
    CartEmpty, CartValidationFailed, CheckoutFailed, ConflictError, CouponAlreadyUsed,
    InsufficientBalance, OutOfStock, PaymentInitializationFailed,
)
from bazaar.extensions import db
from bazaar.model import (
    Coupon, CouponUsage, EscrowLedger, EscrowStatus, Notification, Order, OrderStatus, OutboxEvent,
    PaymentStatus, Product, Wallet,
)
from bazaar.services.coupon_service import CouponEngine
from bazaar.services.escrow_service import EscrowService
from bazaar.services.inventory import SqlCatalog


def _fill(services, seed, lamps=2, kettles=2):
    carts = services.cart_service()
    if lamps:
        carts.add_item(seed.buyer.id, seed.lamp.id, quantity=lamps)
    if kettles:
        carts.add_item(seed.buyer.id, seed.kettle.id, quantity=kettles)


def _coupon(code="WELCOME", discount_type="FIXED", value="1000", **kw):
    c = CouponEngine().create_coupon(code, discount_type, Decimal(value), **kw)
    db.session.commit()
    return c


def _snapshot():
    return {
        "orders": Order.query.count(),
        "escrows": EscrowLedger.query.count(),
        "usages": CouponUsage.query.count(),
        "events": OutboxEvent.query.count(),
        "stock": {p.id: p.quantity for p in Product.query.all()},
    }


def test_two_vendor_checkout_with_fixed_coupon(seed, services, gateway, make_request):
    """Two vendors, 4 000 + 6 000, coupon 1 000 on the first vendor's order"""
    _coupon()
    _fill(services, seed)

    result = services.checkout_service().checkout(seed.buyer.id, make_request("CARD", "welcome"))

    a, b = result.orders
    assert (a.store_id, b.store_id) == (seed.store_a.id, seed.store_b.id)
    assert (a.subtotal, a.shipping, a.tax, a.discount, a.total) == (4000, 500, 200, 1000, 3700)
    assert (b.subtotal, b.shipping, b.tax, b.discount, b.total) == (6000, 0, 300, 0, 6300)
    assert a.coupon_code == "WELCOME" and b.coupon_code is None
    assert a.order_number.startswith("BZR") and len(a.order_number) == 14

    # money conservation
    for o in result.orders:
        assert o.total == o.subtotal + o.shipping + o.tax - o.discount
        assert o.total >= 0
        assert o.escrow.amount_held == o.total
        assert o.escrow.status == EscrowStatus.HELD
    assert sum(e.amount_held for e in EscrowLedger.query.all()) == 10_000

    # gateway saw one payment for everything
    assert len(gateway.init_calls) == 1
    assert gateway.init_calls[0].amount == 10_000
    assert gateway.init_calls[0].metadata["order_ids"] == [a.id, b.id]
    assert result.payment.amount == 10_000
    assert result.payment.authorization_url.startswith("https://pay.test/")
    assert {o.payment_reference for o in result.orders} == {result.payment.reference}
    assert all(o.status == OrderStatus.PENDING for o in result.orders)

    # side effects
    assert db.session.get(Product, seed.lamp.id).quantity == 8
    assert db.session.get(Product, seed.kettle.id).quantity == 8
    assert Coupon.query.filter_by(code="WELCOME").one().used_count == 1
    assert services.cart_service().get_cart(seed.buyer.id).items == []

    # outbox drained into notifications
    assert OutboxEvent.query.filter(OutboxEvent.dispatched_at.is_(None)).count() == 0
    assert Notification.query.filter_by(user_id=seed.buyer.id, event_type="order.created").count() == 2
    assert Notification.query.filter_by(user_id=seed.vendor_a.id, event_type="order.received").count() == 1
    assert Notification.query.filter_by(user_id=seed.vendor_b.id, event_type="order.received").count() == 1

    # released escrow cannot then be refunded
    escrow = EscrowService()
    escrow.release(a.escrow.id)
    db.session.commit()
    with pytest.raises(ConflictError):
        escrow.refund(a.escrow.id)


def test_as_api_shape(seed, services, make_request):
    _fill(services, seed)
    data = services.checkout_service().checkout(seed.buyer.id, make_request("CARD")).as_api()
    assert [set(o) for o in data["orders"]] == [{
        "order_id", "vendor_id", "order_number", "subtotal", "shipping", "tax", "discount", "total",
    }] * 2
    assert set(data["payment"]) == {"reference", "authorization_url", "amount"}


def test_store_scoped_coupon_lands_on_that_vendor(seed, services, make_request):
    _coupon("BSHOP", "PERCENTAGE", "10", store_id=seed.store_b.id)
    _fill(services, seed)
    a, b = services.checkout_service().checkout(seed.buyer.id, make_request("CARD", "BSHOP")).orders
    assert (a.discount, a.total) == (0, 4700)
    assert (b.discount, b.total) == (600, 5700)


def test_wallet_payment_confirms_orders(seed, services, gateway, make_request):
    _fill(services, seed)
    result = services.checkout_service().checkout(seed.buyer.id, make_request("WALLET"))
    assert all(o.status == OrderStatus.CONFIRMED for o in result.orders)
    assert all(o.payment_status == PaymentStatus.SUCCESS for o in result.orders)
    assert Wallet.query.filter_by(user_id=seed.buyer.id).one().balance == 50_000 - 11_000
    assert gateway.init_calls == []
    assert result.payment.authorization_url is None


def test_insufficient_wallet_rolls_everything_back(seed, services, make_request):
    _coupon()
    Wallet.query.filter_by(user_id=seed.buyer.id).one().balance = 100
    db.session.commit()
    _fill(services, seed)
    before = _snapshot()

    with pytest.raises(InsufficientBalance):
        services.checkout_service().checkout(seed.buyer.id, make_request("WALLET", "WELCOME"))

    assert _snapshot() == before
    assert Coupon.query.filter_by(code="WELCOME").one().used_count == 0
    assert Wallet.query.filter_by(user_id=seed.buyer.id).one().balance == 100
    assert len(services.cart_service().get_cart(seed.buyer.id).items) == 2


def test_empty_cart(seed, services, make_request):
    with pytest.raises(CartEmpty):
        services.checkout_service().checkout(seed.buyer.id, make_request())


def test_invalid_cart_lists_reasons_and_persists_nothing(seed, services, make_request):
    _fill(services, seed)
    seed.lamp.quantity = 1
    seed.kettle.price = 3100
    db.session.commit()
    before = _snapshot()

    with pytest.raises(CartValidationFailed) as exc:
        services.checkout_service().checkout(seed.buyer.id, make_request())

    assert len(exc.value.reasons) == 2
    assert _snapshot() == before


def test_stock_race_rolls_back_every_vendor_order(app, seed, services, gateway, make_request):
    """Stock vanishing between validation and decrement leaves no partial orders"""
    class RacingCatalog(SqlCatalog):
        def decrement(self, product_id, variant_id, quantity):
            if product_id == seed.kettle.id:
                raise OutOfStock(product_id=product_id)
            return super().decrement(product_id, variant_id, quantity)

    _coupon()
    _fill(services, seed)
    before = _snapshot()
    svc = services.checkout_service()
    svc.catalog = RacingCatalog()

    with pytest.raises(OutOfStock):
        svc.checkout(seed.buyer.id, make_request("CARD", "WELCOME"))

    assert _snapshot() == before
    assert gateway.init_calls == []
    assert len(services.cart_service().get_cart(seed.buyer.id).items) == 2


def test_coupon_cannot_be_used_twice(seed, services, make_request):
    _coupon()
    _fill(services, seed, kettles=0)
    services.checkout_service().checkout(seed.buyer.id, make_request("CARD", "WELCOME"))

    _fill(services, seed, kettles=0)
    orders_before = Order.query.count()
    with pytest.raises(CouponAlreadyUsed):
        services.checkout_service().checkout(seed.buyer.id, make_request("CARD", "WELCOME"))
    assert Order.query.count() == orders_before
    assert Coupon.query.filter_by(code="WELCOME").one().used_count == 1


def test_gateway_timeout_keeps_orders_for_verification(seed, services, gateway, make_request):
    gateway.delay = 1.0  # TestConfig times out after 0.5s
    _fill(services, seed)

    with pytest.raises(PaymentInitializationFailed) as exc:
        services.checkout_service().checkout(seed.buyer.id, make_request("CARD"))

    orders = Order.query.order_by(Order.id).all()
    assert len(orders) == 2
    assert all(o.payment_status == PaymentStatus.PENDING for o in orders)
    assert all(o.escrow.status == EscrowStatus.HELD for o in orders)
    assert exc.value.details["order_ids"] == [o.id for o in orders]
    assert {o.payment_reference for o in orders} == {exc.value.details["reference"]}
    assert len(services.cart_service().get_cart(seed.buyer.id).items) == 2


def test_gateway_error_is_reported(seed, services, gateway, make_request):
    gateway.fail_with = RuntimeError("card network down")
    _fill(services, seed, kettles=0)
    with pytest.raises(PaymentInitializationFailed):
        services.checkout_service().checkout(seed.buyer.id, make_request("BANK_TRANSFER"))
    assert Order.query.count() == 1


def test_order_number_collision_is_retried(app, seed, services, make_request):
    numbers = iter(["BZR00000001111", "BZR00000001111", "BZR00000002222"])
    app.extensions["order_number_factory"] = lambda: next(numbers)
    _fill(services, seed)
    a, b = services.checkout_service().checkout(seed.buyer.id, make_request()).orders
    assert (a.order_number, b.order_number) == ("BZR00000001111", "BZR00000002222")
    assert len(a.items) == 1 and len(b.items) == 1


def test_order_number_exhaustion_fails_cleanly(app, seed, services, make_request):
    app.extensions["order_number_factory"] = lambda: "BZR00000003333"
    _fill(services, seed)
    with pytest.raises(CheckoutFailed):
        services.checkout_service().checkout(seed.buyer.id, make_request())
    assert Order.query.count() == 0
    assert db.session.get(Product, seed.lamp.id).quantity == 10


def test_failing_notifier_does_not_fail_checkout(app, seed, services, make_request):
    class BrokenNotifier:
        def notify(self, user_id, event_type, payload):
            raise RuntimeError("smtp down")

    app.extensions["notifier"] = BrokenNotifier()
    _fill(services, seed)
    result = services.checkout_service().checkout(seed.buyer.id, make_request())

    assert len(result.orders) == 2
    pending = OutboxEvent.query.filter(OutboxEvent.dispatched_at.is_(None)).all()
    assert len(pending) == 4
    assert all(e.attempts == 1 and "smtp down" in e.last_error for e in pending)


def test_base_and_variant_over_shared_stock_fail_validation(seed, services, make_request):
    carts = services.cart_service()
    carts.add_item(seed.buyer.id, seed.shirt.id, quantity=3)
    carts.add_item(seed.buyer.id, seed.shirt.id, seed.shirt_xl.id, quantity=2)
    seed.shirt.quantity = 4
    db.session.commit()
    before = _snapshot()

    with pytest.raises(CartValidationFailed) as exc:
        services.checkout_service().checkout(seed.buyer.id, make_request())

    assert exc.value.reasons == ['Product "Shirt" has insufficient stock']
    assert _snapshot() == before
