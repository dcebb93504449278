import pytest

from bazaar.errors import InvalidOrderTransition, NotFoundError, PermissionDenied
from bazaar.extensions import db
from bazaar.model import (
    CommissionRecord, EscrowStatus, Notification, OrderStatus, PaymentStatus, Product, Wallet,
)
from bazaar.services.commission_service import CommissionResolver


def _checkout(services, seed, make_request, method="CARD"):
    carts = services.cart_service()
    carts.add_item(seed.buyer.id, seed.lamp.id, quantity=2)
    carts.add_item(seed.buyer.id, seed.kettle.id, quantity=2)
    return services.checkout_service().checkout(seed.buyer.id, make_request(method))


def _balance(user):
    wallet = Wallet.query.filter_by(user_id=user.id).first()
    return wallet.balance if wallet else 0


def test_confirm_payment_settles_all_orders(seed, services, gateway, make_request):
    result = _checkout(services, seed, make_request)
    orders = services.order_service().confirm_payment(result.payment.reference)

    assert [o.status for o in orders] == [OrderStatus.CONFIRMED] * 2
    assert [o.payment_status for o in orders] == [PaymentStatus.SUCCESS] * 2
    assert all(o.paid_at is not None for o in orders)
    assert Notification.query.filter_by(event_type="order.payment_confirmed").count() == 2

    services.order_service().confirm_payment(result.payment.reference)
    assert len(gateway.verify_calls) == 1


def test_declined_or_short_payment_is_marked_failed(seed, services, gateway, make_request):
    result = _checkout(services, seed, make_request)
    gateway.verify_amount = 100
    orders = services.order_service().confirm_payment(result.payment.reference)
    assert [o.payment_status for o in orders] == [PaymentStatus.FAILED] * 2
    assert [o.status for o in orders] == [OrderStatus.PENDING] * 2


def test_payment_landing_after_cancel_goes_back_to_buyer(seed, services, gateway, make_request):
    result = _checkout(services, seed, make_request)
    a, b = result.orders
    svc = services.order_service()
    svc.cancel(a.id, seed.buyer, reason="Changed my mind")
    assert _balance(seed.buyer) == 50_000

    orders = svc.confirm_payment(result.payment.reference)

    assert [(o.status, o.payment_status) for o in orders] == [
        (OrderStatus.CANCELLED, PaymentStatus.REFUNDED),
        (OrderStatus.CONFIRMED, PaymentStatus.SUCCESS),
    ]
    assert a.escrow.status == EscrowStatus.REFUNDED
    assert b.escrow.status == EscrowStatus.HELD
    assert _balance(seed.buyer) == 50_000 + 4700
    assert Notification.query.filter_by(event_type="order.payment_refunded").count() == 1

    svc.confirm_payment(result.payment.reference)
    assert len(gateway.verify_calls) == 1
    assert _balance(seed.buyer) == 50_000 + 4700


def test_short_payment_only_needs_to_cover_live_orders(seed, services, gateway, make_request):
    result = _checkout(services, seed, make_request)
    a, b = result.orders
    svc = services.order_service()
    svc.cancel(a.id, seed.buyer)
    gateway.verify_amount = 6300

    svc.confirm_payment(result.payment.reference)

    assert b.payment_status == PaymentStatus.SUCCESS
    assert a.payment_status == PaymentStatus.REFUNDED
    assert _balance(seed.buyer) == 50_000


def test_unknown_reference(seed, services):
    with pytest.raises(NotFoundError):
        services.order_service().confirm_payment("nope")


def test_only_the_vendor_ships_and_only_after_payment(seed, services, make_request):
    a, b = _checkout(services, seed, make_request).orders
    svc = services.order_service()

    with pytest.raises(InvalidOrderTransition):
        svc.mark_shipped(a.id, seed.vendor_a)

    svc.confirm_payment(a.payment_reference)
    with pytest.raises(PermissionDenied):
        svc.mark_shipped(a.id, seed.vendor_b)

    shipped = svc.mark_shipped(a.id, seed.vendor_a)
    assert shipped.status == OrderStatus.SHIPPED
    assert shipped.shipped_at is not None
    assert svc.mark_shipped(b.id, seed.admin).status == OrderStatus.SHIPPED


def test_delivery_releases_escrow_minus_commission(seed, services, make_request):
    resolver = CommissionResolver()
    resolver.create_rule("GLOBAL", percentage=10)
    resolver.create_rule("CATEGORY", percentage=5, fixed_amount=50, category="kitchen")
    db.session.commit()

    a, b = _checkout(services, seed, make_request, method="WALLET").orders
    svc = services.order_service()
    for order, vendor in ((a, seed.vendor_a), (b, seed.vendor_b)):
        svc.mark_shipped(order.id, vendor)
        delivered = svc.confirm_delivery(seed.buyer.id, order.id)
        assert delivered.status == OrderStatus.DELIVERED
        assert delivered.escrow.status == EscrowStatus.RELEASED
        assert delivered.escrow.amount_released == delivered.total

    rec_a = CommissionRecord.query.filter_by(order_id=a.id).one()
    rec_b = CommissionRecord.query.filter_by(order_id=b.id).one()
    assert (rec_a.amount, rec_a.net_amount) == (470, 4230)      # global 10% of 4 700
    assert (rec_b.amount, rec_b.net_amount) == (365, 5935)      # kitchen 5% of 6 300 + 50
    assert _balance(seed.vendor_a) == 4230
    assert _balance(seed.vendor_b) == 5935


def test_only_the_buyer_confirms_delivery(seed, services, make_request):
    a, _ = _checkout(services, seed, make_request, method="WALLET").orders
    svc = services.order_service()
    svc.mark_shipped(a.id, seed.vendor_a)
    with pytest.raises(PermissionDenied):
        svc.confirm_delivery(seed.other.id, a.id)
    with pytest.raises(InvalidOrderTransition):
        svc.cancel(a.id, seed.buyer)


def test_cancel_refunds_paid_order_and_restocks(seed, services, make_request):
    a, b = _checkout(services, seed, make_request, method="WALLET").orders
    assert _balance(seed.buyer) == 50_000 - 11_000

    cancelled = services.order_service().cancel(a.id, seed.buyer, reason="Ordered by mistake")

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.escrow.status == EscrowStatus.REFUNDED
    assert cancelled.escrow.amount_refunded == 4700
    assert cancelled.escrow.refund_reason == "Ordered by mistake"
    assert _balance(seed.buyer) == 50_000 - 11_000 + 4700
    assert db.session.get(Product, seed.lamp.id).quantity == 10
    assert db.session.get(Product, seed.kettle.id).quantity == 8


def test_cancel_unpaid_order_refunds_escrow_without_wallet_credit(seed, services, make_request):
    a, _ = _checkout(services, seed, make_request).orders
    services.order_service().cancel(a.id, seed.vendor_a)
    assert a.escrow.status == EscrowStatus.REFUNDED
    assert _balance(seed.buyer) == 50_000


def test_strangers_cannot_see_or_cancel(seed, services, make_request):
    a, _ = _checkout(services, seed, make_request).orders
    svc = services.order_service()
    with pytest.raises(PermissionDenied):
        svc.get_order(a.id, actor=seed.other)
    with pytest.raises(PermissionDenied):
        svc.cancel(a.id, seed.vendor_b)
    assert svc.get_order(a.id, actor=seed.vendor_a).id == a.id


def test_list_orders_paginates_newest_first(seed, services, make_request):
    _checkout(services, seed, make_request)
    page = services.order_service().list_orders(seed.buyer.id, page=1, per_page=1)
    assert page.total == 2
    assert len(page.items) == 1
    assert services.order_service().list_orders(seed.other.id).total == 0
