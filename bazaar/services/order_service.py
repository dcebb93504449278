# bazaar/services/order_service.py
from __future__ import annotations
import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from ..errors import BazaarError, InvalidOrderTransition, NotFoundError, PermissionDenied
from ..extensions import db
from ..model import Order, OrderStatus, PaymentStatus, User
from .commission_service import CommissionResolver
from .escrow_service import EscrowService
from .inventory import SqlCatalog
from .outbox import OutboxDispatcher, record_event
from .payment import PaymentGateway, verify_with_timeout
from .wallet import SqlWallet

log = logging.getLogger(__name__)


def _event_payload(order: Order, **extra):
    return {"order_id": order.id, "order_number": order.order_number, **extra}


class OrderService:
    """
    Post-checkout lifecycle. Each public operation is one transaction: it
    commits on success and rolls back on any error.
    """

    def __init__(self, escrow: EscrowService, commissions: CommissionResolver, wallet: SqlWallet,
                 catalog: SqlCatalog, gateway: PaymentGateway, dispatcher: OutboxDispatcher,
                 payment_timeout: float = 15):
        self.escrow = escrow
        self.commissions = commissions
        self.wallet = wallet
        self.catalog = catalog
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.payment_timeout = float(payment_timeout)

    # ---- reads --------------------------------------------------------------
    def get_order(self, order_id: int, actor: User | None = None) -> Order:
        order = db.session.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found", order_id=order_id)
        if actor is not None and not self._can_view(order, actor):
            raise PermissionDenied("You cannot view this order")
        return order

    def list_orders(self, user_id: int, page: int = 1, per_page: int = 20, status: str | None = None):
        q = Order.query.filter(Order.user_id == user_id)
        if status:
            q = q.filter(Order.status == status.upper())
        per_page = min(max(int(per_page), 1), 100)
        return q.order_by(Order.created_at.desc(), Order.id.desc()).paginate(
            page=max(int(page), 1), per_page=per_page, error_out=False
        )

    @staticmethod
    def _can_view(order: Order, actor: User) -> bool:
        return actor.role == "admin" or order.user_id == actor.id or order.store.owner_id == actor.id

    # ---- payment ------------------------------------------------------------
    def confirm_payment(self, reference: str) -> list[Order]:
        """
        Verify a gateway reference and settle every order that carries it.
        Orders already marked paid are left untouched.

        An order cancelled before its payment landed is not settled: its
        escrow was already refunded empty, so the captured amount goes back
        to the buyer's wallet and the order is marked REFUNDED.
        """
        orders = Order.query.filter_by(payment_reference=reference).order_by(Order.id.asc()).all()
        if not orders:
            raise NotFoundError("No orders for this payment reference", reference=reference)

        settled = (PaymentStatus.SUCCESS, PaymentStatus.REFUNDED)
        unpaid = [o for o in orders if o.payment_status not in settled]
        if not unpaid:
            return orders

        verification = verify_with_timeout(self.gateway, reference, self.payment_timeout)
        live = [o for o in unpaid if o.status != OrderStatus.CANCELLED]
        voided = [o for o in unpaid if o.status == OrderStatus.CANCELLED]
        due = sum(o.total for o in orders if o.status != OrderStatus.CANCELLED)

        with self._transaction():
            if verification.succeeded and verification.amount >= due:
                paid_at = verification.paid_at or datetime.utcnow()
                for order in live:
                    order.payment_status = PaymentStatus.SUCCESS
                    order.paid_at = paid_at
                    if order.status == OrderStatus.PENDING:
                        order.status = OrderStatus.CONFIRMED
                    record_event("order.payment_confirmed", order.user_id, _event_payload(order))

                # cancelled orders paid before cancelling were refunded by cancel()
                spare = verification.amount - due - sum(
                    o.total for o in orders if o.status == OrderStatus.CANCELLED and o.payment_status in settled
                )
                for order in voided:
                    amount = min(order.total, max(spare, 0))
                    spare -= amount
                    self.wallet.credit(order.user_id, amount, reference=order.order_number,
                                       description=f"Refund for cancelled order {order.order_number}")
                    order.payment_status = PaymentStatus.REFUNDED
                    order.paid_at = paid_at
                    record_event("order.payment_refunded", order.user_id, _event_payload(order, amount=amount))
                log.info("payment %s confirmed for %d order(s), %d refunded",
                         reference, len(live), len(voided))
            else:
                for order in unpaid:
                    order.payment_status = PaymentStatus.FAILED
                log.warning("payment %s not confirmed: status=%s amount=%s due=%s",
                            reference, verification.status, verification.amount, due)

        self._dispatch()
        return orders

    # ---- fulfilment ---------------------------------------------------------
    def mark_shipped(self, order_id: int, actor: User) -> Order:
        order = self.get_order(order_id)
        if actor.role != "admin" and order.store.owner_id != actor.id:
            raise PermissionDenied("Only the vendor can ship this order")

        with self._transaction():
            self._move(order, OrderStatus.SHIPPED)
            order.shipped_at = datetime.utcnow()
            record_event("order.shipped", order.user_id, _event_payload(order))

        self._dispatch()
        return order

    def confirm_delivery(self, user_id: int, order_id: int) -> Order:
        """Buyer confirms receipt: escrow goes to the seller minus commission."""
        order = self.get_order(order_id)
        if order.user_id != user_id:
            raise PermissionDenied("Only the buyer can confirm delivery")

        with self._transaction():
            self._move(order, OrderStatus.DELIVERED)
            order.delivered_at = datetime.utcnow()

            escrow = self.escrow.for_order(order.id)
            if escrow.remaining() > 0:
                escrow = self.escrow.release(escrow.id, reason="Order delivered")
                categories = {item.category for item in order.items}
                category = categories.pop() if len(categories) == 1 else None
                quote = self.commissions.resolve(order.store_id, category, escrow.amount_released)
                self.commissions.record(order, quote)
                self.wallet.credit(order.store.owner_id, quote.net_amount, reference=order.order_number,
                                   description=f"Settlement for order {order.order_number}")
            record_event("order.delivered", order.user_id, _event_payload(order))

        self._dispatch()
        return order

    def cancel(self, order_id: int, actor: User, reason: str | None = None) -> Order:
        order = self.get_order(order_id)
        if actor.role != "admin" and actor.id not in (order.user_id, order.store.owner_id):
            raise PermissionDenied("You cannot cancel this order")
        reason = reason or "Order cancelled"

        with self._transaction():
            self._move(order, OrderStatus.CANCELLED)
            order.cancelled_at = datetime.utcnow()

            escrow = self.escrow.for_order(order.id)
            if escrow.remaining() > 0:
                escrow = self.escrow.refund(escrow.id, reason=reason)
                if order.payment_status == PaymentStatus.SUCCESS:
                    self.wallet.credit(order.user_id, escrow.amount_refunded, reference=order.order_number,
                                       description=f"Refund for order {order.order_number}")

            for item in order.items:
                self.catalog.restock(item.product_id, item.variant_id, item.quantity)
            record_event("order.cancelled", order.user_id, _event_payload(order, reason=reason))

        self._dispatch()
        return order

    # ---- helpers ------------------------------------------------------------
    @staticmethod
    @contextmanager
    def _transaction():
        try:
            yield db.session
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            log.exception("order update failed")
            raise
        except BazaarError:
            db.session.rollback()
            raise

    @staticmethod
    def _move(order: Order, target: str) -> None:
        if not order.can_move_to(target):
            raise InvalidOrderTransition(
                f"Cannot move order from {order.status} to {target}",
                order_id=order.id, status=order.status, target=target,
            )
        log.info("order %s %s -> %s", order.order_number, order.status, target)
        order.status = target

    def _dispatch(self) -> None:
        try:
            self.dispatcher.drain()
        except Exception:
            db.session.rollback()
            log.exception("order notification dispatch failed")

