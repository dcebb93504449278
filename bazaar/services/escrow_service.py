# bazaar/services/escrow_service.py
from __future__ import annotations
import logging
from datetime import datetime

from ..errors import (
    ConflictError, EscrowNotHeld, InvariantViolation, NothingToRelease, NotFoundError, ValidationError,
)
from ..extensions import db
from ..model import EscrowLedger, EscrowStatus, Order, Store
from .outbox import record_event

log = logging.getLogger(__name__)


def check_invariant(held: int, released: int, refunded: int, escrow_id=None) -> None:
    if released < 0 or refunded < 0 or released + refunded > held:
        log.critical("escrow %s would break held=%s released=%s refunded=%s",
                     escrow_id, held, released, refunded)
        raise InvariantViolation(
            "escrow released + refunded would exceed amount held",
            escrow_id=escrow_id, held=held, released=released, refunded=refunded,
        )


class EscrowService:
    """
    HELD -> RELEASED and HELD -> REFUNDED, both terminal. Flushes only; the
    caller owns the commit.
    """

    def open(self, order: Order, seller_ids: list[int], reason: str = "Order payment held in escrow") -> EscrowLedger:
        escrow = EscrowLedger(
            order_id=order.id,
            buyer_id=order.user_id,
            seller_ids=list(seller_ids),
            amount_held=order.total,
            amount_released=0,
            amount_refunded=0,
            status=EscrowStatus.HELD,
            hold_reason=reason,
        )
        db.session.add(escrow)
        db.session.flush()
        return escrow

    def get(self, escrow_id: int, lock: bool = False) -> EscrowLedger:
        q = EscrowLedger.query.filter(EscrowLedger.id == escrow_id)
        if lock:
            q = q.with_for_update()
        escrow = q.first()
        if not escrow:
            raise NotFoundError("Escrow ledger not found", escrow_id=escrow_id)
        if lock:
            # row lock means nothing if we keep a stale identity-map copy
            db.session.refresh(escrow)
        return escrow

    def for_order(self, order_id: int) -> EscrowLedger:
        escrow = EscrowLedger.query.filter_by(order_id=order_id).first()
        if not escrow:
            raise NotFoundError("Escrow ledger not found", order_id=order_id)
        return escrow

    def for_user(self, user_id: int, role: str = "buyer") -> list[EscrowLedger]:
        if role == "buyer":
            return EscrowLedger.query.filter_by(buyer_id=user_id).order_by(EscrowLedger.id.desc()).all()
        if role == "seller":
            # narrow to the stores this user owns in SQL; seller_ids is a JSON list checked in Python
            rows = (
                EscrowLedger.query
                .join(Order, EscrowLedger.order_id == Order.id)
                .join(Store, Order.store_id == Store.id)
                .filter(Store.owner_id == user_id)
                .order_by(EscrowLedger.id.desc())
                .all()
            )
            return [e for e in rows if user_id in (e.seller_ids or [])]
        raise ValidationError("role must be 'buyer' or 'seller'")

    def release(self, escrow_id: int, reason: str = "Order completed") -> EscrowLedger:
        return self._settle(escrow_id, EscrowStatus.RELEASED, reason)

    def refund(self, escrow_id: int, reason: str = "Order cancelled") -> EscrowLedger:
        return self._settle(escrow_id, EscrowStatus.REFUNDED, reason)

    def _settle(self, escrow_id: int, target: str, reason: str) -> EscrowLedger:
        escrow = self.get(escrow_id, lock=True)
        if escrow.status != EscrowStatus.HELD:
            raise EscrowNotHeld(escrow_id=escrow.id, status=escrow.status)

        remaining = escrow.remaining()
        if remaining <= 0:
            raise NothingToRelease(escrow_id=escrow.id)

        released, refunded = escrow.amount_released, escrow.amount_refunded
        values = {EscrowLedger.status: target, EscrowLedger.updated_at: datetime.utcnow()}
        if target == EscrowStatus.RELEASED:
            values[EscrowLedger.amount_released] = released + remaining
            values[EscrowLedger.release_reason] = reason
            check_invariant(escrow.amount_held, released + remaining, refunded, escrow.id)
        else:
            values[EscrowLedger.amount_refunded] = refunded + remaining
            values[EscrowLedger.refund_reason] = reason
            check_invariant(escrow.amount_held, released, refunded + remaining, escrow.id)

        # optimistic guard: only applies if nobody moved the row since we read it
        rows = (
            EscrowLedger.query
            .filter(
                EscrowLedger.id == escrow.id,
                EscrowLedger.status == EscrowStatus.HELD,
                EscrowLedger.amount_released == released,
                EscrowLedger.amount_refunded == refunded,
            )
            .update(values, synchronize_session=False)
        )
        if rows != 1:
            raise ConflictError("Escrow ledger changed concurrently", escrow_id=escrow.id)
        db.session.refresh(escrow)

        order = escrow.order
        event = "escrow.released" if target == EscrowStatus.RELEASED else "escrow.refunded"
        payload = {
            "escrow_id": escrow.id,
            "order_id": escrow.order_id,
            "order_number": order.order_number if order else "",
            "amount": remaining,
            "currency": order.currency if order else "",
            "reason": reason,
        }
        recipients = escrow.seller_ids if target == EscrowStatus.RELEASED else [escrow.buyer_id]
        for user_id in recipients or []:
            record_event(event, user_id, payload)

        log.info("escrow %s %s amount=%s reason=%s", escrow.id, target.lower(), remaining, reason)
        return escrow

    def attach_dispute(self, escrow_id: int, dispute_id: str) -> EscrowLedger:
        if not dispute_id:
            raise ValidationError("dispute_id is required")
        escrow = self.get(escrow_id)
        escrow.dispute_id = dispute_id
        db.session.flush()
        return escrow
