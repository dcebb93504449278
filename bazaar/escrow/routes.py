# bazaar/escrow/routes.py
from __future__ import annotations
from flask import request

from ..errors import PermissionDenied
from ..extensions import db
from ..schemas import DisputeRequest, EscrowActionRequest
from ..services import outbox_dispatcher
from ..services.escrow_service import EscrowService
from ..utils.api import ok
from ..utils.decorators import login_required, parse_body, role_at_least
from . import bp


def _ensure_party(user, escrow):
    if user.role == "admin":
        return
    if user.id != escrow.buyer_id and user.id not in (escrow.seller_ids or []):
        raise PermissionDenied("You are not a party to this escrow")


@bp.get("")
@login_required
def my_ledgers(user):
    role = request.args.get("role", "buyer")
    rows = EscrowService().for_user(user.id, role)
    return ok("escrow ledgers", [e.as_api() for e in rows])


@bp.get("/order/<int:order_id>")
@login_required
def for_order(user, order_id: int):
    escrow = EscrowService().for_order(order_id)
    _ensure_party(user, escrow)
    return ok("escrow ledger", escrow.as_api())


@bp.post("/<int:escrow_id>/dispute")
@login_required
def dispute(user, escrow_id: int):
    body = parse_body(DisputeRequest)
    svc = EscrowService()
    _ensure_party(user, svc.get(escrow_id))
    escrow = svc.attach_dispute(escrow_id, body.dispute_id)
    db.session.commit()
    return ok("Dispute attached", escrow.as_api())


@bp.post("/<int:escrow_id>/release")
@role_at_least("admin", "Only admins can release escrow")
def release(user, escrow_id: int):
    body = parse_body(EscrowActionRequest)
    try:
        escrow = EscrowService().release(escrow_id, reason=body.reason or "Released by admin")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    outbox_dispatcher().drain()
    return ok("Escrow released", escrow.as_api())


@bp.post("/<int:escrow_id>/refund")
@role_at_least("admin", "Only admins can refund escrow")
def refund(user, escrow_id: int):
    body = parse_body(EscrowActionRequest)
    try:
        escrow = EscrowService().refund(escrow_id, reason=body.reason or "Refunded by admin")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    outbox_dispatcher().drain()
    return ok("Escrow refunded", escrow.as_api())
