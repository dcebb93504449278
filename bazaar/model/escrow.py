# bazaar/model/escrow.py
from datetime import datetime
from ..extensions import db


class EscrowStatus:
    HELD = "HELD"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"


class EscrowLedger(db.Model):
    __tablename__ = "escrow_ledger"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), unique=True, nullable=False)
    buyer_id = db.Column(db.Integer, nullable=False, index=True)
    seller_ids = db.Column(db.JSON, nullable=False, default=list)

    amount_held = db.Column(db.BigInteger, nullable=False)
    amount_released = db.Column(db.BigInteger, nullable=False, default=0)
    amount_refunded = db.Column(db.BigInteger, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=EscrowStatus.HELD, index=True)

    dispute_id = db.Column(db.String(64))
    hold_reason = db.Column(db.String(255))
    release_reason = db.Column(db.String(255))
    refund_reason = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    order = db.relationship("Order", back_populates="escrow")

    def remaining(self) -> int:
        return self.amount_held - self.amount_released - self.amount_refunded

    def as_api(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "buyer_id": self.buyer_id,
            "seller_ids": list(self.seller_ids or []),
            "amount_held": self.amount_held,
            "amount_released": self.amount_released,
            "amount_refunded": self.amount_refunded,
            "remaining": self.remaining(),
            "status": self.status,
            "dispute_id": self.dispute_id,
            "hold_reason": self.hold_reason,
            "release_reason": self.release_reason,
            "refund_reason": self.refund_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
