# --- bazaar/model/commission.py ---
from datetime import datetime
from ..extensions import db


class CommissionScope:
    GLOBAL = "GLOBAL"
    CATEGORY = "CATEGORY"
    STORE = "STORE"

    ALL = (GLOBAL, CATEGORY, STORE)


class CommissionRule(db.Model):
    __tablename__ = "commission_rule"

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(16), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("store.id"), nullable=True, index=True)
    category = db.Column(db.String(64), nullable=True, index=True)

    percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)   # 7.50 == 7.5 %
    fixed_amount = db.Column(db.BigInteger, nullable=False, default=0)

    starts_at = db.Column(db.DateTime, nullable=True)
    ends_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def in_window(self, at: datetime) -> bool:
        if self.starts_at and at < self.starts_at:
            return False
        if self.ends_at and at > self.ends_at:
            return False
        return True

    def as_api(self):
        return {
            "id": self.id,
            "scope": self.scope,
            "store_id": self.store_id,
            "category": self.category,
            "percentage": str(self.percentage),
            "fixed_amount": self.fixed_amount,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CommissionRecord(db.Model):
    """Append-only: which rule priced an order's settlement and what it took."""
    __tablename__ = "commission_record"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, nullable=False, index=True)
    rule_id = db.Column(db.Integer, db.ForeignKey("commission_rule.id"), nullable=True)
    amount = db.Column(db.BigInteger, nullable=False)
    net_amount = db.Column(db.BigInteger, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING")
    calculated_at = db.Column(db.DateTime, default=datetime.utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "store_id": self.store_id,
            "rule_id": self.rule_id,
            "amount": self.amount,
            "net_amount": self.net_amount,
            "status": self.status,
            "calculated_at": self.calculated_at.isoformat() if self.calculated_at else None,
        }
