# bazaar/model/wallet.py
from datetime import datetime
from ..extensions import db


class Wallet(db.Model):
    __tablename__ = "wallet"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), unique=True, nullable=False)
    balance = db.Column(db.BigInteger, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class WalletTransaction(db.Model):
    __tablename__ = "wallet_transaction"

    id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallet.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    amount = db.Column(db.BigInteger, nullable=False)
    kind = db.Column(db.String(8), nullable=False)   # DEBIT | CREDIT
    reference = db.Column(db.String(80), index=True)
    description = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
