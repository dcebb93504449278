# bazaar/services/wallet.py
from __future__ import annotations
import logging

from ..errors import InsufficientBalance, ValidationError
from ..extensions import db
from ..model import Wallet, WalletTransaction

log = logging.getLogger(__name__)


class SqlWallet:
    """Wallet ledger collaborator. Flushes only; the caller owns the commit."""

    def _wallet(self, user_id: int, create: bool = False) -> Wallet | None:
        wallet = Wallet.query.filter_by(user_id=user_id).first()
        if wallet is None and create:
            wallet = Wallet(user_id=user_id, balance=0)
            db.session.add(wallet)
            db.session.flush()
        return wallet

    def balance(self, user_id: int) -> int:
        wallet = self._wallet(user_id)
        return int(wallet.balance) if wallet else 0

    def debit(self, user_id: int, amount: int, reference: str | None = None,
              description: str = "Marketplace order payment") -> WalletTransaction:
        if amount <= 0:
            raise ValidationError("debit amount must be positive")
        wallet = self._wallet(user_id)
        if wallet is None:
            raise InsufficientBalance(balance=0, required=amount)
        rows = (
            Wallet.query
            .filter(Wallet.id == wallet.id, Wallet.balance >= amount)
            .update({Wallet.balance: Wallet.balance - amount}, synchronize_session="fetch")
        )
        if rows != 1:
            raise InsufficientBalance(balance=int(wallet.balance), required=amount)
        return self._record(wallet, user_id, amount, "DEBIT", reference, description)

    def credit(self, user_id: int, amount: int, reference: str | None = None,
               description: str = "Marketplace settlement") -> WalletTransaction | None:
        if amount <= 0:
            return None
        wallet = self._wallet(user_id, create=True)
        Wallet.query.filter(Wallet.id == wallet.id).update(
            {Wallet.balance: Wallet.balance + amount}, synchronize_session="fetch"
        )
        return self._record(wallet, user_id, amount, "CREDIT", reference, description)

    def _record(self, wallet, user_id, amount, kind, reference, description):
        tx = WalletTransaction(
            wallet_id=wallet.id, user_id=user_id, amount=amount, kind=kind,
            reference=reference, description=description,
        )
        db.session.add(tx)
        db.session.flush()
        log.info("wallet %s user=%s amount=%s ref=%s", kind.lower(), user_id, amount, reference)
        return tx
