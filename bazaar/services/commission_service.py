# bazaar/services/commission_service.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import or_

from ..errors import ValidationError
from ..extensions import db
from ..model import CommissionRule, CommissionRecord, CommissionScope, Order
from ..utils.money import D, clamp, percent_of

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommissionQuote:
    commission_amount: int
    net_amount: int
    rule_applied: CommissionRule | None = None

    def as_api(self):
        return {
            "commission_amount": self.commission_amount,
            "net_amount": self.net_amount,
            "rule_applied": self.rule_applied.as_api() if self.rule_applied else None,
        }


def compute_commission(rule: CommissionRule | None, amount: int) -> CommissionQuote:
    """floor(amount * pct / 100) + fixed, clamped to [0, amount]."""
    amount = int(amount)
    commission = 0
    if rule is not None:
        if D(rule.percentage) > 0:
            commission = percent_of(amount, rule.percentage)
        if (rule.fixed_amount or 0) > 0:
            commission += int(rule.fixed_amount)
    commission = clamp(commission, 0, max(amount, 0))
    return CommissionQuote(commission, amount - commission, rule)


def select_rule(rules: Iterable[CommissionRule], store_id: int | None = None,
                category: str | None = None, at: datetime | None = None) -> CommissionRule | None:
    """
    STORE beats CATEGORY beats GLOBAL. A tier with no active in-window rule
    falls through to the next one. Newest rule wins inside a tier.
    """
    at = at or datetime.utcnow()
    live = [r for r in rules if r.is_active and r.in_window(at)]

    def newest(candidates):
        return max(candidates, key=lambda r: (r.created_at or datetime.min, r.id or 0), default=None)

    if store_id is not None:
        rule = newest(r for r in live if r.scope == CommissionScope.STORE and r.store_id == store_id)
        if rule:
            return rule
    if category:
        rule = newest(r for r in live if r.scope == CommissionScope.CATEGORY and r.category == category)
        if rule:
            return rule
    return newest(r for r in live if r.scope == CommissionScope.GLOBAL)


class CommissionResolver:
    def candidate_rules(self, store_id: int | None, category: str | None) -> list[CommissionRule]:
        scopes = [CommissionRule.scope == CommissionScope.GLOBAL]
        if store_id is not None:
            scopes.append((CommissionRule.scope == CommissionScope.STORE) & (CommissionRule.store_id == store_id))
        if category:
            scopes.append((CommissionRule.scope == CommissionScope.CATEGORY) & (CommissionRule.category == category))
        return CommissionRule.query.filter(CommissionRule.is_active.is_(True), or_(*scopes)).all()

    def resolve(self, store_id: int | None = None, category: str | None = None,
                amount: int = 0, at: datetime | None = None) -> CommissionQuote:
        if amount < 0:
            raise ValidationError("amount must be >= 0")
        rule = select_rule(self.candidate_rules(store_id, category), store_id, category, at)
        return compute_commission(rule, amount)

    def record(self, order: Order, quote: CommissionQuote) -> CommissionRecord:
        """Settlement-only: quoting call sites never persist."""
        record = CommissionRecord(
            order_id=order.id,
            store_id=order.store_id,
            rule_id=quote.rule_applied.id if quote.rule_applied else None,
            amount=quote.commission_amount,
            net_amount=quote.net_amount,
            status="PENDING",
        )
        db.session.add(record)
        db.session.flush()
        log.info("commission order=%s store=%s amount=%s rule=%s",
                 order.order_number, order.store_id, quote.commission_amount, record.rule_id)
        return record

    def create_rule(self, scope: str, percentage=0, fixed_amount: int = 0, store_id: int | None = None,
                    category: str | None = None, starts_at: datetime | None = None,
                    ends_at: datetime | None = None) -> CommissionRule:
        if scope not in CommissionScope.ALL:
            raise ValidationError(f"scope must be one of {', '.join(CommissionScope.ALL)}")
        if scope == CommissionScope.STORE and store_id is None:
            raise ValidationError("store_id is required for STORE rules")
        if scope == CommissionScope.CATEGORY and not category:
            raise ValidationError("category is required for CATEGORY rules")
        pct = D(percentage)
        if pct < 0 or pct > 100:
            raise ValidationError("percentage must be between 0 and 100")
        if fixed_amount < 0:
            raise ValidationError("fixed_amount must be >= 0")
        if starts_at and ends_at and ends_at < starts_at:
            raise ValidationError("ends_at must be after starts_at")
        rule = CommissionRule(
            scope=scope,
            store_id=store_id if scope == CommissionScope.STORE else None,
            category=category if scope == CommissionScope.CATEGORY else None,
            percentage=pct,
            fixed_amount=fixed_amount,
            starts_at=starts_at,
            ends_at=ends_at,
            is_active=True,
        )
        db.session.add(rule)
        db.session.flush()
        return rule

    def list_rules(self, store_id: int | None = None) -> list[CommissionRule]:
        q = CommissionRule.query.filter(CommissionRule.is_active.is_(True))
        if store_id is not None:
            q = q.filter(CommissionRule.store_id == store_id)
        return q.order_by(CommissionRule.created_at.desc(), CommissionRule.id.desc()).all()
