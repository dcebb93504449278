from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from bazaar.errors import ValidationError
from bazaar.extensions import db
from bazaar.services.commission_service import CommissionResolver, compute_commission


def _rule(percentage="0", fixed=0):
    return SimpleNamespace(id=1, percentage=Decimal(percentage), fixed_amount=fixed)


def test_commission_is_percent_plus_fixed_floored():
    quote = compute_commission(_rule("7.5", 100), 10_001)
    assert quote.commission_amount == 750 + 100
    assert quote.net_amount == 10_001 - 850


def test_commission_never_exceeds_amount():
    for amount in (0, 1, 50, 99):
        quote = compute_commission(_rule("10", 100), amount)
        assert 0 <= quote.commission_amount <= amount
        assert quote.commission_amount + quote.net_amount == amount


def test_no_rule_means_no_commission():
    quote = compute_commission(None, 5000)
    assert (quote.commission_amount, quote.net_amount, quote.rule_applied) == (0, 5000, None)


def test_store_beats_category_beats_global(seed):
    resolver = CommissionResolver()
    g = resolver.create_rule("GLOBAL", percentage=5)
    c = resolver.create_rule("CATEGORY", percentage=8, category="home")
    s = resolver.create_rule("STORE", percentage=10, store_id=seed.store_a.id)
    db.session.commit()

    assert resolver.resolve(seed.store_a.id, "home", 1000).rule_applied.id == s.id
    assert resolver.resolve(seed.store_b.id, "home", 1000).rule_applied.id == c.id
    assert resolver.resolve(seed.store_b.id, "kitchen", 1000).rule_applied.id == g.id


def test_expired_store_rule_falls_through(seed):
    resolver = CommissionResolver()
    g = resolver.create_rule("GLOBAL", percentage=5)
    past = datetime.utcnow() - timedelta(days=10)
    resolver.create_rule("STORE", percentage=10, store_id=seed.store_a.id,
                         starts_at=past, ends_at=past + timedelta(days=1))
    db.session.commit()
    quote = resolver.resolve(seed.store_a.id, None, 2000)
    assert quote.rule_applied.id == g.id
    assert quote.commission_amount == 100


def test_newest_rule_wins_inside_a_tier(seed):
    resolver = CommissionResolver()
    resolver.create_rule("GLOBAL", percentage=5)
    newer = resolver.create_rule("GLOBAL", percentage=3)
    db.session.commit()
    assert resolver.resolve(amount=1000).rule_applied.id == newer.id


def test_rule_validation(app):
    resolver = CommissionResolver()
    with pytest.raises(ValidationError):
        resolver.create_rule("STORE", percentage=5)
    with pytest.raises(ValidationError):
        resolver.create_rule("CATEGORY", percentage=5)
    with pytest.raises(ValidationError):
        resolver.create_rule("GLOBAL", percentage=101)
    with pytest.raises(ValidationError):
        resolver.resolve(amount=-1)
