# bazaar/commission/routes.py
from __future__ import annotations
from flask import request

from ..extensions import db
from ..schemas import CommissionQuoteRequest, CommissionRuleCreate
from ..services.commission_service import CommissionResolver
from ..utils.api import ok
from ..utils.decorators import parse_body, role_at_least
from . import bp


@bp.post("/rules")
@role_at_least("admin", "Only admins can create commission rules")
def create_rule(user):
    body = parse_body(CommissionRuleCreate)
    rule = CommissionResolver().create_rule(**body.model_dump())
    db.session.commit()
    return ok("Commission rule created", rule.as_api(), 201)


@bp.get("/rules")
@role_at_least("admin", "Only admins can list commission rules")
def list_rules(user):
    store_id = request.args.get("store_id", type=int)
    return ok("commission rules", [r.as_api() for r in CommissionResolver().list_rules(store_id)])


@bp.post("/quote")
@role_at_least("vendor")
def quote(user):
    body = parse_body(CommissionQuoteRequest)
    q = CommissionResolver().resolve(store_id=body.store_id, category=body.category, amount=body.amount)
    return ok("Commission calculated", q.as_api())
