# bazaar/cli.py
from decimal import Decimal

import click
from flask.cli import with_appcontext
from flask_jwt_extended import create_access_token

from .errors import BazaarError
from .extensions import db
from .model import Store, User
from .services import outbox_dispatcher
from .services.commission_service import CommissionResolver
from .services.coupon_service import CouponEngine
from .services.reports import export_settlements
from .services.wallet import SqlWallet


def _fail(e: BazaarError):
    db.session.rollback()
    raise click.ClickException(e.message)


@click.command("create-user")
@click.option("--email", required=True)
@click.option("--name", required=True)
@click.option("--role", type=click.Choice(["user", "vendor", "admin"]), default="user", show_default=True)
@click.option("--store-name", help="Create a store owned by this user (vendors).")
@click.option("--wallet", "wallet_balance", type=int, default=0, help="Opening wallet balance, minor units.")
@with_appcontext
def create_user(email, name, role, store_name, wallet_balance):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        click.echo("Email already exists"); return
    u = User(email=email, name=name, role=role)
    db.session.add(u); db.session.flush()
    if store_name:
        db.session.add(Store(name=store_name, owner_id=u.id))
    if wallet_balance:
        SqlWallet().credit(u.id, wallet_balance, reference="opening-balance", description="Opening balance")
    db.session.commit()
    click.echo(f"User created: {u.id} {u.email} ({u.role})")


@click.command("issue-token")
@click.option("--email", required=True)
@with_appcontext
def issue_token(email):
    u = User.query.filter_by(email=email.strip().lower()).first()
    if not u:
        raise click.ClickException("User not found")
    click.echo(create_access_token(identity=str(u.id), additional_claims={"role": u.role}))


@click.command("create-coupon")
@click.option("--code", required=True)
@click.option("--type", "discount_type", type=click.Choice(["PERCENTAGE", "FIXED"], case_sensitive=False),
              required=True)
@click.option("--value", type=Decimal, required=True)
@click.option("--max-discount", type=int)
@click.option("--min-order", "min_order_amount", type=int)
@click.option("--store-id", type=int)
@click.option("--usage-limit", type=int, default=0, show_default=True, help="0 means unlimited.")
@click.option("--ends-at", type=click.DateTime())
@with_appcontext
def create_coupon(code, discount_type, value, max_discount, min_order_amount, store_id, usage_limit, ends_at):
    try:
        c = CouponEngine().create_coupon(
            code, discount_type.upper(), value, max_discount=max_discount,
            min_order_amount=min_order_amount, store_id=store_id, usage_limit=usage_limit, ends_at=ends_at,
        )
    except BazaarError as e:
        _fail(e)
    db.session.commit()
    click.echo(f"Coupon created: {c.code}")


@click.command("create-commission-rule")
@click.option("--scope", type=click.Choice(["GLOBAL", "CATEGORY", "STORE"], case_sensitive=False), required=True)
@click.option("--percentage", type=Decimal, default=Decimal("0"), show_default=True)
@click.option("--fixed", "fixed_amount", type=int, default=0, show_default=True)
@click.option("--store-id", type=int)
@click.option("--category")
@with_appcontext
def create_commission_rule(scope, percentage, fixed_amount, store_id, category):
    try:
        rule = CommissionResolver().create_rule(
            scope.upper(), percentage=percentage, fixed_amount=fixed_amount,
            store_id=store_id, category=category,
        )
    except BazaarError as e:
        _fail(e)
    db.session.commit()
    click.echo(f"Commission rule created: {rule.id} {rule.scope}")


@click.command("drain-outbox")
@click.option("--limit", type=int, default=100, show_default=True)
@with_appcontext
def drain_outbox(limit):
    delivered = outbox_dispatcher().drain(limit)
    click.echo(f"Delivered {delivered} event(s)")


@click.command("export-settlements")
@click.option("--out", "path", required=True, help="Target .csv or .xlsx file.")
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%d"]))
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%d"]), help="Exclusive.")
@with_appcontext
def export_settlements_cmd(path, start, end):
    try:
        rows = export_settlements(path, start, end)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Exported {rows} row(s) to {path}")


def register_cli(app):
    for cmd in (create_user, issue_token, create_coupon, create_commission_rule,
                drain_outbox, export_settlements_cmd):
        app.cli.add_command(cmd)
