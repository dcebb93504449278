import time
from types import SimpleNamespace

import pytest
from flask_jwt_extended import create_access_token

from bazaar import create_app
from bazaar.config import TestConfig
from bazaar.extensions import db
from bazaar.model import Product, ProductVariant, Store, User, Wallet
from bazaar.schemas import CheckoutRequest
from bazaar.services.payment import PaymentInitResult, PaymentVerification

ADDRESS = {"name": "Ada Obi", "phone": "08030000000", "line1": "1 Marina Road", "city": "Lagos"}


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedGateway:
    """Payment gateway double: records calls, can fail, stall or decline."""

    def __init__(self):
        self.init_calls = []
        self.verify_calls = []
        self.fail_with = None
        self.delay = 0.0
        self.verify_status = "success"
        self.verify_amount = None

    def initialize_payment(self, request):
        self.init_calls.append(request)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return PaymentInitResult(reference=request.reference,
                                 authorization_url=f"https://pay.test/{request.reference}")

    def verify_payment(self, reference):
        self.verify_calls.append(reference)
        amount = self.verify_amount
        if amount is None:
            amount = sum(r.amount for r in self.init_calls if r.reference == reference)
        return PaymentVerification(status=self.verify_status, amount=amount)


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def app(gateway):
    app = create_app(TestConfig, payment_gateway=gateway)
    app.extensions["cart_cache"].clock = FakeClock()
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def clock(app):
    return app.extensions["cart_cache"].clock


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seed(app):
    buyer = User(email="buyer@example.com", name="Buyer", role="user")
    other = User(email="other@example.com", name="Other Buyer", role="user")
    vendor_a = User(email="vendor-a@example.com", name="Vendor A", role="vendor")
    vendor_b = User(email="vendor-b@example.com", name="Vendor B", role="vendor")
    admin = User(email="admin@example.com", name="Admin", role="admin")
    db.session.add_all([buyer, other, vendor_a, vendor_b, admin])
    db.session.flush()

    store_a = Store(name="Store A", owner_id=vendor_a.id)
    store_b = Store(name="Store B", owner_id=vendor_b.id)
    db.session.add_all([store_a, store_b])
    db.session.flush()

    lamp = Product(store_id=store_a.id, name="Lamp", category="home", price=2000, quantity=10)
    kettle = Product(store_id=store_b.id, name="Kettle", category="kitchen", price=3000, quantity=10)
    shirt = Product(store_id=store_b.id, name="Shirt", category="fashion", price=1500, quantity=5)
    db.session.add_all([lamp, kettle, shirt])
    db.session.flush()

    shirt_xl = ProductVariant(product_id=shirt.id, name="XL", price=1800, quantity=2)
    db.session.add(shirt_xl)
    db.session.add(Wallet(user_id=buyer.id, balance=50_000))
    db.session.commit()

    return SimpleNamespace(
        buyer=buyer, other=other, vendor_a=vendor_a, vendor_b=vendor_b, admin=admin,
        store_a=store_a, store_b=store_b, lamp=lamp, kettle=kettle, shirt=shirt, shirt_xl=shirt_xl,
    )


@pytest.fixture
def auth(app):
    def headers(user):
        return {"Authorization": f"Bearer {create_access_token(identity=str(user.id))}"}
    return headers


def checkout_request(method="CARD", coupon=None, **extra):
    return CheckoutRequest.model_validate({
        "shipping_address": ADDRESS, "payment_method": method, "coupon_code": coupon, **extra,
    })


@pytest.fixture
def make_request():
    return checkout_request


@pytest.fixture
def services(app):
    from bazaar import services
    return services
