import os
from datetime import timedelta


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    ENV = os.getenv("FLASK_ENV", "development")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-me")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=1)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # money, all amounts in minor units
    CURRENCY = os.getenv("CURRENCY", "NGN")
    SHIPPING_FLAT_FEE = int(os.getenv("SHIPPING_FLAT_FEE", "500"))
    FREE_SHIPPING_THRESHOLD = int(os.getenv("FREE_SHIPPING_THRESHOLD", "5000"))
    TAX_PERCENT = os.getenv("TAX_PERCENT", "5")

    # cart cache
    CART_TTL_SECONDS = int(os.getenv("CART_TTL_SECONDS", str(24 * 60 * 60)))
    CART_SWEEP_EVERY = int(os.getenv("CART_SWEEP_EVERY", "200"))

    # checkout / payments
    ORDER_NUMBER_PREFIX = "BZR"
    PAYMENT_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "15"))
    PAYMENT_CALLBACK_URL = os.getenv(
        "PAYMENT_CALLBACK_URL", "http://localhost:5000/orders/payments/callback"
    )
    PAYMENT_REFERENCE_PREFIX = "bazaar-checkout"

    @staticmethod
    def init_app(app):
        if not os.getenv("DATABASE_URL"):
            os.makedirs(app.instance_path, exist_ok=True)
            app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'bazaar.db')}"
        else:
            app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL")


class TestConfig(Config):
    TESTING = True
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    LOG_LEVEL = "DEBUG"
    PAYMENT_TIMEOUT_SECONDS = 0.5

    @staticmethod
    def init_app(app):
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
