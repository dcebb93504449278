# --- bazaar/__init__.py ---
import logging

from flask import Flask

from .cache import CartCache
from .config import Config
from .errors import register_error_handlers
from .extensions import db, jwt, cors, migrate, enable_sqlite_transactions
from .services.outbox import InAppNotifier
from .services.payment import SandboxPaymentGateway
from .utils.api import ok, err


def _configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    logging.getLogger("bazaar").setLevel(level)
    app.logger.setLevel(level)


def _register_jwt_handlers():
    @jwt.unauthorized_loader
    def missing_token(reason):
        return err("Unauthorized", 401, {"code": "unauthorized", "reason": reason})

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return err("Invalid token", 401, {"code": "invalid_token", "reason": reason})

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return err("Token has expired", 401, {"code": "token_expired"})


def create_app(config=None, payment_gateway=None, notifier=None):
    app = Flask(__name__, instance_relative_config=True)

    config = config or Config
    app.config.from_object(config)
    config.init_app(app)
    _configure_logging(app)

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": "*"}})
    migrate.init_app(app, db)
    _register_jwt_handlers()

    # Collaborators, one set per app
    CartCache.init_app(app)
    app.extensions["payment_gateway"] = payment_gateway or SandboxPaymentGateway()
    app.extensions["notifier"] = notifier or InAppNotifier()

    # Register blueprints
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .escrow import bp as escrow_bp; app.register_blueprint(escrow_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .commission import bp as commission_bp; app.register_blueprint(commission_bp)
    from .notification import bp as notification_bp; app.register_blueprint(notification_bp)

    register_error_handlers(app)

    from .cli import register_cli
    register_cli(app)

    @app.get("/")
    def health():
        return ok("API running", {"currency": app.config["CURRENCY"]})

    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            enable_sqlite_transactions(db.engine)
        db.create_all()
        app.logger.info("bazaar app created (db=%s)", db.engine.url.render_as_string(hide_password=True))

    return app
