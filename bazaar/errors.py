# bazaar/errors.py
from __future__ import annotations
import logging

from flask import jsonify
from pydantic import ValidationError as SchemaError

from .utils.api import api_error

log = logging.getLogger(__name__)


class BazaarError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        self.details = details

    def as_api(self):
        return {"code": self.code, **self.details}


# ---- caller's fault, fixable by resubmission -------------------------------
class ValidationError(BazaarError):
    """Invalid request"""
    status_code = 422
    code = "validation_error"


class CartEmpty(ValidationError):
    """Cart is empty"""
    code = "cart_empty"


class CartValidationFailed(ValidationError):
    """Cart validation failed"""
    code = "cart_validation_failed"

    def __init__(self, reasons: list[str]):
        super().__init__(f"Cart validation failed: {', '.join(reasons)}", reasons=list(reasons))
        self.reasons = list(reasons)


class InvalidQuantity(ValidationError):
    """Quantity must be at least 1"""
    code = "invalid_quantity"


class CouponNotApplicable(ValidationError):
    """Coupon is not valid for this store"""
    code = "coupon_not_applicable"


class CouponExpired(ValidationError):
    """Coupon is not active at this time"""
    code = "coupon_expired"


class CouponMinimumNotMet(ValidationError):
    """Order amount is below the coupon minimum"""
    code = "coupon_minimum_not_met"


# ---- state changed underneath the caller -----------------------------------
class ConflictError(BazaarError):
    """Conflict with current state"""
    status_code = 409
    code = "conflict"


class OutOfStock(ConflictError):
    """Product not available in requested quantity"""
    code = "out_of_stock"


class ProductUnavailable(ConflictError):
    """Product not available"""
    code = "product_unavailable"


class CouponAlreadyUsed(ConflictError):
    """Coupon already used by this user"""
    code = "coupon_already_used"


class CouponExhausted(ConflictError):
    """Coupon usage limit reached"""
    code = "coupon_exhausted"


class EscrowNotHeld(ConflictError):
    """Escrow funds are not in held status"""
    code = "escrow_not_held"


class NothingToRelease(ConflictError):
    """No funds available in escrow"""
    code = "nothing_to_release"


class InvalidOrderTransition(ConflictError):
    """Order cannot move to the requested status"""
    code = "invalid_order_transition"


class CheckoutFailed(ConflictError):
    """Checkout could not be completed"""
    code = "checkout_failed"


# ---- lookups / access ------------------------------------------------------
class NotFoundError(BazaarError):
    """Not found"""
    status_code = 404
    code = "not_found"


class CouponNotFound(NotFoundError):
    """Invalid or expired coupon code"""
    code = "coupon_not_found"


class PermissionDenied(BazaarError):
    """Forbidden"""
    status_code = 403
    code = "forbidden"


# ---- money / external ------------------------------------------------------
class InsufficientFundsError(BazaarError):
    """Insufficient funds"""
    status_code = 402
    code = "insufficient_funds"


class InsufficientBalance(InsufficientFundsError):
    """Insufficient wallet balance"""
    code = "insufficient_balance"


class ExternalServiceError(BazaarError):
    """External service failed"""
    status_code = 502
    code = "external_service_error"


class PaymentInitializationFailed(ExternalServiceError):
    """Payment could not be initialized"""
    code = "payment_initialization_failed"


class PaymentVerificationFailed(ExternalServiceError):
    """Payment could not be verified"""
    code = "payment_verification_failed"


class InvariantViolation(BazaarError):
    """Ledger invariant violated"""
    status_code = 500
    code = "invariant_violation"


def register_error_handlers(app):
    @app.errorhandler(BazaarError)
    def handle_bazaar_error(e: BazaarError):
        if isinstance(e, InvariantViolation):
            log.critical("invariant violation: %s %s", e.message, e.details)
        r = jsonify(api_error(e.message, e.as_api()))
        r.status_code = e.status_code
        return r

    @app.errorhandler(SchemaError)
    def handle_schema_error(e: SchemaError):
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        r = jsonify(api_error("Invalid request body", {"code": ValidationError.code, "errors": errors}))
        r.status_code = 422
        return r
