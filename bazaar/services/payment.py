# bazaar/services/payment.py
"""
Payment gateway contract. Only initialize/verify are used; provider wire
formats live behind implementations of ``PaymentGateway``.
"""
from __future__ import annotations
import logging
import secrets
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from ..errors import ExternalServiceError, PaymentInitializationFailed, PaymentVerificationFailed

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInitRequest:
    amount: int
    payer_email: str | None
    reference: str
    callback_url: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentInitResult:
    reference: str
    authorization_url: str | None = None


@dataclass(frozen=True)
class PaymentVerification:
    status: str            # "success" | "failed" | "pending"
    amount: int
    paid_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class PaymentGateway(Protocol):
    def initialize_payment(self, request: PaymentInitRequest) -> PaymentInitResult: ...

    def verify_payment(self, reference: str) -> PaymentVerification: ...


class SandboxPaymentGateway:
    """In-process gateway for development: every initialized payment verifies as paid."""

    def __init__(self, base_url: str = "https://sandbox.bazaar.local/pay"):
        self.base_url = base_url
        self._payments: dict[str, PaymentInitRequest] = {}
        self._lock = threading.Lock()

    def initialize_payment(self, request: PaymentInitRequest) -> PaymentInitResult:
        with self._lock:
            self._payments[request.reference] = request
        token = secrets.token_urlsafe(8)
        return PaymentInitResult(
            reference=request.reference,
            authorization_url=f"{self.base_url}/{token}?reference={request.reference}",
        )

    def verify_payment(self, reference: str) -> PaymentVerification:
        with self._lock:
            request = self._payments.get(reference)
        if request is None:
            return PaymentVerification(status="failed", amount=0)
        return PaymentVerification(status="success", amount=request.amount, paid_at=datetime.utcnow())


def call_with_timeout(fn, *args, timeout: float, error_cls=ExternalServiceError):
    """
    One bounded attempt at a gateway call. The worker thread is abandoned on
    timeout; the gateway must not touch the database session.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="payment-gateway")
    try:
        future = pool.submit(fn, *args)
        return future.result(timeout=timeout)
    except FuturesTimeout:
        log.warning("payment gateway call %s timed out after %ss", getattr(fn, "__name__", fn), timeout)
        raise error_cls(f"payment gateway timed out after {timeout}s")
    except ExternalServiceError:
        raise
    except Exception as e:
        log.warning("payment gateway call %s failed: %s", getattr(fn, "__name__", fn), e)
        raise error_cls(f"payment gateway error: {e}") from e
    finally:
        pool.shutdown(wait=False)


def initialize_with_timeout(gateway: PaymentGateway, request: PaymentInitRequest, timeout: float) -> PaymentInitResult:
    return call_with_timeout(gateway.initialize_payment, request, timeout=timeout,
                             error_cls=PaymentInitializationFailed)


def verify_with_timeout(gateway: PaymentGateway, reference: str, timeout: float) -> PaymentVerification:
    return call_with_timeout(gateway.verify_payment, reference, timeout=timeout,
                             error_cls=PaymentVerificationFailed)
