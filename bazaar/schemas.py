# bazaar/schemas.py
"""Request bodies. Every model is closed: unknown fields are rejected."""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Closed(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# ---- cart -------------------------------------------------------------------
class AddCartItem(Closed):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int = 1


class UpdateCartItem(Closed):
    quantity: int


# ---- checkout ---------------------------------------------------------------
class Address(Closed):
    name: str = Field(min_length=1, max_length=120)
    phone: str = Field(min_length=3, max_length=32)
    line1: str = Field(min_length=1, max_length=255)
    line2: Optional[str] = None
    city: str = Field(min_length=1, max_length=120)
    state: Optional[str] = None
    country: str = Field(default="NG", min_length=2, max_length=2)
    postal_code: Optional[str] = None


class CheckoutRequest(Closed):
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: Literal["WALLET", "CARD", "BANK_TRANSFER"]
    coupon_code: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    payer_email: Optional[str] = None

    @field_validator("payment_method", mode="before")
    @classmethod
    def upper_method(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("coupon_code")
    @classmethod
    def blank_coupon(cls, v):
        return v or None


class ConfirmPaymentRequest(Closed):
    reference: str = Field(min_length=1)


class CancelOrderRequest(Closed):
    reason: Optional[str] = Field(default=None, max_length=255)


# ---- escrow -----------------------------------------------------------------
class DisputeRequest(Closed):
    dispute_id: str = Field(min_length=1, max_length=64)


class EscrowActionRequest(Closed):
    reason: Optional[str] = Field(default=None, max_length=255)


# ---- coupons ----------------------------------------------------------------
class CouponCreate(Closed):
    code: str = Field(min_length=1, max_length=64)
    discount_type: Literal["PERCENTAGE", "FIXED"]
    value: Decimal = Field(gt=0)
    description: Optional[str] = None
    max_discount: Optional[int] = Field(default=None, ge=0)
    min_order_amount: Optional[int] = Field(default=None, ge=0)
    store_id: Optional[int] = None
    usage_limit: int = Field(default=0, ge=0)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    @field_validator("discount_type", mode="before")
    @classmethod
    def upper_type(cls, v):
        return v.upper() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_window(self):
        if self.starts_at and self.ends_at and self.ends_at < self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class CouponValidate(Closed):
    code: str = Field(min_length=1)
    order_amount: int = Field(ge=0)
    store_id: Optional[int] = None


# ---- commissions ------------------------------------------------------------
class CommissionRuleCreate(Closed):
    scope: Literal["GLOBAL", "CATEGORY", "STORE"]
    percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    fixed_amount: int = Field(default=0, ge=0)
    store_id: Optional[int] = None
    category: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    @field_validator("scope", mode="before")
    @classmethod
    def upper_scope(cls, v):
        return v.upper() if isinstance(v, str) else v


class CommissionQuoteRequest(Closed):
    amount: int = Field(ge=0)
    store_id: Optional[int] = None
    category: Optional[str] = None
