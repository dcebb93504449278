# ------ bazaar/model/__init__.py ------

from .user import User
from .product import Store, Product, ProductVariant
from .cart import Cart, CartLine, VendorGroup
from .order import Order, OrderItem, OrderStatus, PaymentStatus, PaymentMethod
from .escrow import EscrowLedger, EscrowStatus
from .commission import CommissionRule, CommissionRecord, CommissionScope
from .coupon import Coupon, CouponUsage, DiscountType
from .wallet import Wallet, WalletTransaction
from .notification import OutboxEvent, Notification

__all__ = [
    "User",
    "Store",
    "Product",
    "ProductVariant",
    "Cart",
    "CartLine",
    "VendorGroup",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "EscrowLedger",
    "EscrowStatus",
    "CommissionRule",
    "CommissionRecord",
    "CommissionScope",
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "Wallet",
    "WalletTransaction",
    "OutboxEvent",
    "Notification",
]
