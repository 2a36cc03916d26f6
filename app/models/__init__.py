"""
Database models for EventPass
"""

from .user import User
from .event import Event, EventRegistration, Activity, ActivityRegistration, AccessMethod
from .product import Product, AccessTarget
from .purchase import (
    Purchase, UserProduct, UserToken, PendingPixPurchase, FailedTransaction,
    PurchaseStatus, SettlementMethod, FailedTransactionStatus
)
from .audit import AuditLog

__all__ = [
    "User",
    "Event",
    "EventRegistration",
    "Activity",
    "ActivityRegistration",
    "AccessMethod",
    "Product",
    "AccessTarget",
    "Purchase",
    "UserProduct",
    "UserToken",
    "PendingPixPurchase",
    "FailedTransaction",
    "PurchaseStatus",
    "SettlementMethod",
    "FailedTransactionStatus",
    "AuditLog"
]
