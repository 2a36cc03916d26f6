"""
Typed errors raised by the purchase and Pix fulfillment flows

Routes map each family to one HTTP outcome:
validation errors -> 400/404, gateway errors -> 402, commit errors -> 202.
"""

import enum
from typing import Optional, Dict, Any


class ErrorCode(str, enum.Enum):
    """Machine readable purchase error codes"""
    INVALID_REQUEST = "invalid_request"
    INVALID_PAYMENT_METHOD = "invalid_payment_method"
    EVENT_NOT_FOUND = "event_not_found"
    PRODUCT_NOT_FOUND = "product_not_found"
    NOT_REGISTERED = "not_registered"
    RECIPIENT_NOT_FOUND = "recipient_not_found"
    SELF_GIFT_NOT_ALLOWED = "self_gift_not_allowed"
    OUT_OF_STOCK = "out_of_stock"
    PRODUCT_EXPIRED = "product_expired"
    PRODUCT_BLOCKED = "product_blocked"
    OWNERSHIP_CAP_EXCEEDED = "ownership_cap_exceeded"
    PAYMENT_FAILED = "payment_failed"
    REFUNDED = "refunded"
    MANUAL_INTERVENTION_REQUIRED = "manual_intervention_required"
    REFUND_FAILED = "refund_failed"
    INVALID_SIGNATURE = "invalid_signature"


class PurchaseError(Exception):
    """Base class for purchase flow errors"""

    code = ErrorCode.INVALID_REQUEST
    status_code = 400

    def __init__(self, message: str, code: Optional[ErrorCode] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message}


class PurchaseValidationError(PurchaseError):
    """Request rejected before anything was mutated"""
    status_code = 400


class EventNotFoundError(PurchaseValidationError):
    code = ErrorCode.EVENT_NOT_FOUND
    status_code = 404


class ProductNotFoundError(PurchaseValidationError):
    code = ErrorCode.PRODUCT_NOT_FOUND
    status_code = 404


class NotRegisteredError(PurchaseValidationError):
    code = ErrorCode.NOT_REGISTERED
    status_code = 403


class RecipientNotFoundError(PurchaseValidationError):
    code = ErrorCode.RECIPIENT_NOT_FOUND
    status_code = 404


class SelfGiftNotAllowedError(PurchaseValidationError):
    code = ErrorCode.SELF_GIFT_NOT_ALLOWED


class InventoryError(PurchaseValidationError):
    """Stock, expiry, blocking or ownership rule violated"""
    pass


class OutOfStockError(InventoryError):
    code = ErrorCode.OUT_OF_STOCK


class ProductExpiredError(InventoryError):
    code = ErrorCode.PRODUCT_EXPIRED


class ProductBlockedError(InventoryError):
    code = ErrorCode.PRODUCT_BLOCKED


class OwnershipCapExceededError(InventoryError):
    code = ErrorCode.OWNERSHIP_CAP_EXCEEDED


class PaymentGatewayError(PurchaseError):
    """Gateway call failed or returned something unusable; no funds moved"""
    code = ErrorCode.PAYMENT_FAILED
    status_code = 402


class CommitError(PurchaseError):
    """Funds were captured but the local commit failed"""
    status_code = 202

    def __init__(self, message: str, payment_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.payment_id = payment_id


class TransactionRolledBackWithRefund(CommitError):
    code = ErrorCode.REFUNDED


class ManualInterventionRequired(CommitError):
    code = ErrorCode.MANUAL_INTERVENTION_REQUIRED


class RefundError(PurchaseError):
    """Compensating refund could not be issued"""
    code = ErrorCode.REFUND_FAILED


class WebhookSignatureError(PurchaseError):
    """Gateway notification failed HMAC verification"""
    code = ErrorCode.INVALID_SIGNATURE
    status_code = 400
