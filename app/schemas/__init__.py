"""
Pydantic schemas for request/response validation
"""

from .purchase import (
    PaymentMethodInfo, PurchaseRequest, PixPurchaseRequest,
    PurchaseView, UserProductView, UserTokenView, ActivityRegistrationView,
    PurchaseResponse, PurchaseProcessingResponse, PendingPixResponse,
    WebhookData, WebhookPayload, WebhookResponse
)

__all__ = [
    # Purchase schemas
    "PaymentMethodInfo", "PurchaseRequest", "PixPurchaseRequest",
    "PurchaseView", "UserProductView", "UserTokenView", "ActivityRegistrationView",
    "PurchaseResponse", "PurchaseProcessingResponse", "PendingPixResponse",

    # Webhook schemas
    "WebhookData", "WebhookPayload", "WebhookResponse"
]
