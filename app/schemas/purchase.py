"""
Purchase, Pix and entitlement Pydantic schemas
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, validator

from app.models.event import AccessMethod
from app.models.purchase import PurchaseStatus, SettlementMethod


class PaymentMethodInfo(BaseModel):
    """Card payment method as tokenized by the checkout widget"""
    id: Optional[str] = Field(None, max_length=50)  # e.g. "visa", "master"
    token: Optional[str] = Field(None, max_length=255)
    type: str = Field("credit_card", max_length=50)
    installments: int = 1


class PurchaseRequest(BaseModel):
    """Card purchase request schema"""
    product_id: str = Field(..., min_length=1, max_length=36)
    quantity: int = 1
    is_gift: bool = False
    gifted_to_email: Optional[str] = Field(None, max_length=255)
    payment_method: PaymentMethodInfo = Field(default_factory=PaymentMethodInfo)

    @validator('gifted_to_email')
    def normalize_gifted_to_email(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        return v or None


class PixPurchaseRequest(BaseModel):
    """Pix purchase request schema"""
    product_id: str = Field(..., min_length=1, max_length=36)
    quantity: int = 1
    is_gift: bool = False
    gifted_to_email: Optional[str] = Field(None, max_length=255)

    @validator('gifted_to_email')
    def normalize_gifted_to_email(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        return v or None


class PurchaseView(BaseModel):
    """Purchase response schema"""
    id: str
    user_id: str
    product_id: str
    quantity: int
    is_gift: bool
    gifted_to_email: Optional[str]
    settlement_method: SettlementMethod
    payment_reference: Optional[str]
    amount_int: int
    status: PurchaseStatus
    is_delivered: bool
    purchased_at: datetime

    class Config:
        from_attributes = True


class UserProductView(BaseModel):
    """Owned product response schema"""
    id: str
    user_id: str
    product_id: str
    purchase_id: str
    quantity: int
    received_as_gift: bool
    gifted_from_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class UserTokenView(BaseModel):
    """Activity token response schema"""
    id: str
    user_id: str
    event_id: str
    user_product_id: str
    product_id: str
    is_used: bool
    used_at: Optional[datetime]
    used_for_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityRegistrationView(BaseModel):
    """Activity registration response schema"""
    activity_id: str
    user_id: str
    access_method: AccessMethod
    product_id: Optional[str]

    class Config:
        from_attributes = True


class PurchaseResponse(BaseModel):
    """Fulfilled purchase response"""
    purchase: PurchaseView
    user_product: UserProductView
    user_tokens: List[UserTokenView] = []
    registrations: List[ActivityRegistrationView] = []
    order_id: str
    order_status: Optional[str] = None


class PurchaseProcessingResponse(BaseModel):
    """Returned when the charge went through but the outcome is still being settled"""
    status: str = "processing"
    message: str


class PendingPixResponse(BaseModel):
    """Pix charge awaiting payment"""
    payment_id: str
    status: str
    amount_int: int
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None
    expires_at: datetime


class WebhookData(BaseModel):
    """Identifies the resource a gateway notification refers to"""
    id: str

    @validator('id', pre=True)
    def coerce_id(cls, v):
        # The gateway sends numeric payment IDs
        return str(v)


class WebhookPayload(BaseModel):
    """Mercado Pago notification payload schema"""
    action: Optional[str] = None
    type: Optional[str] = None
    data: WebhookData

    class Config:
        extra = "allow"


class WebhookResponse(BaseModel):
    """Webhook acknowledgement"""
    status: str
    outcome: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
