"""
Purchase, ownership and entitlement models
"""

import enum
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, JSON, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from database import Base


class PurchaseStatus(str, enum.Enum):
    """Purchase status enumeration"""
    FULFILLED = "fulfilled"
    DELIVERED = "delivered"
    REFUNDED = "refunded"


class SettlementMethod(str, enum.Enum):
    """How the purchase was paid"""
    CARD = "card"
    PIX = "pix"


class FailedTransactionStatus(str, enum.Enum):
    """Manual intervention record status"""
    MANUAL_INTERVENTION_REQUIRED = "manual_intervention_required"
    RESOLVED = "resolved"


class Purchase(Base):
    """One buy action that reached fulfillment"""
    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)  # Buyer
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)

    # Gifting
    is_gift = Column(Boolean, nullable=False, default=False)
    gifted_to_email = Column(String(255), nullable=True)

    # Payment
    settlement_method = Column(Enum(SettlementMethod), nullable=False, default=SettlementMethod.CARD)
    payment_method_id = Column(String(50), nullable=True)
    payment_reference = Column(String(100), nullable=True, index=True)  # Gateway order or payment ID
    amount_int = Column(Integer, nullable=False, default=0)
    status = Column(Enum(PurchaseStatus), nullable=False, default=PurchaseStatus.FULFILLED)

    # Physical items
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime, nullable=True)

    # Timestamps
    purchased_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    product = relationship("Product")

    def __repr__(self):
        return f"<Purchase(id='{self.id}', user_id='{self.user_id}', product_id='{self.product_id}', quantity={self.quantity})>"


class UserProduct(Base):
    """Ownership of a purchased product, credited to the beneficiary"""
    __tablename__ = "user_products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    purchase_id = Column(String(36), ForeignKey("purchases.id"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False, default=1)

    # Gift tracking
    received_as_gift = Column(Boolean, nullable=False, default=False)
    gifted_from_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    purchase = relationship("Purchase")

    def __repr__(self):
        return f"<UserProduct(user_id='{self.user_id}', product_id='{self.product_id}', quantity={self.quantity})>"


class UserToken(Base):
    """A single activity token; check-in marks it used"""
    __tablename__ = "user_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_product_id = Column(String(36), ForeignKey("user_products.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)

    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime, nullable=True)
    used_for_id = Column(String(36), nullable=True)  # Activity ID if used

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<UserToken(id='{self.id}', user_id='{self.user_id}', used={self.is_used})>"


class PendingPixPurchase(Base):
    """Staging row between a Pix charge request and its confirmation webhook"""
    __tablename__ = "pending_pix_purchases"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_id = Column(String(64), unique=True, nullable=False, index=True)  # Gateway payment ID

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    is_gift = Column(Boolean, nullable=False, default=False)
    gifted_to_email = Column(String(255), nullable=True)

    amount_int = Column(Integer, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PendingPixPurchase(payment_id='{self.payment_id}', user_id='{self.user_id}', quantity={self.quantity})>"


class FailedTransaction(Base):
    """Charge that was neither committed locally nor refunded"""
    __tablename__ = "failed_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_id = Column(String(100), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    product_id = Column(String(36), nullable=True)
    amount = Column(String(20), nullable=False)  # As reported by the gateway

    purchase_data = Column(JSON, nullable=True)
    db_error = Column(Text, nullable=False)
    refund_error = Column(Text, nullable=False)

    status = Column(
        Enum(FailedTransactionStatus),
        nullable=False,
        default=FailedTransactionStatus.MANUAL_INTERVENTION_REQUIRED,
        index=True
    )
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<FailedTransaction(payment_id='{self.payment_id}', user_id='{self.user_id}', status='{self.status}')>"
