"""
Audit logging model for purchase and payment tracking
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Enum
from sqlalchemy.sql import func
import enum

from database import Base


class AuditEventType(str, enum.Enum):
    """Audit event type enumeration"""
    # Purchase events
    PURCHASE_FULFILLED = "purchase_fulfilled"
    PURCHASE_REFUNDED = "purchase_refunded"
    PURCHASE_MANUAL_INTERVENTION = "purchase_manual_intervention"

    # Pix events
    PIX_PAYMENT_REQUESTED = "pix_payment_requested"
    PIX_PURCHASE_FINALIZED = "pix_purchase_finalized"
    PIX_FINALIZATION_FAILED = "pix_finalization_failed"
    PIX_PURCHASES_EXPIRED = "pix_purchases_expired"

    # Webhook events
    WEBHOOK_PROCESSED = "webhook_processed"
    WEBHOOK_SIGNATURE_REJECTED = "webhook_signature_rejected"

    # System events
    UNHANDLED_EXCEPTION = "unhandled_exception"


class AuditLevel(str, enum.Enum):
    """Audit event level enumeration"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLog(Base):
    """Audit log model for purchase tracking"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Event information
    event_type = Column(Enum(AuditEventType), nullable=False, index=True)
    event_level = Column(Enum(AuditLevel), nullable=False, default=AuditLevel.INFO)
    event_message = Column(Text, nullable=False)
    event_details = Column(JSON, nullable=True)  # Additional event data

    # No foreign key: rows must survive a rolled back purchase
    user_id = Column(String(36), nullable=True, index=True)

    # Resource information
    resource_type = Column(String(50), nullable=True)  # purchase, pix_payment, order
    resource_id = Column(String(100), nullable=True)

    # Metadata
    environment = Column(String(20), nullable=False, default="production")
    service_version = Column(String(20), nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, event='{self.event_type}', user_id={self.user_id})>"

    @property
    def requires_alert(self):
        """Check if this event requires immediate attention"""
        return getattr(self, 'event_level', None) in [AuditLevel.ERROR, AuditLevel.CRITICAL]
