"""
Audit logging service for purchase and payment events
"""

import logging
from typing import Dict, Any, Optional

from config import settings
from app.models.audit import AuditLog, AuditEventType, AuditLevel
from database import DatabaseManager

logger = logging.getLogger(__name__)


class AuditService:
    """Audit logging service"""

    @staticmethod
    def log_event(
        event_type: AuditEventType,
        event_level: AuditLevel,
        event_message: str,
        user_id: Optional[str] = None,
        event_details: Optional[Dict[str, Any]] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None
    ) -> Optional[AuditLog]:
        """Log audit event in its own session.

        Never raises: an audit failure must not change the outcome of the
        operation being audited.
        """
        db = DatabaseManager.get_session()

        try:
            audit_log = AuditLog(
                event_type=event_type,
                event_level=event_level,
                event_message=event_message,
                event_details=event_details,
                user_id=user_id,
                resource_type=resource_type,
                resource_id=resource_id,
                environment="production" if not settings.DEBUG else "development",
                service_version=settings.APP_VERSION
            )

            db.add(audit_log)
            db.commit()
            db.refresh(audit_log)

            if audit_log.requires_alert:
                logger.warning(f"Audit alert [{event_type.value}]: {event_message}")

            return audit_log

        except Exception as e:
            db.rollback()
            logger.error(f"Failed to write audit log {event_type.value}: {e}")
            return None

        finally:
            db.close()

    @staticmethod
    def log_purchase_event(
        event_type: AuditEventType,
        user_id: Optional[str],
        message: str,
        details: Optional[Dict[str, Any]] = None,
        level: AuditLevel = AuditLevel.INFO,
        resource_id: Optional[str] = None
    ) -> Optional[AuditLog]:
        """Log purchase lifecycle event"""
        return AuditService.log_event(
            event_type=event_type,
            event_level=level,
            event_message=message,
            user_id=user_id,
            event_details=details,
            resource_type="purchase",
            resource_id=resource_id
        )

    @staticmethod
    def log_payment_event(
        event_type: AuditEventType,
        payment_id: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        level: AuditLevel = AuditLevel.INFO,
        user_id: Optional[str] = None
    ) -> Optional[AuditLog]:
        """Log gateway payment event"""
        return AuditService.log_event(
            event_type=event_type,
            event_level=level,
            event_message=message,
            user_id=user_id,
            event_details=details,
            resource_type="payment",
            resource_id=payment_id
        )
