"""
Mercado Pago webhook verification and dispatch
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from app.models.audit import AuditEventType, AuditLevel
from app.services.audit_service import AuditService
from app.services.payment_gateway import MercadoPagoGateway
from app.services.pix_service import PixPurchaseService, PixFinalizationOutcome
from app.services.purchase_errors import WebhookSignatureError

logger = logging.getLogger(__name__)


def parse_signature_header(x_signature: Optional[str]) -> Tuple[str, str]:
    """Split an `x-signature` header of the form "ts=<unix>,v1=<hex>" """
    if not x_signature:
        raise WebhookSignatureError("Missing x-signature header")

    ts = None
    v1 = None
    for part in x_signature.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "ts":
            ts = value.strip()
        elif key == "v1":
            v1 = value.strip()

    if not ts or not v1:
        raise WebhookSignatureError("Malformed x-signature header")
    return ts, v1


def build_manifest(data_id: str, request_id: str, ts: str) -> str:
    return f"id:{data_id};request-id:{request_id};ts:{ts};"


def compute_signature(secret: str, manifest: str) -> str:
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(secret: Optional[str], x_signature: Optional[str],
                     x_request_id: Optional[str], data_id: Optional[str]) -> None:
    """Raise WebhookSignatureError unless the notification was signed with `secret`"""
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not x_request_id:
        raise WebhookSignatureError("Missing x-request-id header")
    if not data_id:
        raise WebhookSignatureError("Missing data.id")

    ts, received = parse_signature_header(x_signature)
    expected = compute_signature(secret, build_manifest(data_id, x_request_id, ts))

    if not hmac.compare_digest(expected, received):
        raise WebhookSignatureError("Invalid webhook signature")


@dataclass
class WebhookResult:
    payment_id: str
    payment_status: str
    outcome: PixFinalizationOutcome
    retry_queued: bool = False


class WebhookService:
    """Verifies gateway notifications and finalizes approved Pix payments"""

    def __init__(self, gateway: MercadoPagoGateway):
        self.gateway = gateway

    def handle_payment_notification(self, db: Session, data_id: Optional[str],
                                    x_signature: Optional[str], x_request_id: Optional[str]) -> WebhookResult:
        try:
            verify_signature(self.gateway.config.webhook_secret, x_signature, x_request_id, data_id)
        except WebhookSignatureError as e:
            logger.warning(
                f"Rejected webhook for data.id={data_id} request-id={x_request_id}: "
                f"{e.message}. Possible tampering attempt"
            )
            AuditService.log_payment_event(
                AuditEventType.WEBHOOK_SIGNATURE_REJECTED,
                payment_id=str(data_id or ""),
                message=f"Webhook signature rejected: {e.message}",
                details={"request_id": x_request_id},
                level=AuditLevel.WARNING
            )
            raise

        payment = self.gateway.get_payment(data_id)

        if not payment.is_approved:
            logger.info(f"Payment {payment.payment_id} notified with status {payment.status}, nothing to do")
            return WebhookResult(
                payment_id=payment.payment_id,
                payment_status=payment.status,
                outcome=PixFinalizationOutcome.IGNORED
            )

        try:
            outcome = PixPurchaseService.finalize_pix_purchase(db, payment.payment_id)
        except Exception as e:
            logger.error(f"Finalization of payment {payment.payment_id} failed, queueing retry: {e}")
            return WebhookResult(
                payment_id=payment.payment_id,
                payment_status=payment.status,
                outcome=PixFinalizationOutcome.IGNORED,
                retry_queued=queue_pix_finalization(payment.payment_id)
            )

        AuditService.log_payment_event(
            AuditEventType.WEBHOOK_PROCESSED,
            payment_id=payment.payment_id,
            message=f"Webhook processed: {outcome.value}",
            details={"status": payment.status}
        )
        return WebhookResult(payment_id=payment.payment_id, payment_status=payment.status, outcome=outcome)


def queue_pix_finalization(payment_id: str) -> bool:
    """Queue a background finalization retry"""
    from app.tasks.purchase_tasks import finalize_pix_purchase_task

    try:
        finalize_pix_purchase_task.delay(payment_id)
        return True
    except Exception as e:
        logger.critical(f"Could not queue finalization retry for approved Pix payment {payment_id}: {e}")
        return False
