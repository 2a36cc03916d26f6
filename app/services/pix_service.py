"""
Two-phase Pix purchase flow

The request phase validates the purchase, creates the Pix charge and stores a
pending row; nothing else changes, but open charges count against stock
and the beneficiary's ownership cap until they expire. The finalization phase runs once the
gateway reports the payment approved and applies the purchase in a single
transaction. No refund is ever attempted on this path: a failed finalization
leaves the pending row in place to be retried.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from app.models.user import User
from app.models.event import Event
from app.models.purchase import PendingPixPurchase, SettlementMethod
from app.models.audit import AuditEventType, AuditLevel
from app.schemas.purchase import PixPurchaseRequest
from app.services.audit_service import AuditService
from app.services.catalog_service import CatalogService
from app.services.entitlement_service import EntitlementIssuer
from app.services.inventory_ledger import InventoryLedger
from app.services.payment_gateway import MercadoPagoGateway
from app.services.purchase_errors import ProductNotFoundError, EventNotFoundError
from app.services.purchase_service import PurchaseService, ValidatedPurchase, queue_purchase_confirmation

logger = logging.getLogger(__name__)


class PixFinalizationOutcome(str, enum.Enum):
    FINALIZED = "finalized"
    ALREADY_PROCESSED = "already_processed"
    IGNORED = "ignored"


@dataclass
class PendingPixReference:
    """What the payer needs to complete a Pix payment"""
    payment_id: str
    status: str
    amount_int: int
    expires_at: datetime
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None


class PixPurchaseService:
    """Pix request, finalization and cleanup"""

    def __init__(self, gateway: MercadoPagoGateway):
        self.gateway = gateway

    def request_pix_purchase(self, db: Session, user: User, event_slug: str,
                             request: PixPurchaseRequest) -> PendingPixReference:
        """Create a Pix charge and remember what it is for"""
        EntitlementIssuer.validate_gift(user, request.is_gift, request.gifted_to_email)
        validated = PurchaseService.validate_purchase(
            db, user, event_slug, request.product_id, request.quantity,
            is_gift=request.is_gift, gifted_to_email=request.gifted_to_email
        )

        try:
            self._check_open_charges(db, validated)
            pix = self.gateway.create_pix_payment(
                amount_int=validated.amount_int,
                payer_email=user.email,
                external_reference=validated.external_reference(user)
            )
        except Exception:
            db.rollback()
            raise

        expires_at = datetime.utcnow() + timedelta(minutes=settings.PIX_PENDING_TTL_MINUTES)
        pending = PendingPixPurchase(
            payment_id=pix.payment_id,
            user_id=user.id,
            event_id=validated.event.id,
            product_id=validated.product.id,
            quantity=validated.quantity,
            is_gift=validated.is_gift,
            gifted_to_email=validated.gifted_to_email,
            amount_int=validated.amount_int,
            expires_at=expires_at
        )

        try:
            db.add(pending)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to store pending Pix purchase {pix.payment_id}: {e}")
            raise

        logger.info(f"Pix payment {pix.payment_id} requested by user {user.id} for product {validated.product.id}")
        AuditService.log_payment_event(
            AuditEventType.PIX_PAYMENT_REQUESTED,
            payment_id=pix.payment_id,
            message=f"Pix payment requested for product {validated.product.id}",
            details={"quantity": validated.quantity, "amount_int": validated.amount_int},
            user_id=user.id
        )

        return PendingPixReference(
            payment_id=pix.payment_id,
            status=pix.status,
            amount_int=validated.amount_int,
            expires_at=expires_at,
            qr_code=pix.qr_code,
            qr_code_base64=pix.qr_code_base64,
            ticket_url=pix.ticket_url
        )

    @staticmethod
    def _check_open_charges(db: Session, validated: ValidatedPurchase) -> None:
        """Count unpaid Pix charges against stock and the beneficiary's cap.

        The product row stays locked until the new pending row is committed, so
        concurrent requests for the same product see each other's holds.
        """
        product = InventoryLedger.lock(db, validated.product)
        now = datetime.utcnow()

        InventoryLedger.reserve(
            product, validated.quantity, now=now,
            held_quantity=CatalogService.get_open_pix_quantity(db, product.id, now)
        )

        owned = InventoryLedger.owned_quantity(
            CatalogService.get_user_products_by_user_and_product(db, validated.beneficiary.id, product.id)
        )
        pending = CatalogService.get_open_pix_quantity(db, product.id, now, beneficiary=validated.beneficiary)
        InventoryLedger.check_ownership_cap(product, owned + pending, validated.quantity)

    @staticmethod
    def finalize_pix_purchase(db: Session, payment_id: str) -> PixFinalizationOutcome:
        """Apply an approved Pix payment exactly once.

        The pending row is locked so concurrent deliveries of the same
        notification serialize; the second one finds it gone.
        """
        pending = db.query(PendingPixPurchase).filter(
            PendingPixPurchase.payment_id == str(payment_id)
        ).with_for_update().first()

        if not pending:
            logger.info(f"Pix payment {payment_id} has no pending purchase, already processed")
            return PixFinalizationOutcome.ALREADY_PROCESSED

        try:
            buyer = CatalogService.get_user_by_id(db, pending.user_id)
            event = db.get(Event, pending.event_id)
            product = CatalogService.get_product_by_id(db, pending.product_id)
            if buyer is None or event is None:
                raise EventNotFoundError(f"Buyer or event missing for pending Pix payment {payment_id}")
            if product is None:
                raise ProductNotFoundError(f"Product missing for pending Pix payment {payment_id}")

            beneficiary = EntitlementIssuer.resolve_beneficiary(
                db, buyer, pending.is_gift, pending.gifted_to_email
            )
            validated = ValidatedPurchase(
                event=event,
                product=product,
                beneficiary=beneficiary,
                quantity=pending.quantity,
                is_gift=pending.is_gift,
                gifted_to_email=pending.gifted_to_email
            )

            # Cap is re-checked against what is actually owned now
            owned = InventoryLedger.owned_quantity(
                CatalogService.get_user_products_by_user_and_product(db, beneficiary.id, product.id)
            )
            InventoryLedger.check_ownership_cap(product, owned, pending.quantity)

            purchase, grant = PurchaseService.apply_local_mutations(
                db, buyer, validated,
                settlement_method=SettlementMethod.PIX,
                payment_method_id="pix",
                payment_reference=str(payment_id)
            )
            purchase.amount_int = pending.amount_int

            db.delete(pending)
            db.commit()

        except Exception as e:
            db.rollback()
            logger.error(f"Failed to finalize Pix payment {payment_id}, pending purchase kept: {e}")
            AuditService.log_payment_event(
                AuditEventType.PIX_FINALIZATION_FAILED,
                payment_id=str(payment_id),
                message=f"Pix finalization failed: {e}",
                level=AuditLevel.ERROR
            )
            raise

        logger.info(f"Pix payment {payment_id} finalized as purchase {purchase.id}")
        AuditService.log_payment_event(
            AuditEventType.PIX_PURCHASE_FINALIZED,
            payment_id=str(payment_id),
            message=f"Pix payment finalized as purchase {purchase.id}",
            details={"tokens": len(grant.tokens), "registrations": len(grant.registrations)},
            user_id=purchase.user_id
        )
        queue_purchase_confirmation(purchase.id)

        return PixFinalizationOutcome.FINALIZED

    @staticmethod
    def expire_abandoned_pix_purchases(db: Session, now: Optional[datetime] = None) -> int:
        """Delete pending rows whose payment window has passed"""
        now = now or datetime.utcnow()

        expired = db.query(PendingPixPurchase).filter(
            PendingPixPurchase.expires_at < now
        ).all()

        payment_ids = [p.payment_id for p in expired]
        for pending in expired:
            db.delete(pending)
        db.commit()

        if expired:
            logger.info(f"Expired {len(expired)} abandoned Pix purchases")
            AuditService.log_event(
                event_type=AuditEventType.PIX_PURCHASES_EXPIRED,
                event_level=AuditLevel.INFO,
                event_message=f"Expired {len(expired)} abandoned Pix purchases",
                event_details={"payment_ids": payment_ids},
                resource_type="pix_payment"
            )

        return len(expired)
