"""
Synchronous card purchase coordinator

A purchase moves through an explicit state machine:

    VALIDATING -> LOCAL_MUTATING -> EXTERNAL_CAPTURING -> COMMITTING
        -> FULFILLED
        -> COMPENSATING -> REFUNDED | MANUAL_INTERVENTION_REQUIRED

Local rows are flushed but not committed until the gateway has captured the
order. If the commit then fails, the order is refunded exactly once; if the
refund also fails the charge is recorded for manual intervention.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any, Tuple

from sqlalchemy.orm import Session

from app.models.user import User
from app.models.event import Event, ActivityRegistration
from app.models.product import Product
from app.models.purchase import Purchase, UserProduct, UserToken, SettlementMethod, PurchaseStatus
from app.models.audit import AuditEventType, AuditLevel
from app.schemas.purchase import PurchaseRequest, PaymentMethodInfo
from app.services.audit_service import AuditService
from app.services.catalog_service import CatalogService
from app.services.compensation_service import CompensationService
from app.services.entitlement_service import EntitlementIssuer, EntitlementGrant
from app.services.inventory_ledger import InventoryLedger
from app.services.payment_gateway import MercadoPagoGateway, OrderResult, PaymentMethod
from app.services.purchase_errors import (
    PurchaseValidationError, EventNotFoundError, ProductNotFoundError, NotRegisteredError,
    PaymentGatewayError, RefundError, TransactionRolledBackWithRefund, ManualInterventionRequired
)

logger = logging.getLogger(__name__)


class PurchaseState(str, enum.Enum):
    """Purchase attempt states"""
    VALIDATING = "validating"
    LOCAL_MUTATING = "local_mutating"
    EXTERNAL_CAPTURING = "external_capturing"
    COMMITTING = "committing"
    FULFILLED = "fulfilled"
    COMPENSATING = "compensating"
    REFUNDED = "refunded"
    MANUAL_INTERVENTION_REQUIRED = "manual_intervention_required"
    FAILED = "failed"  # Aborted before any funds moved


@dataclass
class PurchaseAttempt:
    """Tracks one purchase through its states"""
    user_id: str
    product_id: str
    quantity: int
    state: PurchaseState = PurchaseState.VALIDATING
    history: List[PurchaseState] = field(default_factory=lambda: [PurchaseState.VALIDATING])

    def transition(self, state: PurchaseState) -> None:
        logger.info(
            f"Purchase attempt user={self.user_id} product={self.product_id}: "
            f"{self.state.value} -> {state.value}"
        )
        self.state = state
        self.history.append(state)


@dataclass
class ValidatedPurchase:
    """A purchase that passed every check and can be applied"""
    event: Event
    product: Product
    beneficiary: User
    quantity: int
    is_gift: bool = False
    gifted_to_email: Optional[str] = None

    @property
    def amount_int(self) -> int:
        return self.product.total_price(self.quantity)

    def external_reference(self, buyer: User) -> str:
        return f"{self.event.slug}_{buyer.id}"


@dataclass
class PurchaseResult:
    """Outcome of a fulfilled purchase"""
    purchase: Purchase
    user_product: UserProduct
    user_tokens: List[UserToken]
    registrations: List[ActivityRegistration]
    order: Optional[OrderResult] = None


class PurchaseService:
    """Coordinates inventory, entitlements and payment for card purchases"""

    def __init__(self, gateway: MercadoPagoGateway, compensation: Optional[CompensationService] = None):
        self.gateway = gateway
        self.compensation = compensation or CompensationService(gateway)

    @staticmethod
    def validate_payment_method(payment_method: Optional[PaymentMethodInfo]) -> PaymentMethod:
        if payment_method is None or not payment_method.id:
            raise PurchaseValidationError("Payment method ID is required")
        if payment_method.id == "pix":
            raise PurchaseValidationError("Pix payments must use the Pix purchase endpoint")
        if not payment_method.token:
            raise PurchaseValidationError("Payment method token is required")
        if payment_method.installments < 1:
            raise PurchaseValidationError("Installments must be at least 1")

        return PaymentMethod(
            id=payment_method.id,
            token=payment_method.token,
            type=payment_method.type,
            installments=payment_method.installments
        )

    @staticmethod
    def validate_purchase(
        db: Session,
        user: User,
        event_slug: str,
        product_id: str,
        quantity: int,
        is_gift: bool = False,
        gifted_to_email: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> ValidatedPurchase:
        """Run every read-only check; raises a PurchaseValidationError subclass"""
        event = CatalogService.get_event_by_slug(db, event_slug)
        if not event:
            raise EventNotFoundError("Event not found")

        if not CatalogService.is_user_registered_to_event(db, user.id, event.id):
            raise NotRegisteredError("User is not registered to this event")

        product = CatalogService.get_product_by_id(db, product_id)
        if not product:
            raise ProductNotFoundError("Product not found")

        if product.event_id != event.id:
            raise ProductNotFoundError("Product does not belong to this event")

        InventoryLedger.reserve(product, quantity, now=now)

        beneficiary = EntitlementIssuer.resolve_beneficiary(db, user, is_gift, gifted_to_email)

        owned = InventoryLedger.owned_quantity(
            CatalogService.get_user_products_by_user_and_product(db, beneficiary.id, product.id)
        )
        InventoryLedger.check_ownership_cap(product, owned, quantity)

        return ValidatedPurchase(
            event=event,
            product=product,
            beneficiary=beneficiary,
            quantity=quantity,
            is_gift=is_gift,
            gifted_to_email=gifted_to_email if is_gift else None
        )

    @staticmethod
    def apply_local_mutations(
        db: Session,
        buyer: User,
        validated: ValidatedPurchase,
        settlement_method: SettlementMethod,
        payment_method_id: Optional[str] = None,
        payment_reference: Optional[str] = None
    ) -> Tuple[Purchase, EntitlementGrant]:
        """Create the purchase, take stock and issue entitlements. Flushes, never commits."""
        purchase = Purchase(
            user_id=buyer.id,
            product_id=validated.product.id,
            quantity=validated.quantity,
            is_gift=validated.is_gift,
            gifted_to_email=validated.gifted_to_email,
            settlement_method=settlement_method,
            payment_method_id=payment_method_id,
            payment_reference=payment_reference,
            amount_int=validated.amount_int,
            status=PurchaseStatus.FULFILLED
        )
        db.add(purchase)
        db.flush()

        InventoryLedger.commit(db, validated.product, validated.quantity)

        grant = EntitlementIssuer.issue(
            db,
            purchase=purchase,
            product=validated.product,
            event=validated.event,
            buyer=buyer,
            beneficiary=validated.beneficiary
        )
        return purchase, grant

    @staticmethod
    def snapshot(purchase: Purchase, beneficiary_id: str) -> Dict[str, Any]:
        """Plain copy of a purchase for logs and failure records"""
        return {
            "purchase_id": purchase.id,
            "user_id": purchase.user_id,
            "beneficiary_id": beneficiary_id,
            "product_id": purchase.product_id,
            "quantity": purchase.quantity,
            "is_gift": purchase.is_gift,
            "gifted_to_email": purchase.gifted_to_email,
            "amount_int": purchase.amount_int,
            "payment_method_id": purchase.payment_method_id
        }

    def purchase(self, db: Session, user: User, event_slug: str, request: PurchaseRequest) -> PurchaseResult:
        """Validate, apply, capture and commit a card purchase"""
        attempt = PurchaseAttempt(user_id=user.id, product_id=request.product_id, quantity=request.quantity)

        try:
            EntitlementIssuer.validate_gift(user, request.is_gift, request.gifted_to_email)
            payment_method = self.validate_payment_method(request.payment_method)
            validated = self.validate_purchase(
                db, user, event_slug, request.product_id, request.quantity,
                is_gift=request.is_gift, gifted_to_email=request.gifted_to_email
            )
        except PurchaseValidationError as e:
            attempt.transition(PurchaseState.FAILED)
            logger.info(f"Purchase rejected for user {user.id}: {e.message}")
            raise

        attempt.transition(PurchaseState.LOCAL_MUTATING)
        try:
            purchase, grant = self.apply_local_mutations(
                db, user, validated,
                settlement_method=SettlementMethod.CARD,
                payment_method_id=payment_method.id
            )
        except Exception:
            db.rollback()
            attempt.transition(PurchaseState.FAILED)
            raise

        snapshot = self.snapshot(purchase, validated.beneficiary.id)

        attempt.transition(PurchaseState.EXTERNAL_CAPTURING)
        try:
            order = self.gateway.create_order(
                amount_int=validated.amount_int,
                external_reference=validated.external_reference(user),
                payment_method=payment_method,
                payer_email=user.email
            )
        except Exception as e:
            db.rollback()
            attempt.transition(PurchaseState.FAILED)
            logger.error(f"Payment capture failed for user {user.id}, purchase rolled back: {e}")
            if isinstance(e, PaymentGatewayError):
                raise
            raise PaymentGatewayError(f"Payment failed: {str(e)}")

        purchase.payment_reference = order.id
        snapshot["payment_reference"] = order.id

        attempt.transition(PurchaseState.COMMITTING)
        try:
            db.commit()
        except Exception as commit_error:
            db.rollback()
            logger.critical(
                f"Database commit failed after successful payment {order.id}. Attempting refund..."
            )
            self._compensate(attempt, order, user, snapshot, commit_error)

        attempt.transition(PurchaseState.FULFILLED)
        logger.info(f"Purchase {purchase.id} fulfilled for user {user.id} (order {order.id})")

        self._after_commit(purchase, user, order)

        return PurchaseResult(
            purchase=purchase,
            user_product=grant.user_product,
            user_tokens=grant.tokens,
            registrations=grant.registrations,
            order=order
        )

    def _compensate(self, attempt: PurchaseAttempt, order: OrderResult, user: User,
                    snapshot: Dict[str, Any], commit_error: Exception) -> None:
        """Refund once; record for manual handling if that fails. Always raises."""
        attempt.transition(PurchaseState.COMPENSATING)

        try:
            self.compensation.attempt_refund(order)
        except RefundError as refund_error:
            attempt.transition(PurchaseState.MANUAL_INTERVENTION_REQUIRED)
            logger.critical(
                f"Could not refund payment {order.id} after failed commit. Manual intervention required. "
                f"Original error: {commit_error}, Refund error: {refund_error.message}"
            )
            CompensationService.record_manual_intervention(
                order=order,
                user_id=user.id,
                purchase_data=snapshot,
                db_error=str(commit_error),
                refund_error=refund_error.message
            )
            AuditService.log_purchase_event(
                AuditEventType.PURCHASE_MANUAL_INTERVENTION,
                user_id=user.id,
                message=f"Payment {order.id} captured, not committed and not refunded",
                details=snapshot,
                level=AuditLevel.CRITICAL,
                resource_id=order.id
            )
            raise ManualInterventionRequired(
                "Purchase could not be completed and requires manual review",
                payment_id=order.id
            )

        attempt.transition(PurchaseState.REFUNDED)
        AuditService.log_purchase_event(
            AuditEventType.PURCHASE_REFUNDED,
            user_id=user.id,
            message=f"Payment {order.id} refunded after failed commit",
            details={**snapshot, "db_error": str(commit_error)},
            level=AuditLevel.ERROR,
            resource_id=order.id
        )
        raise TransactionRolledBackWithRefund(
            "Purchase could not be completed and the payment was refunded",
            payment_id=order.id
        )

    @staticmethod
    def _after_commit(purchase: Purchase, user: User, order: Optional[OrderResult]) -> None:
        """Audit entry and confirmation email; failures are logged only"""
        AuditService.log_purchase_event(
            AuditEventType.PURCHASE_FULFILLED,
            user_id=user.id,
            message=f"Purchase {purchase.id} fulfilled",
            details={
                "product_id": purchase.product_id,
                "quantity": purchase.quantity,
                "amount_int": purchase.amount_int,
                "order_id": order.id if order else purchase.payment_reference
            },
            resource_id=purchase.id
        )
        queue_purchase_confirmation(purchase.id)


def queue_purchase_confirmation(purchase_id: str) -> None:
    """Queue the confirmation email for a committed purchase"""
    from app.tasks.purchase_tasks import send_purchase_confirmation_task

    try:
        send_purchase_confirmation_task.delay(purchase_id)
    except Exception as e:
        logger.warning(f"Could not queue confirmation email for purchase {purchase_id}: {e}")
