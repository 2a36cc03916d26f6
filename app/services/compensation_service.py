"""
Compensation for charges whose local commit failed
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional

from app.models.purchase import FailedTransaction, FailedTransactionStatus
from app.services.payment_gateway import MercadoPagoGateway, OrderResult, RefundResult
from app.services.purchase_errors import RefundError, PaymentGatewayError
from database import DatabaseManager

logger = logging.getLogger(__name__)


class CompensationService:
    """Refunds captured orders and records the ones that cannot be refunded"""

    def __init__(self, gateway: MercadoPagoGateway):
        self.gateway = gateway

    def attempt_refund(self, order: Optional[OrderResult]) -> RefundResult:
        """Issue a full refund for `order`. Called at most once per failed commit."""
        if order is None or not order.id:
            raise RefundError("Invalid payment resource")

        try:
            amount = Decimal(str(order.total_amount))
        except (InvalidOperation, TypeError):
            raise RefundError(f"Invalid amount format: {order.total_amount}")

        try:
            result = self.gateway.create_refund(order.id)
        except PaymentGatewayError as e:
            logger.error(f"Failed to refund order {order.id}: {e}")
            raise RefundError(f"Refund failed: {e.message}")

        logger.info(f"Successfully refunded order {order.id} for amount {amount:.2f}")
        return result

    @staticmethod
    def record_manual_intervention(
        order: Optional[OrderResult],
        user_id: str,
        purchase_data: Dict[str, Any],
        db_error: str,
        refund_error: str
    ) -> Optional[FailedTransaction]:
        """Persist a charge that was neither committed nor refunded.

        Written in an independent session since the purchase session has
        just been rolled back.
        """
        payment_id = order.id if order is not None and order.id else "unknown"
        amount = order.total_amount if order is not None else "0.00"

        logger.critical(
            f"FAILED_TRANSACTION: payment_id={payment_id} user_id={user_id} amount={amount} "
            f"db_error={db_error!r} refund_error={refund_error!r} status=manual_intervention_required"
        )

        db = DatabaseManager.get_session()
        try:
            failed = FailedTransaction(
                payment_id=payment_id,
                user_id=user_id,
                product_id=purchase_data.get("product_id"),
                amount=str(amount),
                purchase_data=purchase_data,
                db_error=db_error,
                refund_error=refund_error,
                status=FailedTransactionStatus.MANUAL_INTERVENTION_REQUIRED
            )
            db.add(failed)
            db.commit()
            db.refresh(failed)
            return failed

        except Exception as e:
            db.rollback()
            # The CRITICAL log line above is the record of last resort
            logger.critical(f"Could not persist failed transaction for payment {payment_id}: {e}")
            return None

        finally:
            db.close()
