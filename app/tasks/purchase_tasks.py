"""
Purchase background tasks
"""

import logging

from config import settings
from database import SessionLocal
from app.models.audit import AuditEventType, AuditLevel
from app.models.purchase import Purchase, UserProduct, UserToken
from app.models.user import User
from app.services.audit_service import AuditService
from app.services.email_service import email_service
from app.services.pix_service import PixPurchaseService
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task
def send_purchase_confirmation_task(purchase_id: str):
    """Email the beneficiary of a committed purchase"""

    db = SessionLocal()

    try:
        purchase = db.query(Purchase).filter(Purchase.id == purchase_id).first()
        if not purchase:
            logger.warning(f"Purchase {purchase_id} not found, skipping confirmation email")
            return {"sent": False}

        user_product = db.query(UserProduct).filter(UserProduct.purchase_id == purchase.id).first()
        buyer = db.query(User).filter(User.id == purchase.user_id).first()
        recipient_id = user_product.user_id if user_product else purchase.user_id
        recipient = db.query(User).filter(User.id == recipient_id).first()

        token_count = 0
        if user_product:
            token_count = db.query(UserToken).filter(UserToken.user_product_id == user_product.id).count()

        sent = email_service.send_email(
            to_email=recipient.email,
            subject="You received a gift" if purchase.is_gift else "Purchase confirmed",
            template_name="purchase_confirmation",
            template_data={
                "user_name": recipient.name,
                "buyer_name": buyer.full_name if buyer else "",
                "is_gift": purchase.is_gift,
                "quantity": purchase.quantity,
                "product_name": purchase.product.name,
                "amount_int": purchase.amount_int,
                "token_count": token_count,
                "products_url": f"{settings.FRONTEND_URL}/me/products"
            }
        )
        return {"sent": sent}

    except Exception as e:
        logger.error(f"Confirmation email for purchase {purchase_id} failed: {e}")
        return {"sent": False, "error": str(e)}

    finally:
        db.close()


@celery_app.task(bind=True, max_retries=settings.PIX_FINALIZATION_MAX_RETRIES)
def finalize_pix_purchase_task(self, payment_id: str):
    """Retry finalization of an approved Pix payment"""

    db = SessionLocal()

    try:
        outcome = PixPurchaseService.finalize_pix_purchase(db, payment_id)
        return {"payment_id": payment_id, "outcome": outcome.value}

    except Exception as exc:
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        logger.critical(
            f"Approved Pix payment {payment_id} could not be finalized after "
            f"{self.max_retries} retries: {exc}"
        )
        AuditService.log_payment_event(
            AuditEventType.PIX_FINALIZATION_FAILED,
            payment_id=payment_id,
            message=f"Pix finalization gave up after {self.max_retries} retries: {exc}",
            level=AuditLevel.CRITICAL
        )
        raise

    finally:
        db.close()


@celery_app.task
def expire_pix_purchases_task():
    """Drop pending Pix purchases whose payment window has passed"""

    db = SessionLocal()

    try:
        expired = PixPurchaseService.expire_abandoned_pix_purchases(db)
        return {"expired": expired}

    except Exception as e:
        db.rollback()
        logger.error(f"Pix expiry cleanup failed: {e}")
        return {"expired": 0, "error": str(e)}

    finally:
        db.close()


@celery_app.on_after_configure.connect
def setup_periodic_tasks(sender, **kwargs):
    """Set up periodic Pix cleanup"""

    sender.add_periodic_task(
        900.0,  # 15 minutes
        expire_pix_purchases_task.s(),
        name='expire abandoned pix purchases'
    )
