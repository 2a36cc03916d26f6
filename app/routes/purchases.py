"""
Purchase routes: card checkout, Pix checkout and owned items
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db
from app.models.user import User
from app.schemas.purchase import (
    PurchaseRequest, PixPurchaseRequest, PurchaseResponse, PurchaseProcessingResponse,
    PendingPixResponse, PurchaseView, UserProductView, UserTokenView, ActivityRegistrationView
)
from app.services.catalog_service import CatalogService
from app.services.payment_gateway import MercadoPagoGateway
from app.services.pix_service import PixPurchaseService
from app.services.purchase_service import PurchaseService
from app.services.purchase_errors import PurchaseError, PurchaseValidationError, PaymentGatewayError, CommitError
from app.utils.dependencies import get_payment_gateway
from app.utils.security import get_current_active_user

logger = logging.getLogger(__name__)

router = APIRouter()

PROCESSING_MESSAGE = (
    "Your payment is being processed. If the purchase does not appear shortly, "
    "any charge will be reversed or our team will contact you."
)


def raise_for_purchase_error(error: PurchaseError):
    """Map a purchase error to an HTTP error without leaking internals"""
    if isinstance(error, PurchaseValidationError):
        raise HTTPException(status_code=error.status_code, detail=error.to_dict())
    if isinstance(error, PaymentGatewayError):
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"code": error.code.value, "message": "Payment could not be processed"}
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Purchase could not be completed"
    )


@router.post("/events/{slug}/purchase", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
def purchase_product(
    slug: str,
    purchase_request: PurchaseRequest,
    current_user: User = Depends(get_current_active_user),
    gateway: MercadoPagoGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db)
):
    """Buy a product with a tokenized card"""

    service = PurchaseService(gateway)

    try:
        result = service.purchase(db, current_user, slug, purchase_request)
    except CommitError as e:
        # Details stay in logs and the audit trail
        logger.error(f"Purchase by user {current_user.id} ended in {e.code.value} (payment {e.payment_id})")
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=PurchaseProcessingResponse(message=PROCESSING_MESSAGE).model_dump()
        )
    except PurchaseError as e:
        raise_for_purchase_error(e)

    return PurchaseResponse(
        purchase=PurchaseView.model_validate(result.purchase),
        user_product=UserProductView.model_validate(result.user_product),
        user_tokens=[UserTokenView.model_validate(t) for t in result.user_tokens],
        registrations=[ActivityRegistrationView.model_validate(r) for r in result.registrations],
        order_id=result.order.id,
        order_status=result.order.status
    )


@router.post("/events/{slug}/pix-purchase", response_model=PendingPixResponse, status_code=status.HTTP_201_CREATED)
def request_pix_purchase(
    slug: str,
    pix_request: PixPurchaseRequest,
    current_user: User = Depends(get_current_active_user),
    gateway: MercadoPagoGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db)
):
    """Create a Pix charge; the purchase completes when the payment is confirmed"""

    service = PixPurchaseService(gateway)

    try:
        reference = service.request_pix_purchase(db, current_user, slug, pix_request)
    except PurchaseError as e:
        raise_for_purchase_error(e)

    return PendingPixResponse(
        payment_id=reference.payment_id,
        status=reference.status,
        amount_int=reference.amount_int,
        qr_code=reference.qr_code,
        qr_code_base64=reference.qr_code_base64,
        ticket_url=reference.ticket_url,
        expires_at=reference.expires_at
    )


@router.get("/users/me/purchases", response_model=List[PurchaseView])
def get_my_purchases(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Purchases made by the current user"""
    return CatalogService.get_user_purchases(db, current_user.id)


@router.get("/users/me/tokens", response_model=List[UserTokenView])
def get_my_tokens(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Activity tokens owned by the current user"""
    return CatalogService.get_user_tokens(db, current_user.id)


@router.get("/users/me/products", response_model=List[UserProductView])
def get_my_products(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Products owned by the current user, including gifts received"""
    return CatalogService.get_user_products(db, current_user.id)
