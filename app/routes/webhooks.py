"""
Payment gateway webhook routes
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request, Header, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from database import get_db
from app.schemas.purchase import WebhookResponse
from app.services.payment_gateway import MercadoPagoGateway
from app.services.purchase_errors import WebhookSignatureError, PaymentGatewayError
from app.services.webhook_service import WebhookService
from app.utils.dependencies import get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


async def _body_data_id(request: Request) -> Optional[str]:
    try:
        body = await request.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    data = body.get("data") or {}
    data_id = data.get("id") if isinstance(data, dict) else None
    return str(data_id) if data_id is not None else None


@router.post("/mp", response_model=WebhookResponse)
async def handle_mercado_pago_webhook(
    request: Request,
    data_id: Optional[str] = Query(None, alias="data.id"),
    x_signature: Optional[str] = Header(None, alias="x-signature"),
    x_request_id: Optional[str] = Header(None, alias="x-request-id"),
    gateway: MercadoPagoGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db)
):
    """Handle Mercado Pago payment notifications"""

    data_id = data_id or await _body_data_id(request)

    service = WebhookService(gateway)
    try:
        # Gateway lookup and row locks block, keep them off the event loop
        result = await run_in_threadpool(
            service.handle_payment_notification, db, data_id, x_signature, x_request_id
        )
    except WebhookSignatureError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature"
        )
    except PaymentGatewayError as e:
        # Non-2xx makes the gateway deliver the notification again
        logger.error(f"Could not fetch payment {data_id} while handling webhook: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment status unavailable"
        )

    return WebhookResponse(
        status="ok",
        outcome=result.outcome.value,
        details={"payment_id": result.payment_id, "retry_queued": result.retry_queued}
    )
