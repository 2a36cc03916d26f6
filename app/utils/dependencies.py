"""
Shared FastAPI dependencies
"""

from fastapi import Request, HTTPException, status

from app.services.payment_gateway import MercadoPagoGateway


def get_payment_gateway(request: Request) -> MercadoPagoGateway:
    """Gateway built at startup from settings"""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment gateway is not configured"
        )
    return gateway
