"""
Mercado Pago payment gateway adapter

Card purchases go through the Orders API and are captured synchronously.
Pix charges are created through the Payments API and confirmed later by
webhook. All calls are bounded by a request timeout.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, Optional

import requests

from app.services.purchase_errors import PaymentGatewayError

logger = logging.getLogger(__name__)


def format_amount(amount_int: int) -> str:
    """Minor units to the gateway's two-decimal string, e.g. 1050 -> "10.50" """
    value = (Decimal(amount_int) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{value:.2f}"


@dataclass
class GatewayConfig:
    """Credentials and endpoints for the payment gateway"""
    access_token: str
    base_url: str = "https://api.mercadopago.com"
    webhook_secret: str = ""
    timeout_seconds: float = 15.0
    currency: str = "BRL"
    notification_url: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "GatewayConfig":
        return cls(
            access_token=settings.MERCADO_PAGO_ACCESS_TOKEN,
            base_url=settings.MERCADO_PAGO_BASE_URL.rstrip("/"),
            webhook_secret=settings.MERCADO_PAGO_WEBHOOK_SECRET,
            timeout_seconds=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
            currency=settings.PAYMENT_CURRENCY,
            notification_url=settings.PIX_NOTIFICATION_URL or None
        )


@dataclass
class PaymentMethod:
    """Tokenized card payment method"""
    id: str
    token: str
    type: str = "credit_card"
    installments: int = 1


@dataclass
class OrderResult:
    id: str
    total_amount: str
    payment_id: Optional[str] = None
    status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    order_id: str
    status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PixResult:
    payment_id: str
    status: str
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    ticket_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentStatusResult:
    payment_id: str
    status: str
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    transaction_amount: Optional[Decimal] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"


class MercadoPagoGateway:
    """REST client for the Mercado Pago Orders and Payments APIs"""

    def __init__(self, config: GatewayConfig):
        self.config = config

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.config.access_token}",
            "Content-Type": "application/json"
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        return headers

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None,
                 idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        url = f"{self.config.base_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(idempotency_key),
                json=payload,
                timeout=self.config.timeout_seconds
            )
            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout:
            logger.error(f"Mercado Pago request timed out: {method} {path}")
            raise PaymentGatewayError("Payment provider did not respond in time")
        except requests.exceptions.HTTPError as e:
            body = e.response.text if e.response is not None else ""
            logger.error(f"Mercado Pago API error on {method} {path}: {e} {body}")
            raise PaymentGatewayError(f"Payment provider rejected the request: {e}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Mercado Pago network error on {method} {path}: {e}")
            raise PaymentGatewayError(f"Network error: {str(e)}")
        except (json.JSONDecodeError, ValueError):
            raise PaymentGatewayError("Invalid response from payment provider")

    def create_order(self, amount_int: int, external_reference: str,
                     payment_method: PaymentMethod, payer_email: str) -> OrderResult:
        """Create and capture a card order"""
        amount = format_amount(amount_int)
        payload = {
            "type": "online",
            "total_amount": amount,
            "external_reference": external_reference,
            "transactions": {
                "payments": [
                    {
                        "amount": amount,
                        "payment_method": {
                            "id": payment_method.id,
                            "token": payment_method.token,
                            "type": payment_method.type,
                            "installments": payment_method.installments
                        }
                    }
                ]
            },
            "payer": {"email": payer_email}
        }

        data = self._request("POST", "/v1/orders", payload, idempotency_key=str(uuid.uuid4()))

        order_id = data.get("id")
        if not order_id:
            raise PaymentGatewayError("Payment provider returned an order without ID")

        if data.get("status") in ("failed", "canceled", "cancelled"):
            raise PaymentGatewayError(f"Payment was not approved: {data.get('status_detail') or data.get('status')}")

        payments = (data.get("transactions") or {}).get("payments") or []
        payment_id = str(payments[0].get("id")) if payments and payments[0].get("id") else None

        logger.info(f"Mercado Pago order {order_id} created: status={data.get('status')}, amount={amount}")
        return OrderResult(
            id=str(order_id),
            total_amount=str(data.get("total_amount", amount)),
            payment_id=payment_id,
            status=data.get("status"),
            raw=data
        )

    def create_refund(self, order_id: str) -> RefundResult:
        """Refund an order in full"""
        data = self._request("POST", f"/v1/orders/{order_id}/refund", idempotency_key=f"refund-{order_id}")
        return RefundResult(order_id=str(data.get("id", order_id)), status=data.get("status"), raw=data)

    def create_pix_payment(self, amount_int: int, payer_email: str, external_reference: str) -> PixResult:
        """Create a Pix charge; the returned QR code is shown to the payer"""
        payload = {
            "transaction_amount": float(Decimal(format_amount(amount_int))),
            "payment_method_id": "pix",
            "external_reference": external_reference,
            "payer": {"email": payer_email}
        }
        if self.config.notification_url:
            payload["notification_url"] = self.config.notification_url

        data = self._request("POST", "/v1/payments", payload, idempotency_key=str(uuid.uuid4()))

        payment_id = data.get("id")
        if not payment_id:
            raise PaymentGatewayError("Payment provider returned a Pix payment without ID")

        transaction_data = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
        return PixResult(
            payment_id=str(payment_id),
            status=data.get("status", "pending"),
            qr_code=transaction_data.get("qr_code"),
            qr_code_base64=transaction_data.get("qr_code_base64"),
            ticket_url=transaction_data.get("ticket_url"),
            raw=data
        )

    def get_payment(self, payment_id: str) -> PaymentStatusResult:
        """Fetch the current status of a payment"""
        data = self._request("GET", f"/v1/payments/{payment_id}")

        amount = data.get("transaction_amount")
        return PaymentStatusResult(
            payment_id=str(data.get("id", payment_id)),
            status=data.get("status", ""),
            status_detail=data.get("status_detail"),
            external_reference=data.get("external_reference"),
            transaction_amount=Decimal(str(amount)) if amount is not None else None,
            raw=data
        )
