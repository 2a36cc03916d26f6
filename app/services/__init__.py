"""
Service layer for EventPass backend
"""

from .audit_service import AuditService
from .catalog_service import CatalogService
from .inventory_ledger import InventoryLedger
from .entitlement_service import EntitlementIssuer, EntitlementGrant
from .payment_gateway import MercadoPagoGateway, GatewayConfig
from .compensation_service import CompensationService
from .purchase_service import PurchaseService, PurchaseState, PurchaseResult
from .pix_service import PixPurchaseService, PixFinalizationOutcome
from .webhook_service import WebhookService

__all__ = [
    "AuditService",
    "CatalogService",
    "InventoryLedger",
    "EntitlementIssuer",
    "EntitlementGrant",
    "MercadoPagoGateway",
    "GatewayConfig",
    "CompensationService",
    "PurchaseService",
    "PurchaseState",
    "PurchaseResult",
    "PixPurchaseService",
    "PixFinalizationOutcome",
    "WebhookService"
]
