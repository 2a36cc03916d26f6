"""
Unit tests for database models
"""

from app.models.audit import AuditLog, AuditEventType, AuditLevel
from app.models.event import Activity, AccessMethod
from app.models.product import Product
from app.models.purchase import PurchaseStatus, SettlementMethod, FailedTransactionStatus
from app.models.user import User


def test_access_method_enum():
    """Test AccessMethod enum values"""
    assert {m.value for m in AccessMethod} == {"event", "product", "token", "direct"}


def test_purchase_enums():
    assert SettlementMethod.CARD.value == "card"
    assert SettlementMethod.PIX.value == "pix"
    assert PurchaseStatus.FULFILLED.value == "fulfilled"
    assert FailedTransactionStatus.MANUAL_INTERVENTION_REQUIRED.value == "manual_intervention_required"


def test_activity_covered_by_event_access():
    assert Activity(is_mandatory=True, has_fee=True).is_free_or_mandatory
    assert Activity(is_mandatory=False, has_fee=False).is_free_or_mandatory
    assert not Activity(is_mandatory=False, has_fee=True).is_free_or_mandatory


def test_product_grants_tokens():
    assert Product(is_activity_token=True, token_quantity=2).grants_tokens
    assert not Product(is_activity_token=True, token_quantity=0).grants_tokens
    assert not Product(is_activity_token=False, token_quantity=3).grants_tokens


def test_product_total_price():
    assert Product(price_int=1250).total_price(3) == 3750


def test_user_full_name():
    assert User(name="Ana", last_name="Souza").full_name == "Ana Souza"
    assert User(name="Ana", last_name="").full_name == "Ana"


def test_audit_log_alerts():
    """Test that errors and critical events raise alerts"""
    critical = AuditLog(event_type=AuditEventType.PURCHASE_MANUAL_INTERVENTION, event_level=AuditLevel.CRITICAL)
    info = AuditLog(event_type=AuditEventType.PURCHASE_FULFILLED, event_level=AuditLevel.INFO)

    assert critical.requires_alert
    assert not info.requires_alert
