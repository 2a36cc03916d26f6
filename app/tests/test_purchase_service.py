"""
Tests for the synchronous card purchase coordinator
"""

import pytest
from unittest.mock import patch
from sqlalchemy.exc import SQLAlchemyError

from app.models.audit import AuditLog, AuditEventType
from app.models.event import Event, ActivityRegistration
from app.models.product import Product
from app.models.purchase import (
    Purchase, UserProduct, UserToken, FailedTransaction, FailedTransactionStatus,
    PurchaseStatus, SettlementMethod
)
from app.schemas.purchase import PurchaseRequest, PaymentMethodInfo
from app.services.purchase_service import PurchaseService, PurchaseAttempt, PurchaseState
from app.services.purchase_errors import (
    PurchaseValidationError, EventNotFoundError, ProductNotFoundError, NotRegisteredError,
    OutOfStockError, OwnershipCapExceededError, SelfGiftNotAllowedError, RecipientNotFoundError,
    PaymentGatewayError, TransactionRolledBackWithRefund, ManualInterventionRequired
)
from app.services.payment_gateway import RefundResult
from app.models.user import User
from app.tests.conftest import make_product


def card_request(product_id, **overrides):
    fields = {
        "product_id": product_id,
        "quantity": 1,
        "payment_method": PaymentMethodInfo(id="visa", token="card-token-123"),
    }
    fields.update(overrides)
    return PurchaseRequest(**fields)


def stock_of(db_session, product_id):
    return db_session.query(Product).filter(Product.id == product_id).one().quantity


class TestPurchaseFulfillment:

    def test_token_pack_purchase_is_fulfilled(self, db_session, mock_gateway, mock_task_queue, buyer, event, token_pack):
        service = PurchaseService(mock_gateway)

        result = service.purchase(db_session, buyer, "scti-2025", card_request(token_pack.id))

        assert result.purchase.status == PurchaseStatus.FULFILLED
        assert result.purchase.settlement_method == SettlementMethod.CARD
        assert result.purchase.payment_reference == "ORD01JTEST"
        assert result.purchase.amount_int == 1000
        assert len(result.user_tokens) == 2
        assert result.user_product.user_id == buyer.id
        assert stock_of(db_session, token_pack.id) == 0
        mock_task_queue.purchase_confirmation.assert_called_once_with(result.purchase.id)

    def test_order_is_created_with_formatted_amount_and_reference(self, db_session, mock_gateway, buyer, event, ticket):
        service = PurchaseService(mock_gateway)

        service.purchase(db_session, buyer, "scti-2025", card_request(ticket.id, quantity=2))

        kwargs = mock_gateway.create_order.call_args.kwargs
        assert kwargs["amount_int"] == 5000
        assert kwargs["external_reference"] == f"scti-2025_{buyer.id}"
        assert kwargs["payer_email"] == "ana@example.com"
        assert kwargs["payment_method"].token == "card-token-123"

    def test_event_ticket_registers_free_and_mandatory_activities(self, db_session, mock_gateway, buyer, event,
                                                                   ticket, activities):
        service = PurchaseService(mock_gateway)

        result = service.purchase(db_session, buyer, "scti-2025", card_request(ticket.id))

        registered = {r.activity_id for r in result.registrations}
        assert registered == {activities["opening"].id, activities["free"].id}
        assert result.user_tokens == []

    def test_gift_purchase_entitles_recipient(self, db_session, mock_gateway, buyer, friend, event, token_pack):
        service = PurchaseService(mock_gateway)
        request = card_request(token_pack.id, is_gift=True, gifted_to_email="Bruno@Example.com")

        result = service.purchase(db_session, buyer, "scti-2025", request)

        assert result.purchase.user_id == buyer.id
        assert result.purchase.gifted_to_email == "bruno@example.com"
        assert result.user_product.user_id == friend.id
        assert result.user_product.gifted_from_id == buyer.id
        assert db_session.query(UserToken).filter(UserToken.user_id == friend.id).count() == 2

    def test_fulfilled_purchase_is_audited(self, db_session, mock_gateway, buyer, event, token_pack):
        result = PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", card_request(token_pack.id))

        entry = db_session.query(AuditLog).filter(
            AuditLog.event_type == AuditEventType.PURCHASE_FULFILLED
        ).one()
        assert entry.resource_id == result.purchase.id
        assert entry.user_id == buyer.id


class TestLastUnitRace:

    def test_second_buyer_of_last_unit_is_rejected(self, db_session, mock_gateway, buyer, friend, event, token_pack):
        service = PurchaseService(mock_gateway)

        first = service.purchase(db_session, buyer, "scti-2025", card_request(token_pack.id))

        with pytest.raises(OutOfStockError):
            service.purchase(db_session, friend, "scti-2025", card_request(token_pack.id))

        assert first.purchase.status == PurchaseStatus.FULFILLED
        assert stock_of(db_session, token_pack.id) == 0
        assert mock_gateway.create_order.call_count == 1
        assert db_session.query(Purchase).count() == 1
        assert db_session.query(UserToken).filter(UserToken.user_id == friend.id).count() == 0


class TestPurchaseValidation:

    def test_unknown_event(self, db_session, mock_gateway, buyer, event, token_pack):
        with pytest.raises(EventNotFoundError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "no-such-event", card_request(token_pack.id))
        mock_gateway.create_order.assert_not_called()

    def test_event_slug_is_case_insensitive(self, db_session, mock_gateway, buyer, event, token_pack):
        result = PurchaseService(mock_gateway).purchase(db_session, buyer, "SCTI-2025", card_request(token_pack.id))

        assert result.purchase.status == PurchaseStatus.FULFILLED

    def test_unregistered_user(self, db_session, mock_gateway, event, token_pack):
        outsider = User(email="carla@example.com", name="Carla")
        db_session.add(outsider)
        db_session.commit()

        with pytest.raises(NotRegisteredError):
            PurchaseService(mock_gateway).purchase(db_session, outsider, "scti-2025", card_request(token_pack.id))

    def test_unknown_product(self, db_session, mock_gateway, buyer, event):
        with pytest.raises(ProductNotFoundError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", card_request("missing-product"))

    def test_missing_payment_token(self, db_session, mock_gateway, buyer, event, token_pack):
        request = card_request(token_pack.id, payment_method=PaymentMethodInfo(id="visa"))

        with pytest.raises(PurchaseValidationError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", request)

    def test_pix_is_not_accepted_as_card_method(self, db_session, mock_gateway, buyer, event, token_pack):
        request = card_request(token_pack.id, payment_method=PaymentMethodInfo(id="pix", token="x"))

        with pytest.raises(PurchaseValidationError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", request)

    def test_self_gift_is_rejected(self, db_session, mock_gateway, buyer, event, token_pack):
        request = card_request(token_pack.id, is_gift=True, gifted_to_email="ana@example.com")

        with pytest.raises(SelfGiftNotAllowedError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", request)

    def test_gift_to_unknown_recipient(self, db_session, mock_gateway, buyer, event, token_pack):
        request = card_request(token_pack.id, is_gift=True, gifted_to_email="ghost@example.com")

        with pytest.raises(RecipientNotFoundError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", request)

    def test_ownership_cap_across_purchases(self, db_session, mock_gateway, buyer, event, ticket):
        service = PurchaseService(mock_gateway)
        service.purchase(db_session, buyer, "scti-2025", card_request(ticket.id))
        service.purchase(db_session, buyer, "scti-2025", card_request(ticket.id))

        with pytest.raises(OwnershipCapExceededError):
            service.purchase(db_session, buyer, "scti-2025", card_request(ticket.id))

        assert mock_gateway.create_order.call_count == 2

    def test_ownership_cap_is_checked_against_recipient(self, db_session, mock_gateway, buyer, friend, event):
        sticker = make_product(db_session, event, name="Sticker", quantity=5, max_ownable_quantity=1)
        service = PurchaseService(mock_gateway)
        service.purchase(db_session, friend, "scti-2025", card_request(sticker.id))

        gift = card_request(sticker.id, is_gift=True, gifted_to_email="bruno@example.com")
        with pytest.raises(OwnershipCapExceededError):
            service.purchase(db_session, buyer, "scti-2025", gift)

    def test_product_of_another_event(self, db_session, mock_gateway, buyer, event):
        other = Event(
            slug="other-2025", name="Other",
            start_date=event.start_date, end_date=event.end_date, created_by=buyer.id
        )
        db_session.add(other)
        db_session.commit()
        foreign = make_product(db_session, other, name="Foreign product")

        with pytest.raises(ProductNotFoundError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", card_request(foreign.id))


class TestGatewayFailure:

    def test_declined_payment_leaves_no_trace(self, db_session, mock_gateway, mock_task_queue, buyer, event,
                                             token_pack, activities):
        mock_gateway.create_order.side_effect = PaymentGatewayError("Payment was not approved: cc_rejected")

        with pytest.raises(PaymentGatewayError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", card_request(token_pack.id))

        assert stock_of(db_session, token_pack.id) == 1
        assert db_session.query(Purchase).count() == 0
        assert db_session.query(UserProduct).count() == 0
        assert db_session.query(UserToken).count() == 0
        assert db_session.query(ActivityRegistration).count() == 0
        mock_gateway.create_refund.assert_not_called()
        mock_task_queue.purchase_confirmation.assert_not_called()

    def test_unexpected_gateway_exception_is_wrapped(self, db_session, mock_gateway, buyer, event, token_pack):
        mock_gateway.create_order.side_effect = RuntimeError("connection reset")

        with pytest.raises(PaymentGatewayError):
            PurchaseService(mock_gateway).purchase(db_session, buyer, "scti-2025", card_request(token_pack.id))

        assert stock_of(db_session, token_pack.id) == 1


class TestCommitFailure:

    def test_failed_commit_is_refunded_once(self, db_session, mock_gateway, mock_task_queue, buyer, event, token_pack):
        mock_gateway.create_refund.return_value = RefundResult(order_id="ORD01JTEST", status="refunded")
        service = PurchaseService(mock_gateway)

        with patch.object(db_session, "commit", side_effect=SQLAlchemyError("disk I/O error")):
            with pytest.raises(TransactionRolledBackWithRefund) as exc_info:
                service.purchase(db_session, buyer, "scti-2025", card_request(token_pack.id))

        assert exc_info.value.payment_id == "ORD01JTEST"
        mock_gateway.create_refund.assert_called_once_with("ORD01JTEST")
        assert stock_of(db_session, token_pack.id) == 1
        assert db_session.query(Purchase).count() == 0
        assert db_session.query(FailedTransaction).count() == 0
        mock_task_queue.purchase_confirmation.assert_not_called()

        refunded = db_session.query(AuditLog).filter(
            AuditLog.event_type == AuditEventType.PURCHASE_REFUNDED
        ).one()
        assert refunded.resource_id == "ORD01JTEST"

    def test_failed_refund_requires_manual_intervention(self, db_session, mock_gateway, buyer, event, token_pack):
        mock_gateway.create_refund.side_effect = PaymentGatewayError("Payment provider did not respond in time")
        service = PurchaseService(mock_gateway)

        with patch.object(db_session, "commit", side_effect=SQLAlchemyError("disk I/O error")):
            with pytest.raises(ManualInterventionRequired):
                service.purchase(db_session, buyer, "scti-2025", card_request(token_pack.id))

        mock_gateway.create_refund.assert_called_once_with("ORD01JTEST")
        failed = db_session.query(FailedTransaction).one()
        assert failed.payment_id == "ORD01JTEST"
        assert failed.user_id == buyer.id
        assert failed.product_id == token_pack.id
        assert failed.amount == "10.00"
        assert failed.status == FailedTransactionStatus.MANUAL_INTERVENTION_REQUIRED
        assert "disk I/O error" in failed.db_error
        assert "did not respond" in failed.refund_error
        assert failed.purchase_data["quantity"] == 1
        assert failed.purchase_data["payment_reference"] == "ORD01JTEST"
        assert db_session.query(Purchase).count() == 0


class TestPurchaseAttempt:

    def test_transition_records_history(self):
        attempt = PurchaseAttempt(user_id="u1", product_id="p1", quantity=1)

        attempt.transition(PurchaseState.LOCAL_MUTATING)
        attempt.transition(PurchaseState.EXTERNAL_CAPTURING)

        assert attempt.state == PurchaseState.EXTERNAL_CAPTURING
        assert attempt.history == [
            PurchaseState.VALIDATING, PurchaseState.LOCAL_MUTATING, PurchaseState.EXTERNAL_CAPTURING
        ]
