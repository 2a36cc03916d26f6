"""
Tests for webhook signature verification and Pix notification handling
"""

import pytest
from datetime import datetime, timedelta

from app.models.audit import AuditLog, AuditEventType
from app.models.purchase import PendingPixPurchase, Purchase
from app.services.payment_gateway import PaymentStatusResult
from app.services.pix_service import PixFinalizationOutcome
from app.services.purchase_errors import WebhookSignatureError, PaymentGatewayError
from app.services.webhook_service import (
    WebhookService, parse_signature_header, build_manifest, compute_signature, verify_signature
)
from app.tests.conftest import WEBHOOK_SECRET

REQUEST_ID = "bb56a2f1-6aae-46ac-982e-9dcd3581d08e"
TS = "1742505638683"


def signed_header(data_id, request_id=REQUEST_ID, ts=TS, secret=WEBHOOK_SECRET):
    signature = compute_signature(secret, build_manifest(data_id, request_id, ts))
    return f"ts={ts},v1={signature}"


def add_pending(db_session, buyer, event, product, payment_id="1234567890"):
    db_session.add(PendingPixPurchase(
        payment_id=payment_id,
        user_id=buyer.id,
        event_id=event.id,
        product_id=product.id,
        quantity=1,
        amount_int=product.price_int,
        expires_at=datetime.utcnow() + timedelta(minutes=30)
    ))
    db_session.commit()


class TestSignature:

    def test_manifest_format(self):
        assert build_manifest("123", "req", "1700") == "id:123;request-id:req;ts:1700;"

    def test_alphanumeric_id_is_signed_as_sent(self):
        assert build_manifest("ABC123", "req", "1700") == "id:ABC123;request-id:req;ts:1700;"

    def test_id_case_is_part_of_the_signature(self):
        with pytest.raises(WebhookSignatureError):
            verify_signature(WEBHOOK_SECRET, signed_header("abc123"), REQUEST_ID, "ABC123")

    def test_parse_header(self):
        assert parse_signature_header("ts=1700, v1=abcdef") == ("1700", "abcdef")

    @pytest.mark.parametrize("header", [None, "", "ts=1700", "v1=abc", "garbage"])
    def test_parse_rejects_malformed_header(self, header):
        with pytest.raises(WebhookSignatureError):
            parse_signature_header(header)

    def test_valid_signature(self):
        verify_signature(WEBHOOK_SECRET, signed_header("1234567890"), REQUEST_ID, "1234567890")

    def test_upper_cased_signature_is_rejected(self):
        ts, signature = parse_signature_header(signed_header("1234567890"))

        with pytest.raises(WebhookSignatureError):
            verify_signature(WEBHOOK_SECRET, f"ts={ts},v1={signature.upper()}", REQUEST_ID, "1234567890")

    def test_signature_with_other_secret_is_rejected(self):
        header = signed_header("1234567890", secret="attacker-secret")

        with pytest.raises(WebhookSignatureError):
            verify_signature(WEBHOOK_SECRET, header, REQUEST_ID, "1234567890")

    def test_signature_for_other_payment_is_rejected(self):
        with pytest.raises(WebhookSignatureError):
            verify_signature(WEBHOOK_SECRET, signed_header("1111"), REQUEST_ID, "2222")

    def test_signature_for_other_request_id_is_rejected(self):
        with pytest.raises(WebhookSignatureError):
            verify_signature(WEBHOOK_SECRET, signed_header("1234567890"), "another-request", "1234567890")

    def test_missing_request_id_is_rejected(self):
        with pytest.raises(WebhookSignatureError):
            verify_signature(WEBHOOK_SECRET, signed_header("1234567890"), None, "1234567890")

    def test_unconfigured_secret_rejects_everything(self):
        with pytest.raises(WebhookSignatureError):
            verify_signature("", signed_header("1234567890"), REQUEST_ID, "1234567890")


class TestPaymentNotification:

    def test_approved_payment_is_finalized(self, db_session, mock_gateway, buyer, event, token_pack):
        add_pending(db_session, buyer, event, token_pack)
        mock_gateway.get_payment.return_value = PaymentStatusResult(payment_id="1234567890", status="approved")

        result = WebhookService(mock_gateway).handle_payment_notification(
            db_session, "1234567890", signed_header("1234567890"), REQUEST_ID
        )

        assert result.outcome == PixFinalizationOutcome.FINALIZED
        assert result.retry_queued is False
        assert db_session.query(Purchase).count() == 1
        mock_gateway.get_payment.assert_called_once_with("1234567890")

        processed = db_session.query(AuditLog).filter(
            AuditLog.event_type == AuditEventType.WEBHOOK_PROCESSED
        ).one()
        assert processed.resource_id == "1234567890"

    def test_repeated_notification_is_already_processed(self, db_session, mock_gateway, buyer, event, token_pack):
        add_pending(db_session, buyer, event, token_pack)
        mock_gateway.get_payment.return_value = PaymentStatusResult(payment_id="1234567890", status="approved")
        service = WebhookService(mock_gateway)

        service.handle_payment_notification(db_session, "1234567890", signed_header("1234567890"), REQUEST_ID)
        result = service.handle_payment_notification(
            db_session, "1234567890", signed_header("1234567890"), REQUEST_ID
        )

        assert result.outcome == PixFinalizationOutcome.ALREADY_PROCESSED
        assert db_session.query(Purchase).count() == 1

    def test_pending_payment_is_ignored(self, db_session, mock_gateway, buyer, event, token_pack):
        add_pending(db_session, buyer, event, token_pack)
        mock_gateway.get_payment.return_value = PaymentStatusResult(payment_id="1234567890", status="pending")

        result = WebhookService(mock_gateway).handle_payment_notification(
            db_session, "1234567890", signed_header("1234567890"), REQUEST_ID
        )

        assert result.outcome == PixFinalizationOutcome.IGNORED
        assert db_session.query(PendingPixPurchase).count() == 1
        assert db_session.query(Purchase).count() == 0

    def test_invalid_signature_changes_nothing(self, db_session, mock_gateway, buyer, event, token_pack):
        add_pending(db_session, buyer, event, token_pack)
        forged = signed_header("1234567890", secret="attacker-secret")

        with pytest.raises(WebhookSignatureError):
            WebhookService(mock_gateway).handle_payment_notification(db_session, "1234567890", forged, REQUEST_ID)

        mock_gateway.get_payment.assert_not_called()
        assert db_session.query(PendingPixPurchase).count() == 1
        assert db_session.query(Purchase).count() == 0

        rejected = db_session.query(AuditLog).filter(
            AuditLog.event_type == AuditEventType.WEBHOOK_SIGNATURE_REJECTED
        ).one()
        assert rejected.event_details == {"request_id": REQUEST_ID}

    def test_finalization_failure_queues_retry(self, db_session, mock_gateway, mock_task_queue, buyer, event,
                                               token_pack):
        add_pending(db_session, buyer, event, token_pack)
        token_pack.quantity = 0
        db_session.commit()
        mock_gateway.get_payment.return_value = PaymentStatusResult(payment_id="1234567890", status="approved")

        result = WebhookService(mock_gateway).handle_payment_notification(
            db_session, "1234567890", signed_header("1234567890"), REQUEST_ID
        )

        assert result.outcome == PixFinalizationOutcome.IGNORED
        assert result.retry_queued is True
        mock_task_queue.pix_finalization.assert_called_once_with("1234567890")
        assert db_session.query(PendingPixPurchase).count() == 1

    def test_gateway_lookup_failure_propagates(self, db_session, mock_gateway):
        mock_gateway.get_payment.side_effect = PaymentGatewayError("Payment provider did not respond in time")

        with pytest.raises(PaymentGatewayError):
            WebhookService(mock_gateway).handle_payment_notification(
                db_session, "1234567890", signed_header("1234567890"), REQUEST_ID
            )
