"""
Тесты парсера вебхуков.
"""

import pytest
from affiliate_engine.services.webhook_parser import WebhookParser, calculate_payload_hash
import hashlib


def test_webhook_parser_internal_payment():
    """Тест парсинга internal оплаты"""
    payload = {
        "userId": "user-7",
        "amount": 10000,
        "transactionType": "subscription",
        "referenceId": "inv-1",
    }

    result = WebhookParser(provider="internal", payload=payload).parse()

    assert result is not None
    assert result["kind"] == "payment"
    assert result["user_id"] == "user-7"
    assert result["amount"] == 10000
    assert result["transaction_type"] == "subscription"
    assert result["reference_id"] == "inv-1"


def test_webhook_parser_internal_refund():
    """Тест парсинга internal возврата"""
    payload = {"userId": "user-7", "referenceId": "re-1", "type": "chargeback"}

    result = WebhookParser(provider="internal", payload=payload).parse()

    assert result["kind"] == "refund"
    assert result["type"] == "chargeback"
    assert result["reference_id"] == "re-1"


def test_webhook_parser_internal_without_type():
    payload = {"userId": "user-7", "referenceId": "x-1"}

    assert WebhookParser(provider="internal", payload=payload).parse() is None


def test_webhook_parser_internal_missing_user():
    payload = {"amount": 100, "transactionType": "subscription", "referenceId": "inv-1"}

    assert WebhookParser(provider="internal", payload=payload).parse() is None


def test_webhook_parser_float_amount_is_rejected():
    """Суммы только в целых центах"""
    payload = {
        "userId": "user-7",
        "amount": 99.5,
        "transactionType": "subscription",
        "referenceId": "inv-1",
    }

    result = WebhookParser(provider="internal", payload=payload).parse()

    assert result["amount"] is None


@pytest.mark.parametrize(
    "event_type,amount_field,transaction_type",
    [
        ("invoice.paid", "amount_paid", "subscription"),
        ("payment_intent.succeeded", "amount_received", "credit_purchase"),
    ],
)
def test_webhook_parser_stripe_payments(event_type, amount_field, transaction_type):
    """Тест на nested поля Stripe"""
    payload = {
        "id": "evt_1",
        "type": event_type,
        "data": {
            "object": {
                "id": "in_123",
                amount_field: 2999,
                "metadata": {"user_id": "user-9"},
            },
        },
    }

    result = WebhookParser(provider="stripe", payload=payload).parse()

    assert result["kind"] == "payment"
    assert result["event_id"] == "evt_1"
    assert result["user_id"] == "user-9"
    assert result["amount"] == 2999
    assert result["transaction_type"] == transaction_type
    assert result["reference_id"] == "in_123"


@pytest.mark.parametrize(
    "event_type,refund_type",
    [("charge.refunded", "refund"), ("charge.dispute.created", "chargeback")],
)
def test_webhook_parser_stripe_refunds(event_type, refund_type):
    payload = {
        "id": "evt_2",
        "type": event_type,
        "data": {"object": {"id": "ch_1", "metadata": {"user_id": "user-9"}}},
    }

    result = WebhookParser(provider="stripe", payload=payload).parse()

    assert result["kind"] == "refund"
    assert result["type"] == refund_type
    assert result["reference_id"] == "ch_1"


def test_webhook_parser_stripe_ignored_event():
    payload = {"id": "evt_3", "type": "customer.created", "data": {"object": {}}}

    assert WebhookParser(provider="stripe", payload=payload).parse() is None


def test_webhook_parser_unknown_provider():
    """Тест на неизвестный провайдер"""
    payload = {"some_field": "value"}

    assert WebhookParser(provider="unknown_provider", payload=payload).parse() is None


def test_webhook_parser_non_object_payload():
    assert WebhookParser(provider="internal", payload=[1, 2, 3]).parse() is None


def test_calculate_payload_hash():
    """Тест вычисления хеша payload"""
    payload = b'{"userId": "user-7", "referenceId": "re-1", "type": "refund"}'

    hash1 = calculate_payload_hash(payload)
    hash2 = calculate_payload_hash(payload)

    assert hash1 == hash2
    assert hash1 == hashlib.sha256(payload).hexdigest()
    assert hash1 != calculate_payload_hash(payload + b" ")
