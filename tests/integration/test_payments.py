"""
Integration tests for transactions and gateway webhooks.
"""

from decimal import Decimal

import pytest

from storefront.exceptions import BusinessLogicError, NotFoundError
from storefront.models import OrderSubject, PaymentWebhook, Transaction, TransactionType
from storefront.services import payment_service


@pytest.fixture
def stripe_order(place, product):
    return place([(product.id, 1)], payment_method='stripe')


class TestRecordTransaction:
    def test_transaction_id_is_idempotency_key(self, session, stripe_order):
        first = payment_service.record_transaction(
            session, OrderSubject(stripe_order.id), 'stripe', TransactionType.CAPTURE, '10.00', 'USD',
            transaction_id='TXN-FIXED-1'
        )
        second = payment_service.record_transaction(
            session, OrderSubject(stripe_order.id), 'stripe', TransactionType.CAPTURE, '99.00', 'USD',
            transaction_id='TXN-FIXED-1'
        )
        session.commit()

        assert first.id == second.id
        assert second.amount == Decimal('10.00')
        assert session.query(Transaction).filter_by(transaction_id='TXN-FIXED-1').count() == 1

    def test_new_transaction_is_pending_with_log(self, session, stripe_order):
        transaction = payment_service.record_transaction(
            session, OrderSubject(stripe_order.id), 'stripe', 'authorization', '5.00', 'USD'
        )

        assert transaction.transaction_id.startswith('TXN-')
        assert transaction.status == 'pending'
        assert transaction.subject == OrderSubject(stripe_order.id)
        assert [log.event for log in transaction.logs] == ['created']

    def test_get_transaction_not_found(self, session):
        with pytest.raises(NotFoundError):
            payment_service.get_transaction(session, 'TXN-MISSING')


class TestRecordWebhook:
    """Events are stored once and applied to the matching transaction."""

    def test_success_event_completes_payment(self, session, stripe_order, now):
        transaction = stripe_order.payment.transaction
        payload = {'data': {'object': {'transaction_id': transaction.transaction_id}}}

        webhook = payment_service.record_webhook(session, 'stripe', 'evt_1', 'payment_intent.succeeded',
                                                 payload, now=now)

        session.refresh(transaction)
        assert webhook.status == 'processed'
        assert webhook.transaction_id == transaction.id
        assert transaction.status == 'completed'
        assert transaction.processed_at == now
        assert transaction.gateway_status == 'payment_intent.succeeded'
        assert stripe_order.payment.status == 'completed'
        assert [log.event for log in transaction.logs] == ['created', 'webhook', 'completed']

    def test_gateway_reference_is_stored(self, session, stripe_order):
        transaction = stripe_order.payment.transaction
        transaction.gateway_transaction_id = 'pi_456'
        session.commit()

        payment_service.record_webhook(session, 'stripe', 'evt_2', 'charge.captured',
                                       {'gateway_transaction_id': 'pi_456'})

        session.refresh(transaction)
        assert transaction.status == 'completed'
        assert transaction.gateway_transaction_id == 'pi_456'

    def test_duplicate_event_returns_first_row(self, session, stripe_order):
        payload = {'transaction_id': stripe_order.payment.transaction.transaction_id}
        first = payment_service.record_webhook(session, 'stripe', 'evt_dup', 'payment.succeeded', payload)
        second = payment_service.record_webhook(session, 'stripe', 'evt_dup', 'payment.failed', payload)

        assert first.id == second.id
        assert session.query(PaymentWebhook).count() == 1
        session.refresh(stripe_order.payment.transaction)
        assert stripe_order.payment.transaction.status == 'completed'

    def test_failure_event(self, session, stripe_order):
        transaction = stripe_order.payment.transaction
        payment_service.record_webhook(session, 'stripe', 'evt_3', 'charge.failed',
                                       {'transaction_id': transaction.transaction_id, 'message': 'Card declined'})

        session.refresh(transaction)
        assert transaction.status == 'failed'
        assert transaction.gateway_message == 'Card declined'
        assert stripe_order.payment.status == 'failed'

    def test_unknown_event_type_is_ignored(self, session, stripe_order):
        transaction = stripe_order.payment.transaction
        webhook = payment_service.record_webhook(session, 'stripe', 'evt_4', 'customer.updated',
                                                 {'transaction_id': transaction.transaction_id})

        session.refresh(transaction)
        assert webhook.status == 'ignored'
        assert webhook.transaction_id == transaction.id
        assert transaction.status == 'pending'

    def test_unmatched_transaction_is_ignored(self, session, stripe_order):
        webhook = payment_service.record_webhook(session, 'stripe', 'evt_5', 'payment.succeeded',
                                                 {'transaction_id': 'TXN-NOT-OURS'})
        assert webhook.status == 'ignored'
        assert webhook.transaction_id is None

    def test_other_gateway_does_not_match(self, session, stripe_order):
        webhook = payment_service.record_webhook(
            session, 'paypal', 'evt_6', 'payment.succeeded',
            {'transaction_id': stripe_order.payment.transaction.transaction_id}
        )
        assert webhook.status == 'ignored'

    def test_terminal_transaction_is_not_changed(self, session, stripe_order):
        transaction = stripe_order.payment.transaction
        payload = {'transaction_id': transaction.transaction_id}
        payment_service.record_webhook(session, 'stripe', 'evt_7', 'payment.failed', payload)
        payment_service.record_webhook(session, 'stripe', 'evt_8', 'payment.succeeded', payload)

        session.refresh(transaction)
        assert transaction.status == 'failed'

    def test_event_id_required(self, session):
        with pytest.raises(BusinessLogicError) as exc:
            payment_service.record_webhook(session, 'stripe', '', 'payment.succeeded', {})
        assert exc.value.reason == 'invalid_webhook'
