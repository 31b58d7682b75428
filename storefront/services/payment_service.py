"""
Payment Service - gateway-agnostic payments, transactions and webhooks.

Transactions reference what they pay for through a `TransactionSubject`
(order or refund). `transaction_id` is the idempotency key: recording the
same id twice returns the first row.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from storefront.models import (
    Order, Payment, PaymentStatus, PaymentWebhook, Transaction, TransactionLog,
    TransactionStatus, TransactionType, TransactionSubject, OrderSubject, subject_columns
)
from storefront.exceptions import BusinessLogicError, NotFoundError

logger = logging.getLogger(__name__)

COD_GATEWAY = 'cod'

# Gateway event suffixes -> outcome
SUCCESS_EVENTS = ('succeeded', 'completed', 'paid', 'captured')
FAILURE_EVENTS = ('failed', 'declined', 'canceled', 'cancelled', 'expired')


def generate_transaction_id() -> str:
    return f"TXN-{uuid.uuid4().hex[:20].upper()}"


def record_transaction(
    session,
    subject: TransactionSubject,
    gateway: str,
    type: str,
    amount,
    currency_code: str,
    transaction_id: Optional[str] = None,
    gateway_transaction_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Transaction:
    """Create a pending transaction, or return the existing one for `transaction_id`."""
    if transaction_id:
        existing = session.query(Transaction).filter_by(transaction_id=transaction_id).first()
        if existing:
            logger.info(f"[PAYMENT] Transaction {transaction_id} already recorded")
            return existing

    subject_type, subject_id = subject_columns(subject)
    transaction = Transaction(
        transaction_id=transaction_id or generate_transaction_id(),
        gateway_transaction_id=gateway_transaction_id,
        subject_type=subject_type,
        subject_id=subject_id,
        gateway=gateway,
        type=getattr(type, 'value', type),
        status=TransactionStatus.PENDING.value,
        amount=Decimal(str(amount)),
        currency_code=currency_code,
        metadata_json=metadata,
    )
    transaction.logs.append(TransactionLog(event='created', data={'amount': str(amount), 'gateway': gateway}))
    session.add(transaction)
    session.flush()
    return transaction


def _payment_for(session, transaction: Transaction) -> Optional[Payment]:
    return session.query(Payment).filter_by(transaction_id=transaction.id).first()


def mark_transaction_completed(session, transaction: Transaction, gateway_transaction_id: Optional[str] = None,
                               gateway_status: Optional[str] = None, message: Optional[str] = None,
                               now: Optional[datetime] = None) -> Transaction:
    now = now or datetime.now()
    transaction.status = TransactionStatus.COMPLETED.value
    transaction.processed_at = now
    if gateway_transaction_id:
        transaction.gateway_transaction_id = gateway_transaction_id
    transaction.gateway_status = gateway_status
    transaction.gateway_message = message
    transaction.logs.append(TransactionLog(event='completed', data={'gateway_status': gateway_status}))

    payment = _payment_for(session, transaction)
    if payment is not None and transaction.type == TransactionType.PAYMENT.value:
        payment.status = PaymentStatus.COMPLETED.value
    session.flush()
    return transaction


def mark_transaction_failed(session, transaction: Transaction, message: Optional[str] = None,
                            gateway_status: Optional[str] = None,
                            now: Optional[datetime] = None) -> Transaction:
    now = now or datetime.now()
    transaction.status = TransactionStatus.FAILED.value
    transaction.failed_at = now
    transaction.gateway_status = gateway_status
    transaction.gateway_message = message
    transaction.logs.append(TransactionLog(event='failed', data={'message': message}))

    payment = _payment_for(session, transaction)
    if payment is not None and transaction.type == TransactionType.PAYMENT.value:
        payment.status = PaymentStatus.FAILED.value
    session.flush()
    return transaction


def create_payment(session, order: Order, payment_method: str) -> Payment:
    """
    Payment record plus its pending payment transaction for a new order.
    COD orders go through the 'cod' pseudo-gateway.
    """
    gateway = COD_GATEWAY if order.is_cod else payment_method
    transaction = record_transaction(
        session,
        OrderSubject(order.id),
        gateway=gateway,
        type=TransactionType.PAYMENT,
        amount=order.total,
        currency_code=order.currency_code,
        metadata={'order_number': order.order_number},
    )
    payment = Payment(
        order_id=order.id,
        transaction_id=transaction.id,
        payment_method=payment_method,
        status=PaymentStatus.PENDING.value,
        amount=order.total,
        currency_code=order.currency_code,
    )
    session.add(payment)
    session.flush()
    return payment


def _extract_reference(payload: Dict[str, Any]) -> Optional[str]:
    for key in ('gateway_transaction_id', 'transaction_id'):
        if payload.get(key):
            return str(payload[key])
    data = payload.get('data')
    if isinstance(data, dict):
        obj = data.get('object', data)
        if isinstance(obj, dict):
            for key in ('gateway_transaction_id', 'transaction_id', 'id'):
                if obj.get(key):
                    return str(obj[key])
    return None


def _event_outcome(event_type: str) -> Optional[str]:
    suffix = (event_type or '').lower().rsplit('.', 1)[-1]
    if suffix in SUCCESS_EVENTS:
        return TransactionStatus.COMPLETED.value
    if suffix in FAILURE_EVENTS:
        return TransactionStatus.FAILED.value
    return None


def record_webhook(session, gateway: str, event_id: str, event_type: str, payload: Dict[str, Any],
                   now: Optional[datetime] = None) -> PaymentWebhook:
    """
    Store and apply a gateway event exactly once.

    Deduplicated on (gateway, event_id). The event is matched to a
    transaction of the same gateway by gateway_transaction_id or our own
    transaction_id. Unmatched or unknown events are stored as 'ignored'.
    """
    if not event_id:
        raise BusinessLogicError('Webhook event id is required', reason='invalid_webhook')

    existing = session.query(PaymentWebhook).filter_by(gateway=gateway, event_id=event_id).first()
    if existing:
        logger.info(f"[WEBHOOK] Duplicate event {gateway}/{event_id} ignored")
        return existing

    now = now or datetime.now()
    try:
        webhook = PaymentWebhook(
            gateway=gateway,
            event_id=event_id,
            event_type=event_type,
            payload=payload,
            status='pending',
            received_at=now,
        )
        session.add(webhook)
        session.flush()

        reference = _extract_reference(payload)
        transaction = None
        if reference:
            transaction = session.query(Transaction).filter(
                Transaction.gateway == gateway,
                or_(Transaction.gateway_transaction_id == reference, Transaction.transaction_id == reference)
            ).first()

        outcome = _event_outcome(event_type)
        if transaction is None or outcome is None:
            webhook.status = 'ignored'
            webhook.processed_at = now
            if transaction is not None:
                webhook.transaction_id = transaction.id
            logger.info(f"[WEBHOOK] {gateway}/{event_id} ({event_type}) ignored")
        else:
            webhook.transaction_id = transaction.id
            transaction.logs.append(TransactionLog(event='webhook', data={'event_id': event_id,
                                                                          'event_type': event_type}))
            if transaction.status not in (TransactionStatus.COMPLETED.value, TransactionStatus.FAILED.value):
                if outcome == TransactionStatus.COMPLETED.value:
                    gateway_ref = reference if reference != transaction.transaction_id else None
                    mark_transaction_completed(session, transaction, gateway_transaction_id=gateway_ref,
                                               gateway_status=event_type, now=now)
                else:
                    mark_transaction_failed(session, transaction, message=payload.get('message'),
                                            gateway_status=event_type, now=now)
            webhook.status = 'processed'
            webhook.processed_at = now
            logger.info(f"[WEBHOOK] {gateway}/{event_id} applied to {transaction.transaction_id}")

        session.commit()
        return webhook

    except IntegrityError:
        # Same event delivered concurrently
        session.rollback()
        existing = session.query(PaymentWebhook).filter_by(gateway=gateway, event_id=event_id).first()
        if existing is None:
            raise
        return existing
    except Exception:
        session.rollback()
        raise


def get_transaction(session, transaction_id: str) -> Transaction:
    transaction = session.query(Transaction).filter_by(transaction_id=transaction_id).first()
    if not transaction:
        raise NotFoundError('Transaction not found')
    return transaction
