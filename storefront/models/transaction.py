"""Transaction and Transaction Log models."""
import enum
from dataclasses import dataclass
from typing import Union
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK, JSONType


class TransactionStatus(str, enum.Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'


class TransactionType(str, enum.Enum):
    PAYMENT = 'payment'
    REFUND = 'refund'
    PARTIAL_REFUND = 'partial_refund'
    AUTHORIZATION = 'authorization'
    CAPTURE = 'capture'
    VOID = 'void'


@dataclass(frozen=True)
class OrderSubject:
    """Transaction taken against an order."""
    order_id: int


@dataclass(frozen=True)
class RefundSubject:
    """Transaction paying out a refund."""
    refund_id: int


TransactionSubject = Union[OrderSubject, RefundSubject]

_SUBJECT_TYPES = {
    OrderSubject: ('order', 'order_id'),
    RefundSubject: ('refund', 'refund_id'),
}


def subject_columns(subject: TransactionSubject):
    """Return the (subject_type, subject_id) pair stored on the row."""
    try:
        type_name, attr = _SUBJECT_TYPES[type(subject)]
    except KeyError:
        raise ValueError(f"Unsupported transaction subject: {subject!r}")
    return type_name, getattr(subject, attr)


def subject_from_row(subject_type: str, subject_id: int) -> TransactionSubject:
    """Rebuild the tagged subject from its stored columns."""
    if subject_type == 'order':
        return OrderSubject(subject_id)
    if subject_type == 'refund':
        return RefundSubject(subject_id)
    raise ValueError(f"Unknown transaction subject type: {subject_type}")


class Transaction(Base):
    """
    Money movement attempt against a gateway.

    `transaction_id` is the internal idempotency key.
    """

    __tablename__ = 'transactions'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    transaction_id = Column(String(64), nullable=False, unique=True)
    gateway_transaction_id = Column(String(255), nullable=True, index=True)
    subject_type = Column(String(20), nullable=False)
    subject_id = Column(BigInteger, nullable=False)
    gateway = Column(String(50), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency_code = Column(String(3), nullable=False)
    gateway_status = Column(String(50), nullable=True)
    gateway_message = Column(Text, nullable=True)
    metadata_json = Column('metadata', JSONType, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    logs = relationship('TransactionLog', back_populates='transaction', cascade='all, delete-orphan',
                        order_by='TransactionLog.id')

    __table_args__ = (
        Index('ix_transactions_subject', 'subject_type', 'subject_id'),
    )

    def __repr__(self):
        return f"<Transaction(transaction_id='{self.transaction_id}', status={self.status}, amount={self.amount})>"

    @property
    def subject(self) -> TransactionSubject:
        return subject_from_row(self.subject_type, self.subject_id)

    def is_successful(self):
        return self.status == TransactionStatus.COMPLETED.value


class TransactionLog(Base):
    """Event trail for a transaction (request sent, webhook received, ...)."""

    __tablename__ = 'transaction_logs'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    transaction_id = Column(BigInteger, ForeignKey('transactions.id', ondelete='CASCADE'), nullable=False, index=True)
    event = Column(String(50), nullable=False)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    transaction = relationship('Transaction', back_populates='logs')

    def __repr__(self):
        return f"<TransactionLog(transaction_id={self.transaction_id}, event='{self.event}')>"
