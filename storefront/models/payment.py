"""Payment model."""
import enum
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK, JSONType


class PaymentStatus(str, enum.Enum):
    """Payment attempt status."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


class Payment(Base):
    """Gateway-agnostic payment record, one per order."""

    __tablename__ = 'payments'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, unique=True)
    transaction_id = Column(BigInteger, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    payment_method = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    amount = Column(Numeric(10, 2), nullable=False)
    currency_code = Column(String(3), nullable=False)
    gateway_response = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    order = relationship('Order', back_populates='payment')
    transaction = relationship('Transaction')

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled', 'refunded')",
            name='check_payment_status'
        ),
    )

    def __repr__(self):
        return f"<Payment(order_id={self.order_id}, method={self.payment_method}, status={self.status})>"
