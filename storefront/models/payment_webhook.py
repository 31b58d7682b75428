"""Payment gateway webhook log, deduplicated by gateway event id."""
from sqlalchemy import Column, BigInteger, String, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK, JSONType


class PaymentWebhook(Base):
    """Inbound gateway event."""

    __tablename__ = 'payment_webhooks'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    gateway = Column(String(50), nullable=False)
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSONType, nullable=False)
    status = Column(String(20), nullable=False, default='pending', index=True)
    transaction_id = Column(BigInteger, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    error_message = Column(Text, nullable=True)
    received_at = Column(DateTime, nullable=False, server_default=func.now())
    processed_at = Column(DateTime, nullable=True)

    transaction = relationship('Transaction')

    __table_args__ = (
        UniqueConstraint('gateway', 'event_id', name='uq_payment_webhook_event'),
    )

    def __repr__(self):
        return f"<PaymentWebhook(gateway='{self.gateway}', event_id='{self.event_id}', status='{self.status}')>"

    @property
    def is_processed(self):
        return self.status == 'processed'
