"""Refund model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class Refund(Base):
    """Money returned to a customer for a delivered order."""

    __tablename__ = 'refunds'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='RESTRICT'), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default='pending')
    created_by = Column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    order = relationship('Order', back_populates='refunds')

    def __repr__(self):
        return f"<Refund(order_id={self.order_id}, amount={self.amount}, status={self.status})>"
