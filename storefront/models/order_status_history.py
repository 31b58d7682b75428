"""Order Status History model (append-only)."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntPK


class OrderStatusHistory(Base):
    """One row per status change, never updated or deleted by the core."""

    __tablename__ = 'order_status_histories'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    comment = Column(Text, nullable=True)
    created_by = Column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, nullable=False)

    order = relationship('Order', back_populates='status_histories')
    actor = relationship('User')

    def __repr__(self):
        return f"<OrderStatusHistory(order_id={self.order_id}, status={self.status})>"
