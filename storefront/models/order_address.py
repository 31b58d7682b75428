"""Order Address model."""
from sqlalchemy import Column, BigInteger, String, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntPK


class OrderAddress(Base):
    """Billing or shipping address copied onto the order."""

    __tablename__ = 'order_addresses'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(String(10), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    address_line_1 = Column(String(255), nullable=False)
    address_line_2 = Column(String(255), nullable=True)
    city_id = Column(BigInteger, ForeignKey('cities.id', ondelete='SET NULL'), nullable=True)
    city = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=True)

    order = relationship('Order', back_populates='addresses')

    __table_args__ = (
        CheckConstraint("type IN ('billing', 'shipping')", name='check_address_type'),
    )

    def __repr__(self):
        return f"<OrderAddress(order_id={self.order_id}, type={self.type})>"
