"""Order Item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntPK, JSONType


class OrderItem(Base):
    """Ordered line with a snapshot of the product as sold."""

    __tablename__ = 'order_items'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('products.id', ondelete='RESTRICT'), nullable=False)
    product_variant_id = Column(BigInteger, ForeignKey('product_variants.id', ondelete='RESTRICT'), nullable=True)
    product_details = Column(JSONType, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)

    order = relationship('Order', back_populates='items')
    product = relationship('Product')
    variant = relationship('ProductVariant')

    def __repr__(self):
        return f"<OrderItem(order_id={self.order_id}, product_id={self.product_id}, quantity={self.quantity})>"
