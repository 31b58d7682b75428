"""Cart model (persistent, user- or session-owned)."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class Cart(Base):
    """
    Cart - working draft of an order.

    The monetary columns are derived by the pricing engine and rewritten on
    every mutating cart operation:
        total = max(0, subtotal - discount_amount + tax_amount + shipping_amount + cod_fee)
    """

    __tablename__ = 'carts'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=True, index=True)
    session_id = Column(String(100), nullable=True, index=True)
    coupon_id = Column(BigInteger, ForeignKey('coupons.id', ondelete='SET NULL'), nullable=True)

    # Shipping selection
    shipping_method_id = Column(BigInteger, ForeignKey('shipping_methods.id', ondelete='SET NULL'), nullable=True)
    shipping_zone_id = Column(BigInteger, ForeignKey('shipping_zones.id', ondelete='SET NULL'), nullable=True)
    is_cod = Column(Boolean, nullable=False, default=False)

    # Derived totals
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_amount = Column(Numeric(10, 2), nullable=False, default=0)
    cod_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Relationships
    user = relationship('User')
    coupon = relationship('Coupon')
    shipping_method = relationship('ShippingMethod')
    shipping_zone = relationship('ShippingZone')
    items = relationship('CartItem', back_populates='cart', cascade='all, delete-orphan',
                         order_by='CartItem.id')

    def __repr__(self):
        return f"<Cart(id={self.id}, user_id={self.user_id}, total={self.total})>"

    @property
    def items_count(self):
        return sum(item.quantity for item in self.items)

    def is_empty(self):
        return len(self.items) == 0

    def to_dict(self):
        return {
            'id': self.id,
            'items': [item.to_dict() for item in self.items],
            'coupon_code': self.coupon.code if self.coupon else None,
            'shipping_method_id': self.shipping_method_id,
            'is_cod': self.is_cod,
            'subtotal': str(self.subtotal),
            'discount_amount': str(self.discount_amount),
            'tax_amount': str(self.tax_amount),
            'shipping_amount': str(self.shipping_amount),
            'cod_fee': str(self.cod_fee),
            'total': str(self.total),
        }
