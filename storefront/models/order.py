"""Order model."""
import enum
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK, JSONType


class OrderStatus(str, enum.Enum):
    """Known order statuses. The column itself accepts any string."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'


CANCELLABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.PROCESSING.value)
TERMINAL_STATUSES = (OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value)


class Order(Base):
    """
    Checkout-time snapshot of a cart.

    Amounts are in the base currency; `currency_code`/`exchange_rate` record the
    customer's display currency at purchase time.
    """

    __tablename__ = 'orders'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_number = Column(String(32), nullable=False, unique=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='RESTRICT'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)

    # Totals
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    # Currency at time of purchase
    currency_code = Column(String(3), nullable=False)
    exchange_rate = Column(Numeric(12, 4), nullable=False, default=1)

    # Coupon
    coupon_id = Column(BigInteger, ForeignKey('coupons.id', ondelete='SET NULL'), nullable=True)
    coupon_code = Column(String(50), nullable=True)

    # Shipping (details are a frozen snapshot of the method)
    shipping_method_id = Column(BigInteger, ForeignKey('shipping_methods.id', ondelete='SET NULL'), nullable=True)
    shipping_method_details = Column(JSONType, nullable=True)

    payment_method = Column(String(30), nullable=False)

    # Cash on delivery
    is_cod = Column(Boolean, nullable=False, default=False)
    cod_fee = Column(Numeric(10, 2), nullable=False, default=0)
    amount_to_collect = Column(Numeric(10, 2), nullable=True)
    payment_collected_at = Column(DateTime, nullable=True)
    collected_by = Column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    notes = Column(Text, nullable=True)

    # Lifecycle timestamps
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship('User', foreign_keys=[user_id])
    collector = relationship('User', foreign_keys=[collected_by])
    coupon = relationship('Coupon')
    shipping_method = relationship('ShippingMethod')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    addresses = relationship('OrderAddress', back_populates='order', cascade='all, delete-orphan')
    status_histories = relationship('OrderStatusHistory', back_populates='order', cascade='all, delete-orphan',
                                    order_by='OrderStatusHistory.id')
    payment = relationship('Payment', back_populates='order', uselist=False, cascade='all, delete-orphan')
    refunds = relationship('Refund', back_populates='order')
    cod_collection = relationship('CodCollection', back_populates='order', uselist=False)

    def __repr__(self):
        return f"<Order(number='{self.order_number}', status={self.status}, total={self.total})>"

    @property
    def shipping_address(self):
        return next((a for a in self.addresses if a.type == 'shipping'), None)

    @property
    def billing_address(self):
        return next((a for a in self.addresses if a.type == 'billing'), None)

    def to_dict(self):
        return {
            'id': self.id,
            'order_number': self.order_number,
            'status': self.status,
            'subtotal': str(self.subtotal),
            'discount_amount': str(self.discount_amount),
            'tax_amount': str(self.tax_amount),
            'shipping_amount': str(self.shipping_amount),
            'cod_fee': str(self.cod_fee),
            'total': str(self.total),
            'currency_code': self.currency_code,
            'exchange_rate': str(self.exchange_rate),
            'coupon_code': self.coupon_code,
            'payment_method': self.payment_method,
            'is_cod': self.is_cod,
            'amount_to_collect': str(self.amount_to_collect) if self.amount_to_collect is not None else None,
            'shipped_at': self.shipped_at.isoformat() if self.shipped_at else None,
            'delivered_at': self.delivered_at.isoformat() if self.delivered_at else None,
        }
