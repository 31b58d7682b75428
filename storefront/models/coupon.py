"""Coupon and per-user coupon usage models."""
import enum
from sqlalchemy import (
    Column, BigInteger, String, Boolean, Integer, Numeric, DateTime, ForeignKey,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK, JSONType


class CouponType(str, enum.Enum):
    """Discount calculation type."""
    FIXED = 'fixed'
    PERCENTAGE = 'percentage'


class Coupon(Base):
    """
    Discount code with a validity window and usage caps.

    Only `used_count` and `is_active` change after creation.
    """

    __tablename__ = 'coupons'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    description = Column(JSONType, nullable=True)
    type = Column(String(20), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    minimum_amount = Column(Numeric(10, 2), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_limit_per_user = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    user_usages = relationship('CouponUser', back_populates='coupon', cascade='all, delete-orphan')

    __table_args__ = (
        CheckConstraint("type IN ('fixed', 'percentage')", name='check_coupon_type'),
    )

    def __repr__(self):
        return f"<Coupon(code='{self.code}', type={self.type}, value={self.value})>"

    @property
    def is_percentage(self):
        return self.type == CouponType.PERCENTAGE.value


class CouponUser(Base):
    """Pivot tracking how many times a user redeemed a coupon."""

    __tablename__ = 'coupon_user'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    coupon_id = Column(BigInteger, ForeignKey('coupons.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    coupon = relationship('Coupon', back_populates='user_usages')
    user = relationship('User', back_populates='coupon_usages')

    __table_args__ = (
        UniqueConstraint('coupon_id', 'user_id', name='uq_coupon_user'),
    )

    def __repr__(self):
        return f"<CouponUser(coupon_id={self.coupon_id}, user_id={self.user_id}, usage_count={self.usage_count})>"
