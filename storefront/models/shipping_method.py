"""Shipping Method model and per-zone cost overrides."""
import enum
from sqlalchemy import (
    Column, BigInteger, Boolean, Integer, Numeric, String, DateTime, ForeignKey,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK, JSONType


class CalculationType(str, enum.Enum):
    """How a method prices a shipment."""
    FLAT = 'flat'
    WEIGHT_BASED = 'weight_based'
    PRICE_BASED = 'price_based'


class ShippingMethod(Base):
    """
    Shipping method.

    `rates` holds ordered tiers: [{"min": 0, "max": 5, "cost": "30.00"}, ...].
    """

    __tablename__ = 'shipping_methods'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(JSONType, nullable=False)
    description = Column(JSONType, nullable=True)
    base_cost = Column(Numeric(10, 2), nullable=False, default=0)
    calculation_type = Column(String(20), nullable=False, default=CalculationType.FLAT.value)
    rates = Column(JSONType, nullable=True)
    min_days = Column(Integer, nullable=False, default=1)
    max_days = Column(Integer, nullable=False, default=7)
    is_active = Column(Boolean, nullable=False, default=True)

    # Cash on delivery
    supports_cod = Column(Boolean, nullable=False, default=False)
    cod_fee = Column(Numeric(10, 2), nullable=False, default=0)
    cod_fee_type = Column(String(20), nullable=False, default='fixed')

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    zone_links = relationship('ShippingMethodZone', back_populates='method', cascade='all, delete-orphan')

    __table_args__ = (
        CheckConstraint("calculation_type IN ('flat', 'weight_based', 'price_based')", name='check_calculation_type'),
        CheckConstraint("cod_fee_type IN ('fixed', 'percentage')", name='check_cod_fee_type'),
    )

    def __repr__(self):
        return f"<ShippingMethod(id={self.id}, type={self.calculation_type}, base_cost={self.base_cost})>"


class ShippingMethodZone(Base):
    """Links a method to a zone, optionally replacing its calculated cost."""

    __tablename__ = 'shipping_method_zone'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    shipping_method_id = Column(BigInteger, ForeignKey('shipping_methods.id', ondelete='CASCADE'), nullable=False)
    shipping_zone_id = Column(BigInteger, ForeignKey('shipping_zones.id', ondelete='CASCADE'), nullable=False)
    cost_override = Column(Numeric(10, 2), nullable=True)

    method = relationship('ShippingMethod', back_populates='zone_links')
    zone = relationship('ShippingZone', back_populates='method_links')

    __table_args__ = (
        UniqueConstraint('shipping_method_id', 'shipping_zone_id', name='uq_shipping_method_zone'),
    )

    def __repr__(self):
        return (f"<ShippingMethodZone(method_id={self.shipping_method_id}, "
                f"zone_id={self.shipping_zone_id}, override={self.cost_override})>")
