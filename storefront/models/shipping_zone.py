"""Shipping Zone model."""
from sqlalchemy import Column, BigInteger, Boolean, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntPK, JSONType


shipping_zone_cities = Table(
    'shipping_zone_cities',
    Base.metadata,
    Column('shipping_zone_id', BigInteger, ForeignKey('shipping_zones.id', ondelete='CASCADE'), nullable=False),
    Column('city_id', BigInteger, ForeignKey('cities.id', ondelete='CASCADE'), nullable=False),
    UniqueConstraint('shipping_zone_id', 'city_id', name='uq_shipping_zone_city'),
)


class ShippingZone(Base):
    """Named group of cities used to restrict or override shipping methods."""

    __tablename__ = 'shipping_zones'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(JSONType, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    cities = relationship('City', secondary=shipping_zone_cities)
    method_links = relationship('ShippingMethodZone', back_populates='zone', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<ShippingZone(id={self.id})>"
