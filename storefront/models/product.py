"""Product model."""
from sqlalchemy import Column, String, Boolean, Integer, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK, JSONType
from storefront.utils.translations import Translated


class Product(Base):
    """Catalog product. Read-only input to the pricing engine except for stock."""

    __tablename__ = 'products'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sku = Column(String(100), nullable=True, unique=True)
    name = Column(JSONType, nullable=False)  # {"en": "...", "ar": "..."}
    price = Column(Numeric(10, 2), nullable=False)
    compare_price = Column(Numeric(10, 2), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    track_quantity = Column(Boolean, nullable=False, default=True)
    weight = Column(Numeric(10, 3), nullable=False, default=0)  # kg
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    variants = relationship('ProductVariant', back_populates='product', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}')>"

    def display_name(self, locale=None):
        return Translated.from_column(self.name).resolve(locale)

    @property
    def has_variants(self):
        return any(v.is_active for v in self.variants)

    @property
    def available_quantity(self):
        """Units that can still be sold; None means stock is not tracked."""
        if not self.track_quantity:
            return None
        if self.has_variants:
            return sum(v.quantity for v in self.variants if v.is_active)
        return self.quantity

    def is_in_stock(self):
        available = self.available_quantity
        return available is None or available > 0
