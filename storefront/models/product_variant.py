"""Product Variant model."""
from sqlalchemy import Column, BigInteger, String, Boolean, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntPK, JSONType


class ProductVariant(Base):
    """Purchasable configuration of a product (size/color) with its own price and stock."""

    __tablename__ = 'product_variants'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    sku = Column(String(100), nullable=True, unique=True)
    attributes = Column(JSONType, nullable=True)  # {"size": "M", "color": "red"}
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    weight = Column(Numeric(10, 3), nullable=True)  # falls back to product weight
    is_active = Column(Boolean, nullable=False, default=True)

    product = relationship('Product', back_populates='variants')

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, sku='{self.sku}')>"

    @property
    def attributes_label(self):
        return ', '.join(f"{k.capitalize()}: {v}" for k, v in (self.attributes or {}).items())
