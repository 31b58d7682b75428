"""Cart Item model."""
from sqlalchemy import Column, BigInteger, Integer, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntPK


class CartItem(Base):
    """
    Cart line.

    `price` is the unit price captured when the item was added (or its
    quantity last changed), not a live catalog read.
    """

    __tablename__ = 'cart_items'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    cart_id = Column(BigInteger, ForeignKey('carts.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    product_variant_id = Column(BigInteger, ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    cart = relationship('Cart', back_populates='items')
    product = relationship('Product')
    variant = relationship('ProductVariant')

    __table_args__ = (
        UniqueConstraint('cart_id', 'product_id', 'product_variant_id', name='uq_cart_item_product_variant'),
    )

    def __repr__(self):
        return f"<CartItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"

    @property
    def line_total(self):
        return self.price * self.quantity

    @property
    def unit_weight(self):
        if self.variant is not None and self.variant.weight is not None:
            return self.variant.weight
        return self.product.weight or 0

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_variant_id': self.product_variant_id,
            'quantity': self.quantity,
            'price': str(self.price),
            'line_total': str(self.line_total),
        }
