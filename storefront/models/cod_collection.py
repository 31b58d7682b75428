"""COD Collection model."""
import enum
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class CollectionStatus(str, enum.Enum):
    PENDING = 'pending'
    COLLECTED = 'collected'
    DEPOSITED = 'deposited'
    RECONCILED = 'reconciled'


class CodCollection(Base):
    """Cash collected for one COD order."""

    __tablename__ = 'cod_collections'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='RESTRICT'), nullable=False, unique=True)
    delivery_person_id = Column(BigInteger, ForeignKey('delivery_persons.id', ondelete='SET NULL'), nullable=True)
    collected_by = Column(BigInteger, ForeignKey('users.id', ondelete='RESTRICT'), nullable=True)
    remittance_id = Column(BigInteger, ForeignKey('cod_remittances.id', ondelete='SET NULL'), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=CollectionStatus.PENDING.value)
    collected_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    order = relationship('Order', back_populates='cod_collection')
    delivery_person = relationship('DeliveryPerson', back_populates='collections')
    remittance = relationship('CodRemittance', back_populates='collections')

    __table_args__ = (
        Index('ix_cod_collections_person_status', 'delivery_person_id', 'status'),
    )

    def __repr__(self):
        return f"<CodCollection(order_id={self.order_id}, amount={self.amount}, status={self.status})>"
