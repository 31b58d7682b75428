"""COD Remittance model and its collection links."""
import enum
from sqlalchemy import Column, BigInteger, String, Integer, Numeric, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class RemittanceStatus(str, enum.Enum):
    PENDING = 'pending'
    SUBMITTED = 'submitted'
    VERIFIED = 'verified'
    DEPOSITED = 'deposited'
    RECONCILED = 'reconciled'


class CodRemittance(Base):
    """
    Batch of COD collections handed in by a delivery person.

    `total_amount` and `order_count` are set by the reconciliation service and
    must equal the sum/count of the linked collections.
    """

    __tablename__ = 'cod_remittances'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    remittance_number = Column(String(32), nullable=False, unique=True)
    delivery_person_id = Column(BigInteger, ForeignKey('delivery_persons.id', ondelete='RESTRICT'), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    order_count = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=RemittanceStatus.PENDING.value)
    submitted_by = Column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    verified_by = Column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    deposited_at = Column(DateTime, nullable=True)
    reconciled_at = Column(DateTime, nullable=True)
    deposited_amount = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)
    discrepancy_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    delivery_person = relationship('DeliveryPerson', back_populates='remittances')
    collections = relationship('CodCollection', back_populates='remittance')
    links = relationship('CodRemittanceCollection', back_populates='remittance', cascade='all, delete-orphan')

    __table_args__ = (
        Index('ix_cod_remittances_person_status', 'delivery_person_id', 'status'),
    )

    def __repr__(self):
        return (f"<CodRemittance(number='{self.remittance_number}', total={self.total_amount}, "
                f"orders={self.order_count}, status={self.status})>")

    def to_dict(self):
        return {
            'id': self.id,
            'remittance_number': self.remittance_number,
            'delivery_person_id': self.delivery_person_id,
            'total_amount': str(self.total_amount),
            'order_count': self.order_count,
            'status': self.status,
            'discrepancy_notes': self.discrepancy_notes,
        }


class CodRemittanceCollection(Base):
    """Join row: a collection can belong to at most one remittance."""

    __tablename__ = 'cod_remittance_collections'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    remittance_id = Column(BigInteger, ForeignKey('cod_remittances.id', ondelete='CASCADE'), nullable=False, index=True)
    collection_id = Column(BigInteger, ForeignKey('cod_collections.id', ondelete='RESTRICT'), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)

    remittance = relationship('CodRemittance', back_populates='links')
    collection = relationship('CodCollection')

    def __repr__(self):
        return f"<CodRemittanceCollection(remittance_id={self.remittance_id}, collection_id={self.collection_id})>"
