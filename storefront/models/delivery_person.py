"""Delivery Person model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntPK


class DeliveryPerson(Base):
    """
    Courier who may collect cash on delivery.

    `cod_balance` is cash collected but not yet batched into a remittance.
    It is recomputed from collections, never incremented in place.
    """

    __tablename__ = 'delivery_persons'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    email = Column(String(255), nullable=True)
    vehicle_number = Column(String(50), nullable=True)
    id_number = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    cod_balance = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    assignments = relationship('DeliveryAssignment', back_populates='delivery_person')
    collections = relationship('CodCollection', back_populates='delivery_person')
    remittances = relationship('CodRemittance', back_populates='delivery_person')

    def __repr__(self):
        return f"<DeliveryPerson(id={self.id}, name='{self.name}', cod_balance={self.cod_balance})>"
