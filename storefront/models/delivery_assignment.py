"""Delivery Assignment model."""
import enum
from sqlalchemy import Column, BigInteger, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntPK


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = 'assigned'
    ACCEPTED = 'accepted'
    IN_TRANSIT = 'in_transit'
    DELIVERED = 'delivered'
    FAILED = 'failed'


OPEN_ASSIGNMENT_STATUSES = (
    AssignmentStatus.ASSIGNED.value,
    AssignmentStatus.ACCEPTED.value,
    AssignmentStatus.IN_TRANSIT.value,
)


class DeliveryAssignment(Base):
    """Order handed to a delivery person."""

    __tablename__ = 'delivery_assignments'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    delivery_person_id = Column(BigInteger, ForeignKey('delivery_persons.id', ondelete='RESTRICT'), nullable=False)
    assigned_by = Column(BigInteger, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    status = Column(String(20), nullable=False, default=AssignmentStatus.ASSIGNED.value)
    assigned_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)

    order = relationship('Order')
    delivery_person = relationship('DeliveryPerson', back_populates='assignments')

    __table_args__ = (
        Index('ix_delivery_assignments_person_status', 'delivery_person_id', 'status'),
    )

    def __repr__(self):
        return f"<DeliveryAssignment(order_id={self.order_id}, person={self.delivery_person_id}, status={self.status})>"
