"""Delivery assignment service."""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session
from storefront.models import (
    DeliveryAssignment, DeliveryPerson, Order, OrderStatus, AssignmentStatus, OPEN_ASSIGNMENT_STATUSES,
    TERMINAL_STATUSES
)
from storefront.exceptions import BusinessLogicError, NotFoundError, OrderStateError
from storefront.services.order_service import update_order_status

logger = logging.getLogger(__name__)

MAX_CONCURRENT_ASSIGNMENTS = 10


def get_delivery_person(session: Session, delivery_person_id: int) -> DeliveryPerson:
    person = session.get(DeliveryPerson, delivery_person_id)
    if not person:
        raise NotFoundError('Delivery person not found')
    return person


def current_assignments(session: Session, delivery_person_id: int) -> List[DeliveryAssignment]:
    return session.query(DeliveryAssignment).filter(
        DeliveryAssignment.delivery_person_id == delivery_person_id,
        DeliveryAssignment.status.in_(OPEN_ASSIGNMENT_STATUSES)
    ).order_by(DeliveryAssignment.assigned_at).all()


def can_be_assigned(session: Session, person: DeliveryPerson,
                    max_assignments: int = MAX_CONCURRENT_ASSIGNMENTS) -> bool:
    """Active and carrying fewer than `max_assignments` open deliveries."""
    if not person.is_active:
        return False
    return len(current_assignments(session, person.id)) < max_assignments


def _get_assignment(session: Session, assignment_id: int) -> DeliveryAssignment:
    assignment = session.get(DeliveryAssignment, assignment_id)
    if not assignment:
        raise NotFoundError('Delivery assignment not found')
    return assignment


def assign_delivery(session: Session, order_id: int, delivery_person_id: int,
                    assigned_by: Optional[int] = None, max_assignments: int = MAX_CONCURRENT_ASSIGNMENTS,
                    now: Optional[datetime] = None) -> DeliveryAssignment:
    order = session.get(Order, order_id)
    if not order:
        raise NotFoundError('Order not found')
    if order.status in TERMINAL_STATUSES:
        raise OrderStateError(f'Order {order.order_number} is already {order.status}')

    person = get_delivery_person(session, delivery_person_id)
    if not can_be_assigned(session, person, max_assignments):
        raise BusinessLogicError(f'{person.name} cannot take more deliveries', reason='delivery_person_unavailable')

    open_assignment = session.query(DeliveryAssignment.id).filter(
        DeliveryAssignment.order_id == order_id,
        DeliveryAssignment.status.in_(OPEN_ASSIGNMENT_STATUSES)
    ).first()
    if open_assignment:
        raise BusinessLogicError('Order is already assigned', reason='order_already_assigned')

    assignment = DeliveryAssignment(
        order_id=order_id,
        delivery_person_id=delivery_person_id,
        assigned_by=assigned_by,
        status=AssignmentStatus.ASSIGNED.value,
        assigned_at=now or datetime.now(),
    )
    session.add(assignment)
    session.flush()
    logger.info(f"[DELIVERY] Order {order.order_number} assigned to {person.name}")
    return assignment


def accept_assignment(session: Session, assignment_id: int, now: Optional[datetime] = None) -> DeliveryAssignment:
    assignment = _get_assignment(session, assignment_id)
    if assignment.status != AssignmentStatus.ASSIGNED.value:
        raise BusinessLogicError('Only new assignments can be accepted', reason='invalid_assignment_state')
    assignment.status = AssignmentStatus.ACCEPTED.value
    assignment.accepted_at = now or datetime.now()
    session.flush()
    return assignment


def mark_assignment_delivered(session: Session, assignment_id: int, actor_id: Optional[int] = None,
                              now: Optional[datetime] = None) -> DeliveryAssignment:
    """Close the assignment and move the order to delivered."""
    now = now or datetime.now()
    assignment = _get_assignment(session, assignment_id)
    if assignment.status not in OPEN_ASSIGNMENT_STATUSES:
        raise BusinessLogicError('Assignment is already closed', reason='invalid_assignment_state')

    assignment.status = AssignmentStatus.DELIVERED.value
    assignment.delivered_at = now
    update_order_status(session, assignment.order, OrderStatus.DELIVERED,
                        f'Delivered by {assignment.delivery_person.name}', actor_id, now)
    return assignment


def mark_assignment_failed(session: Session, assignment_id: int, reason: str) -> DeliveryAssignment:
    assignment = _get_assignment(session, assignment_id)
    if assignment.status not in OPEN_ASSIGNMENT_STATUSES:
        raise BusinessLogicError('Assignment is already closed', reason='invalid_assignment_state')
    assignment.status = AssignmentStatus.FAILED.value
    assignment.failure_reason = reason
    session.flush()
    logger.info(f"[DELIVERY] Assignment {assignment.id} failed: {reason}")
    return assignment
