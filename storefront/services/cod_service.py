"""
COD Service - cash on delivery collections and remittance reconciliation.

Invariants kept here (not by the database):
    * DeliveryPerson.cod_balance = sum of the person's collections that are
      'collected' and not yet attached to a remittance. It is recomputed from
      scratch after every change, never incremented.
    * CodRemittance.total_amount / order_count equal the sum / count of the
      collections linked to it.

Remittance flow: pending -> submitted -> verified -> deposited -> reconciled.
Verification is soft: disagreements are written to discrepancy_notes.
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from storefront.models import (
    CodCollection, CodRemittance, CodRemittanceCollection, CollectionStatus, DeliveryPerson, Order,
    RemittanceStatus
)
from storefront.exceptions import (
    BusinessLogicError, NotFoundError, RemittanceError, RemittanceMismatchError, RemittanceStateError
)
from storefront.services import payment_service
from storefront.services.order_service import random_suffix

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
TWO_PLACES = Decimal('0.01')
MAX_NUMBER_ATTEMPTS = 10

REMITTED_STATUSES = (
    RemittanceStatus.VERIFIED.value,
    RemittanceStatus.DEPOSITED.value,
    RemittanceStatus.RECONCILED.value,
)


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def generate_remittance_number(session: Session, now: Optional[datetime] = None) -> str:
    """RMT-YYYYMMDD-XXXXXX, regenerated on collision."""
    now = now or datetime.now()
    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = f"RMT-{now.strftime('%Y%m%d')}-{random_suffix()}"
        if not session.query(CodRemittance.id).filter(CodRemittance.remittance_number == number).first():
            return number
    raise RemittanceError('Could not generate a unique remittance number', reason='remittance_number_exhausted')


def _get_person(session: Session, delivery_person_id: int, lock: bool = False) -> DeliveryPerson:
    query = session.query(DeliveryPerson).filter(DeliveryPerson.id == delivery_person_id)
    if lock:
        query = query.with_for_update()
    person = query.first()
    if not person:
        raise NotFoundError('Delivery person not found')
    return person


def _get_remittance(session: Session, remittance_id: int, lock: bool = True) -> CodRemittance:
    query = session.query(CodRemittance).filter(CodRemittance.id == remittance_id)
    if lock:
        query = query.with_for_update()
    remittance = query.first()
    if not remittance:
        raise NotFoundError('Remittance not found')
    return remittance


def unbatched_balance(session: Session, delivery_person_id: int) -> Decimal:
    total = session.query(func.coalesce(func.sum(CodCollection.amount), 0)).filter(
        CodCollection.delivery_person_id == delivery_person_id,
        CodCollection.status == CollectionStatus.COLLECTED.value,
        CodCollection.remittance_id.is_(None),
    ).scalar()
    return _money(total)


def recalculate_cod_balance(session: Session, delivery_person_id: int) -> Decimal:
    """Recompute and store a delivery person's unbatched COD balance."""
    session.flush()
    person = _get_person(session, delivery_person_id)
    person.cod_balance = unbatched_balance(session, delivery_person_id)
    session.flush()
    return person.cod_balance


def record_collection(session: Session, order_id: int, delivery_person_id: int, amount,
                      collected_by: Optional[int], notes: Optional[str] = None,
                      now: Optional[datetime] = None) -> CodCollection:
    """
    Record cash collected for a COD order (one collection per order).

    An amount different from the order's amount_to_collect is accepted and
    the difference is noted on the collection.
    """
    now = now or datetime.now()
    amount = _money(amount)
    if amount <= 0:
        raise BusinessLogicError('Collected amount must be greater than 0', reason='invalid_amount')

    order = session.get(Order, order_id)
    if not order:
        raise NotFoundError('Order not found')
    if not order.is_cod:
        raise BusinessLogicError(f'Order {order.order_number} is not cash on delivery', reason='order_not_cod')
    if session.query(CodCollection.id).filter(CodCollection.order_id == order_id).first():
        raise BusinessLogicError(f'Cash for order {order.order_number} was already collected',
                                 reason='already_collected')

    person = _get_person(session, delivery_person_id)

    expected = _money(order.amount_to_collect if order.amount_to_collect is not None else order.total)
    lines = [notes] if notes else []
    if amount != expected:
        lines.append(f'Collected {amount}, expected {expected}')
        logger.warning(f"[COD] Order {order.order_number}: collected {amount}, expected {expected}")

    try:
        collection = CodCollection(
            order_id=order.id,
            delivery_person_id=person.id,
            collected_by=collected_by,
            amount=amount,
            status=CollectionStatus.COLLECTED.value,
            collected_at=now,
            notes='\n'.join(lines) or None,
        )
        session.add(collection)

        order.payment_collected_at = now
        order.collected_by = collected_by

        payment = order.payment
        if payment is not None and payment.transaction is not None and not payment.transaction.is_successful():
            payment_service.mark_transaction_completed(session, payment.transaction,
                                                       gateway_status='collected', now=now)

        session.flush()
        recalculate_cod_balance(session, person.id)
        session.commit()
        logger.info(f"[COD] Collected {amount} for {order.order_number} by {person.name}")
        return collection

    except IntegrityError as e:
        session.rollback()
        raise BusinessLogicError('Cash for this order was already collected', reason='already_collected') from e
    except Exception:
        session.rollback()
        raise


def _collections_for_remittance(session: Session, person: DeliveryPerson,
                                collection_ids: Optional[Iterable[int]]) -> List[CodCollection]:
    if collection_ids is None:
        return session.query(CodCollection).filter(
            CodCollection.delivery_person_id == person.id,
            CodCollection.status == CollectionStatus.COLLECTED.value,
            CodCollection.remittance_id.is_(None),
        ).order_by(CodCollection.id).all()

    ids = {int(cid) for cid in collection_ids}
    if not ids:
        return []

    rows = session.query(CodCollection).filter(CodCollection.id.in_(ids)).order_by(CodCollection.id).all()
    missing = ids - {row.id for row in rows}
    if missing:
        raise RemittanceError(f'Unknown collections: {sorted(missing)}')

    for row in rows:
        if row.delivery_person_id != person.id:
            raise RemittanceError(f'Collection {row.id} belongs to another delivery person')
        if row.remittance_id is not None or row.status != CollectionStatus.COLLECTED.value:
            raise RemittanceError(f'Collection {row.id} is already part of a remittance',
                                  reason='collection_already_batched')
    return rows


def linked_totals(session: Session, remittance_id: int):
    """(sum, count) of the collections actually linked to a remittance."""
    total, count = session.query(
        func.coalesce(func.sum(CodRemittanceCollection.amount), 0),
        func.count(CodRemittanceCollection.id),
    ).filter(CodRemittanceCollection.remittance_id == remittance_id).one()
    return _money(total), int(count)


def _check_header(session: Session, remittance: CodRemittance):
    session.flush()
    total, count = linked_totals(session, remittance.id)
    if total != _money(remittance.total_amount) or count != remittance.order_count:
        raise RemittanceMismatchError(expected=total, actual=_money(remittance.total_amount))


def create_remittance(session: Session, delivery_person_id: int, collection_ids: Optional[Iterable[int]] = None,
                      declared_total=None, submitted_by: Optional[int] = None, notes: Optional[str] = None,
                      now: Optional[datetime] = None) -> CodRemittance:
    """
    Batch unremitted collections of a delivery person into a new remittance.

    With `collection_ids=None` every collected, unbatched collection of the
    person is taken. A `declared_total` (amount handed in) that differs from
    the computed sum rejects the remittance.
    """
    now = now or datetime.now()
    try:
        # Serializes concurrent remittances for the same person
        person = _get_person(session, delivery_person_id, lock=True)

        collections = _collections_for_remittance(session, person, collection_ids)
        if not collections:
            raise RemittanceError('There are no collections to remit', reason='no_collections')

        total = _money(sum((c.amount for c in collections), ZERO))
        count = len(collections)

        if declared_total is not None and _money(declared_total) != total:
            raise RemittanceMismatchError(expected=total, actual=_money(declared_total))

        remittance = CodRemittance(
            remittance_number=generate_remittance_number(session, now),
            delivery_person_id=person.id,
            total_amount=total,
            order_count=count,
            status=RemittanceStatus.PENDING.value,
            submitted_by=submitted_by,
            notes=notes,
            created_at=now,
        )
        session.add(remittance)
        session.flush()

        for collection in collections:
            collection.remittance = remittance
            remittance.links.append(CodRemittanceCollection(collection_id=collection.id, amount=collection.amount))

        _check_header(session, remittance)
        recalculate_cod_balance(session, person.id)
        session.commit()

        logger.info(
            f"[COD] Remittance {remittance.remittance_number} created for {person.name}: "
            f"{count} orders, {total}"
        )
        return remittance

    except IntegrityError as e:
        session.rollback()
        raise RemittanceError('A collection is already part of another remittance',
                              reason='collection_already_batched') from e
    except Exception:
        session.rollback()
        raise


def _append_discrepancy(remittance: CodRemittance, text: str):
    remittance.discrepancy_notes = f"{remittance.discrepancy_notes}\n{text}" if remittance.discrepancy_notes else text


def _require_status(remittance: CodRemittance, expected: str):
    if remittance.status != expected:
        raise RemittanceStateError(
            f'Remittance {remittance.remittance_number} is {remittance.status}, expected {expected}'
        )


def _set_collection_status(remittance: CodRemittance, status: str):
    for collection in remittance.collections:
        collection.status = status


def submit_remittance(session: Session, remittance_id: int, submitted_by: Optional[int] = None,
                      now: Optional[datetime] = None) -> CodRemittance:
    try:
        remittance = _get_remittance(session, remittance_id)
        _require_status(remittance, RemittanceStatus.PENDING.value)
        if remittance.order_count == 0:
            raise RemittanceError('Cannot submit an empty remittance', reason='no_collections')

        remittance.status = RemittanceStatus.SUBMITTED.value
        remittance.submitted_at = now or datetime.now()
        if submitted_by:
            remittance.submitted_by = submitted_by
        session.commit()
        return remittance
    except Exception:
        session.rollback()
        raise


def verify_remittance(session: Session, remittance_id: int, verified_by: Optional[int],
                      counted_amount=None, notes: Optional[str] = None,
                      now: Optional[datetime] = None) -> CodRemittance:
    """
    Admin confirmation of a submitted remittance.

    Never blocks on a disagreement: a counted amount that differs from the
    declared total, or a header that no longer matches its collections, is
    written to discrepancy_notes and the remittance still becomes verified.
    """
    try:
        remittance = _get_remittance(session, remittance_id)
        _require_status(remittance, RemittanceStatus.SUBMITTED.value)

        declared = _money(remittance.total_amount)
        if counted_amount is not None and _money(counted_amount) != declared:
            counted = _money(counted_amount)
            _append_discrepancy(remittance, f'Counted {counted}, declared {declared} (difference {counted - declared})')
            logger.warning(f"[COD] Remittance {remittance.remittance_number}: counted {counted}, declared {declared}")

        linked_total, linked_count = linked_totals(session, remittance.id)
        if linked_total != declared or linked_count != remittance.order_count:
            _append_discrepancy(
                remittance,
                f'Linked collections total {linked_total} over {linked_count} orders, '
                f'header says {declared} over {remittance.order_count}'
            )

        if notes:
            remittance.notes = f"{remittance.notes}\n{notes}" if remittance.notes else notes
        remittance.status = RemittanceStatus.VERIFIED.value
        remittance.verified_by = verified_by
        remittance.verified_at = now or datetime.now()
        session.commit()
        return remittance
    except Exception:
        session.rollback()
        raise


def mark_remittance_deposited(session: Session, remittance_id: int, deposited_amount=None,
                              now: Optional[datetime] = None) -> CodRemittance:
    try:
        remittance = _get_remittance(session, remittance_id)
        _require_status(remittance, RemittanceStatus.VERIFIED.value)

        declared = _money(remittance.total_amount)
        deposited = _money(deposited_amount) if deposited_amount is not None else declared
        if deposited != declared:
            _append_discrepancy(remittance, f'Deposited {deposited}, declared {declared}')

        remittance.status = RemittanceStatus.DEPOSITED.value
        remittance.deposited_amount = deposited
        remittance.deposited_at = now or datetime.now()
        _set_collection_status(remittance, CollectionStatus.DEPOSITED.value)
        session.commit()
        return remittance
    except Exception:
        session.rollback()
        raise


def reconcile_remittance(session: Session, remittance_id: int, now: Optional[datetime] = None) -> CodRemittance:
    try:
        remittance = _get_remittance(session, remittance_id)
        _require_status(remittance, RemittanceStatus.DEPOSITED.value)

        remittance.status = RemittanceStatus.RECONCILED.value
        remittance.reconciled_at = now or datetime.now()
        _set_collection_status(remittance, CollectionStatus.RECONCILED.value)
        session.commit()
        logger.info(f"[COD] Remittance {remittance.remittance_number} reconciled")
        return remittance
    except Exception:
        session.rollback()
        raise


def detach_collection(session: Session, remittance_id: int, collection_id: int) -> CodRemittance:
    """Take a collection back out of a pending remittance; header and balance are recomputed."""
    try:
        remittance = _get_remittance(session, remittance_id)
        _require_status(remittance, RemittanceStatus.PENDING.value)

        link = next((row for row in remittance.links if row.collection_id == collection_id), None)
        if link is None:
            raise RemittanceError(f'Collection {collection_id} is not part of this remittance',
                                  reason='collection_not_in_remittance')

        link.collection.remittance = None
        remittance.links.remove(link)
        session.flush()

        remittance.total_amount, remittance.order_count = linked_totals(session, remittance.id)
        _check_header(session, remittance)
        recalculate_cod_balance(session, remittance.delivery_person_id)
        session.commit()
        return remittance
    except Exception:
        session.rollback()
        raise


def get_cod_summary(session: Session, delivery_person_id: int) -> Dict[str, object]:
    """Collected, remitted (verified or later) and pending amounts of a delivery person."""
    person = _get_person(session, delivery_person_id)

    total_collected = session.query(func.coalesce(func.sum(CodCollection.amount), 0)).filter(
        CodCollection.delivery_person_id == person.id,
        CodCollection.status != CollectionStatus.PENDING.value,
    ).scalar()

    total_remitted = session.query(func.coalesce(func.sum(CodRemittance.total_amount), 0)).filter(
        CodRemittance.delivery_person_id == person.id,
        CodRemittance.status.in_(REMITTED_STATUSES),
    ).scalar()

    pending_remittances = session.query(func.count(CodRemittance.id)).filter(
        CodRemittance.delivery_person_id == person.id,
        CodRemittance.status.in_((RemittanceStatus.PENDING.value, RemittanceStatus.SUBMITTED.value)),
    ).scalar()

    return {
        'delivery_person_id': person.id,
        'total_collected': _money(total_collected),
        'total_remitted': _money(total_remitted),
        'pending_balance': unbatched_balance(session, person.id),
        'pending_remittances': int(pending_remittances or 0),
    }
