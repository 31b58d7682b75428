"""
Coupon evaluation and usage accounting.

Validation is pure (coupon row + clock). Usage counters are only touched by
`redeem_coupon`, which runs inside the order placement transaction.
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from sqlalchemy import update, or_, and_, func
from sqlalchemy.exc import IntegrityError
from storefront.models import Coupon, CouponUser, CouponType
from storefront.exceptions import InvalidCouponError, CouponUsageLimitError

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')

REASON_MESSAGES = {
    'coupon_not_found': 'Coupon code not found',
    'coupon_inactive': 'Coupon is not active',
    'coupon_not_started': 'Coupon is not valid yet',
    'coupon_expired': 'Coupon has expired',
    'coupon_usage_exceeded': 'Coupon usage limit has been reached',
    'coupon_user_limit_reached': 'You have already used this coupon the maximum number of times',
    'coupon_minimum_not_met': 'Order does not reach the coupon minimum amount',
}


def normalize_code(code: str) -> str:
    return (code or '').strip().upper()


def validity_reason(coupon: Coupon, now: datetime) -> Optional[str]:
    """Return the first failing validity rule, or None when the coupon is valid."""
    if not coupon.is_active:
        return 'coupon_inactive'
    if coupon.valid_from is not None and coupon.valid_from > now:
        return 'coupon_not_started'
    if coupon.valid_until is not None and coupon.valid_until < now:
        return 'coupon_expired'
    if coupon.usage_limit is not None and (coupon.used_count or 0) >= coupon.usage_limit:
        return 'coupon_usage_exceeded'
    return None


def is_valid(coupon: Coupon, now: Optional[datetime] = None) -> bool:
    return validity_reason(coupon, now or datetime.now()) is None


def user_usage_count(session, coupon_id: int, user_id: int) -> int:
    usage = session.query(CouponUser).filter_by(coupon_id=coupon_id, user_id=user_id).first()
    return usage.usage_count if usage else 0


def eligible_for(session, coupon: Coupon, user_id: Optional[int], subtotal,
                 now: Optional[datetime] = None) -> Tuple[bool, Optional[str]]:
    """
    Full eligibility check for a cart subtotal and (optionally) a user.

    Returns (ok, reason). Anonymous carts skip the per-user limit; it is
    checked again at order placement where a user is always known.
    """
    reason = validity_reason(coupon, now or datetime.now())
    if reason:
        return False, reason

    if coupon.minimum_amount is not None and Decimal(str(subtotal)) < coupon.minimum_amount:
        return False, 'coupon_minimum_not_met'

    if user_id and coupon.usage_limit_per_user is not None:
        if user_usage_count(session, coupon.id, user_id) >= coupon.usage_limit_per_user:
            return False, 'coupon_user_limit_reached'

    return True, None


def discount_for(coupon: Coupon, subtotal) -> Decimal:
    """Discount amount for a subtotal, never more than the subtotal."""
    subtotal = Decimal(str(subtotal))
    if subtotal <= 0:
        return Decimal('0.00')

    if coupon.type == CouponType.PERCENTAGE.value:
        discount = subtotal * Decimal(str(coupon.value)) / Decimal('100')
    else:
        discount = Decimal(str(coupon.value))

    return min(discount, subtotal).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def find_by_code(session, code: str) -> Optional[Coupon]:
    return session.query(Coupon).filter(Coupon.code == normalize_code(code)).first()


def validate_for_cart(session, code: str, user_id: Optional[int], subtotal,
                      now: Optional[datetime] = None) -> Coupon:
    """Apply-time validation. Raises InvalidCouponError with a reason code."""
    coupon = find_by_code(session, code)
    if coupon is None:
        raise InvalidCouponError(REASON_MESSAGES['coupon_not_found'], 'coupon_not_found')

    ok, reason = eligible_for(session, coupon, user_id, subtotal, now)
    if not ok:
        raise InvalidCouponError(REASON_MESSAGES[reason], reason)
    return coupon


def redeem_coupon(session, coupon_id: int, user_id: int):
    """
    Count one use of a coupon for a user.

    Both counters use guarded UPDATEs so concurrent checkouts can never push
    them past their limits. Must run inside the caller's transaction; a
    failed guard raises CouponUsageLimitError and the caller rolls back.
    """
    coupon = session.get(Coupon, coupon_id)
    if coupon is None:
        raise CouponUsageLimitError(str(coupon_id))

    result = session.execute(
        update(Coupon)
        .where(and_(
            Coupon.id == coupon_id,
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        ))
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(f"[COUPON] Global limit guard failed for {coupon.code}")
        raise CouponUsageLimitError(coupon.code)

    _increment_user_usage(session, coupon, user_id)
    session.refresh(coupon)
    logger.info(f"[COUPON] Redeemed {coupon.code} for user {user_id} (used_count={coupon.used_count})")


def _guarded_user_increment(session, coupon: Coupon, user_id: int) -> int:
    conditions = [CouponUser.coupon_id == coupon.id, CouponUser.user_id == user_id]
    if coupon.usage_limit_per_user is not None:
        conditions.append(CouponUser.usage_count < coupon.usage_limit_per_user)
    result = session.execute(
        update(CouponUser)
        .where(and_(*conditions))
        .values(usage_count=CouponUser.usage_count + 1, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _increment_user_usage(session, coupon: Coupon, user_id: int):
    if _guarded_user_increment(session, coupon, user_id):
        return

    exists = session.query(CouponUser.id).filter_by(coupon_id=coupon.id, user_id=user_id).first()
    if exists is not None or coupon.usage_limit_per_user == 0:
        logger.warning(f"[COUPON] Per-user limit guard failed for {coupon.code} / user {user_id}")
        raise CouponUsageLimitError(coupon.code)

    try:
        with session.begin_nested():
            session.add(CouponUser(coupon_id=coupon.id, user_id=user_id, usage_count=1))
    except IntegrityError:
        # Another checkout created the pivot first
        if not _guarded_user_increment(session, coupon, user_id):
            raise CouponUsageLimitError(coupon.code)


def release_coupon(session, coupon_id: int, user_id: Optional[int]):
    """Give back one use of a coupon (order cancelled). Never goes below zero."""
    session.execute(
        update(Coupon)
        .where(and_(Coupon.id == coupon_id, Coupon.used_count > 0))
        .values(used_count=Coupon.used_count - 1)
        .execution_options(synchronize_session=False)
    )
    if user_id:
        session.execute(
            update(CouponUser)
            .where(and_(
                CouponUser.coupon_id == coupon_id,
                CouponUser.user_id == user_id,
                CouponUser.usage_count > 0,
            ))
            .values(usage_count=CouponUser.usage_count - 1)
            .execution_options(synchronize_session=False)
        )
