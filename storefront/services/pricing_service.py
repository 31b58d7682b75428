"""
Cart Pricing Engine.

    subtotal -> discount -> tax -> shipping -> COD fee -> total

`calculate_totals` is the pure arithmetic; `recalculate_cart` gathers the
inputs from a cart (coupon, shipping selection, items) and writes the result
back onto the cart row. Items are never modified here.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from storefront.models import Cart
from storefront.services import coupon_service, shipping_service

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
TWO_PLACES = Decimal('0.01')


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    cod_fee: Decimal
    total: Decimal

    def to_dict(self):
        return {k: str(v) for k, v in asdict(self).items()}


def calculate_subtotal(lines: Iterable[Tuple]) -> Decimal:
    """Sum of unit_price * quantity over (unit_price, quantity) pairs."""
    subtotal = ZERO
    for unit_price, quantity in lines:
        subtotal += Decimal(str(unit_price)) * int(quantity)
    return _money(subtotal)


def calculate_totals(lines: Iterable[Tuple], coupon_discount=ZERO, tax_rate=ZERO,
                     shipping=ZERO, cod_fee=ZERO) -> CartTotals:
    """
    Pure totals computation.

    `coupon_discount` is clamped to the subtotal and tax is charged on the
    discounted amount:
        tax   = (subtotal - discount) * tax_rate / 100
        total = max(0, subtotal - discount + tax + shipping + cod_fee)
    """
    subtotal = calculate_subtotal(lines)
    discount = min(max(_money(coupon_discount), ZERO), subtotal)
    tax = _money((subtotal - discount) * Decimal(str(tax_rate)) / Decimal('100'))
    shipping = _money(shipping)
    cod_fee = _money(cod_fee)
    total = max(ZERO, subtotal - discount + tax + shipping + cod_fee)
    return CartTotals(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        shipping_amount=shipping,
        cod_fee=cod_fee,
        total=_money(total),
    )


def cart_weight(cart: Cart) -> Decimal:
    return sum((Decimal(str(item.unit_weight)) * item.quantity for item in cart.items), Decimal('0'))


def coupon_discount_for_cart(session, cart: Cart, subtotal: Decimal,
                             now: Optional[datetime] = None, user_id: Optional[int] = None) -> Decimal:
    """Discount of the attached coupon, or 0 when it is no longer eligible."""
    if cart.coupon is None:
        return ZERO
    ok, reason = coupon_service.eligible_for(session, cart.coupon, user_id or cart.user_id, subtotal, now)
    if not ok:
        logger.info(f"[PRICING] Coupon {cart.coupon.code} dropped from cart {cart.id}: {reason}")
        return ZERO
    return coupon_service.discount_for(cart.coupon, subtotal)


def recalculate_cart(session, cart: Cart, tax_rate, now: Optional[datetime] = None,
                     user_id: Optional[int] = None) -> Cart:
    """
    Recompute and persist the derived monetary fields of a cart.

    `user_id` overrides the cart owner for the per-user coupon limit (guest
    cart checked out by a signed-in customer).
    """
    lines = [(item.price, item.quantity) for item in cart.items]
    subtotal = calculate_subtotal(lines)

    discount = coupon_discount_for_cart(session, cart, subtotal, now, user_id)

    shipping = ZERO
    cod_fee = ZERO
    if cart.shipping_method is not None:
        shipping = shipping_service.calculate_cost(
            cart.shipping_method, cart.shipping_zone, weight=cart_weight(cart), subtotal=subtotal
        )
        if cart.is_cod:
            cod_fee = shipping_service.calculate_cod_fee(cart.shipping_method, subtotal)

    totals = calculate_totals(lines, discount, tax_rate, shipping, cod_fee)

    cart.subtotal = totals.subtotal
    cart.discount_amount = totals.discount_amount
    cart.tax_amount = totals.tax_amount
    cart.shipping_amount = totals.shipping_amount
    cart.cod_fee = totals.cod_fee
    cart.total = totals.total
    session.flush()
    return cart


def totals_of(cart: Cart) -> CartTotals:
    """Read back the persisted totals of a cart."""
    return CartTotals(
        subtotal=_money(cart.subtotal or 0),
        discount_amount=_money(cart.discount_amount or 0),
        tax_amount=_money(cart.tax_amount or 0),
        shipping_amount=_money(cart.shipping_amount or 0),
        cod_fee=_money(cart.cod_fee or 0),
        total=_money(cart.total or 0),
    )
