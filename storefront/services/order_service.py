"""
Order Service - checkout placement and order lifecycle.

Placement runs as a single transaction: stock decrement, coupon usage,
order rows, payment and cart clearing are committed together or not at all.

Lifecycle: pending -> processing -> shipped -> delivered -> refunded,
pending/processing -> cancelled. `update_order_status` records any status
it is given; `can_be_cancelled` / `can_be_refunded` are the gates callers
check first (cancel_order / refund_order do so).
"""
import logging
import secrets
import string
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import update, and_
from sqlalchemy.exc import IntegrityError
from storefront.models import (
    Cart, Order, OrderItem, OrderAddress, OrderStatusHistory, OrderStatus, Product, ProductVariant,
    Refund, PaymentStatus, TransactionType, TransactionStatus, RefundSubject, CANCELLABLE_STATUSES
)
from storefront.exceptions import (
    StorefrontError, BusinessLogicError, NotFoundError, InsufficientStockError,
    CouponUsageLimitError, OrderStateError, OrderPlacementError
)
from storefront.services import coupon_service, shipping_service, payment_service
from storefront.services.currency_service import CurrencyContext
from storefront.services.pricing_service import recalculate_cart, totals_of, cart_weight

logger = logging.getLogger(__name__)

REFUND_WINDOW_DAYS = 30
NUMBER_ALPHABET = string.ascii_uppercase + string.digits
MAX_NUMBER_ATTEMPTS = 10
COD_PAYMENT_METHOD = 'cod'

ADDRESS_REQUIRED_FIELDS = ('name', 'phone', 'address_line_1', 'city', 'country')


def random_suffix(length: int = 6) -> str:
    return ''.join(secrets.choice(NUMBER_ALPHABET) for _ in range(length))


def generate_order_number(session, now: Optional[datetime] = None) -> str:
    """ORD-YYYYMMDD-XXXXXX, regenerated while it collides with an existing order."""
    now = now or datetime.now()
    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = f"ORD-{now.strftime('%Y%m%d')}-{random_suffix()}"
        if not session.query(Order.id).filter(Order.order_number == number).first():
            return number
    raise StorefrontError('Could not generate a unique order number')


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def update_order_status(session, order: Order, status, comment: Optional[str] = None,
                        actor_id: Optional[int] = None, now: Optional[datetime] = None) -> Order:
    """
    Set the order status and append a history row.

    No transition graph is enforced here. Entering shipped, delivered,
    cancelled or refunded stamps the matching timestamp.
    """
    status = getattr(status, 'value', status)
    now = now or datetime.now()

    order.status = status
    if status == OrderStatus.SHIPPED.value:
        order.shipped_at = now
    elif status == OrderStatus.DELIVERED.value:
        order.delivered_at = now
    elif status == OrderStatus.CANCELLED.value:
        order.cancelled_at = now
    elif status == OrderStatus.REFUNDED.value:
        order.refunded_at = now

    order.status_histories.append(OrderStatusHistory(
        status=status,
        comment=comment,
        created_by=actor_id,
        created_at=now,
    ))
    session.flush()
    logger.info(f"[ORDER] {order.order_number} -> {status}")
    return order


def can_be_cancelled(order: Order) -> bool:
    return order.status in CANCELLABLE_STATUSES


def can_be_refunded(order: Order, now: Optional[datetime] = None,
                    window_days: int = REFUND_WINDOW_DAYS) -> bool:
    if order.status != OrderStatus.DELIVERED.value or order.delivered_at is None:
        return False
    now = now or datetime.now()
    return now - order.delivered_at <= timedelta(days=window_days)


def _restore_stock(session, order: Order):
    for item in order.items:
        if not item.product.track_quantity:
            continue
        if item.product_variant_id:
            session.execute(
                update(ProductVariant)
                .where(ProductVariant.id == item.product_variant_id)
                .values(quantity=ProductVariant.quantity + item.quantity)
                .execution_options(synchronize_session=False)
            )
        else:
            session.execute(
                update(Product)
                .where(Product.id == item.product_id)
                .values(quantity=Product.quantity + item.quantity)
                .execution_options(synchronize_session=False)
            )


def cancel_order(session, order: Order, comment: Optional[str] = None, actor_id: Optional[int] = None,
                 now: Optional[datetime] = None) -> Order:
    """Cancel a pending/processing order: restore stock, void payment, give back the coupon use."""
    if not can_be_cancelled(order):
        raise OrderStateError(f'Order {order.order_number} cannot be cancelled in status {order.status}')

    try:
        _restore_stock(session, order)

        if order.coupon_id:
            coupon_service.release_coupon(session, order.coupon_id, order.user_id)

        payment = order.payment
        if payment is not None:
            payment.status = PaymentStatus.CANCELLED.value
            transaction = payment.transaction
            if transaction is not None and transaction.status == TransactionStatus.PENDING.value:
                transaction.status = TransactionStatus.CANCELLED.value

        update_order_status(session, order, OrderStatus.CANCELLED, comment or 'Order cancelled', actor_id, now)
        session.commit()
        return order

    except Exception:
        session.rollback()
        raise


def refund_order(session, order: Order, amount=None, reason: Optional[str] = None,
                 actor_id: Optional[int] = None, gateway: Optional[str] = None,
                 now: Optional[datetime] = None, window_days: int = REFUND_WINDOW_DAYS) -> Refund:
    """Refund a delivered order inside the refund window."""
    now = now or datetime.now()
    if not can_be_refunded(order, now, window_days):
        raise OrderStateError(f'Order {order.order_number} cannot be refunded', reason='refund_not_allowed')

    amount = Decimal(str(amount)) if amount is not None else order.total
    if amount <= 0 or amount > order.total:
        raise BusinessLogicError('Refund amount must be between 0 and the order total',
                                 reason='invalid_refund_amount')

    try:
        refund = Refund(order_id=order.id, amount=amount, reason=reason, status='pending',
                        created_by=actor_id)
        session.add(refund)
        session.flush()

        payment = order.payment
        if gateway is None:
            gateway = order.payment_method
            if payment is not None and payment.transaction is not None:
                gateway = payment.transaction.gateway
        refund_type = TransactionType.REFUND if amount == order.total else TransactionType.PARTIAL_REFUND
        payment_service.record_transaction(
            session, RefundSubject(refund.id), gateway=gateway, type=refund_type,
            amount=amount, currency_code=order.currency_code,
            metadata={'order_number': order.order_number},
        )

        if payment is not None:
            payment.status = PaymentStatus.REFUNDED.value
        update_order_status(session, order, OrderStatus.REFUNDED, reason or 'Order refunded', actor_id, now)
        session.commit()
        return refund

    except Exception:
        session.rollback()
        raise


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def _clean_address(data: Optional[Dict[str, Any]], kind: str) -> Dict[str, Any]:
    if not data:
        raise BusinessLogicError(f'The {kind} address is required', reason='address_required')
    missing = [f for f in ADDRESS_REQUIRED_FIELDS if not data.get(f)]
    if missing:
        raise BusinessLogicError(f'The {kind} address is missing: {", ".join(missing)}',
                                 reason='address_incomplete')
    return {
        'name': data['name'],
        'phone': data['phone'],
        'address_line_1': data['address_line_1'],
        'address_line_2': data.get('address_line_2'),
        'city_id': data.get('city_id'),
        'city': data['city'],
        'country': data['country'],
        'postal_code': data.get('postal_code'),
    }


def _check_items(cart: Cart):
    """Pre-flight stock and availability check (validation errors)."""
    for item in cart.items:
        product = item.product
        if not product.is_active or (item.variant is not None and not item.variant.is_active):
            raise BusinessLogicError(f'Product "{product.display_name()}" is no longer available',
                                     reason='product_inactive')
        if not product.track_quantity:
            continue
        available = item.variant.quantity if item.variant is not None else product.quantity
        if item.quantity > available:
            raise InsufficientStockError(product.display_name(), item.quantity, available)


def _decrement_stock(session, item):
    """Guarded decrement; zero rows updated means another order took the stock."""
    product = item.product
    if not product.track_quantity:
        return

    if item.product_variant_id:
        model, row_id = ProductVariant, item.product_variant_id
    else:
        model, row_id = Product, item.product_id

    result = session.execute(
        update(model)
        .where(and_(model.id == row_id, model.quantity >= item.quantity))
        .values(quantity=model.quantity - item.quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(f"[CHECKOUT] Stock guard failed for {model.__name__} {row_id} (qty {item.quantity})")
        raise InsufficientStockError(product.display_name(), item.quantity)


def _product_snapshot(item, locale: Optional[str]) -> Dict[str, Any]:
    product = item.product
    snapshot = {
        'name': product.display_name(locale),
        'sku': item.variant.sku if item.variant is not None and item.variant.sku else product.sku,
        'price': str(item.price),
        'weight': str(item.unit_weight),
    }
    if item.variant is not None:
        snapshot['variant'] = item.variant.attributes_label
        snapshot['attributes'] = item.variant.attributes or {}
    return snapshot


def place_order(
    session,
    cart: Cart,
    shipping_method_id: int,
    payment_method: str,
    addresses: Dict[str, Dict[str, Any]],
    currency: CurrencyContext,
    tax_rate,
    user_id: int,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    Turn a cart into an order.

    `addresses` holds a 'shipping' address and an optional 'billing' one
    (defaults to the shipping address). Validation problems raise their own
    exception before anything is written. Guard failures inside the
    transaction (stock, coupon limit, integrity) roll everything back and
    raise OrderPlacementError carrying the underlying reason.
    """
    now = now or datetime.now()

    # 1. Validation
    if not user_id:
        raise BusinessLogicError('A signed-in customer is required to check out', reason='user_required')
    if cart is None or cart.is_empty():
        raise BusinessLogicError('Cart is empty', reason='cart_empty')
    if not payment_method:
        raise BusinessLogicError('Payment method is required', reason='payment_method_required')

    addresses = addresses or {}
    shipping_address = _clean_address(addresses.get('shipping'), 'shipping')
    billing_address = _clean_address(addresses.get('billing') or addresses.get('shipping'), 'billing')

    is_cod = payment_method == COD_PAYMENT_METHOD
    method, zone = shipping_service.resolve_shipping(
        session, shipping_method_id, shipping_address.get('city_id'), is_cod
    )
    _check_items(cart)

    try:
        # 2. Final pricing: the coupon is re-validated silently
        cart.shipping_method = method
        cart.shipping_zone = zone
        cart.is_cod = is_cod
        recalculate_cart(session, cart, tax_rate, now, user_id=user_id)
        totals = totals_of(cart)
        coupon = cart.coupon if totals.discount_amount > 0 else None
        if cart.coupon is not None and coupon is None:
            logger.info(f"[CHECKOUT] Coupon {cart.coupon.code} no longer applies, placing order without it")

        # 3. Guarded stock decrement
        for item in cart.items:
            _decrement_stock(session, item)

        # 4. Guarded coupon usage
        if coupon is not None:
            coupon_service.redeem_coupon(session, coupon.id, user_id)

        # 5. Order
        order = Order(
            order_number=generate_order_number(session, now),
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            tax_amount=totals.tax_amount,
            shipping_amount=totals.shipping_amount,
            cod_fee=totals.cod_fee,
            total=totals.total,
            currency_code=currency.code,
            exchange_rate=currency.exchange_rate,
            coupon_id=coupon.id if coupon is not None else None,
            coupon_code=coupon.code if coupon is not None else None,
            shipping_method_id=method.id,
            shipping_method_details=shipping_service.snapshot_method(
                method, zone, currency.locale, totals.shipping_amount
            ),
            payment_method=payment_method,
            is_cod=is_cod,
            amount_to_collect=totals.total if is_cod else None,
            notes=notes,
            created_at=now,
        )
        session.add(order)
        session.flush()

        for item in cart.items:
            order.items.append(OrderItem(
                product_id=item.product_id,
                product_variant_id=item.product_variant_id,
                product_details=_product_snapshot(item, currency.locale),
                quantity=item.quantity,
                price=item.price,
                total=item.price * item.quantity,
            ))

        order.addresses.append(OrderAddress(type='shipping', **shipping_address))
        order.addresses.append(OrderAddress(type='billing', **billing_address))

        order.status_histories.append(OrderStatusHistory(
            status=OrderStatus.PENDING.value,
            comment='Order placed',
            created_by=user_id,
            created_at=now,
        ))
        session.flush()

        # 6. Payment + payment transaction
        payment_service.create_payment(session, order, payment_method)

        # 7. Clear the cart
        weight = cart_weight(cart)
        cart.items.clear()
        cart.coupon = None
        cart.shipping_method = None
        cart.shipping_zone = None
        cart.is_cod = False
        recalculate_cart(session, cart, tax_rate, now)

        session.commit()
        logger.info(
            f"[CHECKOUT] Order {order.order_number} placed: total={order.total} {order.currency_code}, "
            f"weight={weight}, cod={is_cod}"
        )
        return order

    except (InsufficientStockError, CouponUsageLimitError) as e:
        session.rollback()
        raise OrderPlacementError(e.reason) from e
    except IntegrityError as e:
        session.rollback()
        logger.error(f"[CHECKOUT] Integrity error while placing order: {e}")
        raise OrderPlacementError('integrity_error') from e
    except Exception:
        session.rollback()
        raise


def get_order(session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if not order:
        raise NotFoundError('Order not found')
    return order
