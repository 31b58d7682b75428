"""Checkout blueprint - turns the current cart into an order."""
import logging
from flask import Blueprint, request, jsonify, g, current_app
from storefront.database import get_session
from storefront.exceptions import BusinessLogicError, OrderPlacementError
from storefront.middleware import require_login
from storefront.services import cart_service, order_service
from storefront.utils.shop_context import tax_rate, currency_context, display_amounts
from storefront.blueprints.metrics import (
    orders_placed_total, order_placement_failures_total, coupon_redemptions_total
)

logger = logging.getLogger(__name__)

checkout_bp = Blueprint('checkout', __name__, url_prefix='/checkout')


@checkout_bp.route('', methods=['POST'])
@require_login
def place_order():
    """
    Place an order from the signed-in customer's cart.

    Body: shipping_method_id, payment_method, addresses {shipping, billing?}, notes?
    """
    db_session = get_session()
    payload = request.get_json(silent=True) or {}

    try:
        shipping_method_id = int(payload.get('shipping_method_id'))
    except (TypeError, ValueError):
        raise BusinessLogicError('shipping_method_id is required', reason='invalid_request')

    payment_method = payload.get('payment_method')
    if payment_method == order_service.COD_PAYMENT_METHOD and not current_app.config.get('COD_ENABLED', True):
        raise BusinessLogicError('Cash on delivery is disabled', reason='cod_not_supported')

    ctx = currency_context(db_session)
    cart = cart_service.get_or_create_cart(db_session, user_id=g.user_id)

    try:
        order = order_service.place_order(
            db_session,
            cart,
            shipping_method_id=shipping_method_id,
            payment_method=payment_method,
            addresses=payload.get('addresses') or {},
            currency=ctx,
            tax_rate=tax_rate(),
            user_id=g.user_id,
            notes=payload.get('notes'),
        )
    except OrderPlacementError as e:
        order_placement_failures_total.labels(reason=e.reason or 'unknown').inc()
        raise

    orders_placed_total.labels(payment_method=order.payment_method).inc()
    if order.coupon_id:
        coupon_redemptions_total.inc()

    data = order.to_dict()
    data['display'] = display_amounts({
        'subtotal': order.subtotal,
        'discount_amount': order.discount_amount,
        'tax_amount': order.tax_amount,
        'shipping_amount': order.shipping_amount,
        'cod_fee': order.cod_fee,
        'total': order.total,
    }, ctx)
    return jsonify({'status': 'ok', 'order': data}), 201
