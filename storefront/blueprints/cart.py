"""Cart blueprint - JSON endpoints for the shopper's cart."""
from flask import Blueprint, request, jsonify, g, current_app
from storefront.database import get_session
from storefront.exceptions import BusinessLogicError
from storefront.middleware import require_login
from storefront.services import cart_service, shipping_service
from storefront.services.pricing_service import recalculate_cart, cart_weight
from storefront.utils.shop_context import tax_rate, currency_context, display_amounts
from storefront.utils.translations import Translated

cart_bp = Blueprint('cart', __name__, url_prefix='/cart')

MONEY_FIELDS = ('subtotal', 'discount_amount', 'tax_amount', 'shipping_amount', 'cod_fee', 'total')


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _int_field(payload: dict, name: str, default=None, required: bool = False):
    value = payload.get(name, default)
    if value is None:
        if required:
            raise BusinessLogicError(f'{name} is required', reason='invalid_request')
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BusinessLogicError(f'{name} must be an integer', reason='invalid_request')


def _current_cart(db_session):
    return cart_service.get_or_create_cart(db_session, user_id=g.get('user_id'),
                                           session_id=g.get('cart_session_id'))


def _cart_response(db_session, cart, status=200):
    ctx = currency_context(db_session)
    data = cart.to_dict()
    data['currency'] = ctx.code
    data['display'] = display_amounts({f: getattr(cart, f) for f in MONEY_FIELDS}, ctx)
    data['can_checkout'] = cart_service.can_checkout(cart)
    return jsonify({'status': 'ok', 'cart': data}), status


@cart_bp.route('', methods=['GET'])
def view_cart():
    """Current cart, recalculated so an expired coupon shows up as a zero discount."""
    db_session = get_session()
    cart = _current_cart(db_session)
    recalculate_cart(db_session, cart, tax_rate())
    db_session.commit()
    return _cart_response(db_session, cart)


@cart_bp.route('/items', methods=['POST'])
def add_item():
    db_session = get_session()
    payload = _payload()
    product_id = _int_field(payload, 'product_id', required=True)
    quantity = _int_field(payload, 'quantity', default=1)
    variant_id = _int_field(payload, 'variant_id')

    cart = _current_cart(db_session)
    cart_service.add_item(db_session, cart, product_id, quantity, variant_id, tax_rate=tax_rate())
    db_session.commit()
    current_app.logger.info(f"[CART] cart={cart.id} add product={product_id} qty={quantity}")
    return _cart_response(db_session, cart, 201)


@cart_bp.route('/items/<int:item_id>', methods=['PATCH'])
def update_item(item_id):
    db_session = get_session()
    quantity = _int_field(_payload(), 'quantity', required=True)

    cart = _current_cart(db_session)
    cart_service.update_item_quantity(db_session, cart, item_id, quantity, tax_rate=tax_rate())
    db_session.commit()
    return _cart_response(db_session, cart)


@cart_bp.route('/items/<int:item_id>', methods=['DELETE'])
def delete_item(item_id):
    db_session = get_session()
    cart = _current_cart(db_session)
    cart_service.remove_item(db_session, cart, item_id, tax_rate=tax_rate())
    db_session.commit()
    return _cart_response(db_session, cart)


@cart_bp.route('/coupon', methods=['POST'])
def apply_coupon():
    db_session = get_session()
    code = (_payload().get('code') or '').strip()
    if not code:
        raise BusinessLogicError('Coupon code is required', reason='invalid_request')

    cart = _current_cart(db_session)
    cart_service.apply_coupon(db_session, cart, code, g.get('user_id'), tax_rate=tax_rate())
    db_session.commit()
    return _cart_response(db_session, cart)


@cart_bp.route('/coupon', methods=['DELETE'])
def remove_coupon():
    db_session = get_session()
    cart = _current_cart(db_session)
    cart_service.remove_coupon(db_session, cart, tax_rate=tax_rate())
    db_session.commit()
    return _cart_response(db_session, cart)


@cart_bp.route('/shipping', methods=['POST'])
def set_shipping():
    db_session = get_session()
    payload = _payload()
    method_id = _int_field(payload, 'shipping_method_id')
    city_id = _int_field(payload, 'city_id')
    is_cod = bool(payload.get('is_cod', False))
    if is_cod and not current_app.config.get('COD_ENABLED', True):
        raise BusinessLogicError('Cash on delivery is disabled', reason='cod_not_supported')

    cart = _current_cart(db_session)
    cart_service.set_shipping(db_session, cart, method_id, city_id, is_cod, tax_rate=tax_rate())
    db_session.commit()
    return _cart_response(db_session, cart)


@cart_bp.route('/shipping-methods', methods=['GET'])
def shipping_methods():
    """Methods offered for a destination city with their cost for the current cart."""
    db_session = get_session()
    city_id = request.args.get('city_id', type=int)
    cart = _current_cart(db_session)
    zone = shipping_service.find_zone_for_city(db_session, city_id)
    ctx = currency_context(db_session)
    weight = cart_weight(cart)

    methods = []
    for method in shipping_service.get_available_methods(db_session, city_id):
        cost = shipping_service.calculate_cost(method, zone, weight=weight, subtotal=cart.subtotal)
        methods.append({
            'id': method.id,
            'name': Translated.from_column(method.name).resolve(ctx.locale),
            'cost': str(cost),
            'display_cost': display_amounts({'cost': cost}, ctx)['cost'],
            'estimated_delivery': shipping_service.estimated_delivery(method),
            'supports_cod': method.supports_cod,
        })
    return jsonify({'status': 'ok', 'methods': methods})


@cart_bp.route('/merge', methods=['POST'])
@require_login
def merge_guest_cart():
    """Fold the anonymous session cart into the signed-in customer's cart."""
    db_session = get_session()
    target = cart_service.get_or_create_cart(db_session, user_id=g.user_id)
    source = cart_service.get_or_create_cart(db_session, session_id=g.cart_session_id)
    cart_service.merge_carts(db_session, target, source, tax_rate=tax_rate())
    db_session.commit()
    return _cart_response(db_session, target)
