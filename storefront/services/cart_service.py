"""
Cart Service - persistent cart operations.

Every mutating operation ends with an explicit `recalculate_cart` call so
the derived totals are always consistent with the items, coupon and
shipping selection. Functions flush but never commit; the caller owns the
transaction.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session
from storefront.models import Cart, CartItem, Product, ProductVariant
from storefront.exceptions import BusinessLogicError, NotFoundError, InsufficientStockError
from storefront.services import coupon_service, shipping_service
from storefront.services.pricing_service import recalculate_cart, cart_weight

logger = logging.getLogger(__name__)

__all__ = [
    'get_or_create_cart', 'add_item', 'update_item_quantity', 'remove_item', 'clear_cart',
    'apply_coupon', 'remove_coupon', 'set_shipping', 'merge_carts', 'can_checkout', 'cart_weight',
]


def get_or_create_cart(session: Session, user_id: Optional[int] = None,
                       session_id: Optional[str] = None) -> Cart:
    """
    Get the cart of a user, or of an anonymous session.
    One cart per owner.
    """
    if not user_id and not session_id:
        raise BusinessLogicError('A cart needs a user or a session')

    query = session.query(Cart)
    if user_id:
        cart = query.filter(Cart.user_id == user_id).first()
    else:
        cart = query.filter(Cart.session_id == session_id, Cart.user_id.is_(None)).first()

    if not cart:
        cart = Cart(user_id=user_id, session_id=None if user_id else session_id)
        session.add(cart)
        session.flush()

    return cart


def _load_purchasable(session: Session, product_id: int, variant_id: Optional[int]):
    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError('Product not found')
    if not product.is_active:
        raise BusinessLogicError(f'Product "{product.display_name()}" is not available',
                                 reason='product_inactive')

    variant = None
    if variant_id:
        variant = session.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product.id:
            raise NotFoundError('Product variant not found')
        if not variant.is_active:
            raise BusinessLogicError('This product option is not available', reason='product_inactive')
    elif product.has_variants:
        raise BusinessLogicError('Please choose a product option', reason='variant_required')

    return product, variant


def _available(product: Product, variant: Optional[ProductVariant]) -> Optional[int]:
    if not product.track_quantity:
        return None
    return variant.quantity if variant is not None else product.quantity


def _unit_price(product: Product, variant: Optional[ProductVariant]):
    return variant.price if variant is not None else product.price


def _check_stock(product, variant, quantity):
    available = _available(product, variant)
    if available is not None and quantity > available:
        raise InsufficientStockError(product.display_name(), quantity, available)


def _find_item(cart: Cart, product_id: int, variant_id: Optional[int]) -> Optional[CartItem]:
    return next(
        (i for i in cart.items if i.product_id == product_id and i.product_variant_id == variant_id),
        None
    )


def _get_item(cart: Cart, item_id: int) -> CartItem:
    item = next((i for i in cart.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError('Item is not in the cart')
    return item


def add_item(session: Session, cart: Cart, product_id: int, quantity: int = 1,
             variant_id: Optional[int] = None, tax_rate=0) -> CartItem:
    """Add product to cart or increase its quantity if already there."""
    if quantity <= 0:
        raise BusinessLogicError('Quantity must be greater than 0', reason='invalid_quantity')

    product, variant = _load_purchasable(session, product_id, variant_id)
    item = _find_item(cart, product.id, variant.id if variant else None)

    new_quantity = quantity + (item.quantity if item else 0)
    _check_stock(product, variant, new_quantity)

    if item:
        item.quantity = new_quantity
        item.price = _unit_price(product, variant)
    else:
        item = CartItem(
            product_id=product.id,
            product_variant_id=variant.id if variant else None,
            product=product,
            variant=variant,
            quantity=new_quantity,
            price=_unit_price(product, variant),
        )
        cart.items.append(item)

    recalculate_cart(session, cart, tax_rate)
    return item


def update_item_quantity(session: Session, cart: Cart, item_id: int, quantity: int,
                         tax_rate=0) -> Optional[CartItem]:
    """Set an item's quantity. Zero or less removes the item. Refreshes the price snapshot."""
    item = _get_item(cart, item_id)

    if quantity <= 0:
        cart.items.remove(item)
        recalculate_cart(session, cart, tax_rate)
        return None

    _check_stock(item.product, item.variant, quantity)
    item.quantity = quantity
    item.price = _unit_price(item.product, item.variant)

    recalculate_cart(session, cart, tax_rate)
    return item


def remove_item(session: Session, cart: Cart, item_id: int, tax_rate=0) -> None:
    item = _get_item(cart, item_id)
    cart.items.remove(item)
    recalculate_cart(session, cart, tax_rate)


def clear_cart(session: Session, cart: Cart, tax_rate=0) -> None:
    """Remove all items and the coupon; shipping selection is kept."""
    cart.items.clear()
    cart.coupon = None
    recalculate_cart(session, cart, tax_rate)


def apply_coupon(session: Session, cart: Cart, code: str, user_id: Optional[int] = None,
                 tax_rate=0, now: Optional[datetime] = None):
    """
    Validate and attach a coupon. Raises InvalidCouponError with a reason code.
    Usage counters are not touched until the order is placed.
    """
    recalculate_cart(session, cart, tax_rate, now)
    coupon = coupon_service.validate_for_cart(session, code, user_id or cart.user_id, cart.subtotal, now)

    cart.coupon = coupon
    recalculate_cart(session, cart, tax_rate, now)
    logger.info(f"[CART] Coupon {coupon.code} applied to cart {cart.id}")
    return coupon


def remove_coupon(session: Session, cart: Cart, tax_rate=0) -> None:
    cart.coupon = None
    recalculate_cart(session, cart, tax_rate)


def set_shipping(session: Session, cart: Cart, method_id: Optional[int], city_id: Optional[int] = None,
                 is_cod: bool = False, tax_rate=0) -> Cart:
    """Select (or clear, with method_id=None) the shipping method for a destination city."""
    if method_id is None:
        cart.shipping_method = None
        cart.shipping_zone = None
        cart.is_cod = False
        return recalculate_cart(session, cart, tax_rate)

    method, zone = shipping_service.resolve_shipping(session, method_id, city_id, is_cod)
    cart.shipping_method = method
    cart.shipping_zone = zone
    cart.is_cod = bool(is_cod)
    return recalculate_cart(session, cart, tax_rate)


def merge_carts(session: Session, target: Cart, source: Cart, tax_rate=0) -> Cart:
    """
    Move the items of `source` (guest cart) into `target` (user cart).

    Quantities of matching lines are added, capped at available stock. The
    source coupon is carried over when the target has none. The source cart
    is deleted.
    """
    if source.id == target.id:
        return target

    for src in list(source.items):
        existing = _find_item(target, src.product_id, src.product_variant_id)
        quantity = src.quantity + (existing.quantity if existing else 0)
        available = _available(src.product, src.variant)
        if available is not None:
            quantity = min(quantity, available)
        if quantity <= 0:
            continue

        if existing:
            existing.quantity = quantity
            existing.price = _unit_price(src.product, src.variant)
        else:
            target.items.append(CartItem(
                product_id=src.product_id,
                product_variant_id=src.product_variant_id,
                product=src.product,
                variant=src.variant,
                quantity=quantity,
                price=_unit_price(src.product, src.variant),
            ))

    if target.coupon is None and source.coupon is not None:
        target.coupon = source.coupon

    session.delete(source)
    recalculate_cart(session, target, tax_rate)
    logger.info(f"[CART] Merged cart {source.id} into {target.id}")
    return target


def can_checkout(cart: Cart) -> bool:
    """Cart has items and every item is still active and in stock."""
    if cart.is_empty():
        return False
    for item in cart.items:
        if not item.product.is_active:
            return False
        if item.variant is not None and not item.variant.is_active:
            return False
        available = _available(item.product, item.variant)
        if available is not None and item.quantity > available:
            return False
    return True
