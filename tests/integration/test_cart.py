"""
Integration tests for cart operations and recalculation.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.exceptions import (
    BusinessLogicError, InsufficientStockError, InvalidCouponError, InvalidShippingMethodError, NotFoundError
)
from storefront.models import Cart, ShippingMethod
from storefront.services import cart_service
from storefront.services.pricing_service import recalculate_cart

TAX = Decimal('14')


@pytest.fixture
def cart(session, customer):
    cart = cart_service.get_or_create_cart(session, user_id=customer.id)
    session.commit()
    return cart


class TestCartItems:
    """Adding, updating and removing lines."""

    def test_get_or_create_returns_same_cart(self, session, customer, cart):
        assert cart_service.get_or_create_cart(session, user_id=customer.id).id == cart.id

    def test_cart_needs_an_owner(self, session):
        with pytest.raises(BusinessLogicError):
            cart_service.get_or_create_cart(session)

    def test_add_item_snapshots_price_and_recalculates(self, session, cart, product):
        item = cart_service.add_item(session, cart, product.id, 2, tax_rate=TAX)
        session.commit()

        assert item.price == Decimal('50.00')
        assert cart.subtotal == Decimal('100.00')
        assert cart.tax_amount == Decimal('14.00')
        assert cart.total == Decimal('114.00')

    def test_adding_same_product_merges_lines(self, session, cart, product):
        cart_service.add_item(session, cart, product.id, 1)
        cart_service.add_item(session, cart, product.id, 2)
        session.commit()

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3

    def test_price_snapshot_survives_catalog_change(self, session, cart, product):
        cart_service.add_item(session, cart, product.id, 1)
        product.price = Decimal('80.00')
        session.commit()

        recalculate_cart(session, cart, 0)
        assert cart.subtotal == Decimal('50.00')

    def test_cannot_add_more_than_stock(self, session, cart, product):
        with pytest.raises(InsufficientStockError) as exc:
            cart_service.add_item(session, cart, product.id, 11)
        assert exc.value.reason == 'insufficient_stock'

    def test_invalid_quantity(self, session, cart, product):
        with pytest.raises(BusinessLogicError) as exc:
            cart_service.add_item(session, cart, product.id, 0)
        assert exc.value.reason == 'invalid_quantity'

    def test_inactive_product(self, session, cart, product):
        product.is_active = False
        session.commit()
        with pytest.raises(BusinessLogicError) as exc:
            cart_service.add_item(session, cart, product.id, 1)
        assert exc.value.reason == 'product_inactive'

    def test_unknown_product(self, session, cart):
        with pytest.raises(NotFoundError):
            cart_service.add_item(session, cart, 999999, 1)

    def test_variant_required(self, session, cart, product_with_variants):
        with pytest.raises(BusinessLogicError) as exc:
            cart_service.add_item(session, cart, product_with_variants.id, 1)
        assert exc.value.reason == 'variant_required'

    def test_variant_price_and_stock(self, session, cart, product_with_variants):
        variants = {v.attributes['size']: v for v in product_with_variants.variants}
        medium, large = variants['M'], variants['L']
        item = cart_service.add_item(session, cart, product_with_variants.id, 2, variant_id=medium.id)
        assert item.price == Decimal('20.00')

        with pytest.raises(InsufficientStockError):
            cart_service.add_item(session, cart, product_with_variants.id, 1, variant_id=large.id)

    def test_update_quantity(self, session, cart, product):
        item = cart_service.add_item(session, cart, product.id, 1)
        session.commit()

        cart_service.update_item_quantity(session, cart, item.id, 4, tax_rate=0)
        assert cart.subtotal == Decimal('200.00')

    def test_update_quantity_to_zero_removes_item(self, session, cart, product):
        item = cart_service.add_item(session, cart, product.id, 1)
        session.commit()

        assert cart_service.update_item_quantity(session, cart, item.id, 0) is None
        session.commit()
        assert cart.is_empty()
        assert cart.total == Decimal('0.00')

    def test_remove_unknown_item(self, session, cart):
        with pytest.raises(NotFoundError):
            cart_service.remove_item(session, cart, 12345)

    def test_clear_cart_drops_coupon(self, session, cart, product, make_coupon):
        make_coupon('FIVE', value='5.00')
        cart_service.add_item(session, cart, product.id, 1)
        cart_service.apply_coupon(session, cart, 'five')
        cart_service.clear_cart(session, cart)
        session.commit()

        assert cart.coupon is None
        assert cart.discount_amount == Decimal('0.00')
        assert cart.items_count == 0


class TestCartCoupons:
    """Coupons are validated on apply and re-checked on every recalculation."""

    def test_welcome10_scenario(self, session, cart, product, shipping, make_coupon, now):
        make_coupon('WELCOME10', type='percentage', value='10', minimum_amount=Decimal('50.00'))
        cart_service.add_item(session, cart, product.id, 2, tax_rate=TAX)
        cart_service.apply_coupon(session, cart, 'WELCOME10', tax_rate=TAX, now=now)
        cart_service.set_shipping(session, cart, shipping['method'].id, shipping['city'].id, tax_rate=TAX)
        session.commit()

        assert cart.subtotal == Decimal('100.00')
        assert cart.discount_amount == Decimal('10.00')
        assert cart.tax_amount == Decimal('12.60')
        assert cart.shipping_amount == Decimal('50.00')
        assert cart.total == Decimal('152.60')

    def test_save50_is_capped_at_subtotal(self, session, cart, second_product, make_coupon, now):
        second_product.price = Decimal('40.00')
        session.commit()
        make_coupon('SAVE50', value='50.00')

        cart_service.add_item(session, cart, second_product.id, 1)
        cart_service.apply_coupon(session, cart, 'SAVE50', now=now)

        assert cart.discount_amount == Decimal('40.00')
        assert cart.total == Decimal('0.00')

    def test_unknown_code(self, session, cart, product):
        cart_service.add_item(session, cart, product.id, 1)
        with pytest.raises(InvalidCouponError) as exc:
            cart_service.apply_coupon(session, cart, 'NOPE')
        assert exc.value.reason == 'coupon_not_found'

    def test_expired_coupon_rejected(self, session, cart, product, make_coupon, now):
        make_coupon('OLD', valid_until=now - timedelta(days=1))
        cart_service.add_item(session, cart, product.id, 1)
        with pytest.raises(InvalidCouponError) as exc:
            cart_service.apply_coupon(session, cart, 'OLD', now=now)
        assert exc.value.reason == 'coupon_expired'

    def test_minimum_not_met(self, session, cart, product, make_coupon, now):
        make_coupon('BIG', minimum_amount=Decimal('500.00'))
        cart_service.add_item(session, cart, product.id, 1)
        with pytest.raises(InvalidCouponError) as exc:
            cart_service.apply_coupon(session, cart, 'BIG', now=now)
        assert exc.value.reason == 'coupon_minimum_not_met'

    def test_coupon_dropped_when_it_expires(self, session, cart, product, make_coupon, now):
        make_coupon('SHORT', value='5.00', valid_until=now + timedelta(hours=1))
        cart_service.add_item(session, cart, product.id, 1)
        cart_service.apply_coupon(session, cart, 'SHORT', now=now)
        assert cart.discount_amount == Decimal('5.00')

        recalculate_cart(session, cart, 0, now=now + timedelta(days=1))
        assert cart.discount_amount == Decimal('0.00')
        assert cart.coupon is not None

    def test_apply_does_not_touch_usage(self, session, cart, product, make_coupon, now):
        coupon = make_coupon('LIMITED', usage_limit=1)
        cart_service.add_item(session, cart, product.id, 1)
        cart_service.apply_coupon(session, cart, 'LIMITED', now=now)
        session.commit()

        assert coupon.used_count == 0

    def test_remove_coupon(self, session, cart, product, make_coupon, now):
        make_coupon('FIVE', value='5.00')
        cart_service.add_item(session, cart, product.id, 1)
        cart_service.apply_coupon(session, cart, 'FIVE', now=now)
        cart_service.remove_coupon(session, cart)

        assert cart.coupon is None
        assert cart.total == Decimal('50.00')


class TestCartShipping:
    def test_cod_adds_fee(self, session, cart, product, shipping):
        cart_service.add_item(session, cart, product.id, 1)
        cart_service.set_shipping(session, cart, shipping['method'].id, shipping['city'].id, is_cod=True)

        assert cart.shipping_amount == Decimal('50.00')
        assert cart.cod_fee == Decimal('5.00')
        assert cart.total == Decimal('105.00')

    def test_clearing_shipping(self, session, cart, product, shipping):
        cart_service.add_item(session, cart, product.id, 1)
        cart_service.set_shipping(session, cart, shipping['method'].id, shipping['city'].id, is_cod=True)
        cart_service.set_shipping(session, cart, None)

        assert cart.shipping_amount == Decimal('0.00')
        assert cart.cod_fee == Decimal('0.00')
        assert cart.is_cod is False

    def test_method_not_serving_zone(self, session, cart, product, shipping):
        express = ShippingMethod(name={'en': 'Express'}, base_cost=Decimal('90.00'), calculation_type='flat',
                                 is_active=True, supports_cod=False, cod_fee=0, cod_fee_type='fixed')
        session.add(express)
        session.commit()

        with pytest.raises(InvalidShippingMethodError) as exc:
            cart_service.set_shipping(session, cart, express.id, shipping['city'].id)
        assert exc.value.reason == 'shipping_zone_unavailable'

    def test_cod_not_supported(self, session, cart, product, shipping):
        shipping['method'].supports_cod = False
        session.commit()

        with pytest.raises(InvalidShippingMethodError) as exc:
            cart_service.set_shipping(session, cart, shipping['method'].id, shipping['city'].id, is_cod=True)
        assert exc.value.reason == 'cod_not_supported'

    def test_weight_based_cost_follows_cart_weight(self, session, cart, product):
        method = ShippingMethod(name={'en': 'By weight'}, base_cost=Decimal('99.00'),
                                calculation_type='weight_based',
                                rates=[{'min': 0, 'max': 2, 'cost': '10.00'}, {'min': 2, 'cost': '20.00'}],
                                is_active=True, supports_cod=False, cod_fee=0, cod_fee_type='fixed')
        session.add(method)
        session.commit()

        cart_service.add_item(session, cart, product.id, 2)  # 1.0 kg
        cart_service.set_shipping(session, cart, method.id)
        assert cart.shipping_amount == Decimal('10.00')

        cart_service.add_item(session, cart, product.id, 4)  # 3.0 kg
        assert cart.shipping_amount == Decimal('20.00')


class TestMergeCarts:
    def test_guest_cart_merged_and_capped_at_stock(self, session, customer, product, second_product):
        user_cart = cart_service.get_or_create_cart(session, user_id=customer.id)
        cart_service.add_item(session, user_cart, product.id, 8)
        guest_cart = cart_service.get_or_create_cart(session, session_id='guest-abc')
        cart_service.add_item(session, guest_cart, product.id, 5)
        cart_service.add_item(session, guest_cart, second_product.id, 1)
        session.commit()
        guest_id = guest_cart.id

        cart_service.merge_carts(session, user_cart, guest_cart)
        session.commit()

        quantities = {item.product_id: item.quantity for item in user_cart.items}
        assert quantities == {product.id: 10, second_product.id: 1}
        assert user_cart.subtotal == Decimal('530.00')
        assert session.get(Cart, guest_id) is None


class TestCanCheckout:
    def test_empty_cart(self, session, cart):
        assert not cart_service.can_checkout(cart)

    def test_stock_dropped_below_cart_quantity(self, session, cart, product):
        cart_service.add_item(session, cart, product.id, 5)
        assert cart_service.can_checkout(cart)

        product.quantity = 2
        assert not cart_service.can_checkout(cart)

    def test_untracked_stock(self, session, cart, product):
        product.track_quantity = False
        product.quantity = 0
        session.commit()

        cart_service.add_item(session, cart, product.id, 50)
        assert cart_service.can_checkout(cart)
