"""
Unit tests for shipping cost calculation.
"""

from decimal import Decimal

from storefront.models import ShippingMethod, ShippingMethodZone, ShippingZone
from storefront.services import shipping_service

WEIGHT_TIERS = [
    {'min': 0, 'max': 5, 'cost': '30.00'},
    {'min': 5, 'max': 10, 'cost': '45.00'},
    {'min': 10, 'cost': '70.00'},
]


def _method(**kwargs):
    values = dict(id=1, name={'en': 'Standard'}, base_cost=Decimal('25.00'), calculation_type='flat',
                  rates=None, min_days=2, max_days=4, is_active=True, supports_cod=False,
                  cod_fee=Decimal('0'), cod_fee_type='fixed')
    values.update(kwargs)
    return ShippingMethod(**values)


class TestCalculateCost:
    """Tests for flat, tiered and zone-overridden costs."""

    def test_flat_uses_base_cost(self):
        assert shipping_service.calculate_cost(_method(), weight=100, subtotal=1000) == Decimal('25.00')

    def test_weight_based_first_matching_tier(self):
        method = _method(calculation_type='weight_based', rates=WEIGHT_TIERS)
        assert shipping_service.calculate_cost(method, weight=Decimal('2.5')) == Decimal('30.00')
        # 5 matches both the first and second tier; stored order wins
        assert shipping_service.calculate_cost(method, weight=Decimal('5')) == Decimal('30.00')
        assert shipping_service.calculate_cost(method, weight=Decimal('7')) == Decimal('45.00')

    def test_open_ended_last_tier(self):
        method = _method(calculation_type='weight_based', rates=WEIGHT_TIERS)
        assert shipping_service.calculate_cost(method, weight=Decimal('250')) == Decimal('70.00')

    def test_no_matching_tier_falls_back_to_base_cost(self):
        method = _method(calculation_type='price_based', rates=[{'min': 100, 'max': 200, 'cost': '0.00'}])
        assert shipping_service.calculate_cost(method, subtotal=Decimal('50')) == Decimal('25.00')

    def test_price_based_uses_subtotal(self):
        method = _method(calculation_type='price_based', rates=[
            {'min': 0, 'max': 99.99, 'cost': '15.00'},
            {'min': 100, 'cost': '0.00'},
        ])
        assert shipping_service.calculate_cost(method, subtotal=Decimal('40')) == Decimal('15.00')
        assert shipping_service.calculate_cost(method, subtotal=Decimal('150')) == Decimal('0.00')

    def test_zone_override_wins(self):
        zone = ShippingZone(id=7, name={'en': 'Remote'})
        method = _method(calculation_type='weight_based', rates=WEIGHT_TIERS)
        method.zone_links.append(ShippingMethodZone(shipping_zone_id=7, cost_override=Decimal('99.00')))

        assert shipping_service.calculate_cost(method, zone, weight=Decimal('1')) == Decimal('99.00')

    def test_zone_link_without_override_is_ignored(self):
        zone = ShippingZone(id=7, name={'en': 'Remote'})
        method = _method()
        method.zone_links.append(ShippingMethodZone(shipping_zone_id=7, cost_override=None))

        assert shipping_service.calculate_cost(method, zone) == Decimal('25.00')


class TestCodFee:
    """Tests for the cash on delivery surcharge."""

    def test_fixed_fee(self):
        method = _method(supports_cod=True, cod_fee=Decimal('5.00'))
        assert shipping_service.calculate_cod_fee(method, Decimal('300')) == Decimal('5.00')

    def test_percentage_fee(self):
        method = _method(supports_cod=True, cod_fee=Decimal('2'), cod_fee_type='percentage')
        assert shipping_service.calculate_cod_fee(method, Decimal('150.00')) == Decimal('3.00')

    def test_method_without_cod(self):
        method = _method(supports_cod=False, cod_fee=Decimal('5.00'))
        assert shipping_service.calculate_cod_fee(method, Decimal('100')) == Decimal('0.00')


class TestSnapshot:
    def test_estimated_delivery(self):
        assert shipping_service.estimated_delivery(_method()) == '2-4 days'
        assert shipping_service.estimated_delivery(_method(min_days=1, max_days=1)) == '1 days'

    def test_snapshot_resolves_locale(self):
        method = _method(name={'en': 'Standard', 'ar': 'عادي'})
        snapshot = shipping_service.snapshot_method(method, locale='ar', cost=Decimal('25.00'))

        assert snapshot['name'] == 'عادي'
        assert snapshot['cost'] == '25.00'
        assert snapshot['zone_id'] is None
