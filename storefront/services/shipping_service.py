"""
Shipping Cost Calculator.

Cost resolution for (method, zone, weight, subtotal):
    1. A zone cost override for the (method, zone) pair wins verbatim.
    2. Otherwise the method's calculation type decides:
       flat -> base_cost, weight_based / price_based -> first matching tier
       (stored order, min <= value <= max), else base_cost.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from storefront.models import (
    ShippingMethod, ShippingMethodZone, ShippingZone, CalculationType, shipping_zone_cities
)
from storefront.exceptions import InvalidShippingMethodError, NotFoundError
from storefront.utils.translations import Translated

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def zone_override(method: ShippingMethod, zone: Optional[ShippingZone]) -> Optional[Decimal]:
    if zone is None:
        return None
    for link in method.zone_links:
        if link.shipping_zone_id == zone.id and link.cost_override is not None:
            return link.cost_override
    return None


def match_tier(rates, value) -> Optional[Decimal]:
    """First tier whose [min, max] contains value. A missing max is open-ended."""
    value = Decimal(str(value))
    for tier in rates or []:
        low = Decimal(str(tier.get('min', 0)))
        high = tier.get('max')
        if value < low:
            continue
        if high is not None and value > Decimal(str(high)):
            continue
        return Decimal(str(tier['cost']))
    return None


def calculate_cost(method: ShippingMethod, zone: Optional[ShippingZone] = None,
                   weight=0, subtotal=0) -> Decimal:
    override = zone_override(method, zone)
    if override is not None:
        return _money(override)

    if method.calculation_type == CalculationType.WEIGHT_BASED.value:
        cost = match_tier(method.rates, weight)
    elif method.calculation_type == CalculationType.PRICE_BASED.value:
        cost = match_tier(method.rates, subtotal)
    else:
        cost = None

    return _money(method.base_cost if cost is None else cost)


def calculate_cod_fee(method: Optional[ShippingMethod], subtotal) -> Decimal:
    """COD surcharge: fixed amount or percentage of the subtotal."""
    if method is None or not method.supports_cod or not method.cod_fee:
        return Decimal('0.00')
    if method.cod_fee_type == 'percentage':
        return _money(Decimal(str(subtotal)) * Decimal(str(method.cod_fee)) / Decimal('100'))
    return _money(method.cod_fee)


def find_zone_for_city(session, city_id: Optional[int]) -> Optional[ShippingZone]:
    if not city_id:
        return None
    return (session.query(ShippingZone)
            .join(shipping_zone_cities, shipping_zone_cities.c.shipping_zone_id == ShippingZone.id)
            .filter(shipping_zone_cities.c.city_id == city_id, ShippingZone.is_active.is_(True))
            .order_by(ShippingZone.id)
            .first())


def get_available_methods(session, city_id: Optional[int] = None) -> List[ShippingMethod]:
    """
    Active methods for a destination.

    When the city belongs to a zone only methods linked to that zone are
    offered; cities outside every zone get all active methods.
    """
    query = session.query(ShippingMethod).filter(ShippingMethod.is_active.is_(True))
    zone = find_zone_for_city(session, city_id)
    if zone is not None:
        query = query.join(ShippingMethodZone).filter(ShippingMethodZone.shipping_zone_id == zone.id)
    return query.order_by(ShippingMethod.id).all()


def resolve_shipping(session, method_id: int, city_id: Optional[int] = None,
                     is_cod: bool = False) -> Tuple[ShippingMethod, Optional[ShippingZone]]:
    """
    Validate a method for a destination and return (method, zone).

    Raises InvalidShippingMethodError with a reason code.
    """
    method = session.get(ShippingMethod, method_id) if method_id else None
    if method is None:
        raise NotFoundError('Shipping method not found')
    if not method.is_active:
        raise InvalidShippingMethodError('Shipping method is not available', 'shipping_method_unavailable')

    zone = find_zone_for_city(session, city_id)
    if zone is not None and not any(link.shipping_zone_id == zone.id for link in method.zone_links):
        logger.info(f"[SHIPPING] Method {method.id} not offered in zone {zone.id}")
        raise InvalidShippingMethodError('Shipping method does not deliver to this city',
                                         'shipping_zone_unavailable')

    if is_cod and not method.supports_cod:
        raise InvalidShippingMethodError('Cash on delivery is not available for this shipping method',
                                         'cod_not_supported')

    return method, zone


def estimated_delivery(method: ShippingMethod) -> str:
    if method.min_days == method.max_days:
        return f"{method.min_days} days"
    return f"{method.min_days}-{method.max_days} days"


def snapshot_method(method: ShippingMethod, zone: Optional[ShippingZone] = None,
                    locale: Optional[str] = None, cost=None) -> dict:
    """Frozen copy of the method stored on the order."""
    return {
        'id': method.id,
        'name': Translated.from_column(method.name).resolve(locale),
        'calculation_type': method.calculation_type,
        'base_cost': str(method.base_cost),
        'cost': str(cost) if cost is not None else None,
        'zone_id': zone.id if zone is not None else None,
        'zone_name': Translated.from_column(zone.name).resolve(locale) if zone is not None else None,
        'estimated_delivery': estimated_delivery(method),
        'supports_cod': method.supports_cod,
    }
