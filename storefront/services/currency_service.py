"""
Currency conversion service.

Amounts are stored in the base (default) currency. Every other currency
carries an exchange rate expressed as units per one base unit, so conversion
always goes through the base currency.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from flask import current_app, has_app_context
from storefront.models import Currency
from storefront.services.cache_service import get_cache

logger = logging.getLogger(__name__)

CACHE_MODULE = 'currencies'
TWO_PLACES = Decimal('0.01')


@dataclass(frozen=True)
class CurrencyContext:
    """Display currency threaded explicitly through pricing and checkout."""
    code: str
    exchange_rate: Decimal
    base_code: str
    locale: str = 'en'
    symbol: str = ''

    @property
    def is_base(self):
        return self.code == self.base_code

    def to_display(self, amount) -> Decimal:
        """Convert a base-currency amount into this context's currency."""
        if self.is_base:
            return Decimal(str(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        return (Decimal(str(amount)) * self.exchange_rate).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _rate(currency) -> Decimal:
    if isinstance(currency, dict):
        return Decimal(str(currency['exchange_rate']))
    return Decimal(str(currency.exchange_rate))


def _code(currency) -> str:
    if isinstance(currency, dict):
        return currency['code']
    return currency.code


def convert(amount, from_currency, to_currency, base_currency=None) -> Decimal:
    """
    Convert `amount` between two currencies via the base currency.

    Currencies may be `Currency` rows or their cached dict form. Converting a
    currency into itself returns the amount unchanged (only quantized).
    """
    amount = Decimal(str(amount))

    if _code(from_currency) == _code(to_currency):
        return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    from_rate = _rate(from_currency)
    if from_rate <= 0:
        raise ValueError(f"Invalid exchange rate for {_code(from_currency)}")

    base_amount = amount
    if base_currency is None or _code(from_currency) != _code(base_currency):
        base_amount = amount / from_rate

    return (base_amount * _rate(to_currency)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _load_active_currencies(session) -> List[Dict]:
    rows = (session.query(Currency)
            .filter(Currency.is_active.is_(True))
            .order_by(Currency.is_default.desc(), Currency.code)
            .all())
    return [c.to_dict() for c in rows]


def get_active_currencies(session) -> List[Dict]:
    """Active currencies as dicts, served from cache when Redis is up."""
    if not has_app_context() or 'cache' not in current_app.extensions:
        return _load_active_currencies(session)

    ttl = current_app.config.get('CACHE_CURRENCIES_TTL', 3600)
    return get_cache().memoize(CACHE_MODULE, 'active', lambda: _load_active_currencies(session), ttl)


def invalidate_currency_cache():
    if has_app_context() and 'cache' in current_app.extensions:
        get_cache().invalidate_module(CACHE_MODULE)


def get_default_currency(session) -> Optional[Dict]:
    currencies = get_active_currencies(session)
    for currency in currencies:
        if currency['is_default']:
            return currency
    return currencies[0] if currencies else None


def build_currency_context(session, code: Optional[str] = None, locale: str = 'en',
                           fallback_code: str = 'USD') -> CurrencyContext:
    """
    Resolve a `CurrencyContext` for the requested code.

    Unknown or inactive codes fall back to the default currency. With no
    currency rows at all the context is the base currency `fallback_code`.
    """
    default = get_default_currency(session)
    if default is None:
        logger.warning(f"[CURRENCY] No active currencies, using {fallback_code}")
        return CurrencyContext(fallback_code, Decimal('1'), fallback_code, locale, fallback_code)

    selected = default
    if code:
        match = next((c for c in get_active_currencies(session) if c['code'] == code.upper()), None)
        if match is None:
            logger.info(f"[CURRENCY] Unknown currency {code}, falling back to {default['code']}")
        else:
            selected = match

    return CurrencyContext(
        code=selected['code'],
        exchange_rate=Decimal(str(selected['exchange_rate'])),
        base_code=default['code'],
        locale=locale,
        symbol=selected['symbol'],
    )
