"""
Unit tests for currency conversion, translations and money formatting.
"""

from decimal import Decimal

import pytest

from storefront.services.currency_service import CurrencyContext, convert
from storefront.utils.formatters import format_number, format_money
from storefront.utils.translations import Translated

USD = {'code': 'USD', 'exchange_rate': '1'}
EGP = {'code': 'EGP', 'exchange_rate': '48.5000'}
EUR = {'code': 'EUR', 'exchange_rate': '0.9200'}


class TestConvert:
    """Conversions go through the base currency."""

    def test_base_to_other(self):
        assert convert(Decimal('10.00'), USD, EGP, base_currency=USD) == Decimal('485.00')

    def test_other_to_base(self):
        assert convert(Decimal('485.00'), EGP, USD, base_currency=USD) == Decimal('10.00')

    def test_cross_rate(self):
        assert convert(Decimal('92.00'), EUR, EGP, base_currency=USD) == Decimal('4850.00')

    def test_same_currency_is_unchanged(self):
        assert convert(Decimal('12.345'), EGP, EGP) == Decimal('12.35')

    def test_invalid_rate(self):
        with pytest.raises(ValueError):
            convert(Decimal('1'), {'code': 'XXX', 'exchange_rate': '0'}, USD)


class TestCurrencyContext:
    def test_base_context_does_not_convert(self):
        ctx = CurrencyContext('USD', Decimal('1'), 'USD')
        assert ctx.is_base
        assert ctx.to_display(Decimal('152.6')) == Decimal('152.60')

    def test_display_conversion(self):
        ctx = CurrencyContext('EGP', Decimal('48.5'), 'USD', 'ar', 'E£')
        assert not ctx.is_base
        assert ctx.to_display(Decimal('10.00')) == Decimal('485.00')


class TestTranslated:
    """Fallback chain: requested locale, default locale, first value, empty."""

    def test_requested_locale(self):
        assert Translated({'en': 'Mug', 'ar': 'كوب'}).resolve('ar') == 'كوب'

    def test_falls_back_to_default_locale(self):
        assert Translated({'en': 'Mug', 'fr': 'Tasse'}).resolve('ar') == 'Mug'

    def test_falls_back_to_first_value(self):
        assert Translated({'fr': 'Tasse'}).resolve('ar') == 'Tasse'

    def test_empty(self):
        assert Translated.from_column(None).resolve('en', fallback='-') == '-'
        assert not Translated({'en': ''})

    def test_plain_string_column(self):
        assert Translated.from_column('Mug').resolve('ar') == 'Mug'


class TestFormatting:
    def test_format_number(self):
        assert format_number(1500) == '1,500.00'
        assert format_number(Decimal('1234.5'), thousand_sep='.', decimal_sep=',') == '1.234,50'
        assert format_number(None) == '-'
        assert format_number(Decimal('-1234567.891')) == '-1,234,567.89'

    def test_format_money_symbol_position(self):
        assert format_money(Decimal('152.6'), '$') == '$ 152.60'
        assert format_money(Decimal('485'), 'E£', {'CURRENCY_SYMBOL_POSITION': 'after'}) == '485.00 E£'
