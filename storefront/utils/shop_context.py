"""Per-request shop settings handed explicitly to the services."""
from decimal import Decimal
from flask import current_app, g
from storefront.services.currency_service import CurrencyContext, build_currency_context
from storefront.utils.formatters import format_money

DISPLAY_SETTINGS = (
    'CURRENCY_SYMBOL_POSITION', 'CURRENCY_THOUSAND_SEPARATOR', 'CURRENCY_DECIMAL_SEPARATOR', 'CURRENCY_DECIMALS'
)


def tax_rate() -> Decimal:
    return Decimal(str(current_app.config.get('TAX_RATE', 0)))


def currency_context(db_session) -> CurrencyContext:
    return build_currency_context(
        db_session,
        g.get('currency_code'),
        g.get('locale') or current_app.config.get('DEFAULT_LOCALE', 'en'),
        fallback_code=current_app.config.get('DEFAULT_CURRENCY', 'USD'),
    )


def display_amounts(amounts: dict, ctx: CurrencyContext) -> dict:
    """Format base-currency amounts in the visitor's currency."""
    settings = {key: current_app.config.get(key) for key in DISPLAY_SETTINGS if key in current_app.config}
    return {
        key: format_money(ctx.to_display(value), ctx.symbol or ctx.code, settings)
        for key, value in amounts.items()
    }
