"""
Money formatting for API responses.

The pricing core only produces raw Decimal amounts plus currency codes; this
module is the display collaborator that turns them into strings.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union


def format_number(
    value: Union[int, float, Decimal, str, None],
    decimals: int = 2,
    thousand_sep: str = ',',
    decimal_sep: str = '.'
) -> str:
    """
    Format a number with fixed decimals and custom separators.

    Examples:
        format_number(1500) -> "1,500.00"
        format_number(1234.5, thousand_sep='.', decimal_sep=',') -> "1.234,50"
        format_number(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    num = num.quantize(Decimal(10) ** -decimals, rounding=ROUND_HALF_UP)
    sign = '-' if num < 0 else ''
    num_str = f"{abs(num):.{decimals}f}"

    if '.' in num_str:
        integer_part, decimal_part = num_str.split('.')
    else:
        integer_part, decimal_part = num_str, ''

    # Group thousands from the right
    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)
    integer_formatted = thousand_sep.join(groups)

    if decimal_part:
        return f"{sign}{integer_formatted}{decimal_sep}{decimal_part}"
    return f"{sign}{integer_formatted}"


def format_money(amount, symbol: str, settings: Optional[dict] = None) -> str:
    """
    Format an amount with a currency symbol.

    `settings` is a mapping carrying the CURRENCY_* display keys of the app
    config; missing keys fall back to "$ 1,234.56" style.
    """
    settings = settings or {}
    text = format_number(
        amount,
        decimals=settings.get('CURRENCY_DECIMALS', 2),
        thousand_sep=settings.get('CURRENCY_THOUSAND_SEPARATOR', ','),
        decimal_sep=settings.get('CURRENCY_DECIMAL_SEPARATOR', '.'),
    )
    if text == "-":
        return text
    if settings.get('CURRENCY_SYMBOL_POSITION', 'before') == 'after':
        return f"{text} {symbol}"
    return f"{symbol} {text}"
