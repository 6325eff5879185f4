"""Currency helpers for multi-currency invoices.

Amounts are handled as Decimal and quantized to cents with ROUND_HALF_UP.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class CurrencyInfo(NamedTuple):
    """Display information for a supported currency."""

    code: str
    name: str
    symbol: str


CURRENCIES: tuple[CurrencyInfo, ...] = (
    CurrencyInfo("USD", "US Dollar", "$"),
    CurrencyInfo("EUR", "Euro", "€"),
    CurrencyInfo("GBP", "British Pound", "£"),
    CurrencyInfo("CAD", "Canadian Dollar", "C$"),
    CurrencyInfo("AUD", "Australian Dollar", "A$"),
    CurrencyInfo("JPY", "Japanese Yen", "¥"),
    CurrencyInfo("INR", "Indian Rupee", "₹"),
    CurrencyInfo("CNY", "Chinese Yuan", "¥"),
    CurrencyInfo("CHF", "Swiss Franc", "CHF"),
    CurrencyInfo("SGD", "Singapore Dollar", "S$"),
    CurrencyInfo("HKD", "Hong Kong Dollar", "HK$"),
    CurrencyInfo("NZD", "New Zealand Dollar", "NZ$"),
    CurrencyInfo("MXN", "Mexican Peso", "MX$"),
    CurrencyInfo("BRL", "Brazilian Real", "R$"),
    CurrencyInfo("ZAR", "South African Rand", "R"),
)

_BY_CODE = {c.code: c for c in CURRENCIES}


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """Convert a value to a Decimal rounded to cents.

    Floats go through str() so 0.1 becomes Decimal("0.10"), not the binary expansion.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def is_valid_currency(currency: str) -> bool:
    return currency.upper() in _BY_CODE


def currency_symbol(currency: str = "USD") -> str:
    info = _BY_CODE.get(currency.upper())
    return info.symbol if info else "$"


def currency_name(currency: str = "USD") -> str:
    info = _BY_CODE.get(currency.upper())
    return info.name if info else "US Dollar"


def format_currency(amount: Decimal | int | float | str | None, currency: str = "USD") -> str:
    """Format an amount with symbol, thousands separators and two decimals.

    Unknown currency codes fall back to USD.

    Example:
        >>> format_currency(Decimal("1050"), "USD")
        '$1,050.00'
    """
    code = currency.upper()
    if code not in _BY_CODE:
        logger.warning(f"Invalid currency code: {currency}, falling back to USD")
        code = "USD"

    value = to_money(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{_BY_CODE[code].symbol}{abs(value):,.2f}"


def convert_to_base_currency(amount: Decimal, exchange_rate: Decimal = Decimal("1")) -> Decimal:
    """Convert an amount using the invoice-to-base exchange rate, rounded to cents."""
    return to_money(Decimal(amount) * Decimal(exchange_rate))
