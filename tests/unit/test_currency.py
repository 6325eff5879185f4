"""Unit tests for currency helpers."""

from decimal import Decimal

from invoicing.domain.currency import (
    convert_to_base_currency,
    currency_name,
    currency_symbol,
    format_currency,
    is_valid_currency,
    to_money,
)


def test_to_money_rounds_half_up() -> None:
    assert to_money(Decimal("10.005")) == Decimal("10.01")
    assert to_money("2.344") == Decimal("2.34")


def test_to_money_from_float_uses_decimal_text() -> None:
    assert to_money(0.1) == Decimal("0.10")


def test_to_money_none_is_zero() -> None:
    assert to_money(None) == Decimal("0.00")


def test_format_currency_usd() -> None:
    assert format_currency(Decimal("1050"), "USD") == "$1,050.00"


def test_format_currency_other_symbols() -> None:
    assert format_currency(Decimal("99.5"), "EUR") == "€99.50"
    assert format_currency(Decimal("1234567.891"), "gbp") == "£1,234,567.89"


def test_format_currency_negative() -> None:
    assert format_currency(Decimal("-5"), "USD") == "-$5.00"


def test_format_currency_unknown_code_falls_back_to_usd() -> None:
    assert format_currency(Decimal("12"), "XYZ") == "$12.00"


def test_currency_lookup() -> None:
    assert is_valid_currency("inr") is True
    assert is_valid_currency("XYZ") is False
    assert currency_symbol("INR") == "₹"
    assert currency_symbol("XYZ") == "$"
    assert currency_name("CAD") == "Canadian Dollar"


def test_convert_to_base_currency() -> None:
    assert convert_to_base_currency(Decimal("100"), Decimal("1.08")) == Decimal("108.00")
    assert convert_to_base_currency(Decimal("19.99")) == Decimal("19.99")
