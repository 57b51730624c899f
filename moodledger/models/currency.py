"""
Currency Table

Static mapping of supported currency codes to display symbols.
Pure functions only, nothing here holds state.

DESIGN DECISION: No exchange rates live anywhere in the system.
Amounts in different currencies are never combined or converted.
"""

from decimal import Decimal
from enum import Enum
from typing import Union


class Currency(str, Enum):
    """Supported ISO-like currency codes."""
    CNY = "CNY"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    KRW = "KRW"
    HKD = "HKD"
    TWD = "TWD"
    SGD = "SGD"
    AUD = "AUD"
    CAD = "CAD"
    CHF = "CHF"
    SEK = "SEK"
    NOK = "NOK"
    DKK = "DKK"
    RUB = "RUB"
    INR = "INR"
    BRL = "BRL"
    MXN = "MXN"
    ZAR = "ZAR"
    THB = "THB"
    VND = "VND"
    IDR = "IDR"
    MYR = "MYR"
    PHP = "PHP"


CURRENCY_SYMBOLS: dict[Currency, str] = {
    Currency.CNY: "¥",
    Currency.USD: "$",
    Currency.EUR: "€",
    Currency.GBP: "£",
    Currency.JPY: "¥",
    Currency.KRW: "₩",
    Currency.HKD: "HK$",
    Currency.TWD: "NT$",
    Currency.SGD: "S$",
    Currency.AUD: "A$",
    Currency.CAD: "C$",
    Currency.CHF: "CHF",
    Currency.SEK: "kr",
    Currency.NOK: "kr",
    Currency.DKK: "kr",
    Currency.RUB: "₽",
    Currency.INR: "₹",
    Currency.BRL: "R$",
    Currency.MXN: "$",
    Currency.ZAR: "R",
    Currency.THB: "฿",
    Currency.VND: "₫",
    Currency.IDR: "Rp",
    Currency.MYR: "RM",
    Currency.PHP: "₱",
}


def is_supported_currency(code: str) -> bool:
    """Check whether a code belongs to the supported set."""
    try:
        Currency(code)
    except ValueError:
        return False
    return True


def get_currency_symbol(code: Union[Currency, str]) -> str:
    """
    Get the display symbol for a currency.

    Unknown codes fall back to the code itself so callers always
    have something printable.
    """
    try:
        return CURRENCY_SYMBOLS[Currency(code)]
    except ValueError:
        return str(code)


def format_amount(
    value: Union[Decimal, float, int],
    currency: Union[Currency, str],
    decimals: int = 2,
) -> str:
    """
    Format an amount with its currency symbol.

    Example: format_amount(Decimal("-1234.5"), "CNY") -> "-¥1,234.50"
    """
    amount = Decimal(str(value))
    symbol = get_currency_symbol(currency)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.{decimals}f}"
