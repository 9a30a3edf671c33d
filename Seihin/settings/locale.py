"""
Module for formatting decimal and currency values using Babel.

Amounts are stored as integers in the smallest unit of the ledger currency. The
currency itself is derived from the territory of the configured locale.
"""
import logging
from typing import List

from babel import Locale, numbers
from babel.core import UnknownLocaleError

CURRENCY_MAP: dict[str, str] = {
    'US': 'USD',
    'GB': 'GBP',
    'DE': 'EUR',
    'FR': 'EUR',
    'IT': 'EUR',
    'ES': 'EUR',
    'NL': 'EUR',
    'FI': 'EUR',
    'JP': 'JPY',
    'CA': 'CAD',
    'AU': 'AUD',
    'IN': 'INR',
    'BR': 'BRL',
    'CN': 'CNY',
    'KR': 'KRW',
    'DK': 'DKK',
    'SE': 'SEK',
    'NO': 'NOK',
    'HU': 'HUF',
    'MX': 'MXN',
}

LOCALE_MAP: List[str] = [
    'ja_JP',
    'en_GB',
    'en_US',
    'de_DE',
    'fr_FR',
    'es_ES',
    'hu_HU',
    'ko_KR',
    'zh_CN',
]


def get_currency_from_locale(locale: str) -> str:
    """
    Retrieve the default currency code based on the locale's territory.

    Args:
        locale (str): Locale string, e.g. 'ja_JP'.

    Returns:
        str: Currency code such as 'JPY'. Defaults to 'JPY' if the territory is unknown.
    """
    parts = locale.split('_')
    if len(parts) < 2:
        return 'JPY'
    return CURRENCY_MAP.get(parts[1], 'JPY')


def to_major_units(amount: int, currency: str) -> float:
    """Convert an amount in the smallest currency unit to major units (e.g. cents to dollars)."""
    digits = numbers.get_currency_precision(currency)
    return amount / (10 ** digits) if digits else amount


def format_decimal(value: float, locale: str) -> str:
    """
    Format a number as a decimal string according to the locale conventions.

    Args:
        value (float): The numeric value to be formatted.
        locale (str): Locale string, e.g. 'en_US'.

    Returns:
        str: The formatted decimal string.
    """
    try:
        return numbers.format_decimal(value, locale=Locale.parse(locale))
    except (ValueError, UnknownLocaleError) as e:
        logging.warning(f'Error formatting decimal for locale "{locale}": {e}')
        return str(value)


def format_currency_value(amount: int, locale: str) -> str:
    """
    Format an integer amount of the smallest currency unit as a currency string.

    The currency is determined by the territory extracted from the locale.

    Args:
        amount (int): Amount in the smallest currency unit (yen, cents, ...).
        locale (str): Locale string, e.g. 'ja_JP'.

    Returns:
        str: The formatted currency string, e.g. '￥1,350'.
    """
    currency_code = get_currency_from_locale(locale)
    try:
        return numbers.format_currency(
            to_major_units(amount, currency_code),
            currency=currency_code,
            locale=Locale.parse(locale)
        )
    except (ValueError, UnknownLocaleError) as e:
        logging.warning(f'Error formatting currency for locale "{locale}": {e}')
        return str(amount)
