"""
Module for formatting decimal and currency values using Babel.

"""
import logging
from decimal import Decimal
from typing import Union

from babel import Locale, UnknownLocaleError, numbers

DEFAULT_LOCALE: str = 'en_US'

Number = Union[Decimal, float, int]


def format_decimal(value: Number, locale: str = DEFAULT_LOCALE) -> str:
    """
    Format a number as a decimal string according to the locale conventions.

    Args:
        value: The numeric value to be formatted.
        locale (str): Locale string, e.g. 'en_US'.

    Returns:
        str: The formatted decimal string.
    """
    try:
        return numbers.format_decimal(value, locale=Locale.parse(locale))
    except (ValueError, TypeError, UnknownLocaleError) as ex:
        logging.warning(f'Could not format {value!r} for locale "{locale}": {ex}')
        return str(value)


def format_amount(value: Number, currency: str, locale: str = DEFAULT_LOCALE) -> str:
    """
    Format an amount in the given currency.

    Args:
        value: The amount.
        currency (str): ISO currency code, e.g. 'EUR'.
        locale (str): Locale string, e.g. 'fr_FR'.

    Returns:
        str: The formatted currency string, or the bare value when formatting fails.
    """
    try:
        return numbers.format_currency(value, currency=currency, locale=Locale.parse(locale))
    except (ValueError, TypeError, UnknownLocaleError) as ex:
        logging.warning(f'Could not format {value!r} {currency} for locale "{locale}": {ex}')
        return f'{value} {currency}'


def get_currency_name(currency: str, locale: str = DEFAULT_LOCALE) -> str:
    """Return the localized name of a currency, e.g. 'Euro'."""
    try:
        return numbers.get_currency_name(currency, locale=Locale.parse(locale))
    except (ValueError, TypeError, UnknownLocaleError):
        return currency
