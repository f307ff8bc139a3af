"""
Formatting utilities for emails, PDFs and templates.
Currency and dates are rendered in US style ($1,080.00, 10/17/2026).
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional


def format_currency(value: Union[int, float, Decimal, str, None], symbol: str = '$') -> str:
    """
    Format a monetary amount with thousands separators and 2 decimals.

    Examples:
        format_currency(1080) -> "$1,080.00"
        format_currency(Decimal('-12.5')) -> "-$12.50"
        format_currency(None) -> "$0.00"
    """
    if value is None or value == "":
        value = 0
    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = '-' if num < 0 else ''
    return f"{sign}{symbol}{abs(num):,.2f}"


def format_number(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format a quantity, dropping insignificant decimals.

    Examples:
        format_number(2) -> "2"
        format_number(Decimal('2.500')) -> "2.5"
    """
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    if num == num.to_integral_value():
        return f"{int(num):,}"
    return f"{num.normalize():f}"


def format_date(value: Union[date, datetime, str, None]) -> str:
    """
    Format a date as MM/DD/YYYY.

    Examples:
        format_date(date(2026, 10, 17)) -> "10/17/2026"
        format_date(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    return value.strftime('%m/%d/%Y')


def format_datetime(value: Optional[datetime]) -> str:
    """Format a timestamp as MM/DD/YYYY HH:MM."""
    if value is None:
        return "-"
    return value.strftime('%m/%d/%Y %H:%M')
