"""Money arithmetic shared by the estimate and invoice services."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Tuple, Union, Optional

from app.exceptions import ValidationError

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')

Number = Union[int, float, str, Decimal]


def to_decimal(value: Optional[Number], field: str = 'value', default: Optional[Decimal] = None) -> Decimal:
    """
    Convert user input (int, float, str or Decimal) into a Decimal.

    Floats go through ``str`` so that 0.1 stays 0.1.

    Raises:
        ValidationError: if the value cannot be parsed, or is missing and
            no default was given.
    """
    if value is None or value == '':
        if default is not None:
            return default
        raise ValidationError(f'{field} is required', field=field)
    if isinstance(value, bool):
        raise ValidationError(f'Invalid number for {field}: {value!r}', field=field)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f'Invalid number for {field}: {value!r}', field=field)
    if not result.is_finite():
        raise ValidationError(f'Invalid number for {field}: {value!r}', field=field)
    return result


def quantize_money(value: Number) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_tax(subtotal: Number, tax_rate: Number) -> Decimal:
    """tax_amount = subtotal × tax_rate / 100, rounded to cents."""
    return quantize_money(to_decimal(subtotal) * to_decimal(tax_rate) / HUNDRED)


def compute_totals(subtotal: Number, tax_rate: Number) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Derive (subtotal, tax_amount, total) for a document.

    The total is built from the already-rounded parts, so
    ``total == subtotal + tax_amount`` holds exactly.
    """
    subtotal = quantize_money(subtotal)
    tax_amount = compute_tax(subtotal, tax_rate)
    return subtotal, tax_amount, subtotal + tax_amount


def sum_line_totals(items) -> Decimal:
    """Sum of ``total_price`` across line items (objects or dicts)."""
    total = ZERO
    for item in items:
        price = item['total_price'] if isinstance(item, dict) else item.total_price
        total += to_decimal(price, 'total_price')
    return quantize_money(total)


def deposit_multiplier(percentage: Optional[Number]) -> Tuple[bool, Decimal]:
    """
    Return ``(is_deposit, multiplier)`` for an estimate conversion.

    Only a percentage strictly between 0 and 100 is a deposit; anything else
    (None, 0, 100, out of range) bills the full amount.
    """
    if percentage is None or percentage == '':
        return False, Decimal('1')
    pct = to_decimal(percentage, 'deposit_percentage')
    if ZERO < pct < HUNDRED:
        return True, pct / HUNDRED
    return False, Decimal('1')


def format_percentage(value: Number) -> str:
    """
    Render a percentage without trailing zeros.

    Examples:
        format_percentage(Decimal('50.00')) -> "50"
        format_percentage(12.5) -> "12.5"
    """
    pct = to_decimal(value)
    text = format(pct.normalize(), 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text
