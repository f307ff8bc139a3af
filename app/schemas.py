"""
Request and response structures for the estimate and invoice services.

Every operation takes one of these instead of a loose dict, so required and
optional fields are explicit. ``from_dict`` parses a JSON payload and raises
``ValidationError`` on the first bad field.
"""
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.exceptions import ValidationError
from app.utils.dates import parse_date
from app.utils.money import to_decimal, quantize_money, ZERO, HUNDRED

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def _optional_str(payload, key):
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{key} must be a string', field=key)
    value = value.strip()
    return value or None


def _optional_int(payload, key):
    value = payload.get(key)
    if value in (None, ''):
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{key} must be an integer', field=key)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be an integer', field=key)


def _tax_rate(payload, key='tax_rate'):
    rate = to_decimal(payload.get(key), key, default=ZERO)
    if rate < 0:
        raise ValidationError('tax_rate cannot be negative', field=key)
    return rate


def _optional_money(payload, key):
    if payload.get(key) in (None, ''):
        return None
    return quantize_money(to_decimal(payload.get(key), key))


def _require_mapping(payload):
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def _parse_items(payload, key='items'):
    raw = payload.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f'{key} must be a list', field=key)
    return [LineItemInput.from_dict(item, index) for index, item in enumerate(raw)]


def _parse_invoice_items(payload):
    """Invoice lines are not categorized by cost code."""
    items = _parse_items(payload)
    for index, item in enumerate(items):
        if item.cost_code_id is not None:
            raise ValidationError(f'items[{index}].cost_code_id is not accepted on invoice lines', field='items')
    return items


def validate_email(value, field_name='recipient_email'):
    if not value or not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
        raise ValidationError(f'Invalid email address: {value!r}', field=field_name)
    return value.strip()


@dataclass
class LineItemInput:
    """One line of an estimate or invoice as supplied by the caller."""
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    cost_code_id: Optional[int] = None
    display_order: Optional[int] = None

    @classmethod
    def from_dict(cls, payload, index=0):
        if not isinstance(payload, dict):
            raise ValidationError(f'items[{index}] must be an object', field='items')
        description = _optional_str(payload, 'description')
        if not description:
            raise ValidationError(f'items[{index}].description is required', field='items')
        quantity = to_decimal(payload.get('quantity'), f'items[{index}].quantity')
        if quantity <= 0:
            raise ValidationError(f'items[{index}].quantity must be greater than 0', field='items')
        unit_price = quantize_money(to_decimal(payload.get('unit_price'), f'items[{index}].unit_price'))
        # total_price is stored as given; only derived when the caller left it out
        if payload.get('total_price') in (None, ''):
            total_price = quantize_money(quantity * unit_price)
        else:
            total_price = quantize_money(to_decimal(payload['total_price'], f'items[{index}].total_price'))
        return cls(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
            cost_code_id=_optional_int(payload, 'cost_code_id'),
            display_order=_optional_int(payload, 'display_order'),
        )


@dataclass
class CreateEstimateRequest:
    client_id: Optional[int] = None
    project_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    subtotal: Optional[Decimal] = None
    tax_rate: Decimal = ZERO
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[LineItemInput] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload):
        payload = _require_mapping(payload)
        return cls(
            client_id=_optional_int(payload, 'client_id'),
            project_id=_optional_int(payload, 'project_id'),
            title=_optional_str(payload, 'title'),
            description=_optional_str(payload, 'description'),
            issue_date=parse_date(payload.get('issue_date'), 'issue_date'),
            expiry_date=parse_date(payload.get('expiry_date'), 'expiry_date'),
            subtotal=_optional_money(payload, 'subtotal'),
            tax_rate=_tax_rate(payload),
            notes=_optional_str(payload, 'notes'),
            terms=_optional_str(payload, 'terms'),
            items=_parse_items(payload),
        )


# field name -> parser(payload, key)
_ESTIMATE_FIELD_PARSERS = {
    'client_id': _optional_int,
    'project_id': _optional_int,
    'title': _optional_str,
    'description': _optional_str,
    'issue_date': lambda p, k: parse_date(p.get(k), k),
    'expiry_date': lambda p, k: parse_date(p.get(k), k),
    'subtotal': _optional_money,
    'tax_rate': _tax_rate,
    'notes': _optional_str,
    'terms': _optional_str,
}

_INVOICE_FIELD_PARSERS = {
    'client_id': _optional_int,
    'project_id': _optional_int,
    'issue_date': lambda p, k: parse_date(p.get(k), k),
    'due_date': lambda p, k: parse_date(p.get(k), k),
    'subtotal': _optional_money,
    'tax_rate': _tax_rate,
    'notes': _optional_str,
    'terms': _optional_str,
}


def _parse_changes(payload, parsers):
    unknown = sorted(k for k in payload if k not in parsers and k != 'items')
    if unknown:
        raise ValidationError(f"Fields cannot be updated here: {', '.join(unknown)}")
    return {key: parser(payload, key) for key, parser in parsers.items() if key in payload}


@dataclass
class UpdateEstimateRequest:
    """
    Partial update.

    ``items is None`` means the caller did not send an ``items`` key and the
    existing lines stay; a list (even empty) replaces them all.
    """
    changes: Dict[str, Any] = field(default_factory=dict)
    items: Optional[List[LineItemInput]] = None

    @property
    def replaces_items(self):
        return self.items is not None

    @classmethod
    def from_dict(cls, payload):
        payload = _require_mapping(payload)
        changes = _parse_changes(payload, _ESTIMATE_FIELD_PARSERS)
        if changes.get('issue_date', date.min) is None:
            raise ValidationError('issue_date cannot be empty', field='issue_date')
        items = _parse_items(payload) if 'items' in payload else None
        return cls(changes=changes, items=items)


@dataclass
class ConvertToInvoiceRequest:
    deposit_percentage: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, payload):
        payload = _require_mapping(payload)
        if payload.get('deposit_percentage') in (None, ''):
            return cls()
        pct = to_decimal(payload['deposit_percentage'], 'deposit_percentage')
        if pct < 0 or pct > HUNDRED:
            raise ValidationError('deposit_percentage must be between 0 and 100', field='deposit_percentage')
        return cls(deposit_percentage=pct)


@dataclass
class SendDocumentRequest:
    recipient_email: str
    message: Optional[str] = None
    cc_emails: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload):
        payload = _require_mapping(payload)
        cc = payload.get('cc_emails') or []
        if not isinstance(cc, list):
            raise ValidationError('cc_emails must be a list', field='cc_emails')
        return cls(
            recipient_email=validate_email(payload.get('recipient_email')),
            message=_optional_str(payload, 'message'),
            cc_emails=[validate_email(e, 'cc_emails') for e in cc],
        )


@dataclass
class SignatureRequest:
    signature: str

    @classmethod
    def from_dict(cls, payload):
        payload = _require_mapping(payload)
        signature = payload.get('signature')
        if not signature or not isinstance(signature, str):
            raise ValidationError('signature is required', field='signature')
        return cls(signature=signature)


@dataclass
class StatusUpdateRequest:
    status: str

    @classmethod
    def from_dict(cls, payload, status_enum):
        payload = _require_mapping(payload)
        status = payload.get('status')
        allowed = [s.value for s in status_enum]
        if status not in allowed:
            raise ValidationError(f"status must be one of: {', '.join(allowed)}", field='status')
        return cls(status=status)


@dataclass
class CreateInvoiceRequest:
    client_id: Optional[int] = None
    project_id: Optional[int] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    subtotal: Optional[Decimal] = None
    tax_rate: Decimal = ZERO
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[LineItemInput] = field(default_factory=list)
    source_estimate_id: Optional[str] = None

    @classmethod
    def from_dict(cls, payload):
        payload = _require_mapping(payload)
        return cls(
            client_id=_optional_int(payload, 'client_id'),
            project_id=_optional_int(payload, 'project_id'),
            issue_date=parse_date(payload.get('issue_date'), 'issue_date'),
            due_date=parse_date(payload.get('due_date'), 'due_date'),
            subtotal=_optional_money(payload, 'subtotal'),
            tax_rate=_tax_rate(payload),
            notes=_optional_str(payload, 'notes'),
            terms=_optional_str(payload, 'terms'),
            items=_parse_invoice_items(payload),
            source_estimate_id=_optional_str(payload, 'source_estimate_id'),
        )


@dataclass
class UpdateInvoiceRequest:
    """Same replace-on-present contract for ``items`` as UpdateEstimateRequest."""
    changes: Dict[str, Any] = field(default_factory=dict)
    items: Optional[List[LineItemInput]] = None

    @property
    def replaces_items(self):
        return self.items is not None

    @classmethod
    def from_dict(cls, payload):
        payload = _require_mapping(payload)
        changes = _parse_changes(payload, _INVOICE_FIELD_PARSERS)
        if changes.get('issue_date', date.min) is None:
            raise ValidationError('issue_date cannot be empty', field='issue_date')
        items = _parse_invoice_items(payload) if 'items' in payload else None
        return cls(changes=changes, items=items)


@dataclass
class SendResult:
    """What the notification sender reports back."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self):
        rv = {'success': self.success}
        if self.message_id:
            rv['message_id'] = self.message_id
        if self.error:
            rv['error'] = self.error
        return rv
