"""
JSON shapes for API responses.

Money is rendered as strings ("1080.00") and dates as ISO strings. The
``public_*`` variants are what the client sees through a share link: no
organization/user ids, send tracking, conversion references or cost codes.
"""
from app.utils.dates import isoformat


def _money(value):
    return None if value is None else str(value)


def _number(value):
    if value is None:
        return None
    text = format(value.normalize(), 'f') if hasattr(value, 'normalize') else str(value)
    return text


def client_to_dict(client):
    if client is None:
        return None
    return {
        'id': client.id,
        'name': client.name,
        'email': client.email,
        'company_name': client.company_name,
        'address': client.address,
        'phone': client.phone,
    }


def public_client_to_dict(client):
    if client is None:
        return None
    return {
        'name': client.name,
        'company_name': client.company_name,
    }


def project_to_dict(project):
    return {
        'id': project.id,
        'client_id': project.client_id,
        'name': project.name,
        'description': project.description,
        'status': project.status,
        'created_at': isoformat(project.created_at),
    }


def _line_to_dict(item, with_cost_code=False, with_id=True):
    rv = {
        'description': item.description,
        'quantity': _number(item.quantity),
        'unit_price': _money(item.unit_price),
        'total_price': _money(item.total_price),
        'display_order': item.display_order,
    }
    if with_id:
        rv['id'] = item.id
    if with_cost_code:
        rv['cost_code_id'] = item.cost_code_id
        rv['cost_code_name'] = item.cost_code_name
    return rv


def _estimate_common(estimate):
    return {
        'id': estimate.id,
        'estimate_number': estimate.estimate_number,
        'title': estimate.title,
        'description': estimate.description,
        'status': estimate.status,
        'issue_date': isoformat(estimate.issue_date),
        'expiry_date': isoformat(estimate.expiry_date),
        'is_expired': estimate.is_expired,
        'subtotal': _money(estimate.subtotal),
        'tax_rate': _number(estimate.tax_rate),
        'tax_amount': _money(estimate.tax_amount),
        'total_amount': _money(estimate.total_amount),
        'notes': estimate.notes,
        'terms': estimate.terms,
        'signed_at': isoformat(estimate.signed_at),
    }


def estimate_to_dict(estimate, include_items=True):
    rv = _estimate_common(estimate)
    rv.update({
        'organization_id': estimate.organization_id,
        'user_id': estimate.user_id,
        'client_id': estimate.client_id,
        'project_id': estimate.project_id,
        'client': client_to_dict(estimate.client),
        'sent_at': isoformat(estimate.sent_at),
        'last_sent_at': isoformat(estimate.last_sent_at),
        'send_count': estimate.send_count or 0,
        'has_signature': bool(estimate.client_signature),
        'converted_to_invoice_id': estimate.converted_to_invoice_id,
        'created_at': isoformat(estimate.created_at),
        'updated_at': isoformat(estimate.updated_at),
    })
    if include_items:
        rv['items'] = [_line_to_dict(item, with_cost_code=True) for item in estimate.items]
    return rv


def public_estimate_to_dict(estimate, organization=None):
    rv = _estimate_common(estimate)
    rv['client'] = public_client_to_dict(estimate.client)
    rv['items'] = [_line_to_dict(item, with_id=False) for item in estimate.items]
    rv['can_sign'] = estimate.status in ('sent', 'opened') and not estimate.is_expired
    if organization is not None:
        rv['organization'] = organization_public_dict(organization)
    return rv


def _invoice_common(invoice):
    return {
        'id': invoice.id,
        'invoice_number': invoice.invoice_number,
        'status': invoice.status,
        'issue_date': isoformat(invoice.issue_date),
        'due_date': isoformat(invoice.due_date),
        'subtotal': _money(invoice.subtotal),
        'tax_rate': _number(invoice.tax_rate),
        'tax_amount': _money(invoice.tax_amount),
        'amount': _money(invoice.amount),
        'total_paid': _money(invoice.total_paid),
        'balance_due': _money(invoice.balance_due),
        'paid_at': isoformat(invoice.paid_at),
        'notes': invoice.notes,
        'terms': invoice.terms,
    }


def invoice_to_dict(invoice, include_items=True):
    rv = _invoice_common(invoice)
    rv.update({
        'organization_id': invoice.organization_id,
        'user_id': invoice.user_id,
        'client_id': invoice.client_id,
        'project_id': invoice.project_id,
        'source_estimate_id': invoice.source_estimate_id,
        'client': client_to_dict(invoice.client),
        'sent_at': isoformat(invoice.sent_at),
        'last_sent_at': isoformat(invoice.last_sent_at),
        'send_count': invoice.send_count or 0,
        'email_opened_at': isoformat(invoice.email_opened_at),
        'created_at': isoformat(invoice.created_at),
        'updated_at': isoformat(invoice.updated_at),
    })
    if include_items:
        rv['items'] = [_line_to_dict(item) for item in invoice.items]
    return rv


def public_invoice_to_dict(invoice, organization=None):
    rv = _invoice_common(invoice)
    rv['client'] = public_client_to_dict(invoice.client)
    rv['items'] = [_line_to_dict(item, with_id=False) for item in invoice.items]
    if organization is not None:
        rv['organization'] = organization_public_dict(organization)
    return rv


def organization_public_dict(organization):
    return {
        'name': organization.name,
        'address': organization.address,
        'phone': organization.phone,
        'email': organization.email,
    }


def activity_to_dict(entry):
    return {
        'id': entry.id,
        'user_id': entry.user_id,
        'entity_type': entry.entity_type,
        'entity_id': entry.entity_id,
        'action': entry.action,
        'description': entry.description,
        'metadata': entry.details or {},
        'ip_address': entry.ip_address,
        'created_at': isoformat(entry.created_at),
    }
