"""Invoices blueprint."""
from flask import Blueprint, request, g, jsonify, send_file

from app.database import get_session
from app.middleware import require_login, require_organization
from app.models import InvoiceStatus
from app.schemas import CreateInvoiceRequest, UpdateInvoiceRequest, SendDocumentRequest, StatusUpdateRequest
from app.serializers import invoice_to_dict
from app.services import invoice_service
from app.services.organization_service import get_organization
from app.services.pdf_service import render_invoice_pdf

invoices_bp = Blueprint('invoices', __name__, url_prefix='/invoices')


def _payload():
    return request.get_json(silent=True)


@invoices_bp.route('', methods=['GET'])
@require_login
@require_organization
def list_invoices():
    invoices = invoice_service.list_invoices(
        get_session(),
        g.organization_id,
        status=request.args.get('status') or None,
        client_id=request.args.get('client_id', type=int),
        project_id=request.args.get('project_id', type=int),
    )
    return jsonify([invoice_to_dict(i, include_items=False) for i in invoices])


@invoices_bp.route('', methods=['POST'])
@require_login
@require_organization
def create_invoice():
    invoice = invoice_service.create_invoice(
        get_session(), g.organization_id, g.user_id, CreateInvoiceRequest.from_dict(_payload())
    )
    return jsonify(invoice_to_dict(invoice)), 201


@invoices_bp.route('/<invoice_id>', methods=['GET'])
@require_login
@require_organization
def view_invoice(invoice_id):
    return jsonify(invoice_to_dict(invoice_service.get_invoice(get_session(), g.organization_id, invoice_id)))


@invoices_bp.route('/<invoice_id>', methods=['PATCH'])
@require_login
@require_organization
def update_invoice(invoice_id):
    invoice = invoice_service.update_invoice(
        get_session(), g.organization_id, invoice_id,
        UpdateInvoiceRequest.from_dict(_payload()), user_id=g.user_id
    )
    return jsonify(invoice_to_dict(invoice))


@invoices_bp.route('/<invoice_id>', methods=['DELETE'])
@require_login
@require_organization
def delete_invoice(invoice_id):
    invoice_service.delete_invoice(get_session(), g.organization_id, invoice_id, user_id=g.user_id)
    return '', 204


@invoices_bp.route('/<invoice_id>/status', methods=['POST'])
@require_login
@require_organization
def update_status(invoice_id):
    req = StatusUpdateRequest.from_dict(_payload(), InvoiceStatus)
    invoice = invoice_service.update_invoice_status(
        get_session(), g.organization_id, invoice_id, req.status, user_id=g.user_id
    )
    return jsonify(invoice_to_dict(invoice))


@invoices_bp.route('/<invoice_id>/send', methods=['POST'])
@require_login
@require_organization
def send_invoice(invoice_id):
    result = invoice_service.send_invoice(
        get_session(), g.organization_id, invoice_id,
        SendDocumentRequest.from_dict(_payload()), user_id=g.user_id
    )
    return jsonify(result.to_dict()), 200 if result.success else 502


@invoices_bp.route('/<invoice_id>/reminder', methods=['POST'])
@require_login
@require_organization
def send_reminder(invoice_id):
    result = invoice_service.send_payment_reminder(get_session(), g.organization_id, invoice_id, user_id=g.user_id)
    return jsonify(result.to_dict()), 200 if result.success else 502


@invoices_bp.route('/<invoice_id>/mark-paid', methods=['POST'])
@require_login
@require_organization
def mark_paid(invoice_id):
    invoice = invoice_service.mark_as_paid(get_session(), g.organization_id, invoice_id, user_id=g.user_id)
    return jsonify(invoice_to_dict(invoice))


@invoices_bp.route('/<invoice_id>/pdf', methods=['GET'])
@require_login
@require_organization
def download_pdf(invoice_id):
    db_session = get_session()
    invoice = invoice_service.get_invoice(db_session, g.organization_id, invoice_id)
    pdf_buffer = render_invoice_pdf(invoice, get_organization(db_session, g.organization_id))
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"invoice_{invoice.invoice_number}.pdf"
    )
