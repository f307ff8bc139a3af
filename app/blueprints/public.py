"""
Public share pages - what a client reaches from the link in an estimate or
invoice email. No login; the opaque document id is the credential.
"""
import logging

from flask import Blueprint, request, jsonify, send_file

from app.database import get_session
from app.exceptions import ValidationError
from app.models import EstimateStatus
from app.schemas import SignatureRequest
from app.serializers import public_estimate_to_dict, public_invoice_to_dict
from app.services import estimate_service, invoice_service
from app.services.pdf_service import render_estimate_pdf, render_invoice_pdf

logger = logging.getLogger(__name__)

public_bp = Blueprint('public', __name__, url_prefix='/share')

RESPONDABLE_STATUSES = (EstimateStatus.SENT.value, EstimateStatus.OPENED.value)


def _ensure_respondable(estimate):
    if estimate.status not in RESPONDABLE_STATUSES:
        raise ValidationError('This estimate can no longer be accepted or rejected', field='status')
    if estimate.is_expired:
        raise ValidationError('This estimate has expired', field='expiry_date')


@public_bp.route('/estimate/<estimate_id>', methods=['GET'])
def view_estimate(estimate_id):
    """Client view; the first view of a sent estimate marks it opened."""
    db_session = get_session()
    estimate = estimate_service.get_public_estimate(db_session, estimate_id)
    if estimate_service.mark_estimate_opened(db_session, estimate):
        estimate = estimate_service.get_public_estimate(db_session, estimate_id)
    return jsonify(public_estimate_to_dict(estimate, estimate.organization))


@public_bp.route('/estimate/<estimate_id>/sign', methods=['POST'])
def sign_estimate(estimate_id):
    req = SignatureRequest.from_dict(request.get_json(silent=True))
    db_session = get_session()
    estimate = estimate_service.get_public_estimate(db_session, estimate_id)
    _ensure_respondable(estimate)

    estimate = estimate_service.add_signature(db_session, estimate.organization_id, estimate_id, req.signature)
    logger.info(f"Estimate {estimate.estimate_number} signed from share link ({request.remote_addr})")
    return jsonify(public_estimate_to_dict(estimate, estimate.organization))


@public_bp.route('/estimate/<estimate_id>/reject', methods=['POST'])
def reject_estimate(estimate_id):
    db_session = get_session()
    estimate = estimate_service.get_public_estimate(db_session, estimate_id)
    _ensure_respondable(estimate)

    estimate = estimate_service.update_status(
        db_session, estimate.organization_id, estimate_id, EstimateStatus.REJECTED
    )
    return jsonify(public_estimate_to_dict(estimate, estimate.organization))


@public_bp.route('/estimate/<estimate_id>/pdf', methods=['GET'])
def estimate_pdf(estimate_id):
    estimate = estimate_service.get_public_estimate(get_session(), estimate_id)
    pdf_buffer = render_estimate_pdf(estimate, estimate.organization, include_cost_codes=False)
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"estimate_{estimate.estimate_number}.pdf"
    )


@public_bp.route('/invoice/<invoice_id>', methods=['GET'])
def view_invoice(invoice_id):
    db_session = get_session()
    invoice = invoice_service.get_public_invoice(db_session, invoice_id)
    if invoice_service.mark_invoice_opened(db_session, invoice):
        invoice = invoice_service.get_public_invoice(db_session, invoice_id)
    return jsonify(public_invoice_to_dict(invoice, invoice.organization))


@public_bp.route('/invoice/<invoice_id>/pdf', methods=['GET'])
def invoice_pdf(invoice_id):
    invoice = invoice_service.get_public_invoice(get_session(), invoice_id)
    pdf_buffer = render_invoice_pdf(invoice, invoice.organization)
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"invoice_{invoice.invoice_number}.pdf"
    )
