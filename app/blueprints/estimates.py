"""Estimates blueprint - CRUD, sending, signature and conversion."""
from flask import Blueprint, request, g, jsonify, send_file

from app.database import get_session
from app.middleware import require_login, require_organization
from app.models import EstimateStatus
from app.schemas import (
    CreateEstimateRequest, UpdateEstimateRequest, SendDocumentRequest,
    SignatureRequest, StatusUpdateRequest, ConvertToInvoiceRequest
)
from app.serializers import estimate_to_dict, invoice_to_dict
from app.services import estimate_service
from app.services.invoice_service import get_invoice
from app.services.organization_service import get_organization
from app.services.pdf_service import render_estimate_pdf

estimates_bp = Blueprint('estimates', __name__, url_prefix='/estimates')


def _payload():
    return request.get_json(silent=True)


@estimates_bp.route('', methods=['GET'])
@require_login
@require_organization
def list_estimates():
    """List estimates (?status=&client_id=&project_id=)."""
    estimates = estimate_service.list_estimates(
        get_session(),
        g.organization_id,
        status=request.args.get('status') or None,
        client_id=request.args.get('client_id', type=int),
        project_id=request.args.get('project_id', type=int),
    )
    return jsonify([estimate_to_dict(e, include_items=False) for e in estimates])


@estimates_bp.route('', methods=['POST'])
@require_login
@require_organization
def create_estimate():
    estimate = estimate_service.create_estimate(
        get_session(), g.organization_id, g.user_id, CreateEstimateRequest.from_dict(_payload())
    )
    return jsonify(estimate_to_dict(estimate)), 201


@estimates_bp.route('/<estimate_id>', methods=['GET'])
@require_login
@require_organization
def view_estimate(estimate_id):
    return jsonify(estimate_to_dict(estimate_service.get_estimate(get_session(), g.organization_id, estimate_id)))


@estimates_bp.route('/<estimate_id>', methods=['PATCH'])
@require_login
@require_organization
def update_estimate(estimate_id):
    estimate = estimate_service.update_estimate(
        get_session(), g.organization_id, estimate_id,
        UpdateEstimateRequest.from_dict(_payload()), user_id=g.user_id
    )
    return jsonify(estimate_to_dict(estimate))


@estimates_bp.route('/<estimate_id>', methods=['DELETE'])
@require_login
@require_organization
def delete_estimate(estimate_id):
    estimate_service.delete_estimate(get_session(), g.organization_id, estimate_id, user_id=g.user_id)
    return '', 204


@estimates_bp.route('/<estimate_id>/status', methods=['POST'])
@require_login
@require_organization
def update_status(estimate_id):
    req = StatusUpdateRequest.from_dict(_payload(), EstimateStatus)
    estimate = estimate_service.update_status(
        get_session(), g.organization_id, estimate_id, req.status, user_id=g.user_id
    )
    return jsonify(estimate_to_dict(estimate))


@estimates_bp.route('/<estimate_id>/send', methods=['POST'])
@require_login
@require_organization
def send_estimate(estimate_id):
    """Email the estimate; 502 when the mail server refused it."""
    result = estimate_service.send_estimate(
        get_session(), g.organization_id, estimate_id,
        SendDocumentRequest.from_dict(_payload()), user_id=g.user_id
    )
    return jsonify(result.to_dict()), 200 if result.success else 502


@estimates_bp.route('/<estimate_id>/signature', methods=['POST'])
@require_login
@require_organization
def add_signature(estimate_id):
    req = SignatureRequest.from_dict(_payload())
    estimate = estimate_service.add_signature(
        get_session(), g.organization_id, estimate_id, req.signature, user_id=g.user_id
    )
    return jsonify(estimate_to_dict(estimate))


@estimates_bp.route('/<estimate_id>/convert', methods=['POST'])
@require_login
@require_organization
def convert_to_invoice(estimate_id):
    req = ConvertToInvoiceRequest.from_dict(_payload())
    db_session = get_session()
    invoice_id = estimate_service.convert_to_invoice(
        db_session, g.organization_id, estimate_id,
        deposit_percentage=req.deposit_percentage, user_id=g.user_id
    )
    return jsonify(invoice_to_dict(get_invoice(db_session, g.organization_id, invoice_id))), 201


@estimates_bp.route('/<estimate_id>/pdf', methods=['GET'])
@require_login
@require_organization
def download_pdf(estimate_id):
    db_session = get_session()
    estimate = estimate_service.get_estimate(db_session, g.organization_id, estimate_id)
    pdf_buffer = render_estimate_pdf(estimate, get_organization(db_session, g.organization_id))
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"estimate_{estimate.estimate_number}.pdf"
    )
