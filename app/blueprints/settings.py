"""Organization settings blueprint (estimate acceptance / auto invoicing)."""
from flask import Blueprint, request, g, jsonify

from app.database import get_session
from app.middleware import require_login, require_organization, require_role
from app.services.organization_service import get_settings, update_settings

settings_bp = Blueprint('settings', __name__, url_prefix='/organizations/settings')


@settings_bp.route('', methods=['GET'])
@require_login
@require_organization
def show_settings():
    return jsonify(get_settings(get_session(), g.organization_id))


@settings_bp.route('', methods=['PATCH'])
@require_login
@require_organization
@require_role('ADMIN')
def edit_settings():
    """Only ADMIN or OWNER can change how accepted estimates are invoiced."""
    payload = request.get_json(silent=True) or {}
    return jsonify(update_settings(get_session(), g.organization_id, payload))
