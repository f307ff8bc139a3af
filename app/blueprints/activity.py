"""Activity blueprint - browse and export the organization's activity trail."""
from datetime import datetime

from flask import Blueprint, request, g, jsonify, Response

from app.database import get_session
from app.exceptions import ValidationError
from app.middleware import require_login, require_organization
from app.serializers import activity_to_dict
from app.services.activity_log_service import list_activity, export_activity_csv
from app.utils.dates import utcnow

activity_bp = Blueprint('activity', __name__, url_prefix='/activity')


def _parse_datetime(name):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f'Invalid datetime for {name}: {value!r}', field=name)


def _filters():
    return {
        'user_id': request.args.get('user_id', type=int),
        'entity_type': request.args.get('entity_type') or None,
        'entity_id': request.args.get('entity_id') or None,
        'action': request.args.get('action') or None,
        'start_date': _parse_datetime('start_date'),
        'end_date': _parse_datetime('end_date'),
    }


@activity_bp.route('', methods=['GET'])
@require_login
@require_organization
def list_entries():
    limit = min(request.args.get('limit', 50, type=int), 500)
    offset = request.args.get('offset', 0, type=int)
    entries = list_activity(get_session(), g.organization_id, limit=limit, offset=offset, **_filters())
    return jsonify([activity_to_dict(e) for e in entries])


@activity_bp.route('/export', methods=['GET'])
@require_login
@require_organization
def export_csv():
    csv_text = export_activity_csv(get_session(), g.organization_id, **_filters())
    filename = f"activity_{utcnow().strftime('%Y%m%d_%H%M%S')}.csv"
    return Response(
        csv_text,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )
