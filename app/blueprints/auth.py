"""
Authentication blueprint.
Handles login, logout and organization selection for the JSON API.
"""
import logging

from flask import Blueprint, request, session, g, jsonify
from flask_wtf.csrf import generate_csrf

from app.database import get_session
from app.exceptions import AuthenticationRequiredError, BusinessLogicError, UnauthorizedError
from app.middleware import require_login
from app.services.organization_service import authenticate, get_user_memberships

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def _membership_dict(membership):
    return {
        'organization_id': membership.organization_id,
        'organization_name': membership.organization.name,
        'role': membership.role,
    }


@auth_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    """Token for the X-CSRFToken header of subsequent writes."""
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/login', methods=['POST'])
def login():
    """Validate email + password; auto-select the organization if there is only one."""
    payload = request.get_json(silent=True) or {}
    email = (payload.get('email') or '').strip()
    password = payload.get('password') or ''

    if not email or not password:
        raise BusinessLogicError('Email and password are required')

    db_session = get_session()
    user = authenticate(db_session, email, password)
    if not user:
        logger.warning(f"Failed login for {email}")
        raise AuthenticationRequiredError('Invalid email or password')

    memberships = get_user_memberships(db_session, user.id)
    if not memberships:
        raise UnauthorizedError('Your account is not linked to any organization')

    session.clear()
    session['user_id'] = user.id
    session.permanent = True
    if len(memberships) == 1:
        session['organization_id'] = memberships[0].organization_id

    logger.info(f"User {user.id} logged in")
    return jsonify({
        'user': {'id': user.id, 'email': user.email, 'full_name': user.full_name},
        'organization_id': session.get('organization_id'),
        'organizations': [_membership_dict(m) for m in memberships],
    })


@auth_bp.route('/select-organization', methods=['POST'])
@require_login
def select_organization():
    payload = request.get_json(silent=True) or {}
    organization_id = payload.get('organization_id')

    memberships = get_user_memberships(get_session(), g.user.id)
    membership = next((m for m in memberships if m.organization_id == organization_id), None)
    if membership is None:
        raise UnauthorizedError('Invalid organization')

    session['organization_id'] = membership.organization_id
    return jsonify(_membership_dict(membership))


@auth_bp.route('/me', methods=['GET'])
@require_login
def me():
    memberships = get_user_memberships(get_session(), g.user.id)
    return jsonify({
        'user': {'id': g.user.id, 'email': g.user.email, 'full_name': g.user.full_name},
        'organization_id': g.organization_id,
        'role': g.user_role,
        'organizations': [_membership_dict(m) for m in memberships],
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'status': 'ok'})
