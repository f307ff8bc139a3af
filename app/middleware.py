"""Middleware for authentication and organization context."""
from functools import wraps
from flask import session, g, current_app
from app.database import get_session
from app.exceptions import AuthenticationRequiredError, UnauthorizedError
from app.models import AppUser, Organization, UserOrganization, ROLE_HIERARCHY


def load_user_and_organization():
    """
    Load current user and organization into g (Flask's per-request global).

    Called before each request. Sets g.user, g.user_id, g.organization_id and
    g.user_role if authenticated.
    """
    g.user = None
    g.user_id = None
    g.organization_id = None
    g.user_role = None

    try:
        user_id = session.get('user_id')
        if not user_id:
            return

        db_session = get_session()
        user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
        if not user:
            return

        g.user = user
        g.user_id = user.id

        organization_id = session.get('organization_id')
        if organization_id:
            membership = db_session.query(UserOrganization).join(
                Organization, Organization.id == UserOrganization.organization_id
            ).filter(
                UserOrganization.user_id == user.id,
                UserOrganization.organization_id == organization_id,
                UserOrganization.active == True,  # noqa: E712
                Organization.active == True  # noqa: E712
            ).first()

            if membership:
                g.organization_id = organization_id
                g.user_role = membership.role
            else:
                # Membership revoked or organization deactivated
                session.pop('organization_id', None)
    except Exception as e:
        # Context loading must not take the whole request down
        current_app.logger.error(f"Error in load_user_and_organization: {e}")


def require_login(f):
    """Decorator: require an authenticated user (401 otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise AuthenticationRequiredError('Login required')
        return f(*args, **kwargs)
    return decorated_function


def require_organization(f):
    """
    Decorator: require a selected organization.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('organization_id') is None:
            raise UnauthorizedError('Select an organization first')
        return f(*args, **kwargs)
    return decorated_function


def require_role(min_role='STAFF'):
    """
    Decorator: require a minimum role in the current organization.

    Roles hierarchy: OWNER > ADMIN > STAFF

    Must be used AFTER require_login and require_organization.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.get('user') is None or g.get('organization_id') is None:
                raise AuthenticationRequiredError('Login required')

            user_level = ROLE_HIERARCHY.get(g.get('user_role'), 0)
            required_level = ROLE_HIERARCHY.get(min_role, 1)
            if user_level < required_level:
                raise UnauthorizedError(f'{min_role} role or higher required')

            return f(*args, **kwargs)
        return decorated_function
    return decorator
