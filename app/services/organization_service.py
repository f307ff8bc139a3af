"""Organization service - organizations, memberships and acceptance settings."""
import logging
import re
import unicodedata

from sqlalchemy.exc import IntegrityError

from app.exceptions import BusinessLogicError, NotFoundError, ValidationError
from app.models import AppUser, Organization, UserOrganization
from app.schemas import validate_email
from app.utils.money import to_decimal, format_percentage, HUNDRED

logger = logging.getLogger(__name__)


def generate_slug(name: str) -> str:
    """Generate URL-safe slug from business name."""
    slug = unicodedata.normalize('NFKD', name)
    slug = slug.encode('ascii', 'ignore').decode('ascii')
    slug = slug.lower()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    return slug.strip('-')[:80] or 'organization'


def _unique_slug(session, name: str) -> str:
    slug = generate_slug(name)
    base_slug = slug
    counter = 1
    while session.query(Organization).filter_by(slug=slug).first():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def create_organization(session, name: str, owner_email: str, owner_password: str,
                        owner_name: str = None) -> Organization:
    """
    Create an organization and its OWNER membership.

    The owner account is created when the email is new; an existing user
    with that email is attached instead (password left unchanged).
    """
    name = (name or '').strip()
    if not name:
        raise ValidationError('Organization name is required', field='name')
    owner_email = validate_email(owner_email, 'owner_email').lower()

    try:
        organization = Organization(slug=_unique_slug(session, name), name=name, active=True)
        session.add(organization)
        session.flush()

        user = session.query(AppUser).filter_by(email=owner_email).first()
        if user is None:
            if not owner_password or len(owner_password) < 8:
                raise ValidationError('Password must be at least 8 characters', field='owner_password')
            user = AppUser(email=owner_email, full_name=owner_name, active=True)
            user.set_password(owner_password)
            session.add(user)
            session.flush()

        session.add(UserOrganization(
            user_id=user.id,
            organization_id=organization.id,
            role='OWNER',
            active=True
        ))
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError('Could not create organization. Try again.')
    except Exception:
        session.rollback()
        raise

    logger.info(f"Organization {organization.slug} created with owner {owner_email}")
    return organization


def get_organization(session, organization_id: int) -> Organization:
    organization = session.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError(f'Organization {organization_id} not found')
    return organization


def get_settings(session, organization_id: int) -> dict:
    organization = get_organization(session, organization_id)
    return {
        'auto_create_invoice_on_estimate_accept': bool(organization.auto_create_invoice_on_estimate_accept),
        'auto_invoice_deposit_percentage': format_percentage(organization.auto_invoice_deposit_percentage or 0),
    }


def update_settings(session, organization_id: int, payload: dict) -> dict:
    """
    Update the estimate acceptance settings.

    Raises:
        ValidationError: non-boolean flag or percentage outside 0..100
    """
    organization = get_organization(session, organization_id)
    payload = payload or {}

    try:
        if 'auto_create_invoice_on_estimate_accept' in payload:
            flag = payload['auto_create_invoice_on_estimate_accept']
            if not isinstance(flag, bool):
                raise ValidationError('auto_create_invoice_on_estimate_accept must be a boolean',
                                      field='auto_create_invoice_on_estimate_accept')
            organization.auto_create_invoice_on_estimate_accept = flag
        if 'auto_invoice_deposit_percentage' in payload:
            pct = to_decimal(payload['auto_invoice_deposit_percentage'], 'auto_invoice_deposit_percentage')
            if pct < 0 or pct > HUNDRED:
                raise ValidationError('auto_invoice_deposit_percentage must be between 0 and 100',
                                      field='auto_invoice_deposit_percentage')
            organization.auto_invoice_deposit_percentage = pct
        session.commit()
    except Exception:
        session.rollback()
        raise

    return get_settings(session, organization_id)


def authenticate(session, email: str, password: str):
    """Return the active user for these credentials, or None."""
    if not email or not password:
        return None
    user = session.query(AppUser).filter_by(email=email.strip().lower()).first()
    if not user or not user.active or not user.check_password(password):
        return None
    return user


def get_user_memberships(session, user_id: int):
    """Active memberships of a user in active organizations."""
    return session.query(UserOrganization).join(
        Organization, Organization.id == UserOrganization.organization_id
    ).filter(
        UserOrganization.user_id == user_id,
        UserOrganization.active == True,  # noqa: E712
        Organization.active == True  # noqa: E712
    ).all()
