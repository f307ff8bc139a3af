"""Client service - the customers estimates and invoices are addressed to."""
import logging

from app.exceptions import NotFoundError, ValidationError
from app.models import Client
from app.schemas import validate_email

logger = logging.getLogger(__name__)

CLIENT_FIELDS = ('name', 'email', 'company_name', 'address', 'phone')


def _clean(payload: dict, partial: bool = False) -> dict:
    unknown = sorted(k for k in payload if k not in CLIENT_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown client fields: {', '.join(unknown)}")

    data = {}
    for key in CLIENT_FIELDS:
        if key not in payload:
            continue
        value = payload[key]
        if value is not None and not isinstance(value, str):
            raise ValidationError(f'{key} must be a string', field=key)
        data[key] = (value.strip() or None) if value is not None else None

    if not partial or 'name' in data:
        if not data.get('name'):
            raise ValidationError('Client name is required', field='name')
    if data.get('email'):
        data['email'] = validate_email(data['email'], 'email')
    return data


def list_clients(session, organization_id: int):
    return session.query(Client).filter(
        Client.organization_id == organization_id
    ).order_by(Client.name).all()


def get_client(session, organization_id: int, client_id: int) -> Client:
    client = session.query(Client).filter(
        Client.id == client_id,
        Client.organization_id == organization_id
    ).first()
    if not client:
        raise NotFoundError(f'Client {client_id} not found')
    return client


def create_client(session, organization_id: int, payload: dict) -> Client:
    """
    Create a client for the organization.

    Raises:
        ValidationError: missing name or malformed email
    """
    data = _clean(payload or {})
    try:
        client = Client(organization_id=organization_id, **data)
        session.add(client)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"Client {client.id} created for org {organization_id}")
    return client


def update_client(session, organization_id: int, client_id: int, payload: dict) -> Client:
    client = get_client(session, organization_id, client_id)
    data = _clean(payload or {}, partial=True)
    try:
        for key, value in data.items():
            setattr(client, key, value)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return client
