import pytest
import uuid

from app import create_app
from app.database import db_session, get_session, create_all, drop_all
from app.models import AppUser, Organization, UserOrganization, Client, Project, CostCode
from app.schemas import CreateEstimateRequest
from app.services import estimate_service
from app.services.email_service import mail


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    return create_app('config.TestConfig')


@pytest.fixture(autouse=True)
def app_context(app):
    """Fresh schema per test, inside one app context shared with the test client."""
    with app.app_context():
        create_all()
        yield
        db_session.remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def outbox(app):
    """Messages handed to Flask-Mail during the test."""
    with mail.record_messages() as messages:
        yield messages


def _make_organization(session, label):
    suffix = str(uuid.uuid4())[:8]
    organization = Organization(
        slug=f'{label}-{suffix}',
        name=f'{label.title()} Builders {suffix}',
        email=f'office-{suffix}@builders.test',
        active=True
    )
    session.add(organization)
    session.commit()
    return organization


def _make_user(session, organization, role='OWNER'):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'user-{suffix}@test.com',
        full_name='Test User',
        active=True
    )
    user.set_password('password123')
    session.add(user)
    session.flush()

    session.add(UserOrganization(
        user_id=user.id,
        organization_id=organization.id,
        role=role,
        active=True
    ))
    session.commit()
    return user


@pytest.fixture(scope='function')
def organization(session):
    """Create first test organization."""
    return _make_organization(session, 'acme')


@pytest.fixture(scope='function')
def other_organization(session):
    """Second organization for isolation tests."""
    return _make_organization(session, 'rival')


@pytest.fixture(scope='function')
def user(session, organization):
    """OWNER of the first organization."""
    return _make_user(session, organization, 'OWNER')


@pytest.fixture(scope='function')
def staff_user(session, organization):
    return _make_user(session, organization, 'STAFF')


@pytest.fixture(scope='function')
def other_user(session, other_organization):
    return _make_user(session, other_organization, 'OWNER')


@pytest.fixture(scope='function')
def customer(session, organization):
    """Billing client of the first organization."""
    customer = Client(
        organization_id=organization.id,
        name='Jane Homeowner',
        email='jane@example.com',
        company_name='Homeowner LLC'
    )
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def other_customer(session, other_organization):
    customer = Client(organization_id=other_organization.id, name='Rival Client', email='rival@example.com')
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def project(session, organization, customer):
    project = Project(organization_id=organization.id, client_id=customer.id, name='Kitchen Remodel')
    session.add(project)
    session.commit()
    return project


@pytest.fixture(scope='function')
def cost_code(session, organization):
    code = CostCode(organization_id=organization.id, code='03-100', name='Concrete Forming')
    session.add(code)
    session.commit()
    return code


@pytest.fixture(scope='function')
def make_estimate(session, organization, user, customer):
    """Factory: create an estimate through the service."""
    def _make(**overrides):
        payload = {
            'client_id': customer.id,
            'title': 'Kitchen Remodel',
            'subtotal': '1000.00',
            'tax_rate': '8',
            'items': [
                {'description': 'Demolition', 'quantity': 1, 'unit_price': '400.00', 'total_price': '400.00'},
                {'description': 'Cabinets', 'quantity': 2, 'unit_price': '300.00', 'total_price': '600.00'},
            ],
        }
        payload.update(overrides)
        return estimate_service.create_estimate(
            session, organization.id, user.id, CreateEstimateRequest.from_dict(payload)
        )
    return _make


@pytest.fixture(scope='function')
def accepted_estimate(session, organization, make_estimate):
    estimate = make_estimate()
    return estimate_service.add_signature(session, organization.id, estimate.id, 'data:image/png;base64,AAAA')


@pytest.fixture(scope='function')
def authenticated_client(client, user, organization):
    """Create authenticated client for the first organization."""
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
        sess['organization_id'] = organization.id
    return client


@pytest.fixture(scope='function')
def staff_client(client, staff_user, organization):
    with client.session_transaction() as sess:
        sess['user_id'] = staff_user.id
        sess['organization_id'] = organization.id
    return client


