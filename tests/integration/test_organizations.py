"""
Integration tests for organizations, clients, projects and CLI commands.
"""
from datetime import timedelta

import pytest

from app.exceptions import ValidationError
from app.models import AppUser, Invoice, Organization, UserOrganization
from app.schemas import CreateInvoiceRequest
from app.services import organization_service
from app.services.invoice_service import create_invoice, get_invoice, update_invoice_status
from app.utils.dates import today


class TestOrganizationService:

    def test_create_organization_with_owner(self, session):
        organization = organization_service.create_organization(
            session, 'Ñandú Construcciones', 'Boss@Example.com', 'longpassword'
        )
        assert organization.slug == 'nandu-construcciones'

        owner = session.query(AppUser).filter_by(email='boss@example.com').one()
        membership = session.query(UserOrganization).filter_by(user_id=owner.id).one()
        assert membership.organization_id == organization.id
        assert membership.role == 'OWNER'

    def test_duplicate_names_get_distinct_slugs(self, session):
        first = organization_service.create_organization(session, 'Acme', 'a@example.com', 'longpassword')
        second = organization_service.create_organization(session, 'Acme', 'b@example.com', 'longpassword')
        assert first.slug == 'acme'
        assert second.slug == 'acme-1'

    def test_short_password_rejected(self, session):
        with pytest.raises(ValidationError):
            organization_service.create_organization(session, 'Acme', 'c@example.com', 'short')
        assert session.query(Organization).count() == 0

    def test_settings_round_trip(self, session, organization):
        assert organization_service.get_settings(session, organization.id) == {
            'auto_create_invoice_on_estimate_accept': False,
            'auto_invoice_deposit_percentage': '0',
        }
        with pytest.raises(ValidationError):
            organization_service.update_settings(
                session, organization.id, {'auto_create_invoice_on_estimate_accept': 'yes'}
            )


class TestClientEndpoints:

    def test_create_list_update(self, authenticated_client):
        created = authenticated_client.post('/clients', json={'name': '  Bob Builder ', 'email': 'bob@example.com'})
        assert created.status_code == 201
        client_id = created.get_json()['id']
        assert created.get_json()['name'] == 'Bob Builder'

        listed = authenticated_client.get('/clients').get_json()
        assert [c['id'] for c in listed] == [client_id]

        updated = authenticated_client.patch(f'/clients/{client_id}', json={'phone': '555-0100'})
        assert updated.get_json()['phone'] == '555-0100'
        assert updated.get_json()['name'] == 'Bob Builder'

    def test_invalid_client_payloads(self, authenticated_client):
        assert authenticated_client.post('/clients', json={'email': 'x@example.com'}).status_code == 422
        assert authenticated_client.post('/clients', json={'name': 'X', 'email': 'nope'}).status_code == 422
        assert authenticated_client.post('/clients', json={'name': 'X', 'fax': '1'}).status_code == 422

    def test_foreign_client_not_found(self, authenticated_client, other_customer):
        assert authenticated_client.get(f'/clients/{other_customer.id}').status_code == 404


class TestProjectEndpoints:

    def test_create_and_filter_by_client(self, authenticated_client, customer):
        created = authenticated_client.post('/projects', json={'name': 'Deck', 'client_id': customer.id})
        assert created.status_code == 201
        project = created.get_json()
        assert project['status'] == 'active'

        assert len(authenticated_client.get(f'/projects?client_id={customer.id}').get_json()) == 1

        updated = authenticated_client.patch(f"/projects/{project['id']}", json={'status': 'completed'})
        assert updated.get_json()['status'] == 'completed'

    def test_project_rejects_foreign_client(self, authenticated_client, other_customer):
        response = authenticated_client.post('/projects', json={'name': 'Deck', 'client_id': other_customer.id})
        assert response.status_code == 422
        assert response.get_json()['field'] == 'client_id'


class TestCliCommands:

    def test_create_organization_command(self, app, session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'create-organization', '--name', 'Cli Builders',
            '--owner-email', 'cli@example.com', '--owner-password', 'longpassword',
        ])
        assert result.exit_code == 0
        assert 'Organization created' in result.output
        assert session.query(Organization).filter_by(slug='cli-builders').count() == 1

    def test_mark_overdue_command(self, app, session, organization, user, customer):
        invoice = create_invoice(session, organization.id, user.id, CreateInvoiceRequest.from_dict({
            'client_id': customer.id, 'subtotal': '100',
            'due_date': (today() - timedelta(days=1)).isoformat(),
        }))
        update_invoice_status(session, organization.id, invoice.id, 'sent')

        result = app.test_cli_runner().invoke(args=['mark-overdue-invoices'])
        assert result.exit_code == 0
        assert '1 invoice(s) marked overdue' in result.output
        assert get_invoice(session, organization.id, invoice.id).status == 'overdue'
        assert session.query(Invoice).count() == 1

    def test_mark_overdue_command_rejects_bad_date(self, app):
        result = app.test_cli_runner().invoke(args=['mark-overdue-invoices', '--as-of', 'tomorrow'])
        assert result.exit_code == 1
