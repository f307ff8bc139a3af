"""
Integration tests for the estimate lifecycle and conversion to invoices.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from app.exceptions import NotFoundError, ValidationError
from app.models import ActivityLog, Client, EmailLog, Estimate, EstimateItem, Invoice
from app.schemas import CreateEstimateRequest, UpdateEstimateRequest, SendDocumentRequest, SendResult
from app.services import activity_log_service, email_service, estimate_service
from app.utils.dates import today


def _actions(session, entity_id):
    return [a.action for a in session.query(ActivityLog).filter_by(entity_id=str(entity_id)).order_by(ActivityLog.id)]


class TestCreateEstimate:

    def test_create_derives_totals_and_numbers(self, session, organization, make_estimate):
        estimate = make_estimate()

        assert estimate.status == 'draft'
        assert estimate.estimate_number.startswith('EST-') and estimate.estimate_number.endswith('-0001')
        assert estimate.subtotal == Decimal('1000.00')
        assert estimate.tax_amount == Decimal('80.00')
        assert estimate.total_amount == Decimal('1080.00')
        assert estimate.total_amount == estimate.subtotal + estimate.tax_amount
        assert estimate.send_count == 0
        assert estimate.client.name == 'Jane Homeowner'
        assert _actions(session, estimate.id) == ['created']

    def test_items_get_zero_based_display_order(self, make_estimate):
        estimate = make_estimate()
        assert [(i.display_order, i.description) for i in estimate.items] == [(0, 'Demolition'), (1, 'Cabinets')]

    def test_subtotal_defaults_to_sum_of_items(self, make_estimate):
        estimate = make_estimate(subtotal=None, tax_rate='10')
        assert estimate.subtotal == Decimal('1000.00')
        assert estimate.total_amount == Decimal('1100.00')

    def test_default_dates(self, make_estimate):
        estimate = make_estimate()
        assert estimate.issue_date == today()
        assert estimate.expiry_date == today() + timedelta(days=30)

    def test_second_estimate_gets_next_number(self, make_estimate):
        first = make_estimate()
        second = make_estimate()
        assert first.estimate_number.endswith('-0001')
        assert second.estimate_number.endswith('-0002')

    def test_foreign_client_rejected(self, session, organization, user, other_customer):
        request = CreateEstimateRequest.from_dict({'client_id': other_customer.id, 'subtotal': '10'})
        with pytest.raises(ValidationError) as exc:
            estimate_service.create_estimate(session, organization.id, user.id, request)
        assert exc.value.field == 'client_id'
        assert session.query(Estimate).count() == 0

    def test_cost_codes_must_belong_to_organization(self, session, organization, user, cost_code, make_estimate):
        estimate = make_estimate(items=[
            {'description': 'Forms', 'quantity': 1, 'unit_price': '50', 'cost_code_id': cost_code.id},
        ])
        assert estimate.items[0].cost_code_name == 'Concrete Forming'

        with pytest.raises(ValidationError):
            make_estimate(items=[{'description': 'Forms', 'quantity': 1, 'unit_price': '50', 'cost_code_id': 9999}])

    def test_audit_failure_does_not_fail_create(self, session, monkeypatch, make_estimate):
        def broken(*args, **kwargs):
            raise RuntimeError('audit store offline')

        monkeypatch.setattr(activity_log_service, 'log_activity', broken)
        estimate = make_estimate()
        assert session.get(Estimate, estimate.id) is not None
        assert session.query(ActivityLog).count() == 0


class TestListEstimates:

    def test_filters_by_client_project_and_status(self, session, organization, customer, project, make_estimate):
        neighbour = Client(organization_id=organization.id, name='Next Door')
        session.add(neighbour)
        session.commit()

        in_project = make_estimate(project_id=project.id)
        sent = make_estimate()
        estimate_service.update_status(session, organization.id, sent.id, 'sent')
        other_client = make_estimate(client_id=neighbour.id)

        by_client = estimate_service.get_estimates_by_client(session, organization.id, customer.id)
        assert {e.id for e in by_client} == {in_project.id, sent.id}
        assert [e.id for e in estimate_service.get_estimates_by_client(session, organization.id, neighbour.id)] == [other_client.id]

        by_project = estimate_service.get_estimates_by_project(session, organization.id, project.id)
        assert [e.id for e in by_project] == [in_project.id]

        by_status = estimate_service.get_estimates_by_status(session, organization.id, 'sent')
        assert [e.id for e in by_status] == [sent.id]
        assert len(estimate_service.get_estimates_by_status(session, organization.id, 'draft')) == 2

    def test_filters_stay_inside_organization(self, session, other_organization, customer, make_estimate):
        make_estimate()
        assert estimate_service.get_estimates_by_client(session, other_organization.id, customer.id) == []
        assert estimate_service.get_estimates_by_status(session, other_organization.id, 'draft') == []


class TestUpdateEstimate:

    def test_title_only_update_keeps_items(self, session, organization, make_estimate):
        estimate = make_estimate()
        updated = estimate_service.update_estimate(
            session, organization.id, estimate.id, UpdateEstimateRequest.from_dict({'title': 'x'})
        )
        assert updated.title == 'x'
        assert len(updated.items) == 2

        entry = session.query(ActivityLog).filter_by(entity_id=estimate.id, action='updated').one()
        assert entry.details == {'changed_fields': ['title'], 'items_replaced': False}

    def test_empty_items_removes_all_prior_items(self, session, organization, make_estimate):
        estimate = make_estimate()
        updated = estimate_service.update_estimate(
            session, organization.id, estimate.id, UpdateEstimateRequest.from_dict({'items': []})
        )
        assert updated.items == []
        assert session.query(EstimateItem).filter_by(estimate_id=estimate.id).count() == 0
        assert updated.subtotal == Decimal('0.00')
        assert updated.total_amount == Decimal('0.00')

    def test_items_are_replaced_not_merged(self, session, organization, make_estimate):
        estimate = make_estimate()
        updated = estimate_service.update_estimate(
            session, organization.id, estimate.id,
            UpdateEstimateRequest.from_dict({'items': [
                {'description': 'Flooring', 'quantity': 5, 'unit_price': '20', 'total_price': '100'},
            ]})
        )
        assert [i.description for i in updated.items] == ['Flooring']
        assert updated.subtotal == Decimal('100.00')
        assert updated.tax_amount == Decimal('8.00')
        assert updated.total_amount == Decimal('108.00')

    def test_null_subtotal_is_resummed_from_items(self, session, organization, make_estimate):
        estimate = make_estimate()
        estimate_service.update_estimate(
            session, organization.id, estimate.id, UpdateEstimateRequest.from_dict({'subtotal': '1500'})
        )
        updated = estimate_service.update_estimate(
            session, organization.id, estimate.id, UpdateEstimateRequest.from_dict({'subtotal': None})
        )
        assert len(updated.items) == 2
        assert updated.subtotal == Decimal('1000.00')
        assert updated.total_amount == Decimal('1080.00')

    def test_totals_recomputed_on_tax_change(self, session, organization, make_estimate):
        estimate = make_estimate()
        updated = estimate_service.update_estimate(
            session, organization.id, estimate.id, UpdateEstimateRequest.from_dict({'tax_rate': '10'})
        )
        assert updated.tax_amount == Decimal('100.00')
        assert updated.total_amount == updated.subtotal + updated.tax_amount == Decimal('1100.00')

    def test_other_organization_cannot_update(self, session, other_organization, make_estimate):
        estimate = make_estimate()
        with pytest.raises(NotFoundError):
            estimate_service.update_estimate(
                session, other_organization.id, estimate.id, UpdateEstimateRequest.from_dict({'title': 'x'})
            )


class TestDeleteAndStatus:

    def test_delete_is_hard_and_audited(self, session, organization, make_estimate):
        estimate = make_estimate()
        estimate_id = estimate.id
        estimate_service.delete_estimate(session, organization.id, estimate_id)

        assert session.get(Estimate, estimate_id) is None
        assert session.query(EstimateItem).count() == 0
        assert _actions(session, estimate_id) == ['created', 'deleted']
        with pytest.raises(NotFoundError):
            estimate_service.get_estimate(session, organization.id, estimate_id)

    def test_update_status_is_unchecked(self, session, organization, make_estimate):
        estimate = make_estimate()
        estimate_service.update_status(session, organization.id, estimate.id, 'accepted')
        updated = estimate_service.update_status(session, organization.id, estimate.id, 'draft')
        assert updated.status == 'draft'

    def test_status_audit_only_when_changed(self, session, organization, make_estimate):
        estimate = make_estimate()
        estimate_service.update_status(session, organization.id, estimate.id, 'draft')
        assert 'status_changed' not in _actions(session, estimate.id)

        estimate_service.update_status(session, organization.id, estimate.id, 'rejected')
        entry = session.query(ActivityLog).filter_by(entity_id=estimate.id, action='status_changed').one()
        assert entry.details == {'old_status': 'draft', 'new_status': 'rejected'}

    def test_invalid_status_rejected(self, session, organization, make_estimate):
        estimate = make_estimate()
        with pytest.raises(ValidationError):
            estimate_service.update_status(session, organization.id, estimate.id, 'paid')

    def test_listing_filters(self, session, organization, other_organization, make_estimate):
        first = make_estimate()
        make_estimate()
        estimate_service.update_status(session, organization.id, first.id, 'sent')

        assert len(estimate_service.list_estimates(session, organization.id)) == 2
        assert [e.id for e in estimate_service.get_estimates_by_status(session, organization.id, 'sent')] == [first.id]
        assert estimate_service.list_estimates(session, other_organization.id) == []


class TestSignature:

    def test_signing_a_draft_accepts_it(self, session, organization, make_estimate):
        estimate = make_estimate()
        assert estimate.status == 'draft'

        signed = estimate_service.add_signature(session, organization.id, estimate.id, 'data:image/png;base64,AAAA')
        assert signed.status == 'accepted'
        assert signed.signed_at is not None
        assert signed.client_signature == 'data:image/png;base64,AAAA'
        assert signed.converted_to_invoice_id is None
        assert session.query(Invoice).count() == 0

    def test_auto_invoice_on_signature(self, session, organization, make_estimate):
        organization.auto_create_invoice_on_estimate_accept = True
        organization.auto_invoice_deposit_percentage = Decimal('30')
        session.commit()

        estimate = make_estimate()
        signed = estimate_service.add_signature(session, organization.id, estimate.id, 'sig')

        invoice = session.query(Invoice).one()
        assert signed.converted_to_invoice_id == invoice.id
        assert invoice.amount == Decimal('324.00')
        assert len(invoice.items) == 1

        # already converted: signing again does not create a second invoice
        estimate_service.add_signature(session, organization.id, estimate.id, 'sig-again')
        assert session.query(Invoice).count() == 1

    def test_auto_invoice_full_when_no_deposit(self, session, organization, make_estimate):
        organization.auto_create_invoice_on_estimate_accept = True
        session.commit()

        estimate = make_estimate()
        estimate_service.add_signature(session, organization.id, estimate.id, 'sig')
        invoice = session.query(Invoice).one()
        assert invoice.amount == Decimal('1080.00')
        assert len(invoice.items) == 2

    def test_auto_invoice_failure_keeps_signature(self, session, organization, make_estimate, monkeypatch):
        organization.auto_create_invoice_on_estimate_accept = True
        session.commit()

        def fail(*args, **kwargs):
            raise RuntimeError('numbering exploded')

        estimate = make_estimate()
        monkeypatch.setattr(estimate_service, 'next_document_number', fail)
        signed = estimate_service.add_signature(session, organization.id, estimate.id, 'sig')

        assert signed.status == 'accepted'
        assert signed.signed_at is not None
        assert session.query(Invoice).count() == 0


class TestConvertToInvoice:

    def test_requires_accepted_status(self, session, organization, make_estimate):
        estimate = make_estimate()
        with pytest.raises(ValidationError):
            estimate_service.convert_to_invoice(session, organization.id, estimate.id)
        assert session.query(Invoice).count() == 0

    def test_full_conversion_copies_items(self, session, organization, accepted_estimate):
        invoice_id = estimate_service.convert_to_invoice(session, organization.id, accepted_estimate.id)
        invoice = session.get(Invoice, invoice_id)
        estimate = session.get(Estimate, accepted_estimate.id)

        assert invoice.amount == estimate.total_amount == Decimal('1080.00')
        assert invoice.balance_due == invoice.amount
        assert invoice.total_paid == Decimal('0.00')
        assert invoice.status == 'draft'
        assert invoice.client_id == estimate.client_id
        assert invoice.user_id == estimate.user_id
        assert invoice.source_estimate_id == estimate.id
        assert invoice.invoice_number.startswith('INV-')
        assert invoice.issue_date == today()
        assert invoice.due_date == today() + timedelta(days=30)
        assert [(i.description, i.quantity, i.unit_price, i.total_price) for i in invoice.items] == \
            [(i.description, i.quantity, i.unit_price, i.total_price) for i in estimate.items]
        assert estimate.converted_to_invoice_id == invoice_id
        assert estimate.status == 'accepted'

    def test_deposit_conversion(self, session, organization, accepted_estimate):
        invoice_id = estimate_service.convert_to_invoice(
            session, organization.id, accepted_estimate.id, deposit_percentage=Decimal('25')
        )
        invoice = session.get(Invoice, invoice_id)

        assert len(invoice.items) == 1
        assert invoice.subtotal == Decimal('250.00')
        assert invoice.tax_amount == Decimal('20.00')
        assert invoice.amount == Decimal('0.25') * Decimal('1080.00')
        assert invoice.items[0].description == '25% Deposit for: Kitchen Remodel'
        assert invoice.items[0].total_price == Decimal('250.00')
        assert 'This is a 25% deposit invoice for estimate' in invoice.notes

    @pytest.mark.parametrize('pct', [0, 100])
    def test_boundary_percentages_bill_in_full(self, session, organization, accepted_estimate, pct):
        invoice_id = estimate_service.convert_to_invoice(
            session, organization.id, accepted_estimate.id, deposit_percentage=pct
        )
        invoice = session.get(Invoice, invoice_id)
        assert invoice.amount == Decimal('1080.00')
        assert len(invoice.items) == 2

    def test_conversion_is_not_idempotent(self, session, organization, accepted_estimate):
        first = estimate_service.convert_to_invoice(session, organization.id, accepted_estimate.id)
        second = estimate_service.convert_to_invoice(session, organization.id, accepted_estimate.id)

        assert first != second
        assert session.query(Invoice).count() == 2
        # the back-reference keeps the first invoice
        assert session.get(Estimate, accepted_estimate.id).converted_to_invoice_id == first

    def test_back_reference_failure_is_swallowed(self, session, organization, accepted_estimate, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError('estimate row locked')

        monkeypatch.setattr(estimate_service, '_link_invoice', broken)
        invoice_id = estimate_service.convert_to_invoice(session, organization.id, accepted_estimate.id)

        assert session.get(Invoice, invoice_id) is not None
        assert session.get(Estimate, accepted_estimate.id).converted_to_invoice_id is None

    def test_conversion_is_audited(self, session, organization, accepted_estimate):
        invoice_id = estimate_service.convert_to_invoice(
            session, organization.id, accepted_estimate.id, deposit_percentage=50
        )
        entry = session.query(ActivityLog).filter_by(entity_id=accepted_estimate.id, action='converted').one()
        assert entry.details['estimate_id'] == accepted_estimate.id
        assert entry.details['invoice_id'] == invoice_id
        assert entry.details['is_deposit'] is True

    def test_end_to_end_deposit_scenario(self, session, organization, user, customer):
        request = CreateEstimateRequest.from_dict({
            'client_id': customer.id, 'title': 'Garage', 'subtotal': 1000, 'tax_rate': 8,
        })
        estimate = estimate_service.create_estimate(session, organization.id, user.id, request)
        assert estimate.tax_amount == Decimal('80.00')
        assert estimate.total_amount == Decimal('1080.00')

        estimate_service.add_signature(session, organization.id, estimate.id, 'sig')
        invoice_id = estimate_service.convert_to_invoice(session, organization.id, estimate.id, deposit_percentage=50)

        invoice = session.get(Invoice, invoice_id)
        assert invoice.amount == Decimal('540.00')
        assert len(invoice.items) == 1
        assert '50%' in invoice.items[0].description


class TestSendEstimate:

    def test_send_twice_keeps_first_sent_at(self, session, organization, make_estimate, monkeypatch):
        estimate = make_estimate()
        request = SendDocumentRequest.from_dict({'recipient_email': 'jane@example.com'})

        t1 = datetime(2026, 10, 1, 9, 0, 0)
        t2 = datetime(2026, 10, 3, 15, 30, 0)

        monkeypatch.setattr(estimate_service, 'utcnow', lambda: t1)
        assert estimate_service.send_estimate(session, organization.id, estimate.id, request).success

        monkeypatch.setattr(estimate_service, 'utcnow', lambda: t2)
        assert estimate_service.send_estimate(session, organization.id, estimate.id, request).success

        sent = estimate_service.get_estimate(session, organization.id, estimate.id)
        assert sent.status == 'sent'
        assert sent.sent_at == t1
        assert sent.last_sent_at == t2
        assert sent.send_count == 2

    def test_send_delivers_and_logs(self, session, organization, make_estimate, outbox):
        estimate = make_estimate()
        request = SendDocumentRequest.from_dict({'recipient_email': 'jane@example.com'})
        estimate_service.send_estimate(session, organization.id, estimate.id, request)

        assert len(outbox) == 1
        assert outbox[0].subject.startswith(f'Estimate {estimate.estimate_number}')
        log = session.query(EmailLog).one()
        assert log.template_type == 'estimate'
        assert log.estimate_id == estimate.id
        assert 'sent' in _actions(session, estimate.id)

    def test_email_log_keeps_custom_message(self, session, organization, make_estimate, outbox):
        estimate = make_estimate()
        request = SendDocumentRequest.from_dict({
            'recipient_email': 'jane@example.com',
            'message': 'Let me know if the cabinet finish works.',
            'cc_emails': ['pm@example.com'],
        })
        estimate_service.send_estimate(session, organization.id, estimate.id, request)

        log = session.query(EmailLog).one()
        assert log.details == {
            'cc_emails': ['pm@example.com'],
            'custom_message': 'Let me know if the cabinet finish works.',
        }

    def test_delivery_failure_mutates_nothing(self, session, organization, make_estimate, monkeypatch):
        estimate = make_estimate()
        monkeypatch.setattr(
            email_service, 'send_estimate_email',
            lambda *args, **kwargs: SendResult(success=False, error='smtp down')
        )
        result = estimate_service.send_estimate(
            session, organization.id, estimate.id, SendDocumentRequest.from_dict({'recipient_email': 'jane@example.com'})
        )
        assert result.success is False
        assert result.error == 'smtp down'

        unchanged = estimate_service.get_estimate(session, organization.id, estimate.id)
        assert unchanged.status == 'draft'
        assert unchanged.sent_at is None
        assert unchanged.send_count == 0
        assert session.query(EmailLog).count() == 0

    def test_send_requires_client(self, session, organization, make_estimate):
        estimate = make_estimate(client_id=None)
        with pytest.raises(ValidationError):
            estimate_service.send_estimate(
                session, organization.id, estimate.id,
                SendDocumentRequest.from_dict({'recipient_email': 'jane@example.com'})
            )

    def test_resend_resets_accepted_status(self, session, organization, accepted_estimate):
        estimate_service.send_estimate(
            session, organization.id, accepted_estimate.id,
            SendDocumentRequest.from_dict({'recipient_email': 'jane@example.com'})
        )
        assert estimate_service.get_estimate(session, organization.id, accepted_estimate.id).status == 'sent'


class TestOpened:

    def test_only_sent_moves_to_opened(self, session, organization, make_estimate):
        estimate = make_estimate()
        assert estimate_service.mark_estimate_opened(session, estimate) is False

        estimate_service.update_status(session, organization.id, estimate.id, 'sent')
        estimate = estimate_service.get_estimate(session, organization.id, estimate.id)
        assert estimate_service.mark_estimate_opened(session, estimate) is True
        assert estimate_service.get_estimate(session, organization.id, estimate.id).status == 'opened'
        assert 'opened' in _actions(session, estimate.id)
