"""
Unit tests for request structures.
"""
from datetime import date
from decimal import Decimal

import pytest

from app.exceptions import ValidationError
from app.models import EstimateStatus
from app.schemas import (
    CreateEstimateRequest, UpdateEstimateRequest, CreateInvoiceRequest, UpdateInvoiceRequest, ConvertToInvoiceRequest,
    SendDocumentRequest, StatusUpdateRequest, LineItemInput, SendResult
)


class TestLineItemInput:

    def test_total_price_kept_as_supplied(self):
        item = LineItemInput.from_dict({'description': 'Tile', 'quantity': 3, 'unit_price': '10', 'total_price': '25'})
        assert item.total_price == Decimal('25.00')

    def test_total_price_derived_when_missing(self):
        item = LineItemInput.from_dict({'description': 'Tile', 'quantity': '2.5', 'unit_price': '10'})
        assert item.total_price == Decimal('25.00')

    @pytest.mark.parametrize('quantity', [0, -1])
    def test_quantity_must_be_positive(self, quantity):
        with pytest.raises(ValidationError):
            LineItemInput.from_dict({'description': 'Tile', 'quantity': quantity, 'unit_price': '10'})

    def test_description_required(self):
        with pytest.raises(ValidationError):
            LineItemInput.from_dict({'quantity': 1, 'unit_price': '10'})


class TestCreateEstimateRequest:

    def test_parses_payload(self):
        req = CreateEstimateRequest.from_dict({
            'client_id': '7',
            'title': '  Deck  ',
            'issue_date': '2026-10-01',
            'tax_rate': 8,
            'items': [{'description': 'Boards', 'quantity': 10, 'unit_price': '12.50'}],
        })
        assert req.client_id == 7
        assert req.title == 'Deck'
        assert req.issue_date == date(2026, 10, 1)
        assert req.tax_rate == Decimal('8')
        assert req.subtotal is None
        assert len(req.items) == 1

    def test_negative_tax_rate_rejected(self):
        with pytest.raises(ValidationError) as exc:
            CreateEstimateRequest.from_dict({'tax_rate': -1})
        assert exc.value.field == 'tax_rate'

    def test_bad_date_rejected(self):
        with pytest.raises(ValidationError):
            CreateEstimateRequest.from_dict({'issue_date': '17/10/2026'})


class TestUpdateEstimateRequest:

    def test_items_absent_means_untouched(self):
        req = UpdateEstimateRequest.from_dict({'title': 'x'})
        assert req.replaces_items is False
        assert req.changes == {'title': 'x'}

    def test_empty_items_means_replace(self):
        req = UpdateEstimateRequest.from_dict({'items': []})
        assert req.replaces_items is True
        assert req.items == []

    def test_status_cannot_be_patched(self):
        with pytest.raises(ValidationError):
            UpdateEstimateRequest.from_dict({'status': 'accepted'})


class TestInvoiceRequests:

    def test_source_estimate_id_parsed(self):
        req = CreateInvoiceRequest.from_dict({'client_id': 3, 'source_estimate_id': ' abc-123 '})
        assert req.source_estimate_id == 'abc-123'
        assert CreateInvoiceRequest.from_dict({}).source_estimate_id is None

    def test_cost_code_rejected_on_invoice_lines(self):
        item = {'description': 'Forms', 'quantity': 1, 'unit_price': '50', 'cost_code_id': 4}
        with pytest.raises(ValidationError) as exc:
            CreateInvoiceRequest.from_dict({'items': [item]})
        assert exc.value.field == 'items'
        assert 'cost_code_id' in exc.value.message
        with pytest.raises(ValidationError):
            UpdateInvoiceRequest.from_dict({'items': [item]})

    def test_cost_code_still_allowed_on_estimate_lines(self):
        item = {'description': 'Forms', 'quantity': 1, 'unit_price': '50', 'cost_code_id': 4}
        assert CreateEstimateRequest.from_dict({'items': [item]}).items[0].cost_code_id == 4


class TestOtherRequests:

    def test_deposit_percentage_bounds(self):
        assert ConvertToInvoiceRequest.from_dict({}).deposit_percentage is None
        assert ConvertToInvoiceRequest.from_dict({'deposit_percentage': 25}).deposit_percentage == Decimal('25')
        with pytest.raises(ValidationError):
            ConvertToInvoiceRequest.from_dict({'deposit_percentage': 101})

    def test_send_request_validates_emails(self):
        req = SendDocumentRequest.from_dict({'recipient_email': 'a@b.co', 'cc_emails': ['c@d.co']})
        assert req.cc_emails == ['c@d.co']
        with pytest.raises(ValidationError):
            SendDocumentRequest.from_dict({'recipient_email': 'not-an-email'})

    def test_status_request(self):
        assert StatusUpdateRequest.from_dict({'status': 'rejected'}, EstimateStatus).status == 'rejected'
        with pytest.raises(ValidationError):
            StatusUpdateRequest.from_dict({'status': 'paid'}, EstimateStatus)

    def test_send_result_to_dict(self):
        assert SendResult(success=False, error='smtp down').to_dict() == {'success': False, 'error': 'smtp down'}
