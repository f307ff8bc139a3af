"""Invoice service - invoice records, delivery, reminders and payment status."""
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.orm import joinedload, selectinload

from app.exceptions import NotFoundError, ValidationError
from app.models import Invoice, InvoiceStatus, InvoiceItem
from app.models.activity_log import ActivityAction, EntityType
from app.schemas import CreateInvoiceRequest, UpdateInvoiceRequest, SendDocumentRequest, SendResult
from app.services import email_service
from app.services.activity_log_service import build_description, record_activity
from app.services.numbering_service import next_document_number, INVOICE_PREFIX
from app.services.references import validate_references
from app.utils.dates import utcnow, today
from app.utils.money import ZERO, compute_totals, sum_line_totals, quantize_money
from app.utils.side_effects import run_best_effort

logger = logging.getLogger(__name__)

INVOICE_DUE_DAYS = 30

# statuses that still expect a payment once the due date passes
OVERDUE_CANDIDATES = (InvoiceStatus.SENT.value, InvoiceStatus.OPENED.value)


def _status_value(status) -> str:
    return status.value if isinstance(status, InvoiceStatus) else status


def _query(session):
    return session.query(Invoice).options(
        joinedload(Invoice.client),
        selectinload(Invoice.items),
    )


def list_invoices(session, organization_id: int, status=None, client_id=None, project_id=None) -> List[Invoice]:
    """List invoices of an organization, newest first."""
    query = _query(session).filter(Invoice.organization_id == organization_id)
    if status:
        query = query.filter(Invoice.status == _status_value(status))
    if client_id:
        query = query.filter(Invoice.client_id == client_id)
    if project_id:
        query = query.filter(Invoice.project_id == project_id)
    return query.order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc()).all()


def get_invoices_by_client(session, organization_id: int, client_id: int) -> List[Invoice]:
    return list_invoices(session, organization_id, client_id=client_id)


def get_invoices_by_project(session, organization_id: int, project_id: int) -> List[Invoice]:
    return list_invoices(session, organization_id, project_id=project_id)


def get_invoices_by_status(session, organization_id: int, status) -> List[Invoice]:
    return list_invoices(session, organization_id, status=status)


def get_invoice(session, organization_id: int, invoice_id: str) -> Invoice:
    """
    Get one invoice with client and items.

    Raises:
        NotFoundError: if the invoice does not exist in this organization
    """
    invoice = _query(session).filter(
        Invoice.id == invoice_id,
        Invoice.organization_id == organization_id
    ).first()
    if not invoice:
        raise NotFoundError(f'Invoice {invoice_id} not found')
    return invoice


def get_public_invoice(session, invoice_id: str) -> Invoice:
    invoice = _query(session).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFoundError('Invoice not found')
    return invoice


def _build_items(items) -> List[InvoiceItem]:
    return [
        InvoiceItem(
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            display_order=item.display_order if item.display_order is not None else index,
        )
        for index, item in enumerate(items)
    ]


def _apply_totals(invoice: Invoice) -> None:
    subtotal, tax_amount, amount = compute_totals(invoice.subtotal or ZERO, invoice.tax_rate or ZERO)
    invoice.subtotal = subtotal
    invoice.tax_amount = tax_amount
    invoice.amount = amount
    invoice.balance_due = quantize_money(amount - (invoice.total_paid or ZERO))


def replace_items(session, invoice: Invoice, items) -> None:
    """Delete every existing line, then insert the new ones (caller's transaction)."""
    invoice.items.clear()
    session.flush()
    invoice.items.extend(_build_items(items))


def create_invoice(session, organization_id: int, user_id: Optional[int],
                   request: CreateInvoiceRequest) -> Invoice:
    """
    Create a draft invoice with its lines in one transaction.

    Raises:
        ValidationError: if a referenced client/project/source estimate is foreign
    """
    validate_references(
        session, organization_id,
        client_id=request.client_id,
        project_id=request.project_id,
        estimate_id=request.source_estimate_id,
    )

    subtotal = request.subtotal if request.subtotal is not None else sum_line_totals(request.items)
    subtotal, tax_amount, amount = compute_totals(subtotal, request.tax_rate)
    issue_date = request.issue_date or today()
    due_date = request.due_date or issue_date + timedelta(days=INVOICE_DUE_DAYS)

    invoice_number = next_document_number(session, organization_id, INVOICE_PREFIX)

    try:
        invoice = Invoice(
            organization_id=organization_id,
            user_id=user_id,
            client_id=request.client_id,
            project_id=request.project_id,
            source_estimate_id=request.source_estimate_id,
            invoice_number=invoice_number,
            status=InvoiceStatus.DRAFT.value,
            issue_date=issue_date,
            due_date=due_date,
            subtotal=subtotal,
            tax_rate=request.tax_rate,
            tax_amount=tax_amount,
            amount=amount,
            total_paid=ZERO,
            balance_due=amount,
            notes=request.notes,
            terms=request.terms,
            send_count=0,
        )
        invoice.items = _build_items(request.items)
        session.add(invoice)
        session.commit()
    except Exception:
        session.rollback()
        raise

    invoice_id = invoice.id
    logger.info(f"Invoice {invoice_number} created for org {organization_id} (amount {amount})")
    record_activity(
        session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.CREATED,
        build_description(ActivityAction.CREATED, EntityType.INVOICE, invoice_number),
        user_id=user_id,
        metadata={'invoice_number': invoice_number, 'amount': str(amount)},
    )
    return get_invoice(session, organization_id, invoice_id)


def update_invoice(session, organization_id: int, invoice_id: str,
                   request: UpdateInvoiceRequest, user_id: Optional[int] = None) -> Invoice:
    """Partial update; balance due is recomputed as amount minus total paid."""
    invoice = get_invoice(session, organization_id, invoice_id)
    changes = dict(request.changes)
    # a null subtotal is re-derived from the lines
    resum_subtotal = 'subtotal' in changes and changes.pop('subtotal') is None
    validate_references(
        session, organization_id,
        client_id=changes.get('client_id'),
        project_id=changes.get('project_id'),
    )

    changed_fields = sorted(key for key, value in changes.items() if getattr(invoice, key) != value)
    invoice_number = invoice.invoice_number

    try:
        for key, value in changes.items():
            setattr(invoice, key, value)
        if request.replaces_items:
            replace_items(session, invoice, request.items)
        if resum_subtotal or (request.replaces_items and 'subtotal' not in changes):
            invoice.subtotal = sum_line_totals(invoice.items)
        _apply_totals(invoice)
        session.commit()
    except Exception:
        session.rollback()
        raise

    record_activity(
        session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.UPDATED,
        build_description(ActivityAction.UPDATED, EntityType.INVOICE, invoice_number),
        user_id=user_id,
        metadata={'changed_fields': changed_fields, 'items_replaced': request.replaces_items},
    )
    return get_invoice(session, organization_id, invoice_id)


def delete_invoice(session, organization_id: int, invoice_id: str, user_id: Optional[int] = None) -> None:
    invoice = get_invoice(session, organization_id, invoice_id)
    invoice_number = invoice.invoice_number
    snapshot = {'invoice_number': invoice_number, 'status': invoice.status, 'amount': str(invoice.amount)}

    try:
        session.delete(invoice)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Invoice {invoice_number} deleted from org {organization_id}")
    record_activity(
        session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.DELETED,
        build_description(ActivityAction.DELETED, EntityType.INVOICE, invoice_number),
        user_id=user_id,
        metadata=snapshot,
    )


def update_invoice_status(session, organization_id: int, invoice_id: str, new_status,
                          user_id: Optional[int] = None) -> Invoice:
    """Overwrite the status without transition rules."""
    new_status = _status_value(new_status)
    if new_status not in [s.value for s in InvoiceStatus]:
        raise ValidationError(f'Invalid invoice status: {new_status}', field='status')

    invoice = get_invoice(session, organization_id, invoice_id)
    old_status = invoice.status
    if old_status == new_status:
        return invoice

    invoice_number = invoice.invoice_number
    try:
        invoice.status = new_status
        session.commit()
    except Exception:
        session.rollback()
        raise

    record_activity(
        session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.STATUS_CHANGED,
        build_description(ActivityAction.STATUS_CHANGED, EntityType.INVOICE, invoice_number,
                          f'from {old_status} to {new_status}'),
        user_id=user_id,
        metadata={'old_status': old_status, 'new_status': new_status},
    )
    return get_invoice(session, organization_id, invoice_id)


def send_invoice(session, organization_id: int, invoice_id: str, request: SendDocumentRequest,
                 user_id: Optional[int] = None) -> SendResult:
    """
    Email the invoice and record send tracking.

    Raises:
        ValidationError: if the invoice has no client
    """
    invoice = get_invoice(session, organization_id, invoice_id)
    if invoice.client is None:
        raise ValidationError('Invoice has no client assigned', field='client_id')

    invoice_number = invoice.invoice_number
    result = email_service.send_invoice_email(
        invoice, invoice.client, request.recipient_email,
        message=request.message, cc_emails=request.cc_emails,
    )
    if not result.success:
        logger.warning(f"Invoice {invoice_number} not sent: {result.error}")
        return result

    now = utcnow()
    try:
        invoice.status = InvoiceStatus.SENT.value
        if invoice.sent_at is None:
            invoice.sent_at = now
        invoice.last_sent_at = now
        invoice.send_count = (invoice.send_count or 0) + 1
        session.commit()
    except Exception:
        session.rollback()
        raise

    run_best_effort(
        'email log',
        email_service.log_email,
        session,
        organization_id,
        request.recipient_email,
        f'Invoice {invoice_number}',
        'invoice',
        user_id=user_id,
        invoice_id=invoice_id,
        message_id=result.message_id,
        metadata={'cc_emails': request.cc_emails, 'custom_message': request.message},
        session=session,
    )
    record_activity(
        session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.SENT,
        build_description(ActivityAction.SENT, EntityType.INVOICE, invoice_number,
                          f'to {request.recipient_email}'),
        user_id=user_id,
        metadata={'recipient_email': request.recipient_email, 'message_id': result.message_id},
    )
    return result


def send_payment_reminder(session, organization_id: int, invoice_id: str,
                          user_id: Optional[int] = None) -> SendResult:
    """
    Send a payment reminder to the client's email on file.

    Only ``last_sent_at`` and ``send_count`` change; status and ``sent_at``
    stay as they are.

    Raises:
        ValidationError: if there is no client email, or the invoice is paid
    """
    invoice = get_invoice(session, organization_id, invoice_id)
    if invoice.client is None or not invoice.client.email:
        raise ValidationError('Client email not found', field='client_id')
    if invoice.status == InvoiceStatus.PAID.value:
        raise ValidationError('Invoice is already paid', field='status')

    invoice_number = invoice.invoice_number
    recipient = invoice.client.email
    result = email_service.send_payment_reminder_email(invoice, invoice.client, recipient)
    if not result.success:
        logger.warning(f"Payment reminder for {invoice_number} not sent: {result.error}")
        return result

    try:
        invoice.last_sent_at = utcnow()
        invoice.send_count = (invoice.send_count or 0) + 1
        session.commit()
    except Exception:
        session.rollback()
        raise

    run_best_effort(
        'email log',
        email_service.log_email,
        session,
        organization_id,
        recipient,
        f'Payment Reminder: Invoice {invoice_number}',
        'payment_reminder',
        user_id=user_id,
        invoice_id=invoice_id,
        message_id=result.message_id,
        session=session,
    )
    record_activity(
        session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.SENT,
        build_description(ActivityAction.SENT, EntityType.INVOICE, invoice_number, 'payment reminder'),
        user_id=user_id,
        metadata={'recipient_email': recipient, 'reminder': True},
    )
    return result


def mark_as_paid(session, organization_id: int, invoice_id: str, user_id: Optional[int] = None) -> Invoice:
    """Mark fully paid: total_paid = amount, balance_due = 0."""
    invoice = get_invoice(session, organization_id, invoice_id)
    invoice_number = invoice.invoice_number
    amount = invoice.amount

    try:
        invoice.status = InvoiceStatus.PAID.value
        invoice.total_paid = amount
        invoice.balance_due = ZERO
        invoice.paid_at = utcnow()
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Invoice {invoice_number} marked as paid ({amount})")
    record_activity(
        session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.PAID,
        build_description(ActivityAction.PAID, EntityType.INVOICE, invoice_number),
        user_id=user_id,
        metadata={'amount': str(amount)},
    )
    return get_invoice(session, organization_id, invoice_id)


def mark_invoice_opened(session, invoice: Invoice) -> bool:
    """
    Client opened the public link: stamp ``email_opened_at`` the first time
    and move ``sent`` to ``opened``. Returns True if anything changed.
    """
    changed = False
    moved = False
    organization_id = invoice.organization_id
    invoice_id = invoice.id
    invoice_number = invoice.invoice_number

    try:
        if invoice.email_opened_at is None:
            invoice.email_opened_at = utcnow()
            changed = True
        if invoice.status == InvoiceStatus.SENT.value:
            invoice.status = InvoiceStatus.OPENED.value
            changed = moved = True
        if changed:
            session.commit()
    except Exception:
        session.rollback()
        raise

    if moved:
        record_activity(
            session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.OPENED,
            f'Client opened invoice "{invoice_number}"',
        )
    return changed


def mark_overdue_invoices(session, as_of=None) -> int:
    """
    Move sent/opened invoices whose due date has passed to ``overdue``.

    Runs across all organizations (scheduled job). Returns the count.
    """
    as_of = as_of or today()
    invoices = session.query(Invoice).filter(
        Invoice.status.in_(OVERDUE_CANDIDATES),
        Invoice.due_date.isnot(None),
        Invoice.due_date < as_of
    ).all()

    if not invoices:
        return 0

    entries = [(inv.organization_id, inv.id, inv.invoice_number, inv.status) for inv in invoices]
    try:
        for invoice in invoices:
            invoice.status = InvoiceStatus.OVERDUE.value
        session.commit()
    except Exception:
        session.rollback()
        raise

    for organization_id, invoice_id, invoice_number, old_status in entries:
        record_activity(
            session, organization_id, EntityType.INVOICE, invoice_id, ActivityAction.STATUS_CHANGED,
            build_description(ActivityAction.STATUS_CHANGED, EntityType.INVOICE, invoice_number,
                              f'from {old_status} to overdue'),
            metadata={'old_status': old_status, 'new_status': InvoiceStatus.OVERDUE.value},
        )

    logger.info(f"Marked {len(entries)} invoice(s) overdue as of {as_of}")
    return len(entries)
