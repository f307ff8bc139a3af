"""
Estimate service - lifecycle of estimates and their conversion to invoices.

Every operation takes the caller's organization id explicitly; an estimate
owned by another organization is reported as not found.
"""
import logging
from datetime import timedelta
from typing import List, Optional

from flask import current_app, has_app_context
from sqlalchemy.orm import joinedload, selectinload

from app.exceptions import NotFoundError, ValidationError
from app.models import (
    Estimate, EstimateStatus, EstimateItem, Invoice, InvoiceStatus, InvoiceItem, Organization
)
from app.models.activity_log import ActivityAction, EntityType
from app.schemas import CreateEstimateRequest, UpdateEstimateRequest, SendDocumentRequest, SendResult
from app.services import email_service
from app.services.activity_log_service import build_description, record_activity
from app.services.numbering_service import next_document_number, ESTIMATE_PREFIX, INVOICE_PREFIX
from app.services.references import validate_references
from app.utils.dates import utcnow, today
from app.utils.money import (
    ZERO, compute_totals, sum_line_totals, deposit_multiplier, quantize_money, format_percentage
)
from app.utils.side_effects import run_best_effort

logger = logging.getLogger(__name__)

DEFAULT_VALID_DAYS = 30
INVOICE_DUE_DAYS = 30


def _valid_days() -> int:
    if has_app_context():
        return int(current_app.config.get('ESTIMATE_VALID_DAYS', DEFAULT_VALID_DAYS))
    return DEFAULT_VALID_DAYS


def _status_value(status) -> str:
    return status.value if isinstance(status, EstimateStatus) else status


def _query(session):
    return session.query(Estimate).options(
        joinedload(Estimate.client),
        selectinload(Estimate.items).joinedload(EstimateItem.cost_code),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def list_estimates(session, organization_id: int, status=None, client_id=None, project_id=None) -> List[Estimate]:
    """
    List estimates of an organization, newest first.

    Args:
        session: Database session
        organization_id: Organization ID
        status: Optional status filter
        client_id: Optional client filter
        project_id: Optional project filter
    """
    query = _query(session).filter(Estimate.organization_id == organization_id)
    if status:
        query = query.filter(Estimate.status == _status_value(status))
    if client_id:
        query = query.filter(Estimate.client_id == client_id)
    if project_id:
        query = query.filter(Estimate.project_id == project_id)
    return query.order_by(Estimate.created_at.desc(), Estimate.estimate_number.desc()).all()


def get_estimates_by_client(session, organization_id: int, client_id: int) -> List[Estimate]:
    return list_estimates(session, organization_id, client_id=client_id)


def get_estimates_by_project(session, organization_id: int, project_id: int) -> List[Estimate]:
    return list_estimates(session, organization_id, project_id=project_id)


def get_estimates_by_status(session, organization_id: int, status) -> List[Estimate]:
    return list_estimates(session, organization_id, status=status)


def get_estimate(session, organization_id: int, estimate_id: str) -> Estimate:
    """
    Get one estimate with its client and items.

    Raises:
        NotFoundError: if the estimate does not exist in this organization
    """
    estimate = _query(session).filter(
        Estimate.id == estimate_id,
        Estimate.organization_id == organization_id
    ).first()
    if not estimate:
        raise NotFoundError(f'Estimate {estimate_id} not found')
    return estimate


def get_public_estimate(session, estimate_id: str) -> Estimate:
    """Lookup by share token for the client-facing page (no organization scope)."""
    estimate = _query(session).filter(Estimate.id == estimate_id).first()
    if not estimate:
        raise NotFoundError('Estimate not found')
    return estimate


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _build_items(items) -> List[EstimateItem]:
    return [
        EstimateItem(
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            cost_code_id=item.cost_code_id,
            display_order=item.display_order if item.display_order is not None else index,
        )
        for index, item in enumerate(items)
    ]


def _apply_totals(estimate: Estimate) -> None:
    subtotal, tax_amount, total = compute_totals(estimate.subtotal or ZERO, estimate.tax_rate or ZERO)
    estimate.subtotal = subtotal
    estimate.tax_amount = tax_amount
    estimate.total_amount = total


def replace_items(session, estimate: Estimate, items) -> None:
    """
    Replace the whole line-item collection: every existing row is deleted,
    then the new lines are inserted. Runs inside the caller's transaction.
    """
    estimate.items.clear()
    session.flush()
    estimate.items.extend(_build_items(items))


def create_estimate(session, organization_id: int, user_id: Optional[int],
                    request: CreateEstimateRequest) -> Estimate:
    """
    Create a draft estimate with its line items in one transaction.

    Tax and total are always derived from subtotal and tax rate; subtotal
    defaults to the sum of the line totals.

    Raises:
        ValidationError: if a referenced client/project/cost code is foreign
    """
    validate_references(
        session, organization_id,
        client_id=request.client_id,
        project_id=request.project_id,
        cost_code_ids=[item.cost_code_id for item in request.items],
    )

    subtotal = request.subtotal if request.subtotal is not None else sum_line_totals(request.items)
    subtotal, tax_amount, total = compute_totals(subtotal, request.tax_rate)
    issue_date = request.issue_date or today()
    expiry_date = request.expiry_date or issue_date + timedelta(days=_valid_days())

    estimate_number = next_document_number(session, organization_id, ESTIMATE_PREFIX)

    try:
        estimate = Estimate(
            organization_id=organization_id,
            user_id=user_id,
            client_id=request.client_id,
            project_id=request.project_id,
            estimate_number=estimate_number,
            title=request.title,
            description=request.description,
            status=EstimateStatus.DRAFT.value,
            issue_date=issue_date,
            expiry_date=expiry_date,
            subtotal=subtotal,
            tax_rate=request.tax_rate,
            tax_amount=tax_amount,
            total_amount=total,
            notes=request.notes,
            terms=request.terms,
            send_count=0,
        )
        estimate.items = _build_items(request.items)
        session.add(estimate)
        session.commit()
    except Exception:
        session.rollback()
        raise

    estimate_id = estimate.id
    logger.info(f"Estimate {estimate_number} created for org {organization_id} (total {total})")

    record_activity(
        session, organization_id, EntityType.ESTIMATE, estimate_id, ActivityAction.CREATED,
        build_description(ActivityAction.CREATED, EntityType.ESTIMATE, estimate_number),
        user_id=user_id,
        metadata={'estimate_number': estimate_number, 'total_amount': str(total)},
    )
    return get_estimate(session, organization_id, estimate_id)


def update_estimate(session, organization_id: int, estimate_id: str,
                    request: UpdateEstimateRequest, user_id: Optional[int] = None) -> Estimate:
    """
    Partially update an estimate.

    Items present in the request replace the existing collection; absent
    items stay untouched. Tax and total are recomputed on every write, and
    the subtotal is re-summed when items are replaced without one or
    when it is sent as null.
    """
    estimate = get_estimate(session, organization_id, estimate_id)
    changes = dict(request.changes)
    # a null subtotal is re-derived from the lines
    resum_subtotal = 'subtotal' in changes and changes.pop('subtotal') is None

    validate_references(
        session, organization_id,
        client_id=changes.get('client_id'),
        project_id=changes.get('project_id'),
        cost_code_ids=[item.cost_code_id for item in (request.items or [])],
    )

    changed_fields = sorted(key for key, value in changes.items() if getattr(estimate, key) != value)
    estimate_number = estimate.estimate_number

    try:
        for key, value in changes.items():
            setattr(estimate, key, value)
        if request.replaces_items:
            replace_items(session, estimate, request.items)
        if resum_subtotal or (request.replaces_items and 'subtotal' not in changes):
            estimate.subtotal = sum_line_totals(estimate.items)
        _apply_totals(estimate)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Estimate {estimate_number} updated: {changed_fields} (items replaced: {request.replaces_items})")

    record_activity(
        session, organization_id, EntityType.ESTIMATE, estimate_id, ActivityAction.UPDATED,
        build_description(ActivityAction.UPDATED, EntityType.ESTIMATE, estimate_number),
        user_id=user_id,
        metadata={'changed_fields': changed_fields, 'items_replaced': request.replaces_items},
    )
    return get_estimate(session, organization_id, estimate_id)


def delete_estimate(session, organization_id: int, estimate_id: str, user_id: Optional[int] = None) -> None:
    """Hard delete an estimate and its items."""
    estimate = get_estimate(session, organization_id, estimate_id)
    estimate_number = estimate.estimate_number
    snapshot = {
        'estimate_number': estimate_number,
        'status': estimate.status,
        'total_amount': str(estimate.total_amount),
    }

    try:
        session.delete(estimate)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Estimate {estimate_number} deleted from org {organization_id}")
    record_activity(
        session, organization_id, EntityType.ESTIMATE, estimate_id, ActivityAction.DELETED,
        build_description(ActivityAction.DELETED, EntityType.ESTIMATE, estimate_number),
        user_id=user_id,
        metadata=snapshot,
    )


def update_status(session, organization_id: int, estimate_id: str, new_status,
                  user_id: Optional[int] = None) -> Estimate:
    """
    Overwrite the status. No transition rules are enforced here; the
    activity trail records the change when the value actually differs.
    """
    new_status = _status_value(new_status)
    if new_status not in [s.value for s in EstimateStatus]:
        raise ValidationError(f'Invalid estimate status: {new_status}', field='status')

    estimate = get_estimate(session, organization_id, estimate_id)
    old_status = estimate.status
    if old_status == new_status:
        return estimate

    estimate_number = estimate.estimate_number
    try:
        estimate.status = new_status
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Estimate {estimate_number} status {old_status} -> {new_status}")
    record_activity(
        session, organization_id, EntityType.ESTIMATE, estimate_id, ActivityAction.STATUS_CHANGED,
        build_description(ActivityAction.STATUS_CHANGED, EntityType.ESTIMATE, estimate_number,
                          f'from {old_status} to {new_status}'),
        user_id=user_id,
        metadata={'old_status': old_status, 'new_status': new_status},
    )
    return get_estimate(session, organization_id, estimate_id)


def mark_estimate_opened(session, estimate: Estimate) -> bool:
    """
    Record that the client opened the public link.

    Only a ``sent`` estimate moves to ``opened``; returns True when it did.
    """
    if estimate.status != EstimateStatus.SENT.value:
        return False

    organization_id = estimate.organization_id
    estimate_id = estimate.id
    estimate_number = estimate.estimate_number
    try:
        estimate.status = EstimateStatus.OPENED.value
        session.commit()
    except Exception:
        session.rollback()
        raise

    record_activity(
        session, organization_id, EntityType.ESTIMATE, estimate_id, ActivityAction.OPENED,
        f'Client opened estimate "{estimate_number}"',
    )
    return True


# ---------------------------------------------------------------------------
# Acceptance & conversion
# ---------------------------------------------------------------------------

def add_signature(session, organization_id: int, estimate_id: str, signature_image: str,
                  user_id: Optional[int] = None) -> Estimate:
    """
    Store the client's signature and accept the estimate.

    When the organization has automatic invoicing enabled and the estimate
    was never converted, an invoice is created right away (a deposit
    invoice if a deposit percentage is configured). A failure there is
    logged; the signature is kept either way.
    """
    if not signature_image:
        raise ValidationError('signature is required', field='signature')

    estimate = get_estimate(session, organization_id, estimate_id)
    estimate_number = estimate.estimate_number
    previous_status = estimate.status
    already_converted = estimate.converted_to_invoice_id is not None

    try:
        estimate.client_signature = signature_image
        estimate.signed_at = utcnow()
        estimate.status = EstimateStatus.ACCEPTED.value
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Estimate {estimate_number} signed and accepted")
    record_activity(
        session, organization_id, EntityType.ESTIMATE, estimate_id, ActivityAction.SIGNED,
        build_description(ActivityAction.SIGNED, EntityType.ESTIMATE, estimate_number),
        user_id=user_id,
        metadata={'previous_status': previous_status},
    )

    organization = session.get(Organization, organization_id)
    if organization and organization.auto_create_invoice_on_estimate_accept and not already_converted:
        pct = organization.auto_invoice_deposit_percentage or ZERO
        result = run_best_effort(
            'auto invoice on signature',
            convert_to_invoice,
            session,
            organization_id,
            estimate_id,
            deposit_percentage=pct if pct > 0 else None,
            user_id=user_id,
            session=session,
        )
        if result:
            logger.info(f"Auto-created invoice {result.value} from estimate {estimate_number}")
        else:
            logger.error(f"Auto invoice for estimate {estimate_number} failed; signature kept: {result.error}")

    return get_estimate(session, organization_id, estimate_id)


def _link_invoice(session, estimate_id: str, invoice_id: str) -> bool:
    estimate = session.get(Estimate, estimate_id)
    if estimate is None:
        return False
    if estimate.converted_to_invoice_id:
        logger.warning(
            f"Estimate {estimate.estimate_number} already references invoice "
            f"{estimate.converted_to_invoice_id}; keeping it (new invoice {invoice_id})"
        )
        return False
    estimate.converted_to_invoice_id = invoice_id
    session.commit()
    return True


def convert_to_invoice(session, organization_id: int, estimate_id: str,
                       deposit_percentage=None, user_id: Optional[int] = None) -> str:
    """
    Create an invoice from an accepted estimate.

    With a deposit percentage strictly between 0 and 100 the invoice bills
    that share of subtotal and tax as a single 'Deposit' line; otherwise it
    copies every estimate line and bills the full amount.

    Calling this twice creates two invoices.

    Returns:
        The new invoice id.

    Raises:
        ValidationError: if the estimate is not accepted
    """
    estimate = get_estimate(session, organization_id, estimate_id)
    if estimate.status != EstimateStatus.ACCEPTED.value:
        raise ValidationError('Estimate must be accepted before converting to invoice', field='status')

    is_deposit, multiplier = deposit_multiplier(deposit_percentage)
    invoice_subtotal = quantize_money(estimate.subtotal * multiplier)
    invoice_tax = quantize_money((estimate.tax_amount or ZERO) * multiplier)
    invoice_total = invoice_subtotal + invoice_tax

    estimate_number = estimate.estimate_number
    notes = estimate.notes
    if is_deposit:
        pct_label = format_percentage(deposit_percentage)
        deposit_note = f"This is a {pct_label}% deposit invoice for estimate {estimate_number}."
        notes = f"{notes}\n\n{deposit_note}" if notes else deposit_note
        items = [InvoiceItem(
            description=f"{pct_label}% Deposit for: {estimate.title or estimate_number}",
            quantity=1,
            unit_price=invoice_subtotal,
            total_price=invoice_subtotal,
            display_order=0,
        )]
    else:
        items = [
            InvoiceItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                display_order=item.display_order,
            )
            for item in estimate.items
        ]

    values = {
        'organization_id': organization_id,
        'user_id': estimate.user_id,
        'client_id': estimate.client_id,
        'project_id': estimate.project_id,
        'source_estimate_id': estimate_id,
        'tax_rate': estimate.tax_rate or ZERO,
        'terms': estimate.terms,
    }

    invoice_number = next_document_number(session, organization_id, INVOICE_PREFIX)
    issue_date = today()

    try:
        invoice = Invoice(
            invoice_number=invoice_number,
            status=InvoiceStatus.DRAFT.value,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=INVOICE_DUE_DAYS),
            subtotal=invoice_subtotal,
            tax_amount=invoice_tax,
            amount=invoice_total,
            total_paid=ZERO,
            balance_due=invoice_total,
            notes=notes,
            send_count=0,
            **values,
        )
        invoice.items = items
        session.add(invoice)
        session.commit()
    except Exception:
        session.rollback()
        raise

    invoice_id = invoice.id
    logger.info(
        f"Estimate {estimate_number} converted to invoice {invoice_number} "
        f"({'deposit' if is_deposit else 'full'}, {invoice_total})"
    )

    run_best_effort('estimate invoice reference', _link_invoice, session, estimate_id, invoice_id, session=session)

    record_activity(
        session, organization_id, EntityType.ESTIMATE, estimate_id, ActivityAction.CONVERTED,
        build_description(ActivityAction.CONVERTED, EntityType.ESTIMATE, estimate_number,
                          f'to invoice "{invoice_number}"'),
        user_id=user_id,
        metadata={
            'estimate_id': estimate_id,
            'invoice_id': invoice_id,
            'invoice_number': invoice_number,
            'is_deposit': is_deposit,
            'deposit_percentage': str(deposit_percentage) if is_deposit else None,
            'amount': str(invoice_total),
        },
    )
    return invoice_id


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

def send_estimate(session, organization_id: int, estimate_id: str, request: SendDocumentRequest,
                  user_id: Optional[int] = None) -> SendResult:
    """
    Email the estimate to the client and record send tracking.

    A failed delivery changes nothing and is reported through the returned
    SendResult. After a successful delivery the status becomes ``sent``
    whatever it was before.

    Raises:
        ValidationError: if the estimate has no client
    """
    estimate = get_estimate(session, organization_id, estimate_id)
    if estimate.client is None:
        raise ValidationError('Estimate has no client assigned', field='client_id')

    estimate_number = estimate.estimate_number
    result = email_service.send_estimate_email(
        estimate, estimate.client, request.recipient_email,
        message=request.message, cc_emails=request.cc_emails,
    )
    if not result.success:
        logger.warning(f"Estimate {estimate_number} not sent: {result.error}")
        return result

    previous_status = estimate.status
    if previous_status not in (EstimateStatus.DRAFT.value, EstimateStatus.SENT.value):
        logger.warning(f"Resending estimate {estimate_number} resets status '{previous_status}' to 'sent'")

    now = utcnow()
    try:
        estimate.status = EstimateStatus.SENT.value
        if estimate.sent_at is None:
            estimate.sent_at = now
        estimate.last_sent_at = now
        estimate.send_count = (estimate.send_count or 0) + 1
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
        f'Estimate {estimate_number}',
        'estimate',
        user_id=user_id,
        estimate_id=estimate_id,
        message_id=result.message_id,
        metadata={'cc_emails': request.cc_emails, 'custom_message': request.message},
        session=session,
    )
    record_activity(
        session, organization_id, EntityType.ESTIMATE, estimate_id, ActivityAction.SENT,
        build_description(ActivityAction.SENT, EntityType.ESTIMATE, estimate_number,
                          f'to {request.recipient_email}'),
        user_id=user_id,
        metadata={'recipient_email': request.recipient_email, 'message_id': result.message_id},
    )
    return result
