"""
Email service for estimates, invoices and payment reminders.
Uses Flask-Mail for SMTP delivery; every sender returns a SendResult and
never raises.
"""
import logging
from typing import List, Optional

from flask import current_app
from flask_mail import Mail, Message
from markupsafe import escape

from app.models import EmailLog
from app.schemas import SendResult
from app.utils.dates import today
from app.utils.formatters import format_currency, format_date

logger = logging.getLogger(__name__)

mail = Mail()

ESTIMATE_COLOR = '#388E3C'
INVOICE_COLOR = '#336699'
OVERDUE_COLOR = '#D32F2F'
REMINDER_COLOR = '#F9D71C'


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents 500 errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        cfg.get("MAIL_ENABLED", True)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def share_url(kind: str, document_id: str) -> str:
    """Public link for an estimate or invoice (``kind`` is 'estimate' or 'invoice')."""
    base = current_app.config.get('PUBLIC_BASE_URL', '').rstrip('/')
    return f"{base}/share/{kind}/{document_id}"


def _client_name(client) -> str:
    return client.name or client.company_name or 'Customer'


def _reply_to(document) -> Optional[str]:
    organization = getattr(document, 'organization', None)
    return organization.email if organization and organization.email else None


def _wrap_html(title: str, color: str, body: str, footer: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
      <head>
        <meta charset="utf-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>{title}</title>
      </head>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
        <div style="background-color: #f8f9fa; padding: 30px; border-radius: 10px;">
          <h1 style="color: {color}; margin-bottom: 20px;">{title}</h1>
          {body}
          <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; font-size: 12px; color: #666;">
            <p>{footer}</p>
          </div>
        </div>
      </body>
    </html>
    """


def _button(url: str, label: str, color: str) -> str:
    return (
        f'<div style="text-align: center; margin: 30px 0;">'
        f'<a href="{url}" style="background-color: {color}; color: white; padding: 12px 30px; '
        f'text-decoration: none; border-radius: 5px; display: inline-block;">{label}</a></div>'
    )


def _boxed(text: Optional[str], label: str) -> str:
    if not text:
        return ''
    return (
        f'<p style="background-color: #f0f0f0; padding: 15px; border-radius: 5px;">'
        f'<strong>{label}:</strong><br>{escape(text)}</p>'
    )


def render_estimate_email(estimate, client, estimate_url: str, message: str = None):
    """Return (subject, html, text) for an estimate email."""
    amount = format_currency(estimate.total_amount)
    expiry = format_date(estimate.expiry_date) if estimate.expiry_date else None
    name = escape(_client_name(client))

    details = [
        f'<p style="margin: 5px 0;"><strong>Estimate Number:</strong> {estimate.estimate_number}</p>',
        f'<p style="margin: 5px 0;"><strong>Total Amount:</strong> {amount}</p>',
    ]
    if estimate.title:
        details.append(f'<p style="margin: 5px 0;"><strong>Project:</strong> {escape(estimate.title)}</p>')
    if expiry:
        details.append(f'<p style="margin: 5px 0;"><strong>Valid Until:</strong> {expiry}</p>')

    body = f"""
          <p>Dear {name},</p>
          <p>Thank you for your interest in our services. Please find our estimate for your project below.</p>
          {_boxed(message, 'Message')}
          <div style="background-color: white; padding: 20px; border-radius: 5px; margin: 20px 0;">
            {''.join(details)}
          </div>
          {_button(estimate_url, 'Review &amp; Accept Estimate', ESTIMATE_COLOR)}
          {_boxed(estimate.description, 'Description')}
          {_boxed(estimate.notes, 'Notes')}
          <p>To accept this estimate, simply click the button above and follow the instructions.</p>
          <p>We look forward to working with you!</p>
    """
    html = _wrap_html(
        f'Estimate {estimate.estimate_number}', ESTIMATE_COLOR, body,
        'This is an automated email. Please do not reply directly to this message.'
    )

    lines = [
        f'Estimate {estimate.estimate_number}',
        '',
        f'Dear {_client_name(client)},',
        '',
        'Thank you for your interest in our services. Please find our estimate for your project below.',
        '',
    ]
    if message:
        lines += [message, '']
    lines += [
        'Estimate Details:',
        f'- Estimate Number: {estimate.estimate_number}',
        f'- Total Amount: {amount}',
    ]
    if estimate.title:
        lines.append(f'- Project: {estimate.title}')
    if expiry:
        lines.append(f'- Valid Until: {expiry}')
    lines += ['', f'Review & Accept Estimate: {estimate_url}', '']
    if estimate.description:
        lines += ['Description:', estimate.description, '']
    if estimate.notes:
        lines += ['Notes:', estimate.notes, '']
    lines.append('We look forward to working with you!')

    subject = f"Estimate {estimate.estimate_number} - {estimate.title or amount}"
    return subject, html, '\n'.join(lines)


def render_invoice_email(invoice, client, invoice_url: str, message: str = None):
    """Return (subject, html, text) for an invoice email."""
    amount = format_currency(invoice.amount)
    due = format_date(invoice.due_date)
    name = escape(_client_name(client))

    body = f"""
          <p>Dear {name},</p>
          <p>Please find invoice {invoice.invoice_number} for {amount}.</p>
          {_boxed(message, 'Message')}
          <div style="background-color: white; padding: 20px; border-radius: 5px; margin: 20px 0;">
            <p style="margin: 5px 0;"><strong>Invoice Number:</strong> {invoice.invoice_number}</p>
            <p style="margin: 5px 0;"><strong>Amount Due:</strong> {amount}</p>
            <p style="margin: 5px 0;"><strong>Due Date:</strong> {due}</p>
          </div>
          {_button(invoice_url, 'View Invoice', INVOICE_COLOR)}
          {_boxed(invoice.notes, 'Notes')}
          <p>If you have any questions about this invoice, please don't hesitate to contact us.</p>
          <p>Thank you for your business!</p>
    """
    html = _wrap_html(
        f'Invoice {invoice.invoice_number}', INVOICE_COLOR, body,
        'This is an automated email. Please do not reply directly to this message.'
    )

    lines = [
        f'Invoice {invoice.invoice_number}',
        '',
        f'Dear {_client_name(client)},',
        '',
        f'Please find invoice {invoice.invoice_number} for {amount}.',
        '',
    ]
    if message:
        lines += [message, '']
    lines += [
        'Invoice Details:',
        f'- Invoice Number: {invoice.invoice_number}',
        f'- Amount Due: {amount}',
        f'- Due Date: {due}',
        '',
        f'View Invoice: {invoice_url}',
        '',
    ]
    if invoice.notes:
        lines += ['Notes:', invoice.notes, '']
    lines.append('Thank you for your business!')

    subject = f"Invoice {invoice.invoice_number} - {amount}"
    return subject, html, '\n'.join(lines)


def days_past_due(invoice, as_of=None) -> int:
    if not invoice.due_date:
        return 0
    return ((as_of or today()) - invoice.due_date).days


def render_payment_reminder_email(invoice, client, invoice_url: str, overdue_days: int):
    """Return (subject, html, text) for a payment reminder."""
    amount = format_currency(invoice.amount)
    balance_due = format_currency(invoice.balance_due or invoice.amount)
    due = format_date(invoice.due_date)
    is_overdue = overdue_days > 0
    heading = 'Overdue Invoice' if is_overdue else 'Payment Reminder'
    color = OVERDUE_COLOR if is_overdue else REMINDER_COLOR
    if is_overdue:
        intro = f'This is a friendly reminder that invoice {invoice.invoice_number} is now {overdue_days} days overdue.'
    else:
        intro = f'This is a friendly reminder that invoice {invoice.invoice_number} is due for payment.'

    overdue_line = (
        f'<p style="margin: 5px 0; color: {OVERDUE_COLOR};"><strong>Days Overdue:</strong> {overdue_days}</p>'
        if is_overdue else ''
    )
    body = f"""
          <p>Dear {escape(_client_name(client))},</p>
          <p>{intro}</p>
          <div style="background-color: white; padding: 20px; border-radius: 5px; margin: 20px 0;">
            <p style="margin: 5px 0;"><strong>Invoice Number:</strong> {invoice.invoice_number}</p>
            <p style="margin: 5px 0;"><strong>Original Amount:</strong> {amount}</p>
            <p style="margin: 5px 0;"><strong>Balance Due:</strong> {balance_due}</p>
            <p style="margin: 5px 0;"><strong>Due Date:</strong> {due}</p>
            {overdue_line}
          </div>
          {_button(invoice_url, 'Pay Invoice Now', OVERDUE_COLOR if is_overdue else INVOICE_COLOR)}
          <p>Please remit payment at your earliest convenience to avoid any late fees or service interruptions.</p>
          <p>If you have already sent payment, please disregard this notice.</p>
    """
    html = _wrap_html(
        heading, color, body,
        'This is an automated reminder. Please do not reply directly to this message.'
    )

    lines = [
        heading,
        '',
        f'Dear {_client_name(client)},',
        '',
        intro,
        '',
        'Invoice Details:',
        f'- Invoice Number: {invoice.invoice_number}',
        f'- Original Amount: {amount}',
        f'- Balance Due: {balance_due}',
        f'- Due Date: {due}',
    ]
    if is_overdue:
        lines.append(f'- Days Overdue: {overdue_days}')
    lines += [
        '',
        f'Pay Invoice Now: {invoice_url}',
        '',
        'Please remit payment at your earliest convenience to avoid any late fees or service interruptions.',
        'If you have already sent payment, please disregard this notice.',
    ]

    subject = f"{'Overdue' if is_overdue else 'Reminder'}: Invoice {invoice.invoice_number} - {balance_due}"
    return subject, html, '\n'.join(lines)


def _deliver(subject: str, recipient: str, text: str, html: str,
             cc: Optional[List[str]] = None, reply_to: Optional[str] = None) -> SendResult:
    """Hand a message to Flask-Mail."""
    try:
        if not _mail_enabled():
            logger.warning(f"[MAIL DISABLED] Email '{subject}' skipped for {recipient}")
            return SendResult(success=True)

        msg = Message(
            subject=subject,
            recipients=[recipient],
            cc=cc or None,
            body=text,
            html=html,
            reply_to=reply_to,
        )

        logger.info(f"[EMAIL] Sending '{subject}' to {recipient}")
        mail.send(msg)
        message_id = getattr(msg, 'msgId', None)
        logger.info(f"[EMAIL] ✓ Email sent to {recipient} ({message_id})")
        return SendResult(success=True, message_id=message_id)

    except Exception as e:
        logger.exception(f"[EMAIL] ✗ Failed to send email to {recipient}: {e}")
        return SendResult(success=False, error=str(e) or 'Failed to send email')


def send_estimate_email(estimate, client, recipient_email: str,
                        message: str = None, cc_emails: List[str] = None) -> SendResult:
    """Render and send the 'estimate ready for review' email."""
    subject, html, text = render_estimate_email(estimate, client, share_url('estimate', estimate.id), message)
    return _deliver(subject, recipient_email, text, html, cc=cc_emails, reply_to=_reply_to(estimate))


def send_invoice_email(invoice, client, recipient_email: str,
                       message: str = None, cc_emails: List[str] = None) -> SendResult:
    """Render and send the invoice email."""
    subject, html, text = render_invoice_email(invoice, client, share_url('invoice', invoice.id), message)
    return _deliver(subject, recipient_email, text, html, cc=cc_emails, reply_to=_reply_to(invoice))


def send_payment_reminder_email(invoice, client, recipient_email: str) -> SendResult:
    """Render and send a payment reminder (overdue wording once past due)."""
    subject, html, text = render_payment_reminder_email(
        invoice, client, share_url('invoice', invoice.id), days_past_due(invoice)
    )
    return _deliver(subject, recipient_email, text, html, reply_to=_reply_to(invoice))


def log_email(session, organization_id: int, to_email: str, subject: str, template_type: str,
              user_id: int = None, estimate_id: str = None, invoice_id: str = None,
              message_id: str = None, metadata: dict = None):
    """Insert an email_log row and commit it. Callers wrap this in run_best_effort."""
    entry = EmailLog(
        organization_id=organization_id,
        user_id=user_id,
        to_email=to_email,
        subject=subject[:255],
        template_type=template_type,
        estimate_id=estimate_id,
        invoice_id=invoice_id,
        status='sent',
        message_id=message_id,
        details=metadata or {},
    )
    session.add(entry)
    session.commit()
    return entry
