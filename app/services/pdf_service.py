"""PDF rendering for estimates and invoices (reportlab)."""
from io import BytesIO
from typing import Any, Dict, List

from markupsafe import escape
from reportlab.lib.pagesizes import LETTER
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from app.utils.formatters import format_currency, format_date, format_number
from app.utils.money import format_percentage


def _render_document_pdf(title: str, organization, meta_rows: List[List[str]], items: List[Dict[str, Any]],
                         totals: List[List[str]], footer_sections: List[tuple], show_cost_codes: bool = False) -> BytesIO:
    """
    Shared layout: business header, metadata table, line items, totals box,
    free-text footer sections.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=LETTER,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'DocumentTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'DocumentHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )
    cell_style = ParagraphStyle('Cell', parent=styles['Normal'], fontSize=9)

    # 1. Title and business header
    elements.append(Paragraph(title, title_style))
    if organization is not None:
        elements.append(Paragraph(f"<b>{escape(organization.name)}</b>", header_style))
        if organization.address:
            elements.append(Paragraph(str(escape(organization.address)), header_style))
        contact_parts = []
        if organization.phone:
            contact_parts.append(f"Tel: {escape(organization.phone)}")
        if organization.email:
            contact_parts.append(f"Email: {escape(organization.email)}")
        if contact_parts:
            elements.append(Paragraph(" | ".join(contact_parts), header_style))
    elements.append(Spacer(1, 0.3*inch))

    # 2. Metadata
    meta_table = Table(meta_rows, colWidths=[2*inch, 3.5*inch])
    meta_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(meta_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items
    if show_cost_codes:
        table_data = [['Description', 'Cost Code', 'Qty', 'Unit Price', 'Total']]
        col_widths = [2.7*inch, 1.2*inch, 0.7*inch, 1*inch, 1.1*inch]
    else:
        table_data = [['Description', 'Qty', 'Unit Price', 'Total']]
        col_widths = [3.9*inch, 0.7*inch, 1*inch, 1.1*inch]

    for item in items:
        row = [Paragraph(str(escape(item['description'])), cell_style)]
        if show_cost_codes:
            row.append(item.get('cost_code') or 'Uncategorized')
        row += [
            format_number(item['quantity']),
            format_currency(item['unit_price']),
            format_currency(item['total_price']),
        ]
        table_data.append(row)

    qty_col = 2 if show_cost_codes else 1
    items_table = Table(table_data, colWidths=col_widths, repeatRows=1)
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('ALIGN', (qty_col, 1), (qty_col, -1), 'CENTER'),
        ('ALIGN', (qty_col + 1, 1), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    total_table = Table(totals, colWidths=[5.6*inch, 1.1*inch])
    total_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 13),
        ('TEXTCOLOR', (0, -1), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, -1), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, -1), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))
    elements.append(total_table)
    elements.append(Spacer(1, 0.4*inch))

    # 5. Footer sections
    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9, textColor=colors.HexColor('#95A5A6'))
    for label, text in footer_sections:
        if text:
            body = str(escape(text)).replace('\n', '<br/>')
            elements.append(Paragraph(f"<b>{label}:</b><br/>{body}", footer_style))
            elements.append(Spacer(1, 0.15*inch))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def _client_rows(client) -> List[List[str]]:
    if client is None:
        return []
    rows = [['Client:', client.display_name or '']]
    if client.company_name and client.company_name != client.name:
        rows.append(['Company:', client.company_name])
    if client.email:
        rows.append(['Email:', client.email])
    return rows


def render_estimate_pdf(estimate, organization, include_cost_codes: bool = True) -> BytesIO:
    """Estimate PDF; the public share page renders it without cost codes."""
    meta = [
        ['Estimate #:', estimate.estimate_number],
        ['Issue Date:', format_date(estimate.issue_date)],
    ]
    if estimate.expiry_date:
        meta.append(['Valid Until:', format_date(estimate.expiry_date)])
    if estimate.title:
        meta.append(['Project:', estimate.title])
    meta += _client_rows(estimate.client)

    items = [
        {
            'description': item.description,
            'cost_code': item.cost_code_name,
            'quantity': item.quantity,
            'unit_price': item.unit_price,
            'total_price': item.total_price,
        }
        for item in estimate.items
    ]
    totals = [
        ['Subtotal:', format_currency(estimate.subtotal)],
        [f"Tax ({format_percentage(estimate.tax_rate or 0)}%):", format_currency(estimate.tax_amount)],
        ['TOTAL:', format_currency(estimate.total_amount)],
    ]
    footer = [
        ('Description', estimate.description),
        ('Notes', estimate.notes),
        ('Terms', estimate.terms),
    ]
    if estimate.signed_at:
        footer.append(('Accepted', f"Signed by client on {format_date(estimate.signed_at)}"))

    return _render_document_pdf('ESTIMATE', organization, meta, items, totals, footer,
                                show_cost_codes=include_cost_codes)


def render_invoice_pdf(invoice, organization) -> BytesIO:
    meta = [
        ['Invoice #:', invoice.invoice_number],
        ['Issue Date:', format_date(invoice.issue_date)],
    ]
    if invoice.due_date:
        meta.append(['Due Date:', format_date(invoice.due_date)])
    meta.append(['Status:', invoice.status.upper()])
    meta += _client_rows(invoice.client)

    items = [
        {
            'description': item.description,
            'quantity': item.quantity,
            'unit_price': item.unit_price,
            'total_price': item.total_price,
        }
        for item in invoice.items
    ]
    totals = [
        ['Subtotal:', format_currency(invoice.subtotal)],
        [f"Tax ({format_percentage(invoice.tax_rate or 0)}%):", format_currency(invoice.tax_amount)],
        ['Amount:', format_currency(invoice.amount)],
        ['Paid:', format_currency(invoice.total_paid)],
        ['BALANCE DUE:', format_currency(invoice.balance_due)],
    ]
    footer = [
        ('Notes', invoice.notes),
        ('Terms', invoice.terms),
    ]
    return _render_document_pdf('INVOICE', organization, meta, items, totals, footer)
