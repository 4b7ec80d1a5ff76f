"""Generate PDF invoices using reportlab."""

from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.enums import TA_RIGHT, TA_CENTER
from xml.sax.saxutils import escape

import db
from models import Invoice, TimeEntry


def _build_styles():
    styles = getSampleStyleSheet()

    styles.add(ParagraphStyle(
        'CompanyName',
        parent=styles['Heading1'],
        fontSize=24,
        spaceAfter=6,
        textColor=colors.HexColor('#1a1a1a')
    ))

    styles.add(ParagraphStyle(
        'CompanyInfo',
        parent=styles['Normal'],
        fontSize=9,
        textColor=colors.HexColor('#666666'),
        leading=12
    ))

    styles.add(ParagraphStyle(
        'InvoiceTitle',
        parent=styles['Heading1'],
        fontSize=28,
        alignment=TA_RIGHT,
        textColor=colors.HexColor('#333333')
    ))

    styles.add(ParagraphStyle(
        'ClientInfo',
        parent=styles['Normal'],
        fontSize=10,
        leading=14
    ))

    styles.add(ParagraphStyle(
        'Footer',
        parent=styles['Normal'],
        fontSize=9,
        alignment=TA_CENTER,
        textColor=colors.HexColor('#666666')
    ))

    return styles


def _contact_lines(info: Dict, name_key: str = 'name') -> List[str]:
    """Non-empty contact lines (name, address, email, phone), escaped for Paragraph markup."""
    lines = []
    name = (info.get(name_key) or '').strip()
    if name:
        lines.append(escape(name))
    address = (info.get('address') or '').strip()
    if address:
        lines.extend(escape(part) for part in address.splitlines() if part.strip())
    email = (info.get('email') or '').strip()
    if email:
        lines.append(f"Email: {escape(email)}")
    phone = (info.get('phone') or '').strip()
    if phone:
        lines.append(f"Phone: {escape(phone)}")
    return lines


def daily_line_items(entries: List[TimeEntry]) -> List[Dict]:
    """Group entries by local start date and project, oldest first."""
    grouped: Dict[tuple, Dict] = {}
    for entry in entries:
        work_date = datetime.fromtimestamp(entry.start_time).strftime('%Y-%m-%d')
        key = (work_date, entry.project_name, entry.hourly_rate)
        item = grouped.setdefault(key, {
            'work_date': work_date,
            'project_name': entry.project_name,
            'hourly_rate': entry.hourly_rate,
            'seconds': 0,
            'amount': 0.0,
        })
        item['seconds'] += entry.duration
        item['amount'] += entry.amount
    return [grouped[key] for key in sorted(grouped)]


def generate_invoice_pdf(
    output_path: Path,
    invoice: Invoice,
    entries: List[TimeEntry],
    business_info: Dict,
    bill_to_info: Optional[Dict] = None
) -> Path:
    """Render an invoice to output_path, return the path written."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    bill_to_info = bill_to_info or {}

    doc = SimpleDocTemplate(
        str(output_path),
        pagesize=letter,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.5*inch,
        bottomMargin=0.5*inch
    )
    styles = _build_styles()
    elements = []

    # Header section with company info and INVOICE title
    business_lines = _contact_lines(business_info)
    header_data = [
        [
            Paragraph(business_lines[0] if business_lines else '', styles['CompanyName']),
            Paragraph('INVOICE', styles['InvoiceTitle'])
        ],
        [
            Paragraph('<br/>'.join(business_lines[1:]), styles['CompanyInfo']),
            ''
        ]
    ]
    header_table = Table(header_data, colWidths=[4*inch, 3*inch])
    header_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
    ]))
    elements.append(header_table)
    elements.append(Spacer(1, 0.3*inch))

    # Invoice details and Bill To section
    invoice_details = [
        ['Invoice Number:', invoice.invoice_number],
        ['Date Issued:', db.format_date_display(invoice.created_at)],
    ]
    if invoice.period_start is not None and invoice.period_end is not None:
        # period_end is exclusive
        last_day = max(invoice.period_start, invoice.period_end - 1)
        invoice_details.append(['Period:', (
            f"{datetime.fromtimestamp(invoice.period_start).strftime('%m/%d/%Y')} - "
            f"{datetime.fromtimestamp(last_day).strftime('%m/%d/%Y')}"
        )])

    invoice_table = Table(invoice_details, colWidths=[1.2*inch, 2.1*inch])
    invoice_table.setStyle(TableStyle([
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('TEXTCOLOR', (0, 0), (0, -1), colors.HexColor('#666666')),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
    ]))

    client_lines = ["<b>Bill To:</b>"] + _contact_lines(bill_to_info)
    client_info = Paragraph('<br/>'.join(client_lines), styles['ClientInfo'])

    details_row = Table([[invoice_table, client_info]], colWidths=[3.5*inch, 3.5*inch])
    details_row.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    elements.append(details_row)
    elements.append(Spacer(1, 0.4*inch))

    # Line items - daily breakdown per project
    line_items = [['Date', 'Project', 'Hours', 'Rate', 'Amount']]
    for item in daily_line_items(entries):
        dt = datetime.strptime(item['work_date'], '%Y-%m-%d')
        line_items.append([
            dt.strftime('%a %b %d'),
            Paragraph(escape(item['project_name']), styles['Normal']),
            f"{item['seconds'] / 3600:.2f}",
            db.format_currency(item['hourly_rate']),
            db.format_currency(item['amount']),
        ])
    line_items.append([
        'Total', '', f"{invoice.total_hours:.2f}", '', db.format_currency(invoice.total_amount)
    ])

    items_table = Table(line_items, colWidths=[1.1*inch, 2.9*inch, 0.8*inch, 1*inch, 1.2*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#f5f5f5')),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
        ('TOPPADDING', (0, 0), (-1, -1), 3),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('LINEBELOW', (0, 0), (-1, 0), 1, colors.HexColor('#dddddd')),
        ('LINEBELOW', (0, -1), (-1, -1), 1, colors.HexColor('#dddddd')),
        ('LINEABOVE', (0, -1), (-1, -1), 1, colors.HexColor('#dddddd')),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.4*inch))

    # Footer
    elements.append(Paragraph(
        f"Thank you for your business!<br/>"
        f"{invoice.entry_count} time entries",
        styles['Footer']
    ))

    doc.build(elements)
    return output_path
