"""Printed order document (picking/packing sheet) rendering."""

from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from portal.models import STAGE_LABELS
from portal.utils.formatters import money_br, datetime_br


def _business_info_from_config() -> Dict[str, Any]:
    """Business header fields, read from the Flask config when available."""
    from flask import current_app, has_app_context

    if not has_app_context():
        return {}
    return {
        'name': current_app.config.get('BUSINESS_NAME'),
        'address': current_app.config.get('BUSINESS_ADDRESS'),
        'phone': current_app.config.get('BUSINESS_PHONE'),
        'email': current_app.config.get('BUSINESS_EMAIL'),
    }


def generate_order_pdf(order, company, business_info: Optional[Dict[str, Any]] = None) -> BytesIO:
    """
    Render the printable order sheet used by the "print" stage action.

    Args:
        order: Order instance (items loaded lazily)
        company: Company the order belongs to
        business_info: Optional header overrides (name, address, phone, email)

    Returns:
        BytesIO positioned at 0 with the PDF bytes
    """
    info = _business_info_from_config()
    info.update(business_info or {})

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch,
        title=f"Pedido {order.order_number}"
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'OrderTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'OrderHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Title and business header
    elements.append(Paragraph(f"PEDIDO {order.order_number}", title_style))

    if info.get('name'):
        elements.append(Paragraph(f"<b>{info['name']}</b>", header_style))
    if info.get('address'):
        elements.append(Paragraph(info['address'], header_style))

    contact_parts = []
    if info.get('phone'):
        contact_parts.append(f"Tel: {info['phone']}")
    if info.get('email'):
        contact_parts.append(f"Email: {info['email']}")
    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))

    elements.append(Spacer(1, 0.3*inch))

    # 2. Order metadata
    meta_rows = [
        ['Cliente:', company.display_name if company else '-'],
        ['CNPJ:', (company.tax_id if company else None) or '-'],
        ['Emissão:', datetime_br(order.created_at or datetime.utcnow())],
        ['Status:', order.status.value],
        ['Etapa:', STAGE_LABELS.get(order.stage, order.stage.value)],
    ]
    meta_table = Table(meta_rows, colWidths=[1.5*inch, 4.5*inch])
    meta_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(meta_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items
    table_data = [['SKU', 'Produto', 'Qtd', 'Preço Unit.', 'Subtotal']]
    for item in order.items:
        table_data.append([
            item.sku,
            Paragraph(item.product_name_snapshot, styles['Normal']),
            str(item.quantity),
            money_br(item.unit_price),
            money_br(item.subtotal),
        ])

    items_table = Table(table_data, colWidths=[1*inch, 2.9*inch, 0.6*inch, 1.1*inch, 1.1*inch], repeatRows=1)
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
        ('ALIGN', (2, 1), (2, -1), 'CENTER'),
        ('ALIGN', (3, 1), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals_rows = [
        ['Subtotal:', money_br(order.subtotal)],
        ['Descontos:', money_br(order.discount_total)],
        ['Frete:', money_br(order.freight)],
        ['TOTAL:', money_br(order.total)],
    ]
    totals_table = Table(totals_rows, colWidths=[5.5*inch, 1.2*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 13),
        ('TEXTCOLOR', (0, -1), (-1, -1), colors.HexColor('#27AE60')),
        ('LINEABOVE', (0, -1), (-1, -1), 1, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals_table)

    if order.notes:
        elements.append(Spacer(1, 0.3*inch))
        elements.append(Paragraph(f"<b>Observações:</b> {order.notes}", styles['Normal']))

    doc.build(elements)
    buffer.seek(0)
    return buffer
