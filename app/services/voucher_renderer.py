"""
Voucher Document Rendering Service

Turns a voucher snapshot into a printable PDF: themed HTML with the voucher
code, value and a QR code pointing at the public validation page, converted
with WeasyPrint. The same snapshot and template always give the same HTML.
"""

import base64
import html
import logging
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Callable, Dict, Optional

import qrcode

from app.core.exceptions import RenderError
from app.models.voucher import VoucherType
from app.schemas.voucher import VoucherSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "elegant"

BASE_STYLES = """
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; padding: 20px; }
    .voucher-container { background: white; border-radius: 20px; max-width: 600px; margin: 0 auto; overflow: hidden; }
    .voucher-header { color: white; padding: 40px 30px; text-align: center; }
    .voucher-header h1 { font-size: 2.5em; margin-bottom: 10px; }
    .voucher-body { padding: 40px 30px; }
    .qr-section { text-align: center; margin-bottom: 30px; }
    .qr-section img { border: 3px solid #f0f0f0; border-radius: 10px; padding: 10px; background: white; }
    .code-section { background: #f8f9fa; border-radius: 15px; padding: 25px; text-align: center; margin-bottom: 30px; }
    .code-label { color: #666; font-size: 0.9em; margin-bottom: 10px; text-transform: uppercase; letter-spacing: 1px; }
    .code-value { font-size: 2em; font-weight: bold; letter-spacing: 3px; margin-bottom: 15px; }
    .amount-value { font-size: 2.5em; font-weight: bold; margin-bottom: 10px; }
    .valid-until { color: #666; font-size: 0.9em; }
    .message-section { background: #fff3cd; border: 1px solid #ffeaa7; border-radius: 10px; padding: 20px; margin-bottom: 30px; }
    .message-title { color: #856404; font-weight: bold; margin-bottom: 10px; }
    .message-text { color: #856404; font-style: italic; line-height: 1.6; }
    .info-table { width: 100%; margin-bottom: 30px; }
    .info-label { color: #666; font-size: 0.8em; text-transform: uppercase; }
    .info-value { color: #333; font-weight: bold; }
    .voucher-footer { background: #f8f9fa; padding: 20px 30px; text-align: center; border-top: 1px solid #dee2e6; }
    .footer-text { color: #666; font-size: 0.85em; line-height: 1.6; }
"""

TEMPLATE_STYLES: Dict[str, str] = {
    "elegant": """
        .voucher-header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); }
        .code-section { border: 2px dashed #667eea; }
        .code-value, .amount-value { color: #764ba2; }
    """,
    "christmas": """
        .voucher-header { background: linear-gradient(135deg, #bb2528 0%, #165b33 100%); }
        .voucher-container { border: 3px solid #bb2528; }
        .code-section { border: 2px dashed #bb2528; }
        .code-value { color: #bb2528; }
        .amount-value { color: #165b33; }
    """,
    "mystery": """
        .voucher-container { background: #0f1419; color: #ffffff; border: 2px solid #ffd700; }
        .voucher-header { background: linear-gradient(135deg, #16213e 0%, #1a1a2e 100%); border-bottom: 2px solid #ffd700; }
        .voucher-header h1, .code-value, .amount-value, .info-value { color: #ffd700; }
        .code-section { background: #16213e; border: 2px dashed #ffd700; }
        .voucher-footer { background: #16213e; border-top: 1px solid #ffd700; }
        .footer-text { color: #cccccc; }
    """,
    "fun": """
        .voucher-header { background: linear-gradient(135deg, #fa709a 0%, #fee140 100%); }
        .code-section { border: 3px dashed #f5576c; background: #fff5f5; }
        .code-value, .amount-value { color: #f5576c; }
    """,
}


def format_amount(amount: Decimal, currency: str) -> str:
    return f"{Decimal(amount):,.2f} {currency}"


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime("%d %B %Y")


def format_voucher_value(snapshot: VoucherSnapshot, currency: str) -> str:
    """Event vouchers show their ticket entitlement, the rest a monetary value."""
    if snapshot.type == VoucherType.EVENT and snapshot.event_title:
        tickets = snapshot.ticket_quantity or int(snapshot.current_balance)
        noun = "ticket" if tickets == 1 else "tickets"
        return f"{tickets} {noun} for {snapshot.event_title}"
    return format_amount(snapshot.current_balance, currency)


def generate_qr_data_url(url: str) -> str:
    """
    Generate QR code image as base64 data URL.
    """
    try:
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(url)
        qr.make(fit=True)

        img = qr.make_image(fill_color="#1a1a2e", back_color="white")
        buffer = BytesIO()
        img.save(buffer, format="PNG")
        img_base64 = base64.b64encode(buffer.getvalue()).decode("utf-8")
        return f"data:image/png;base64,{img_base64}"
    except Exception as e:
        logger.error(f"Error generating QR code: {str(e)}")
        raise RenderError(f"QR code generation failed: {str(e)}")


def html_to_pdf_bytes(html_content: str) -> bytes:
    """
    Convert HTML to PDF bytes using WeasyPrint.
    """
    from weasyprint import HTML, CSS

    css = CSS(string="@page { size: A4 portrait; margin: 0; }")
    return HTML(string=html_content).write_pdf(stylesheets=[css])


class VoucherRenderer:
    def __init__(
        self,
        app_url: str,
        currency: str = "EUR",
        brand_name: str = "Gift Vouchers",
        pdf_writer: Callable[[str], bytes] = html_to_pdf_bytes,
    ):
        self.app_url = app_url.rstrip("/")
        self.currency = currency
        self.brand_name = brand_name
        self.pdf_writer = pdf_writer

    def validation_url(self, code: str) -> str:
        return f"{self.app_url}/validate/{code}"

    def filename(self, snapshot: VoucherSnapshot) -> str:
        return f"voucher-{snapshot.code}.pdf"

    def build_html(self, snapshot: VoucherSnapshot, template_id: Optional[str] = None) -> str:
        template_id = template_id or snapshot.template_used or DEFAULT_TEMPLATE
        styles = BASE_STYLES + TEMPLATE_STYLES.get(template_id, TEMPLATE_STYLES[DEFAULT_TEMPLATE])
        qr_data_url = generate_qr_data_url(self.validation_url(snapshot.code))

        e = html.escape
        if snapshot.type == VoucherType.EVENT and snapshot.event_title:
            subtitle = f"Voucher for: {e(snapshot.event_title)}"
        else:
            subtitle = "Gift Voucher"

        message_block = ""
        if snapshot.personal_message:
            message_block = f"""
            <div class="message-section">
                <div class="message-title">Personal message:</div>
                <div class="message-text">{e(snapshot.personal_message)}</div>
            </div>"""

        issued_on = format_date(snapshot.paid_at or snapshot.created_at)

        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Gift Voucher - {e(snapshot.code)}</title>
    <style>{styles}</style>
</head>
<body>
    <div class="voucher-container">
        <div class="voucher-header">
            <h1>{e(self.brand_name.upper())}</h1>
            <p>{subtitle}</p>
        </div>
        <div class="voucher-body">
            <div class="qr-section">
                <img src="{qr_data_url}" alt="QR Code" width="180" height="180">
            </div>
            <div class="code-section">
                <div class="code-label">Voucher code</div>
                <div class="code-value">{e(snapshot.code)}</div>
                <div class="amount-value">{e(format_voucher_value(snapshot, self.currency))}</div>
                <div class="valid-until">Valid until: {format_date(snapshot.expiry_date)}</div>
            </div>{message_block}
            <table class="info-table">
                <tr>
                    <td><div class="info-label">For</div><div class="info-value">{e(snapshot.recipient_name or "Bearer")}</div></td>
                    <td><div class="info-label">From</div><div class="info-value">{e(snapshot.purchaser_name)}</div></td>
                    <td><div class="info-label">Date</div><div class="info-value">{issued_on}</div></td>
                </tr>
            </table>
        </div>
        <div class="voucher-footer">
            <div class="footer-text">
                <strong>How to use this voucher:</strong><br>
                Present the code at {e(self.validation_url(snapshot.code))}<br>
                Valid for one transaction. Not refundable.<br>
                <small>ID: {e(snapshot.id[-8:])}</small>
            </div>
        </div>
    </div>
</body>
</html>
"""

    def render(self, snapshot: VoucherSnapshot, template_id: Optional[str] = None) -> bytes:
        html_content = self.build_html(snapshot, template_id)
        try:
            pdf_bytes = self.pdf_writer(html_content)
        except Exception as e:
            logger.error(f"Error converting voucher {snapshot.code} to PDF: {str(e)}")
            raise RenderError(f"PDF conversion failed: {str(e)}")

        logger.info(f"PDF generated for voucher {snapshot.code}, size: {len(pdf_bytes)} bytes")
        return pdf_bytes
