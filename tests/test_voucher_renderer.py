from datetime import datetime
from decimal import Decimal

import pytest

from app.core.exceptions import RenderError
from app.models.voucher import PaymentStatus, VoucherStatus, VoucherType
from app.schemas.voucher import VoucherSnapshot
from app.services.voucher_renderer import TEMPLATE_STYLES, VoucherRenderer, format_voucher_value


def snapshot(**overrides):
    fields = dict(
        id="0f8fad5b-d9cb-469f-a165-70867728950e",
        code="GV-AB12-CD34",
        type=VoucherType.AMOUNT,
        original_amount=Decimal("75.00"),
        current_balance=Decimal("75.00"),
        purchaser_name="Ana Lopez",
        purchaser_email="ana@example.com",
        recipient_name="Ben Ortiz",
        recipient_email="ben@example.com",
        personal_message="Enjoy <3",
        template_used="elegant",
        expiry_date=datetime(2027, 10, 19),
        payment_status=PaymentStatus.COMPLETED,
        status=VoucherStatus.ACTIVE,
        external_session_ref="sess_1",
        external_payment_ref="pi_1",
        paid_at=datetime(2026, 10, 19, 9, 0),
    )
    fields.update(overrides)
    return VoucherSnapshot(**fields)


class TestVoucherRenderer:

    def test_validation_url(self, renderer):
        assert renderer.validation_url("GV-AB12-CD34") == "https://vouchers.test/validate/GV-AB12-CD34"

    def test_html_is_deterministic(self, renderer):
        assert renderer.build_html(snapshot()) == renderer.build_html(snapshot())

    def test_html_contains_code_value_and_qr(self, renderer):
        html = renderer.build_html(snapshot())

        assert "GV-AB12-CD34" in html
        assert "75.00 EUR" in html
        assert "data:image/png;base64," in html
        assert "19 October 2027" in html
        assert "Ben Ortiz" in html

    def test_user_text_is_escaped(self, renderer):
        html = renderer.build_html(snapshot(personal_message="<b>hi</b>"))
        assert "&lt;b&gt;hi&lt;/b&gt;" in html
        assert "<b>hi</b>" not in html

    def test_message_section_omitted_without_message(self, renderer):
        assert "message-section\"" not in renderer.build_html(snapshot(personal_message=None))

    def test_unknown_template_falls_back_to_elegant(self, renderer):
        fallback = renderer.build_html(snapshot(), "does-not-exist")
        assert TEMPLATE_STYLES["elegant"] in fallback
        assert fallback == renderer.build_html(snapshot(), "elegant")

    def test_template_changes_theme(self, renderer):
        assert TEMPLATE_STYLES["christmas"] in renderer.build_html(snapshot(), "christmas")

    def test_event_voucher_shows_tickets(self):
        event = snapshot(
            type=VoucherType.EVENT,
            event_title="Jazz Night",
            ticket_quantity=2,
            original_amount=Decimal("2"),
            current_balance=Decimal("2"),
        )
        assert format_voucher_value(event, "EUR") == "2 tickets for Jazz Night"

    def test_render_returns_writer_output(self, renderer):
        assert renderer.render(snapshot()).startswith(b"%PDF")

    def test_writer_failure_is_a_render_error(self):
        def broken(html_content):
            raise OSError("no fonts")

        renderer = VoucherRenderer(app_url="https://vouchers.test", pdf_writer=broken)
        with pytest.raises(RenderError):
            renderer.render(snapshot())
