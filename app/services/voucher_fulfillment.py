"""
Voucher Fulfillment Pipeline

After a payment is captured the purchaser gets a confirmation with the
voucher PDF and, if the voucher is a gift, the recipient gets their own copy.

Each delivery is guarded by its ``*_email_sent`` flag: the flag is read
before anything is rendered and set only after the channel accepted the
message, so running the pipeline again for the same voucher never sends a
second copy of something already delivered. Purchaser and recipient are
handled independently; a failure on one side is reported, not raised.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.core.email_service import Attachment, EmailService, OutboundEmail
from app.models.base import utcnow
from app.models.voucher import PaymentStatus
from app.schemas.fulfillment import (
    DeliveryOutcome,
    DeliveryStage,
    DeliveryStatus,
    FulfillmentReport,
    Party,
)
from app.schemas.voucher import VoucherSnapshot
from app.services.templating import render_template
from app.services.voucher_renderer import VoucherRenderer, format_date, format_voucher_value

logger = logging.getLogger(__name__)

PURCHASE_TEMPLATE = "voucher_purchase"
GIFT_TEMPLATE = "voucher_gift"


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html_body: str


DEFAULT_TEMPLATES: Dict[str, EmailContent] = {
    PURCHASE_TEMPLATE: EmailContent(
        subject="Your gift voucher {{voucherCode}} is ready",
        html_body="""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #764ba2;">Thank you for your purchase, {{purchaserName}}!</h2>
    <p>Your gift voucher has been issued and is attached to this email as a PDF.</p>
    <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
        <p><strong>Voucher code:</strong> {{voucherCode}}</p>
        <p><strong>Value:</strong> {{amount}}</p>
        {{#eventTitle}}<p><strong>Event:</strong> {{eventTitle}}</p>{{/eventTitle}}
        <p><strong>Valid until:</strong> {{expiryDate}}</p>
        {{#recipientName}}<p><strong>For:</strong> {{recipientName}}</p>{{/recipientName}}
    </div>
    {{#personalMessage}}<p style="font-style: italic;">"{{personalMessage}}"</p>{{/personalMessage}}
    <p>The voucher can be checked at any time at <a href="{{validationUrl}}">{{validationUrl}}</a>.</p>
</div>
""",
    ),
    GIFT_TEMPLATE: EmailContent(
        subject="{{purchaserName}} sent you a gift voucher",
        html_body="""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2 style="color: #764ba2;">Hello{{#recipientName}} {{recipientName}}{{/recipientName}}, you have received a gift!</h2>
    <p>{{purchaserName}} has sent you a gift voucher. You will find it attached to this email.</p>
    {{#personalMessage}}
    <div style="background-color: #fff3cd; padding: 15px; border-radius: 8px; margin: 20px 0;">
        <p style="font-style: italic;">"{{personalMessage}}"</p>
    </div>
    {{/personalMessage}}
    <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
        <p><strong>Voucher code:</strong> {{voucherCode}}</p>
        <p><strong>Value:</strong> {{amount}}</p>
        {{#eventTitle}}<p><strong>Event:</strong> {{eventTitle}}</p>{{/eventTitle}}
        <p><strong>Valid until:</strong> {{expiryDate}}</p>
    </div>
    <p>Present the code or scan the QR code in the PDF to use it.</p>
</div>
""",
    ),
}


class FulfillmentPipeline:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        renderer: VoucherRenderer,
        channel: EmailService,
        render_timeout: float = 15,
        transmit_timeout: float = 10,
        now: Callable[[], datetime] = utcnow,
        max_workers: int = 4,
    ):
        self.session_factory = session_factory
        self.renderer = renderer
        self.channel = channel
        self.render_timeout = render_timeout
        self.transmit_timeout = transmit_timeout
        self.now = now
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fulfillment")

    def run(self, voucher_id: str) -> FulfillmentReport:
        """Deliver whatever is still undelivered for a paid voucher."""
        db = self.session_factory()
        try:
            try:
                voucher = crud.voucher.get(db, voucher_id)
            except SQLAlchemyError as e:
                db.rollback()
                return self._both(voucher_id, DeliveryStage.LOAD, f"Storage error: {str(e)}")

            if voucher is None:
                logger.error(f"Fulfillment requested for unknown voucher {voucher_id}")
                return self._both(voucher_id, DeliveryStage.LOAD, "Voucher not found")

            if voucher.payment_status != PaymentStatus.COMPLETED:
                logger.warning(f"Voucher {voucher.code} is not paid, fulfillment skipped")
                return FulfillmentReport(
                    voucher_id=voucher_id,
                    purchaser=DeliveryOutcome(party=Party.PURCHASER, status=DeliveryStatus.SKIPPED),
                    recipient=DeliveryOutcome(party=Party.RECIPIENT, status=DeliveryStatus.SKIPPED),
                )

            report = FulfillmentReport(
                voucher_id=voucher_id,
                purchaser=self._deliver(db, voucher_id, Party.PURCHASER),
                recipient=self._deliver(db, voucher_id, Party.RECIPIENT),
            )
            logger.info(
                f"Fulfillment for voucher {voucher.code}: purchaser={report.purchaser.status.value}, "
                f"recipient={report.recipient.status.value}"
            )
            return report
        finally:
            db.close()

    # ------------------------------------------------------------------
    # One party
    # ------------------------------------------------------------------

    def _deliver(self, db: Session, voucher_id: str, party: Party) -> DeliveryOutcome:
        is_recipient = party == Party.RECIPIENT

        # Load: always re-read, another run may have delivered in the meantime
        try:
            db.expire_all()
            voucher = crud.voucher.get(db, voucher_id)
            if voucher is None:
                return self._failed(party, DeliveryStage.LOAD, "Voucher not found")
            snapshot = VoucherSnapshot.model_validate(voucher)
        except SQLAlchemyError as e:
            db.rollback()
            return self._failed(party, DeliveryStage.LOAD, f"Storage error: {str(e)}")

        if is_recipient:
            to_email = snapshot.recipient_email
            if not to_email:
                return DeliveryOutcome(party=party, status=DeliveryStatus.NO_RECIPIENT)
            if snapshot.scheduled_delivery_date and snapshot.scheduled_delivery_date > self.now():
                logger.info(f"Recipient email for {snapshot.code} scheduled for {snapshot.scheduled_delivery_date}")
                return DeliveryOutcome(
                    party=party,
                    status=DeliveryStatus.SCHEDULED,
                    recipient=to_email,
                    scheduled_for=snapshot.scheduled_delivery_date,
                )
            already_sent = snapshot.recipient_email_sent
        else:
            to_email = snapshot.purchaser_email
            already_sent = snapshot.purchaser_email_sent

        if already_sent:
            return DeliveryOutcome(party=party, status=DeliveryStatus.ALREADY_SENT, recipient=to_email)

        try:
            content = self._load_template(db, GIFT_TEMPLATE if is_recipient else PURCHASE_TEMPLATE)
        except SQLAlchemyError as e:
            db.rollback()
            return self._failed(party, DeliveryStage.LOAD, f"Template lookup failed: {str(e)}", to_email)

        # Render
        future = self._executor.submit(self.compose, snapshot, content, to_email)
        try:
            email = future.result(timeout=self.render_timeout)
        except FutureTimeout:
            return self._failed(party, DeliveryStage.RENDER, f"Rendering timed out after {self.render_timeout}s", to_email)
        except Exception as e:
            return self._failed(party, DeliveryStage.RENDER, str(e), to_email)

        # Transmit
        future = self._executor.submit(self.channel.send, email)
        try:
            future.result(timeout=self.transmit_timeout)
        except FutureTimeout:
            return self._failed(party, DeliveryStage.TRANSMIT, f"Delivery timed out after {self.transmit_timeout}s", to_email)
        except Exception as e:
            return self._failed(party, DeliveryStage.TRANSMIT, str(e), to_email)

        # Record
        try:
            recorded = crud.voucher.mark_email_sent(
                db, voucher_id=voucher_id, recipient=is_recipient, sent_at=self.now()
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.critical(f"Email for {snapshot.code} sent to {to_email} but the flag could not be stored: {str(e)}")
            return self._failed(party, DeliveryStage.RECORD, str(e), to_email)

        if not recorded:
            logger.warning(f"{party.value} flag for {snapshot.code} was set concurrently")
        logger.info(f"📧 Voucher {snapshot.code} sent to {party.value} {to_email}")
        return DeliveryOutcome(party=party, status=DeliveryStatus.SENT, recipient=to_email)

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def _load_template(self, db: Session, name: str) -> EmailContent:
        row = crud.email_template.get_active(db, name=name)
        if row is None:
            return DEFAULT_TEMPLATES[name]
        return EmailContent(subject=row.subject, html_body=row.html_body)

    def template_variables(self, snapshot: VoucherSnapshot) -> Dict[str, Optional[str]]:
        return {
            "purchaserName": snapshot.purchaser_name,
            "recipientName": snapshot.recipient_name,
            "voucherCode": snapshot.code,
            "amount": format_voucher_value(snapshot, self.renderer.currency),
            "expiryDate": format_date(snapshot.expiry_date),
            "personalMessage": snapshot.personal_message,
            "eventTitle": snapshot.event_title,
            "validationUrl": self.renderer.validation_url(snapshot.code),
        }

    def compose(self, snapshot: VoucherSnapshot, content: EmailContent, to_email: str) -> OutboundEmail:
        variables = self.template_variables(snapshot)
        subject = render_template(content.subject, variables, escape=False)
        html_body = render_template(content.html_body, variables)
        pdf_bytes = self.renderer.render(snapshot, snapshot.template_used)
        return OutboundEmail(
            to=to_email,
            subject=subject,
            html=html_body,
            attachments=[Attachment(filename=self.renderer.filename(snapshot), content=pdf_bytes)],
        )

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _failed(
        self, party: Party, stage: DeliveryStage, error: str, recipient: Optional[str] = None
    ) -> DeliveryOutcome:
        logger.error(f"Fulfillment {party.value} failed at {stage.value}: {error}")
        return DeliveryOutcome(
            party=party, status=DeliveryStatus.FAILED, recipient=recipient, stage=stage, error=error
        )

    def _both(self, voucher_id: str, stage: DeliveryStage, error: str) -> FulfillmentReport:
        return FulfillmentReport(
            voucher_id=voucher_id,
            purchaser=self._failed(Party.PURCHASER, stage, error),
            recipient=self._failed(Party.RECIPIENT, stage, error),
        )
