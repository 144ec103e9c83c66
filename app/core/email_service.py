import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from app.core.config import settings
from app.core.exceptions import DeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"


@dataclass
class OutboundEmail:
    to: str
    subject: str
    html: str
    text: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)


class EmailService:
    def __init__(
        self,
        smtp_server: str = None,
        smtp_port: int = None,
        username: str = None,
        password: str = None,
        from_email: str = None,
        from_name: str = None,
        timeout: int = None,
        enabled: bool = None,
    ):
        self.smtp_server = smtp_server or settings.SMTP_SERVER
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.username = username or settings.SMTP_USERNAME
        self.password = password or settings.SMTP_PASSWORD
        self.from_email = from_email or settings.FROM_EMAIL
        self.from_name = from_name or settings.FROM_NAME
        self.timeout = timeout or settings.EMAIL_TIMEOUT
        self.enabled = settings.SEND_EMAILS if enabled is None else enabled

    def build_message(self, email: OutboundEmail) -> MIMEMultipart:
        message = MIMEMultipart("mixed")
        message["Subject"] = email.subject
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = email.to

        body = MIMEMultipart("alternative")
        if email.text:
            body.attach(MIMEText(email.text, "plain", "utf-8"))
        body.attach(MIMEText(email.html, "html", "utf-8"))
        message.attach(body)

        for attachment in email.attachments:
            maintype, _, subtype = attachment.mime_type.partition("/")
            part = MIMEBase(maintype, subtype or "octet-stream")
            part.set_payload(attachment.content)
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", f'attachment; filename="{attachment.filename}"')
            message.attach(part)

        return message

    def send(self, email: OutboundEmail) -> None:
        """
        Send one message over SMTP.

        Raises DeliveryError when the transport refuses it, and also when sending
        is disabled, so nothing is ever recorded as delivered that was not.
        """
        if not self.enabled:
            logger.info(f"Email sending disabled. Would send: {email.subject} to {email.to}")
            raise DeliveryError(f"Email sending is disabled, message to {email.to} not sent")

        message = self.build_message(email)
        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                server.starttls(context=context)
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.from_email, [email.to], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {email.to}: {str(e)}")
            raise DeliveryError(f"SMTP delivery to {email.to} failed: {str(e)}")

        logger.info(f"📧 Email sent successfully to {email.to}")


email_service = EmailService()
