"""
Pytest configuration and fixtures.

Settings are read from the environment at import time, so the test values
are set here before anything from ``app`` is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ADMIN_ROLES"] = "admin,super_admin"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake_key_for_testing"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_fake_secret"
os.environ["APP_URL"] = "https://vouchers.test"
os.environ["SEND_EMAILS"] = "false"
os.environ["AUTO_REPAIR_INTERVAL_MINUTES"] = "0"

import threading
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers tables on Base.metadata
from app.core.email_service import OutboundEmail
from app.core.exceptions import DeliveryError, TransientIO
from app import crud
from app.db.database import Base
from app.models.voucher import PaymentStatus, Voucher, VoucherStatus, VoucherType
from app.services.payment_gateway import GatewaySession, StripeGateway
from app.services.voucher_fulfillment import FulfillmentPipeline
from app.services.voucher_renderer import VoucherRenderer

WEBHOOK_SECRET = "whsec_test_fake_secret"


def fake_pdf_writer(html_content: str) -> bytes:
    return b"%PDF-1.7 fake " + str(len(html_content)).encode()


class FakeGateway(StripeGateway):
    """Real webhook verification, canned checkout sessions."""

    def __init__(self):
        super().__init__(api_key="sk_test_fake_key_for_testing", webhook_secret=WEBHOOK_SECRET)
        self.sessions = {}
        self.calls: List[str] = []
        self.error: Optional[Exception] = None

    def set_session(self, session_ref: str, payment_status: str = "paid", payment_ref: str = "pi_1"):
        self.sessions[session_ref] = GatewaySession(
            session_ref=session_ref, payment_status=payment_status, payment_ref=payment_ref
        )

    def retrieve_session(self, session_ref: str) -> GatewaySession:
        self.calls.append(session_ref)
        if self.error is not None:
            raise self.error
        if session_ref not in self.sessions:
            raise TransientIO(f"unknown session {session_ref}")
        return self.sessions[session_ref]


class FakeChannel:
    """Delivery channel that records messages instead of sending them."""

    def __init__(self):
        self.sent: List[OutboundEmail] = []
        self.fail_for = set()
        self.delay = 0.0
        self._lock = threading.Lock()

    def send(self, email: OutboundEmail) -> None:
        if self.delay:
            threading.Event().wait(self.delay)
        if email.to in self.fail_for:
            raise DeliveryError(f"mailbox unavailable: {email.to}")
        with self._lock:
            self.sent.append(email)

    def sent_to(self, address: str) -> List[OutboundEmail]:
        return [email for email in self.sent if email.to == address]


class RecordingTrigger:
    def __init__(self):
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, voucher_id: str) -> None:
        with self._lock:
            self.calls.append(voucher_id)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_voucher(db) -> Callable[..., Voucher]:
    def _make(**overrides) -> Voucher:
        amount = overrides.pop("original_amount", Decimal("50.00"))
        fields = dict(
            code=crud.voucher.generate_unique_code(db),
            type=VoucherType.AMOUNT,
            original_amount=amount,
            current_balance=amount,
            purchaser_name="Ana Lopez",
            purchaser_email="ana@example.com",
            recipient_name="Ben Ortiz",
            recipient_email="ben@example.com",
            personal_message="Happy birthday!",
            template_used="elegant",
            expiry_date=datetime(2027, 10, 19),
            external_session_ref="sess_1",
            payment_status=PaymentStatus.PENDING,
            status=VoucherStatus.PENDING,
            purchaser_email_sent=False,
            recipient_email_sent=False,
        )
        fields.update(overrides)
        voucher = Voucher(**fields)
        db.add(voucher)
        db.commit()
        db.refresh(voucher)
        return voucher

    return _make


@pytest.fixture
def paid_voucher(make_voucher) -> Callable[..., Voucher]:
    def _make(**overrides) -> Voucher:
        fields = dict(
            payment_status=PaymentStatus.COMPLETED,
            status=VoucherStatus.ACTIVE,
            external_payment_ref="pi_1",
            paid_at=datetime(2026, 10, 1, 12, 0),
        )
        fields.update(overrides)
        return make_voucher(**fields)

    return _make


@pytest.fixture
def reload(session_factory) -> Callable[[str], Voucher]:
    """Read a voucher through a fresh session."""
    def _reload(voucher_id: str) -> Voucher:
        session = session_factory()
        try:
            voucher = session.get(Voucher, voucher_id)
            session.expunge(voucher)
            return voucher
        finally:
            session.close()

    return _reload


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def trigger() -> RecordingTrigger:
    return RecordingTrigger()


@pytest.fixture
def renderer() -> VoucherRenderer:
    return VoucherRenderer(app_url="https://vouchers.test", currency="EUR", pdf_writer=fake_pdf_writer)


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 19, 9, 30)


@pytest.fixture
def pipeline(session_factory, renderer, channel, now) -> FulfillmentPipeline:
    return FulfillmentPipeline(
        session_factory=session_factory,
        renderer=renderer,
        channel=channel,
        render_timeout=5,
        transmit_timeout=5,
        now=lambda: now,
    )
