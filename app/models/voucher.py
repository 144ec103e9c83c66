# File: app/models/voucher.py
import enum
import uuid
from sqlalchemy import Column, String, Boolean, Enum, DateTime, Text, Numeric, Integer
from sqlalchemy.sql import func
from app.db.database import Base


class VoucherType(str, enum.Enum):
    AMOUNT = "amount"
    EVENT = "event"
    PACK = "pack"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class VoucherStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REDEEMED = "redeemed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def generate_voucher_id() -> str:
    return str(uuid.uuid4())


class Voucher(Base):
    __tablename__ = "gift_vouchers"

    id = Column(String(36), primary_key=True, default=generate_voucher_id)
    code = Column(String(32), unique=True, index=True, nullable=False)
    type = Column(Enum(VoucherType), nullable=False, default=VoucherType.AMOUNT)

    # For AMOUNT/PACK this is money, for EVENT it is the number of tickets
    original_amount = Column(Numeric(10, 2), nullable=False)
    current_balance = Column(Numeric(10, 2), nullable=False)

    # Addressing / presentation
    purchaser_name = Column(String(255), nullable=False)
    purchaser_email = Column(String(255), nullable=False)
    recipient_name = Column(String(255), nullable=True)
    recipient_email = Column(String(255), nullable=True)
    personal_message = Column(Text, nullable=True)
    template_used = Column(String(50), nullable=False, default="elegant")

    # Snapshot of the bound event for EVENT vouchers (catalog lives elsewhere)
    event_title = Column(String(255), nullable=True)
    ticket_quantity = Column(Integer, nullable=True)

    expiry_date = Column(DateTime, nullable=False)
    scheduled_delivery_date = Column(DateTime, nullable=True)

    # Payment state
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    status = Column(Enum(VoucherStatus), nullable=False, default=VoucherStatus.PENDING, index=True)
    external_session_ref = Column(String(255), nullable=True, index=True)
    external_payment_ref = Column(String(255), nullable=True)
    paid_at = Column(DateTime, nullable=True)

    # Fulfillment markers
    purchaser_email_sent = Column(Boolean, nullable=False, default=False)
    purchaser_email_sent_at = Column(DateTime, nullable=True)
    recipient_email_sent = Column(Boolean, nullable=False, default=False)
    recipient_email_sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
