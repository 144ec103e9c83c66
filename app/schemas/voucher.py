# File: app/schemas/voucher.py
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from app.models.voucher import VoucherType, PaymentStatus, VoucherStatus


class VoucherSnapshot(BaseModel):
    """Immutable copy of a voucher row; what the renderer and validator see."""
    id: str
    code: str
    type: VoucherType
    original_amount: Decimal
    current_balance: Decimal
    purchaser_name: str
    purchaser_email: str
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    personal_message: Optional[str] = None
    template_used: str = "elegant"
    event_title: Optional[str] = None
    ticket_quantity: Optional[int] = None
    expiry_date: datetime
    scheduled_delivery_date: Optional[datetime] = None
    payment_status: PaymentStatus
    status: VoucherStatus
    external_session_ref: Optional[str] = None
    external_payment_ref: Optional[str] = None
    paid_at: Optional[datetime] = None
    purchaser_email_sent: bool = False
    purchaser_email_sent_at: Optional[datetime] = None
    recipient_email_sent: bool = False
    recipient_email_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True


class VoucherPublic(BaseModel):
    """What the purchaser sees on the checkout confirmation page."""
    id: str
    code: str
    type: VoucherType
    original_amount: Decimal
    purchaser_name: str
    recipient_name: Optional[str] = None
    personal_message: Optional[str] = None
    template_used: str
    event_title: Optional[str] = None
    expiry_date: datetime
    status: VoucherStatus
    payment_status: PaymentStatus

    class Config:
        from_attributes = True


class VoucherSuccessResponse(BaseModel):
    success: bool = True
    voucher: VoucherPublic
