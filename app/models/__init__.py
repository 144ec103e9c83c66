from .base import BaseModel, utcnow
from .voucher import Voucher, VoucherType, PaymentStatus, VoucherStatus
from .payment_event import PaymentEventLog
from .email_template import EmailTemplate
