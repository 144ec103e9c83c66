from .voucher import voucher
from .payment_event import payment_event
from .email_template import email_template

__all__ = ["voucher", "payment_event", "email_template"]
