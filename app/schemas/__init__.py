# File: app/schemas/__init__.py
from .voucher import VoucherSnapshot, VoucherPublic, VoucherSuccessResponse
from .payment_event import (
    PaymentSignal, PaymentCompleted, PaymentFailed, IgnoredEvent,
    TransitionOutcome, TransitionResult, WebhookAck, decode_gateway_event,
)
from .fulfillment import (
    Party, DeliveryStatus, DeliveryStage, DeliveryOutcome, FulfillmentReport, ReplayResponse,
)
from .consistency import (
    ViolationCode, Violation, ConsistencyReport,
    RepairAction, RepairDetail, RepairSummary, VoucherHealthResponse,
)
