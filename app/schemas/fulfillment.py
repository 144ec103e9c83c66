# File: app/schemas/fulfillment.py
from enum import Enum
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class Party(str, Enum):
    PURCHASER = "purchaser"
    RECIPIENT = "recipient"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    ALREADY_SENT = "already_sent"
    SCHEDULED = "scheduled"
    NO_RECIPIENT = "no_recipient"
    SKIPPED = "skipped"
    FAILED = "failed"


class DeliveryStage(str, Enum):
    LOAD = "load"
    RENDER = "render"
    TRANSMIT = "transmit"
    RECORD = "record"


class DeliveryOutcome(BaseModel):
    party: Party
    status: DeliveryStatus
    recipient: Optional[str] = None
    stage: Optional[DeliveryStage] = None
    error: Optional[str] = None
    scheduled_for: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status != DeliveryStatus.FAILED


class FulfillmentReport(BaseModel):
    voucher_id: str
    purchaser: DeliveryOutcome
    recipient: DeliveryOutcome

    @property
    def ok(self) -> bool:
        return self.purchaser.ok and self.recipient.ok


class ReplayResponse(BaseModel):
    voucher_id: str
    code: str
    outcome: str
    payment_status: str
    status: str
    fulfillment: Optional[FulfillmentReport] = None
