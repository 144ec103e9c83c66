"""
Gateway notification decoding.

Raw webhook JSON is turned into exactly one of the tagged variants below
before anything else in the service looks at it. Anything we cannot decode
is rejected with InvalidPaymentSignal.
"""
# File: app/schemas/payment_event.py
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from app.core.exceptions import InvalidPaymentSignal

VOUCHER_PURCHASE = "voucher_purchase"

COMPLETION_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
}
FAILURE_EVENTS = {
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
}


class TransitionOutcome(str, Enum):
    TRANSITIONED = "transitioned"
    ALREADY_COMPLETED = "already_completed"
    PAYMENT_FAILED = "payment_failed"
    AWAITING_PAYMENT = "awaiting_payment"
    IGNORED = "ignored"


class PaymentCompleted(BaseModel):
    kind: Literal["completed"] = "completed"
    event_id: str
    event_type: str
    session_ref: str = Field(min_length=1)
    payment_ref: str = Field(min_length=1)


class PaymentFailed(BaseModel):
    kind: Literal["failed"] = "failed"
    event_id: str
    event_type: str
    session_ref: str = Field(min_length=1)


class IgnoredEvent(BaseModel):
    kind: Literal["ignored"] = "ignored"
    event_id: str
    event_type: str
    session_ref: Optional[str] = None
    reason: str


PaymentSignal = Annotated[
    Union[PaymentCompleted, PaymentFailed, IgnoredEvent],
    Field(discriminator="kind"),
]

_signal_adapter = TypeAdapter(PaymentSignal)


class _SessionObject(BaseModel):
    id: str = Field(min_length=1)
    payment_intent: Optional[Union[str, Dict[str, Any]]] = None
    payment_status: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class _EventData(BaseModel):
    object: Dict[str, Any]


class _GatewayEnvelope(BaseModel):
    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    data: _EventData


def _payment_ref(session: _SessionObject) -> Optional[str]:
    intent = session.payment_intent
    if isinstance(intent, dict):
        return intent.get("id")
    return intent


def decode_gateway_event(payload: Dict[str, Any]) -> PaymentSignal:
    """Classify an authenticated gateway event into a PaymentSignal."""
    try:
        envelope = _GatewayEnvelope.model_validate(payload)
    except ValidationError as e:
        raise InvalidPaymentSignal(f"Malformed gateway event: {e.error_count()} validation error(s)")

    base = {"event_id": envelope.id, "event_type": envelope.type}

    if envelope.type not in COMPLETION_EVENTS | FAILURE_EVENTS:
        return IgnoredEvent(**base, reason="unhandled event type")

    try:
        session = _SessionObject.model_validate(envelope.data.object)
    except ValidationError:
        raise InvalidPaymentSignal(f"Event {envelope.id} carries no usable checkout session")

    metadata = session.metadata or {}
    purchase_type = metadata.get("type")
    if purchase_type and purchase_type != VOUCHER_PURCHASE:
        return IgnoredEvent(**base, session_ref=session.id, reason=f"not a voucher purchase ({purchase_type})")

    if envelope.type in FAILURE_EVENTS:
        candidate = {**base, "kind": "failed", "session_ref": session.id}
    elif session.payment_status not in (None, "paid", "no_payment_required"):
        # Delayed payment methods complete the session before the money arrives
        return IgnoredEvent(**base, session_ref=session.id, reason=f"payment_status={session.payment_status}")
    else:
        candidate = {
            **base,
            "kind": "completed",
            "session_ref": session.id,
            "payment_ref": _payment_ref(session) or "",
        }

    try:
        return _signal_adapter.validate_python(candidate)
    except ValidationError:
        raise InvalidPaymentSignal(f"Event {envelope.id} is missing its payment reference")


class TransitionResult(BaseModel):
    voucher_id: str
    code: str
    outcome: TransitionOutcome
    payment_status: str
    status: str


class WebhookAck(BaseModel):
    received: bool = True
    event_id: str
    outcome: TransitionOutcome
    voucher_id: Optional[str] = None
