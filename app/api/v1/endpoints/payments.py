from typing import Optional
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from app.api.deps import get_gateway, get_payment_processor
from app.db.database import get_db
from app.schemas.payment_event import WebhookAck, decode_gateway_event
from app.services.payment_event_processor import PaymentEventProcessor
from app.services.payment_gateway import StripeGateway
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


async def raw_body(request: Request) -> bytes:
    # Signature is computed over the exact bytes Stripe sent
    return await request.body()


@router.post("/webhook", response_model=WebhookAck)
def stripe_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    processor: PaymentEventProcessor = Depends(get_payment_processor),
):
    """
    Stripe webhook receiver.

    200 for processed, repeated and ignored events; 400 when the signature or
    payload is rejected (no side effects); 404/500/503 come from the error
    handler so Stripe keeps retrying the retryable ones.
    """
    event = gateway.verify_and_parse(payload, stripe_signature)
    signal = decode_gateway_event(event)
    logger.info(f"🔔 Stripe event {signal.event_id} ({signal.event_type}) decoded as {signal.kind}")
    return processor.handle_signal(db, signal)
