"""
Stripe gateway capability.

Two things are needed from the gateway: authenticating webhook deliveries
and asking it, on demand, whether a checkout session has been paid. Both are
behind this small class so tests and the processor never touch the SDK.
"""
import json
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from app.core.exceptions import InvalidPaymentSignal, TransientIO, VoucherNotFound

logger = logging.getLogger(__name__)

PAID_STATUSES = ("paid", "no_payment_required")


@dataclass(frozen=True)
class GatewaySession:
    session_ref: str
    payment_status: Optional[str]
    payment_ref: Optional[str]

    @property
    def paid(self) -> bool:
        return self.payment_status in PAID_STATUSES and bool(self.payment_ref)


class StripeGateway:
    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str],
        tolerance: int = 300,
        timeout: int = 10,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="stripe")

    def verify_and_parse(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Authenticate a webhook body and return the decoded event JSON."""
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured, rejecting webhook")
            raise InvalidPaymentSignal("Webhook secret not configured")
        if not signature:
            raise InvalidPaymentSignal("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidPaymentSignal("Webhook body is not valid UTF-8")

        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid webhook signature: {str(e)}")
            raise InvalidPaymentSignal("Invalid signature")

        try:
            event = json.loads(body)
        except ValueError:
            raise InvalidPaymentSignal("Invalid payload")
        if not isinstance(event, dict):
            raise InvalidPaymentSignal("Invalid payload")
        return event

    def _retrieve(self, session_ref: str):
        return stripe.checkout.Session.retrieve(session_ref, api_key=self.api_key)

    def retrieve_session(self, session_ref: str) -> GatewaySession:
        """Ask Stripe for the current state of a checkout session."""
        if not self.api_key:
            raise TransientIO("Payment gateway is not configured")

        future = self._executor.submit(self._retrieve, session_ref)
        try:
            session = future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning(f"Timed out retrieving checkout session {session_ref}")
            raise TransientIO(f"Gateway timed out after {self.timeout}s")
        except stripe.InvalidRequestError as e:
            logger.warning(f"Checkout session {session_ref} rejected by gateway: {str(e)}")
            raise VoucherNotFound(f"Checkout session {session_ref} not found at gateway")
        except stripe.StripeError as e:
            logger.error(f"Gateway error retrieving session {session_ref}: {str(e)}")
            raise TransientIO(f"Gateway error: {str(e)}")

        intent = session.get("payment_intent")
        if intent is not None and not isinstance(intent, str):
            intent = intent.get("id")

        return GatewaySession(
            session_ref=session_ref,
            payment_status=session.get("payment_status"),
            payment_ref=intent,
        )
