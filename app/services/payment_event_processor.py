"""
Payment Event Processor

Turns a confirmed (or failed) payment into a voucher state transition.
The same transition is reachable from three places: the gateway webhook,
the synchronous fallback on the checkout success page, and the admin
replay. All of them go through complete_payment, whose conditional UPDATE
decides which caller observed the pending -> completed edge. Only that
caller triggers fulfillment.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.core.exceptions import (
    TransientIO,
    Unrepairable,
    VoucherNotFound,
    VoucherServiceError,
)
from app.models.base import utcnow
from app.models.voucher import PaymentStatus, Voucher
from app.schemas.payment_event import (
    IgnoredEvent,
    PaymentCompleted,
    PaymentFailed,
    PaymentSignal,
    TransitionOutcome,
    TransitionResult,
    WebhookAck,
)
from app.services.payment_gateway import StripeGateway

logger = logging.getLogger(__name__)


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


class PaymentEventProcessor:
    def __init__(
        self,
        gateway: Optional[StripeGateway] = None,
        trigger_fulfillment: Optional[Callable[[str], Any]] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.trigger_fulfillment = trigger_fulfillment
        self.now = now

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, db: Session, session_ref: str) -> Voucher:
        try:
            voucher = crud.voucher.get_by_session_ref(db, session_ref=session_ref)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Storage error resolving session {session_ref}: {str(e)}")
            raise TransientIO("Voucher store unavailable")
        if voucher is None:
            raise VoucherNotFound(f"No voucher for checkout session {session_ref}")
        return voucher

    def _result(self, voucher: Voucher, outcome: TransitionOutcome) -> TransitionResult:
        return TransitionResult(
            voucher_id=voucher.id,
            code=voucher.code,
            outcome=outcome,
            payment_status=_value(voucher.payment_status),
            status=_value(voucher.status),
        )

    def _trigger(self, voucher_id: str) -> None:
        if self.trigger_fulfillment is None:
            logger.warning(f"No fulfillment trigger configured, voucher {voucher_id} not fulfilled")
            return
        try:
            self.trigger_fulfillment(voucher_id)
        except Exception as e:
            # The payment transition is already committed; repair/replay picks this up
            logger.error(f"Failed to trigger fulfillment for voucher {voucher_id}: {str(e)}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def complete_payment(self, db: Session, session_ref: str, payment_ref: str) -> TransitionResult:
        """
        Mark the voucher bound to ``session_ref`` as paid.

        Returns TRANSITIONED for the one caller whose update changed the row
        (that caller also triggers fulfillment), ALREADY_COMPLETED for
        everyone else.
        """
        voucher = self._resolve(db, session_ref)

        try:
            changed = crud.voucher.mark_completed(
                db, voucher_id=voucher.id, payment_ref=payment_ref, paid_at=self.now()
            )
            db.refresh(voucher)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Storage error completing voucher {voucher.id}: {str(e)}")
            raise TransientIO("Voucher store unavailable")

        if not changed:
            logger.info(f"Voucher {voucher.code} already completed, nothing to do")
            return self._result(voucher, TransitionOutcome.ALREADY_COMPLETED)

        logger.info(f"✅ Voucher {voucher.code} payment completed ({payment_ref}), status active")
        self._trigger(voucher.id)
        return self._result(voucher, TransitionOutcome.TRANSITIONED)

    def fail_payment(self, db: Session, session_ref: str) -> TransitionResult:
        voucher = self._resolve(db, session_ref)

        try:
            changed = crud.voucher.mark_failed(db, voucher_id=voucher.id)
            db.refresh(voucher)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Storage error failing voucher {voucher.id}: {str(e)}")
            raise TransientIO("Voucher store unavailable")

        if voucher.payment_status == PaymentStatus.COMPLETED:
            # Late failure/expiry notice for a session that was paid after all
            logger.info(f"Ignoring failure notice for completed voucher {voucher.code}")
            return self._result(voucher, TransitionOutcome.ALREADY_COMPLETED)

        if changed:
            logger.info(f"Voucher {voucher.code} payment failed")
        return self._result(voucher, TransitionOutcome.PAYMENT_FAILED)

    def confirm_with_gateway(self, db: Session, session_ref: str) -> TransitionResult:
        """Synchronous fallback: ask the gateway instead of waiting for the webhook."""
        voucher = self._resolve(db, session_ref)
        if voucher.payment_status == PaymentStatus.COMPLETED:
            return self._result(voucher, TransitionOutcome.ALREADY_COMPLETED)

        if self.gateway is None:
            raise TransientIO("Payment gateway is not configured")
        session = self.gateway.retrieve_session(session_ref)
        if not session.paid:
            logger.info(f"Session {session_ref} not paid yet (payment_status={session.payment_status})")
            return self._result(voucher, TransitionOutcome.AWAITING_PAYMENT)

        return self.complete_payment(db, session_ref, session.payment_ref)

    def replay(self, db: Session, voucher_id: str) -> TransitionResult:
        """
        Manual replay of the payment confirmation for one voucher.

        A voucher that is already completed has its fulfillment re-run; the
        email flags make that a no-op for anything already delivered.
        """
        voucher = crud.voucher.get(db, voucher_id)
        if voucher is None:
            raise VoucherNotFound(f"Voucher {voucher_id} not found")
        if not voucher.external_session_ref:
            raise Unrepairable(f"Voucher {voucher.code} has no checkout session reference")

        result = self.confirm_with_gateway(db, voucher.external_session_ref)
        if result.outcome == TransitionOutcome.ALREADY_COMPLETED:
            self._trigger(result.voucher_id)
        return result

    # ------------------------------------------------------------------
    # Webhook entry point
    # ------------------------------------------------------------------

    def handle_signal(self, db: Session, signal: PaymentSignal) -> WebhookAck:
        if isinstance(signal, IgnoredEvent):
            logger.info(f"Ignoring gateway event {signal.event_id} ({signal.event_type}): {signal.reason}")
            self._record(db, signal, TransitionOutcome.IGNORED.value)
            return WebhookAck(event_id=signal.event_id, outcome=TransitionOutcome.IGNORED)

        try:
            if isinstance(signal, PaymentCompleted):
                result = self.complete_payment(db, signal.session_ref, signal.payment_ref)
            elif isinstance(signal, PaymentFailed):
                result = self.fail_payment(db, signal.session_ref)
            else:
                raise TypeError(f"Unsupported payment signal {type(signal).__name__}")
        except VoucherServiceError as e:
            self._record(db, signal, type(e).__name__, error=e.detail)
            raise

        self._record(db, signal, result.outcome.value)
        return WebhookAck(event_id=signal.event_id, outcome=result.outcome, voucher_id=result.voucher_id)

    def _record(self, db: Session, signal: PaymentSignal, outcome: str, error: str = None) -> None:
        try:
            crud.payment_event.record(
                db,
                event_id=signal.event_id,
                event_type=signal.event_type,
                session_ref=signal.session_ref,
                outcome=outcome,
                error=error,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Could not record gateway event {signal.event_id}: {str(e)}")
