import pytest

from app.core.exceptions import InvalidPaymentSignal
from app.schemas.payment_event import (
    IgnoredEvent,
    PaymentCompleted,
    PaymentFailed,
    decode_gateway_event,
)


def checkout_event(event_type="checkout.session.completed", **session):
    obj = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "payment_intent": "pi_1",
        "payment_status": "paid",
        "metadata": {"type": "voucher_purchase"},
    }
    obj.update(session)
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


class TestDecodeGatewayEvent:

    def test_completed_session(self):
        signal = decode_gateway_event(checkout_event())
        assert isinstance(signal, PaymentCompleted)
        assert signal.session_ref == "cs_test_1"
        assert signal.payment_ref == "pi_1"
        assert signal.event_id == "evt_1"

    def test_expanded_payment_intent(self):
        signal = decode_gateway_event(checkout_event(payment_intent={"id": "pi_expanded", "object": "payment_intent"}))
        assert isinstance(signal, PaymentCompleted)
        assert signal.payment_ref == "pi_expanded"

    def test_async_payment_succeeded(self):
        signal = decode_gateway_event(checkout_event("checkout.session.async_payment_succeeded"))
        assert isinstance(signal, PaymentCompleted)

    @pytest.mark.parametrize("event_type", ["checkout.session.async_payment_failed", "checkout.session.expired"])
    def test_failure_events(self, event_type):
        signal = decode_gateway_event(checkout_event(event_type, payment_intent=None, payment_status="unpaid"))
        assert isinstance(signal, PaymentFailed)
        assert signal.session_ref == "cs_test_1"

    def test_unhandled_event_type_is_ignored(self):
        signal = decode_gateway_event({"id": "evt_2", "type": "customer.created", "data": {"object": {"id": "cus_1"}}})
        assert isinstance(signal, IgnoredEvent)
        assert signal.reason == "unhandled event type"

    def test_other_purchase_type_is_ignored(self):
        signal = decode_gateway_event(checkout_event(metadata={"type": "booking"}))
        assert isinstance(signal, IgnoredEvent)
        assert signal.session_ref == "cs_test_1"

    def test_missing_metadata_is_treated_as_voucher(self):
        signal = decode_gateway_event(checkout_event(metadata=None))
        assert isinstance(signal, PaymentCompleted)

    def test_unpaid_completed_session_is_ignored(self):
        signal = decode_gateway_event(checkout_event(payment_status="unpaid"))
        assert isinstance(signal, IgnoredEvent)

    def test_completed_without_payment_reference_is_rejected(self):
        with pytest.raises(InvalidPaymentSignal):
            decode_gateway_event(checkout_event(payment_intent=None))

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"id": "evt_1"},
            {"id": "evt_1", "type": "checkout.session.completed"},
            {"id": "", "type": "checkout.session.completed", "data": {"object": {}}},
        ],
    )
    def test_malformed_envelope_is_rejected(self, payload):
        with pytest.raises(InvalidPaymentSignal):
            decode_gateway_event(payload)

    def test_session_without_id_is_rejected(self):
        payload = {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {"payment_status": "paid"}}}
        with pytest.raises(InvalidPaymentSignal):
            decode_gateway_event(payload)
