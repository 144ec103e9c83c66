import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
import stripe

from app.core.exceptions import InvalidPaymentSignal, TransientIO, VoucherNotFound
from app.services.payment_gateway import StripeGateway

SECRET = "whsec_gateway_test"


def signed(payload: str, secret: str = SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def stripe_gateway():
    return StripeGateway(api_key="sk_test_123", webhook_secret=SECRET, tolerance=300, timeout=2)


class TestVerifyAndParse:

    def test_valid_signature_returns_event(self, stripe_gateway):
        payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed"})

        event = stripe_gateway.verify_and_parse(payload.encode(), signed(payload))

        assert event["id"] == "evt_1"

    def test_tampered_body_is_rejected(self, stripe_gateway):
        payload = json.dumps({"id": "evt_1"})
        header = signed(payload)

        with pytest.raises(InvalidPaymentSignal):
            stripe_gateway.verify_and_parse(json.dumps({"id": "evt_2"}).encode(), header)

    def test_missing_secret_rejects_everything(self):
        gateway = StripeGateway(api_key="sk_test_123", webhook_secret=None)
        payload = json.dumps({"id": "evt_1"})

        with pytest.raises(InvalidPaymentSignal):
            gateway.verify_and_parse(payload.encode(), signed(payload))

    def test_non_json_body_is_rejected(self, stripe_gateway):
        payload = "not json"
        with pytest.raises(InvalidPaymentSignal):
            stripe_gateway.verify_and_parse(payload.encode(), signed(payload))


class TestRetrieveSession:

    def test_paid_session(self, stripe_gateway):
        session = {"id": "cs_1", "payment_status": "paid", "payment_intent": "pi_1"}
        with patch("app.services.payment_gateway.stripe.checkout.Session.retrieve", return_value=session) as retrieve:
            result = stripe_gateway.retrieve_session("cs_1")

        retrieve.assert_called_once_with("cs_1", api_key="sk_test_123")
        assert result.paid
        assert result.payment_ref == "pi_1"

    def test_expanded_payment_intent(self, stripe_gateway):
        session = {"id": "cs_1", "payment_status": "paid", "payment_intent": {"id": "pi_2"}}
        with patch("app.services.payment_gateway.stripe.checkout.Session.retrieve", return_value=session):
            assert stripe_gateway.retrieve_session("cs_1").payment_ref == "pi_2"

    def test_unpaid_session(self, stripe_gateway):
        session = {"id": "cs_1", "payment_status": "unpaid", "payment_intent": None}
        with patch("app.services.payment_gateway.stripe.checkout.Session.retrieve", return_value=session):
            assert not stripe_gateway.retrieve_session("cs_1").paid

    def test_api_error_is_transient(self, stripe_gateway):
        error = stripe.APIConnectionError("network down")
        with patch("app.services.payment_gateway.stripe.checkout.Session.retrieve", side_effect=error):
            with pytest.raises(TransientIO):
                stripe_gateway.retrieve_session("cs_1")

    def test_unknown_session_is_not_found(self, stripe_gateway):
        error = stripe.InvalidRequestError("No such checkout.session: cs_x", "id")
        with patch("app.services.payment_gateway.stripe.checkout.Session.retrieve", side_effect=error):
            with pytest.raises(VoucherNotFound):
                stripe_gateway.retrieve_session("cs_x")

    def test_unconfigured_gateway_is_transient(self):
        gateway = StripeGateway(api_key=None, webhook_secret=SECRET)
        with pytest.raises(TransientIO):
            gateway.retrieve_session("cs_1")
