"""
Tests for PaystackAdapter and its helpers.

requests.request is mocked; no traffic reaches Paystack.
"""

import hashlib
import hmac
import uuid
from unittest.mock import MagicMock

import pytest
import requests
from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings

from escrow.adapters import (
    IdempotencyKeyGenerator,
    InitializeTransactionParams,
    PaystackAdapter,
    backoff_delay,
    is_retryable_paystack_error,
)
from escrow.exceptions import (
    PaystackAPIUnavailableError,
    PaystackInvalidResponseError,
    PaystackTimeoutError,
    SignatureInvalidError,
)


def paystack_response(status_code=200, body=None, json_error=False):
    """Build a requests.Response stand-in for a Paystack answer."""
    response = MagicMock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = body if body is not None else {}
    return response


# =============================================================================
# Data Types
# =============================================================================


class TestInitializeTransactionParams:
    def test_payload(self, initialize_params):
        payload = initialize_params.to_payload()

        assert payload["amount"] == 10_160_000
        assert payload["currency"] == "NGN"
        assert payload["callback_url"].startswith("https://market.test/")
        assert payload["metadata"]["order_id"] == initialize_params.reference

    def test_callback_url_is_optional(self):
        params = InitializeTransactionParams(email="a@b.ng", amount_kobo=100, reference="r1")

        assert "callback_url" not in params.to_payload()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"email": "a@b.ng", "amount_kobo": 0, "reference": "r1"},
            {"email": "", "amount_kobo": 100, "reference": "r1"},
            {"email": "a@b.ng", "amount_kobo": 100, "reference": ""},
        ],
    )
    def test_invalid_params(self, kwargs):
        with pytest.raises(ValueError):
            InitializeTransactionParams(**kwargs)


class TestIdempotencyKeyGenerator:
    def test_format(self):
        order_id = uuid.uuid4()

        key = IdempotencyKeyGenerator.generate("initialize", order_id, attempt=2)

        operation, entity, attempt, digest = key.split(":")
        assert (operation, entity, attempt) == ("initialize", str(order_id), "2")
        assert len(digest) == 8

    def test_stable_per_attempt(self):
        assert IdempotencyKeyGenerator.generate("initialize", "o1") == IdempotencyKeyGenerator.generate(
            "initialize", "o1"
        )
        assert IdempotencyKeyGenerator.generate("initialize", "o1", 1) != IdempotencyKeyGenerator.generate(
            "initialize", "o1", 2
        )


class TestRetryHelpers:
    def test_retryable_errors(self):
        assert is_retryable_paystack_error(PaystackAPIUnavailableError("down"))
        assert is_retryable_paystack_error(PaystackTimeoutError("slow"))

    def test_non_retryable_errors(self):
        assert not is_retryable_paystack_error(PaystackInvalidResponseError("bad"))
        assert not is_retryable_paystack_error(ValueError("nope"))

    def test_backoff_grows_and_caps(self):
        assert 1.0 <= backoff_delay(0) <= 1.25
        assert 4.0 <= backoff_delay(2) <= 5.0
        assert backoff_delay(10, max_delay=8.0) <= 10.0


# =============================================================================
# Initialize
# =============================================================================


class TestInitializeTransaction:
    def test_success(self, mock_request, initialize_params):
        mock_request.return_value = paystack_response(
            body={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": "https://checkout.paystack.com/0peioxfhpn",
                    "access_code": "0peioxfhpn",
                    "reference": initialize_params.reference,
                },
            }
        )

        result = PaystackAdapter.initialize_transaction(initialize_params)

        assert result.authorization_url == "https://checkout.paystack.com/0peioxfhpn"
        assert result.access_code == "0peioxfhpn"
        args, kwargs = mock_request.call_args
        assert args == ("POST", "https://api.paystack.co/transaction/initialize")
        assert kwargs["headers"]["Authorization"] == "Bearer sk_test_escrow_suite"
        assert kwargs["json"]["amount"] == 10_160_000
        assert kwargs["timeout"] == 10.0

    def test_missing_authorization_url(self, mock_request, initialize_params):
        mock_request.return_value = paystack_response(body={"status": True, "data": {"access_code": "x"}})

        with pytest.raises(PaystackInvalidResponseError):
            PaystackAdapter.initialize_transaction(initialize_params)

    def test_rejected_request(self, mock_request, initialize_params):
        mock_request.return_value = paystack_response(
            status_code=400, body={"status": False, "message": "Invalid email"}
        )

        with pytest.raises(PaystackInvalidResponseError) as exc_info:
            PaystackAdapter.initialize_transaction(initialize_params)

        assert exc_info.value.paystack_message == "Invalid email"
        assert exc_info.value.status_code == 400

    def test_server_error_is_not_retried(self, mock_request, mock_sleep, initialize_params):
        mock_request.return_value = paystack_response(status_code=503, json_error=True)

        with pytest.raises(PaystackAPIUnavailableError):
            PaystackAdapter.initialize_transaction(initialize_params)

        assert mock_request.call_count == 1
        mock_sleep.assert_not_called()

    def test_timeout(self, mock_request, initialize_params):
        mock_request.side_effect = requests.Timeout("read timed out")

        with pytest.raises(PaystackTimeoutError):
            PaystackAdapter.initialize_transaction(initialize_params)

    def test_connection_error(self, mock_request, initialize_params):
        mock_request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(PaystackAPIUnavailableError):
            PaystackAdapter.initialize_transaction(initialize_params)

    @override_settings(PAYSTACK_SECRET_KEY="")
    def test_secret_required(self, mock_request, initialize_params):
        with pytest.raises(ImproperlyConfigured):
            PaystackAdapter.initialize_transaction(initialize_params)

        mock_request.assert_not_called()


# =============================================================================
# Verify
# =============================================================================


class TestVerifyTransaction:
    def test_success(self, mock_request, verify_success_body):
        mock_request.return_value = paystack_response(body=verify_success_body)

        result = PaystackAdapter.verify_transaction("ref_abc")

        assert result.is_successful
        assert result.amount_kobo == 10_160_000
        assert result.paid_at == "2026-10-18T10:15:00.000Z"
        assert mock_request.call_args.args == ("GET", "https://api.paystack.co/transaction/verify/ref_abc")

    def test_reference_is_url_quoted(self, mock_request, verify_success_body):
        mock_request.return_value = paystack_response(body=verify_success_body)

        PaystackAdapter.verify_transaction("ref/../x")

        assert mock_request.call_args.args[1].endswith("/transaction/verify/ref%2F..%2Fx")

    def test_abandoned_payment(self, mock_request, verify_success_body):
        verify_success_body["data"]["status"] = "abandoned"
        mock_request.return_value = paystack_response(body=verify_success_body)

        assert not PaystackAdapter.verify_transaction("ref_abc").is_successful

    def test_retries_transient_failures(self, mock_request, mock_sleep, verify_success_body):
        mock_request.side_effect = [
            paystack_response(status_code=502, json_error=True),
            requests.Timeout("slow"),
            paystack_response(body=verify_success_body),
        ]

        result = PaystackAdapter.verify_transaction("ref_abc")

        assert result.is_successful
        assert mock_request.call_count == 3
        assert mock_sleep.call_count == 2

    def test_gives_up_after_max_attempts(self, mock_request, mock_sleep):
        mock_request.return_value = paystack_response(status_code=500, json_error=True)

        with pytest.raises(PaystackAPIUnavailableError):
            PaystackAdapter.verify_transaction("ref_abc")

        assert mock_request.call_count == 3

    def test_rejection_is_not_retried(self, mock_request, mock_sleep):
        mock_request.return_value = paystack_response(
            status_code=404, body={"status": False, "message": "Transaction reference not found"}
        )

        with pytest.raises(PaystackInvalidResponseError):
            PaystackAdapter.verify_transaction("ref_missing")

        assert mock_request.call_count == 1
        mock_sleep.assert_not_called()

    def test_missing_data_object(self, mock_request):
        mock_request.return_value = paystack_response(body={"status": True, "data": None})

        with pytest.raises(PaystackInvalidResponseError):
            PaystackAdapter.verify_transaction("ref_abc")

    def test_non_numeric_amount(self, mock_request, verify_success_body):
        verify_success_body["data"]["amount"] = "lots"
        mock_request.return_value = paystack_response(body=verify_success_body)

        with pytest.raises(PaystackInvalidResponseError):
            PaystackAdapter.verify_transaction("ref_abc")


# =============================================================================
# Webhook Signatures
# =============================================================================


class TestWebhookSignature:
    body = b'{"event":"charge.success","data":{"reference":"ref_abc"}}'

    def test_signature_is_hmac_sha512(self):
        expected = hmac.new(b"sk_test_escrow_suite", self.body, hashlib.sha512).hexdigest()

        assert PaystackAdapter.compute_signature(self.body) == expected

    def test_valid_signature(self):
        PaystackAdapter.verify_webhook_signature(self.body, PaystackAdapter.compute_signature(self.body))

    @pytest.mark.parametrize("signature", [None, "", "deadbeef"])
    def test_invalid_signature(self, signature):
        with pytest.raises(SignatureInvalidError):
            PaystackAdapter.verify_webhook_signature(self.body, signature)

    def test_tampered_body(self):
        signature = PaystackAdapter.compute_signature(self.body)

        with pytest.raises(SignatureInvalidError):
            PaystackAdapter.verify_webhook_signature(self.body.replace(b"ref_abc", b"ref_xyz"), signature)

    @override_settings(PAYSTACK_SECRET_KEY="")
    def test_missing_secret(self):
        with pytest.raises(ImproperlyConfigured):
            PaystackAdapter.verify_webhook_signature(self.body, "anything")
