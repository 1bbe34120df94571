"""HTTP adapters for the card-transfer and batch-payout rails, with requests mocked."""

from __future__ import annotations

from decimal import Decimal
from unittest import mock

import pytest
import requests

from settlement.errors import RailError
from settlement.rails import RailSet, build_rails
from settlement.rails.paypal_rail import SANDBOX_BASE, PayPalRail
from settlement.rails.stripe_rail import StripeRail


def _response(status: int, body: dict) -> mock.Mock:
    r = mock.Mock()
    r.status_code = status
    r.content = b"{}"
    r.json.return_value = body
    return r


class TestStripeRail:
    def test_transfer_posts_minor_units_with_idempotency_key(self) -> None:
        rail = StripeRail("sk_test_1", timeout=7)
        with mock.patch("settlement.rails.stripe_rail.requests.post", return_value=_response(200, {"id": "tr_9"})) as post:
            ref = rail.transfer(Decimal("8.63"), "GBP", "acct_1", idempotency_key="obligation-5",
                                metadata={"order_id": 3}, transfer_group="ORDER_3")

        assert ref == "tr_9"
        url = post.call_args.args[0]
        kwargs = post.call_args.kwargs
        assert url == "https://api.stripe.com/v1/transfers"
        assert kwargs["data"]["amount"] == 863
        assert kwargs["data"]["currency"] == "gbp"
        assert kwargs["data"]["metadata[order_id]"] == "3"
        assert kwargs["headers"]["Idempotency-Key"] == "obligation-5"
        assert kwargs["headers"]["Authorization"] == "Bearer sk_test_1"
        assert kwargs["timeout"] == 7

    def test_error_body_becomes_rail_error(self) -> None:
        rail = StripeRail("sk_test_1")
        body = {"error": {"message": "Insufficient funds in Stripe account"}}
        with mock.patch("settlement.rails.stripe_rail.requests.post", return_value=_response(400, body)):
            with pytest.raises(RailError, match="Insufficient funds") as exc:
                rail.transfer(Decimal("1.00"), "GBP", "acct_1", idempotency_key="obligation-1")
        assert exc.value.rail == "stripe"
        assert exc.value.timeout is False

    def test_timeout(self) -> None:
        rail = StripeRail("sk_test_1")
        with mock.patch("settlement.rails.stripe_rail.requests.post", side_effect=requests.Timeout()):
            with pytest.raises(RailError) as exc:
                rail.transfer(Decimal("1.00"), "GBP", "acct_1", idempotency_key="obligation-1")
        assert exc.value.timeout is True

    def test_refund_by_payment_intent(self) -> None:
        rail = StripeRail("sk_test_1")
        with mock.patch("settlement.rails.stripe_rail.requests.post", return_value=_response(200, {"id": "re_1", "status": "succeeded"})) as post:
            assert rail.refund("pi_1", Decimal("20.00"), reason="something else") == "re_1"
        data = post.call_args.kwargs["data"]
        assert data == {"payment_intent": "pi_1", "amount": 2000, "reason": "requested_by_customer"}

    def test_failed_refund_status(self) -> None:
        rail = StripeRail("sk_test_1")
        with mock.patch("settlement.rails.stripe_rail.requests.post", return_value=_response(200, {"id": "re_1", "status": "failed"})):
            with pytest.raises(RailError):
                rail.refund("pi_1", Decimal("1.00"))


class TestPayPalRail:
    def _rail(self) -> PayPalRail:
        return PayPalRail("client", "secret", sandbox=True, timeout=5)

    def test_payout_fetches_token_then_posts_batch(self) -> None:
        responses = [
            _response(200, {"access_token": "A21", "expires_in": 3600}),
            _response(201, {"batch_header": {"payout_batch_id": "BATCH-1", "batch_status": "PENDING"}}),
        ]
        with mock.patch("settlement.rails.paypal_rail.requests.request", side_effect=responses) as req:
            ref = self._rail().payout(Decimal("9.80"), "gbp", "artist@paypal.example", sender_batch_id="PO-4-1")

        assert ref == "BATCH-1"
        token_call, payout_call = req.call_args_list
        assert token_call.args == ("POST", f"{SANDBOX_BASE}/v1/oauth2/token")
        assert token_call.kwargs["auth"] == ("client", "secret")
        assert payout_call.args == ("POST", f"{SANDBOX_BASE}/v1/payments/payouts")
        body = payout_call.kwargs["json"]
        assert body["sender_batch_header"]["sender_batch_id"] == "PO-4-1"
        assert body["items"][0]["amount"] == {"value": "9.80", "currency": "GBP"}
        assert body["items"][0]["receiver"] == "artist@paypal.example"
        assert payout_call.kwargs["headers"]["Authorization"] == "Bearer A21"

    def test_token_is_reused(self) -> None:
        rail = self._rail()
        responses = [
            _response(200, {"access_token": "A21", "expires_in": 3600}),
            _response(201, {"batch_header": {"payout_batch_id": "B1"}}),
            _response(201, {"batch_header": {"payout_batch_id": "B2"}}),
        ]
        with mock.patch("settlement.rails.paypal_rail.requests.request", side_effect=responses) as req:
            rail.payout(Decimal("1.00"), "GBP", "a@x.com", sender_batch_id="PO-1-1")
            rail.payout(Decimal("1.00"), "GBP", "a@x.com", sender_batch_id="PO-2-1")
        assert req.call_count == 3

    def test_denied_batch(self) -> None:
        responses = [
            _response(200, {"access_token": "A21", "expires_in": 3600}),
            _response(201, {"batch_header": {"payout_batch_id": "B1", "batch_status": "DENIED"}}),
        ]
        with mock.patch("settlement.rails.paypal_rail.requests.request", side_effect=responses):
            with pytest.raises(RailError, match="DENIED"):
                self._rail().payout(Decimal("1.00"), "GBP", "a@x.com", sender_batch_id="PO-1-1")

    def test_auth_failure(self) -> None:
        with mock.patch("settlement.rails.paypal_rail.requests.request",
                        return_value=_response(401, {"error_description": "Client Authentication failed"})):
            with pytest.raises(RailError, match="Client Authentication failed"):
                self._rail().payout(Decimal("1.00"), "GBP", "a@x.com", sender_batch_id="PO-1-1")

    def test_capture_refund(self) -> None:
        responses = [
            _response(200, {"access_token": "A21", "expires_in": 3600}),
            _response(201, {"id": "RF-1", "status": "COMPLETED"}),
        ]
        with mock.patch("settlement.rails.paypal_rail.requests.request", side_effect=responses) as req:
            assert self._rail().refund("CAP-1", Decimal("5.5"), "GBP", request_id="refund-1-1") == "RF-1"
        refund_call = req.call_args_list[1]
        assert refund_call.args[1].endswith("/v2/payments/captures/CAP-1/refund")
        assert refund_call.kwargs["json"] == {"amount": {"value": "5.50", "currency_code": "GBP"}}
        assert refund_call.kwargs["headers"]["PayPal-Request-Id"] == "refund-1-1"


class TestBuildRails:
    def test_nothing_configured(self) -> None:
        rails = build_rails({"STRIPE_SECRET_KEY": "", "PAYPAL_CLIENT_ID": "", "PAYPAL_CLIENT_SECRET": ""})
        assert rails.any() is False
        assert rails.availability() == {"stripe": False, "paypal": False}

    def test_both_configured(self) -> None:
        rails = build_rails({"STRIPE_SECRET_KEY": "sk", "PAYPAL_CLIENT_ID": "id", "PAYPAL_CLIENT_SECRET": "s", "RAIL_TIMEOUT_SECONDS": 3})
        assert isinstance(rails.card, StripeRail)
        assert isinstance(rails.batch, PayPalRail)
        assert rails.card.timeout == 3.0
        assert rails.get("paypal") is rails.batch
        assert RailSet().get("stripe") is None
