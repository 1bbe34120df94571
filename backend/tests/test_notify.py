"""Notification sinks and the best-effort notify() wrapper."""

from __future__ import annotations

from unittest import mock

import pytest
from flask import Flask

from settlement.utils.notify import EmailApiSink, LogSink, build_sink, notify


def _sink() -> EmailApiSink:
    return EmailApiSink("https://mail.example.com/emails", "key_1", "orders@example.com", timeout=4)


class TestEmailApiSink:
    def test_posts_to_recipient_with_subject(self, app: Flask) -> None:
        ok = mock.Mock(status_code=200)
        with mock.patch("settlement.utils.notify.requests.post", return_value=ok) as post:
            _sink().send("order_receipt", {"order_number": "FW-260101-AAAAAA", "customer_email": "buyer@example.com"})

        body = post.call_args.kwargs["json"]
        assert post.call_args.args[0] == "https://mail.example.com/emails"
        assert body["to"] == ["buyer@example.com"]
        assert body["subject"] == "Your order FW-260101-AAAAAA"
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer key_1"
        assert post.call_args.kwargs["timeout"] == 4

    def test_missing_recipient_is_skipped(self, app: Flask) -> None:
        with mock.patch("settlement.utils.notify.requests.post") as post:
            _sink().send("payout_completed", {"amount": "1.00", "currency": "GBP"})
        post.assert_not_called()

    def test_http_error_raises(self, app: Flask) -> None:
        with mock.patch("settlement.utils.notify.requests.post", return_value=mock.Mock(status_code=500)):
            with pytest.raises(RuntimeError):
                _sink().send("refund_processed", {"order_number": "X", "customer_email": "b@example.com"})


class TestNotify:
    def test_sink_failure_is_reported_not_raised(self, app: Flask) -> None:
        app.extensions["settlement_notifier"] = _sink()
        with mock.patch("settlement.utils.notify.requests.post", return_value=mock.Mock(status_code=503)):
            assert notify("order_receipt", {"order_number": "X", "customer_email": "b@example.com"}) is False

    def test_log_sink_delivers(self, app: Flask) -> None:
        app.extensions["settlement_notifier"] = LogSink()
        assert notify("payee_earnings", {"payee_id": "artist-a"}) is True

    def test_build_sink_picks_log_without_key(self) -> None:
        assert isinstance(build_sink({"NOTIFY_API_KEY": ""}), LogSink)
        assert isinstance(build_sink({"NOTIFY_API_KEY": "k", "NOTIFY_API_URL": "u", "NOTIFY_FROM": "f"}), EmailApiSink)
