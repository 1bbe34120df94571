from __future__ import annotations

import time
from decimal import Decimal
from typing import Optional

import requests

from settlement.errors import RailError

LIVE_BASE = "https://api-m.paypal.com"
SANDBOX_BASE = "https://api-m.sandbox.paypal.com"


class PayPalRail:
    """Batch-payout rail. Also refunds PayPal captures."""

    name = "paypal"

    def __init__(self, client_id: str, client_secret: str, sandbox: bool = False, timeout: float = 20):
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_base = SANDBOX_BASE if sandbox else LIVE_BASE
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return requests.request(method, f"{self.api_base}{path}", timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise RailError(f"PayPal timed out after {self.timeout}s", rail=self.name, timeout=True) from e
        except requests.RequestException as e:
            raise RailError(f"PayPal request failed: {e}", rail=self.name) from e

    @staticmethod
    def _json(r: requests.Response) -> dict:
        try:
            return r.json() if r.content else {}
        except ValueError:
            return {}

    def access_token(self) -> str:
        # refresh a minute early
        if self._token and time.time() < self._token_expires_at - 60:
            return self._token
        r = self._request(
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        j = self._json(r)
        if not (200 <= r.status_code < 300) or not j.get("access_token"):
            raise RailError(j.get("error_description") or f"PayPal auth HTTP {r.status_code}", rail=self.name)
        self._token = j["access_token"]
        self._token_expires_at = time.time() + int(j.get("expires_in") or 0)
        return self._token

    def _post(self, path: str, body: dict, request_id: Optional[str] = None) -> dict:
        headers = {"Authorization": f"Bearer {self.access_token()}", "Content-Type": "application/json"}
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        r = self._request("POST", path, json=body, headers=headers)
        j = self._json(r)
        if 200 <= r.status_code < 300:
            return j
        raise RailError(j.get("message") or f"PayPal HTTP {r.status_code}", rail=self.name, status=r.status_code)

    def payout(self, amount: Decimal, currency: str, receiver_email: str, sender_batch_id: str, note: str = "") -> str:
        body = {
            "sender_batch_header": {
                "sender_batch_id": sender_batch_id,
                "email_subject": "You have received a payout",
                "email_message": note or "Payout for your sales",
            },
            "items": [
                {
                    "recipient_type": "EMAIL",
                    "amount": {"value": f"{Decimal(amount):.2f}", "currency": currency.upper()},
                    "receiver": receiver_email,
                    "note": note,
                    "sender_item_id": sender_batch_id,
                }
            ],
        }
        j = self._post("/v1/payments/payouts", body)
        header = j.get("batch_header") or {}
        if (header.get("batch_status") or "").upper() in ("DENIED", "CANCELED"):
            raise RailError(f"PayPal payout batch {header.get('batch_status')}", rail=self.name)
        return str(header.get("payout_batch_id") or "")

    def refund(self, capture_id: str, amount: Decimal, currency: str, request_id: Optional[str] = None) -> str:
        body = {"amount": {"value": f"{Decimal(amount):.2f}", "currency_code": currency.upper()}}
        j = self._post(f"/v2/payments/captures/{capture_id}/refund", body, request_id=request_id)
        if (j.get("status") or "").upper() in ("FAILED", "CANCELLED"):
            raise RailError(f"PayPal refund {j.get('status')}", rail=self.name)
        return str(j.get("id") or "")
