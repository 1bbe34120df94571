from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from settlement.errors import RailError

STRIPE_REFUND_REASONS = ("duplicate", "fraudulent", "requested_by_customer")


def _minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


class StripeRail:
    """Card-transfer rail: Connect transfers out, refunds back to the card."""

    name = "stripe"

    def __init__(self, secret_key: str, api_base: str = "https://api.stripe.com", timeout: float = 20):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, data: Dict[str, Any], idempotency_key: Optional[str] = None) -> dict:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        try:
            r = requests.post(f"{self.api_base}{path}", headers=headers, data=data, timeout=self.timeout)
        except requests.Timeout as e:
            raise RailError(f"Stripe timed out after {self.timeout}s", rail=self.name, timeout=True) from e
        except requests.RequestException as e:
            raise RailError(f"Stripe request failed: {e}", rail=self.name) from e

        try:
            j = r.json() if r.content else {}
        except ValueError:
            j = {}
        if 200 <= r.status_code < 300:
            return j
        err = (j.get("error") or {}) if isinstance(j, dict) else {}
        raise RailError(err.get("message") or f"Stripe HTTP {r.status_code}", rail=self.name, status=r.status_code)

    def transfer(
        self,
        amount: Decimal,
        currency: str,
        destination: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
        transfer_group: Optional[str] = None,
    ) -> str:
        data = {
            "amount": _minor_units(amount),
            "currency": currency.lower(),
            "destination": destination,
        }
        if transfer_group:
            data["transfer_group"] = transfer_group
        for k, v in (metadata or {}).items():
            data[f"metadata[{k}]"] = str(v)
        j = self._post("/v1/transfers", data, idempotency_key=idempotency_key)
        return str(j.get("id") or "")

    def refund(self, payment_reference: str, amount: Decimal, reason: str = "requested_by_customer", idempotency_key: Optional[str] = None) -> str:
        data = {
            "payment_intent": payment_reference,
            "amount": _minor_units(amount),
            "reason": reason if reason in STRIPE_REFUND_REASONS else "requested_by_customer",
        }
        j = self._post("/v1/refunds", data, idempotency_key=idempotency_key)
        status = j.get("status")
        if status in ("failed", "canceled"):
            raise RailError(f"Stripe refund {status}", rail=self.name)
        return str(j.get("id") or "")
