from __future__ import annotations

import json
from typing import Any, Dict, Optional

import requests
from flask import current_app

# kind -> (subject template, recipient key in payload)
_TEMPLATES = {
    "order_receipt": ("Your order {order_number}", "customer_email"),
    "payee_earnings": ("You made a sale: {order_number}", "payee_email"),
    "payout_completed": ("Payout sent: {amount} {currency}", "payee_email"),
    "refund_processed": ("Refund for order {order_number}", "customer_email"),
}


class LogSink:
    """Writes notifications to the app log. Used when no email API key is set."""

    def send(self, kind: str, payload: Dict[str, Any]) -> None:
        current_app.logger.info("notify %s %s", kind, json.dumps(payload, default=str, sort_keys=True))


class EmailApiSink:
    def __init__(self, api_url: str, api_key: str, sender: str, timeout: float = 10):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, kind: str, payload: Dict[str, Any]) -> None:
        subject_tpl, recipient_key = _TEMPLATES.get(kind, (kind, "customer_email"))
        recipient = payload.get(recipient_key)
        if not recipient:
            current_app.logger.warning("notify %s skipped: no %s", kind, recipient_key)
            return
        try:
            subject = subject_tpl.format(**payload)
        except (KeyError, IndexError, ValueError):
            subject = kind.replace("_", " ")
        body = {
            "from": self.sender,
            "to": [recipient],
            "subject": subject,
            "text": json.dumps(payload, default=str, indent=2),
            "tags": [{"name": "kind", "value": kind}],
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        r = requests.post(self.api_url, headers=headers, json=body, timeout=self.timeout)
        if not (200 <= r.status_code < 300):
            raise RuntimeError(f"email API HTTP {r.status_code}")


def build_sink(config) -> Any:
    key = (config.get("NOTIFY_API_KEY") or "").strip()
    if not key:
        return LogSink()
    return EmailApiSink(
        api_url=config.get("NOTIFY_API_URL"),
        api_key=key,
        sender=config.get("NOTIFY_FROM"),
        timeout=float(config.get("NOTIFY_TIMEOUT_SECONDS") or 10),
    )


def get_sink():
    sink = current_app.extensions.get("settlement_notifier")
    if sink is None:
        sink = build_sink(current_app.config)
        current_app.extensions["settlement_notifier"] = sink
    return sink


def notify(kind: str, payload: Optional[Dict[str, Any]] = None) -> bool:
    """Best-effort delivery. Failures are logged and reported as False, never raised."""
    try:
        get_sink().send(kind, dict(payload or {}))
        return True
    except Exception as e:
        current_app.logger.error("notify %s failed: %s", kind, e)
        return False
