"""Payment rails and the per-app registry of which ones are configured."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from flask import current_app

from settlement.rails.paypal_rail import PayPalRail
from settlement.rails.stripe_rail import StripeRail


@dataclass
class RailSet:
    card: Optional[Any] = None   # StripeRail-compatible
    batch: Optional[Any] = None  # PayPalRail-compatible

    def availability(self) -> dict:
        return {"stripe": self.card is not None, "paypal": self.batch is not None}

    def any(self) -> bool:
        return self.card is not None or self.batch is not None

    def get(self, name: str):
        if name == "stripe":
            return self.card
        if name == "paypal":
            return self.batch
        return None


def build_rails(config) -> RailSet:
    timeout = float(config.get("RAIL_TIMEOUT_SECONDS") or 20)
    card = None
    batch = None
    if config.get("STRIPE_SECRET_KEY"):
        card = StripeRail(config["STRIPE_SECRET_KEY"], config.get("STRIPE_API_BASE") or "https://api.stripe.com", timeout=timeout)
    if config.get("PAYPAL_CLIENT_ID") and config.get("PAYPAL_CLIENT_SECRET"):
        batch = PayPalRail(
            config["PAYPAL_CLIENT_ID"],
            config["PAYPAL_CLIENT_SECRET"],
            sandbox=bool(config.get("PAYPAL_SANDBOX")),
            timeout=timeout,
        )
    return RailSet(card=card, batch=batch)


def get_rails() -> RailSet:
    rails = current_app.extensions.get("settlement_rails")
    if rails is None:
        rails = build_rails(current_app.config)
        current_app.extensions["settlement_rails"] = rails
    return rails
