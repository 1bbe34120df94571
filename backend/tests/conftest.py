"""Shared fixtures for the settlement engine tests.

Every test gets a fresh app on in-memory SQLite, fake payment rails that
record what they were asked to do, and a notification sink that records
instead of sending.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import datetime
from decimal import Decimal
from typing import Any

import pytest
from flask import Flask

from settlement import create_app
from settlement.config import TestConfig
from settlement.extensions import db
from settlement.models import Order, OrderItem, Payee, StockLevel
from settlement.rails import RailSet
from settlement.utils.jwt_utils import create_access_token


class FakeCardRail:
    """Stands in for StripeRail. ``on_call`` runs once, mid-call, to simulate a
    concurrent request arriving while the rail is busy."""

    name = "stripe"

    def __init__(self) -> None:
        self.transfers: list[dict[str, Any]] = []
        self.refunds: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None
        self.on_call: Callable[[], None] | None = None

    def _enter(self) -> None:
        hook, self.on_call = self.on_call, None
        if hook is not None:
            hook()
        if self.fail_with is not None:
            raise self.fail_with

    def transfer(self, amount, currency, destination, idempotency_key, metadata=None, transfer_group=None):
        self._enter()
        self.transfers.append({
            "amount": Decimal(amount),
            "currency": currency,
            "destination": destination,
            "idempotency_key": idempotency_key,
            "transfer_group": transfer_group,
        })
        return f"tr_{len(self.transfers)}"

    def refund(self, payment_reference, amount, reason="requested_by_customer", idempotency_key=None):
        self._enter()
        self.refunds.append({"payment_reference": payment_reference, "amount": Decimal(amount), "reason": reason})
        return f"re_{len(self.refunds)}"


class FakeBatchRail:
    name = "paypal"

    def __init__(self) -> None:
        self.payouts: list[dict[str, Any]] = []
        self.refunds: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None
        self.sender_batch_ids: list[str] = []

    def payout(self, amount, currency, receiver_email, sender_batch_id, note=""):
        self.sender_batch_ids.append(sender_batch_id)
        if self.fail_with is not None:
            raise self.fail_with
        self.payouts.append({
            "amount": Decimal(amount),
            "currency": currency,
            "receiver": receiver_email,
            "sender_batch_id": sender_batch_id,
        })
        return f"BATCH-{len(self.payouts)}"

    def refund(self, capture_id, amount, currency, request_id=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.refunds.append({"capture_id": capture_id, "amount": Decimal(amount), "currency": currency})
        return f"PPR-{len(self.refunds)}"


class RecordingSink:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    def send(self, kind: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("email API down")
        self.sent.append((kind, payload))

    def kinds(self) -> list[str]:
        return [k for k, _ in self.sent]


@pytest.fixture
def app() -> Generator[Flask, None, None]:
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app: Flask):
    return app.test_client()


@pytest.fixture
def card_rail() -> FakeCardRail:
    return FakeCardRail()


@pytest.fixture
def batch_rail() -> FakeBatchRail:
    return FakeBatchRail()


@pytest.fixture(autouse=True)
def rails(app: Flask, card_rail: FakeCardRail, batch_rail: FakeBatchRail) -> RailSet:
    rail_set = RailSet(card=card_rail, batch=batch_rail)
    app.extensions["settlement_rails"] = rail_set
    return rail_set


@pytest.fixture(autouse=True)
def sink(app: Flask) -> RecordingSink:
    recorder = RecordingSink()
    app.extensions["settlement_notifier"] = recorder
    return recorder


@pytest.fixture
def admin_headers(app: Flask) -> dict[str, str]:
    token = create_access_token("ops@example.com", role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_payee() -> Callable[..., Payee]:
    def _make(payee_id: str, **kw: Any) -> Payee:
        payee = Payee(
            payee_id=payee_id,
            payee_type=kw.pop("payee_type", "artist"),
            email=kw.pop("email", f"{payee_id}@example.com"),
            **kw,
        )
        db.session.add(payee)
        db.session.commit()
        return payee

    return _make


@pytest.fixture
def stripe_payee(make_payee) -> Payee:
    return make_payee("artist-a", stripe_connect_id="acct_123", stripe_connect_status="active")


@pytest.fixture
def order_payload() -> Callable[..., dict[str, Any]]:
    def _payload(items: list[dict[str, Any]] | None = None, **overrides: Any) -> dict[str, Any]:
        body = {
            "customer": {"email": "Buyer@Example.com", "firstName": "Sam", "lastName": "Reed"},
            "items": items if items is not None else [
                {"type": "digital", "releaseId": "rel-1", "title": "Rollers EP", "artistId": "artist-a", "pricePerSale": "10.00"},
                {"type": "track", "releaseId": "rel-2", "title": "Dubplate", "artistId": "artist-b", "price": "5.00"},
            ],
            "paymentMethod": "stripe",
            "paymentIntentId": "pi_test_1",
        }
        body.update(overrides)
        return body

    return _payload


@pytest.fixture
def make_paid_order() -> Callable[..., Order]:
    """Insert a paid order with exact totals, bypassing the fee calculator."""

    def _make(
        items: list[dict[str, Any]],
        shipping: str = "0.00",
        payment_method: str = "stripe",
        payment_reference: str | None = "pi_paid_1",
        **kw: Any,
    ) -> Order:
        rows = []
        subtotal = Decimal("0.00")
        for it in items:
            qty = int(it.get("quantity", 1))
            line = Decimal(it["price"]) * qty
            subtotal += line
            rows.append(OrderItem(
                type=it.get("type", "vinyl"),
                product_id=it.get("product_id"),
                title=it.get("title", "Item"),
                payee_id=it.get("payee_id"),
                payee_type=it.get("payee_type", "artist" if it.get("payee_id") else None),
                unit_price=Decimal(it["price"]),
                quantity=qty,
                customer_price=line,
                payee_share=Decimal(it.get("payee_share", "0.00")),
            ))
        order = Order(
            order_number=kw.pop("order_number", f"FW-260101-{len(Order.query.all()) + 1:06d}"),
            customer_email=kw.pop("customer_email", "buyer@example.com"),
            customer_first_name="Sam",
            customer_last_name="Reed",
            subtotal=subtotal,
            shipping=Decimal(shipping),
            processor_fees=kw.pop("processor_fees", Decimal("0.00")),
            platform_fees=kw.pop("platform_fees", Decimal("0.00")),
            payee_payments=kw.pop("payee_payments", Decimal("0.00")),
            payment_method=payment_method,
            payment_reference=payment_reference,
            status=kw.pop("status", "processing"),
            created_at=kw.pop("created_at", datetime.utcnow()),
            **kw,
        )
        order.items = rows
        db.session.add(order)
        db.session.commit()
        return order

    return _make


@pytest.fixture
def stock() -> Callable[[str, int], StockLevel]:
    def _stock(product_id: str, on_hand: int, sold: int = 0) -> StockLevel:
        level = StockLevel(product_id=product_id, on_hand=on_hand, sold=sold)
        db.session.add(level)
        db.session.commit()
        return level

    return _stock
