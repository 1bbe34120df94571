"""Sales ledger: idempotent append, reporting, historical backfill."""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal

from settlement.extensions import db
from settlement.models import AuditLog, LedgerEntry, Order
from settlement.jobs.ledger_backfill import backfill_ledger
from settlement.services.ledger import append_ledger_entry, calculate_ledger_totals, get_ledger_entries
from settlement.services.orders import build_order

D = Decimal


class TestAppend:
    def test_second_append_returns_existing(self, order_payload) -> None:
        order = build_order(order_payload()).order
        entry, created = append_ledger_entry(order)
        assert created is False
        assert entry.order_id == order.id
        assert LedgerEntry.query.count() == 1

    def test_historical_order_fees_are_estimated(self, make_paid_order) -> None:
        order = make_paid_order([{"type": "digital", "price": "20.00"}], processor_fees=None, platform_fees=None,
                                payee_payments=D("18.00"))
        entry, created = append_ledger_entry(order)
        assert created is True
        assert entry.fees_estimated is True
        assert entry.processor_fee == D("0.88")
        assert entry.platform_fee == D("0.18")
        assert entry.total_fees == D("1.06")
        assert entry.net_revenue == D("18.94")

    def test_snapshot_items(self, order_payload) -> None:
        order = build_order(order_payload()).order
        items = db.session.get(LedgerEntry, order.id).items
        assert [i["id"] for i in items] == ["rel-1", "rel-2"]
        assert items[0]["payee_id"] == "artist-a"


class TestReporting:
    def test_filters_and_totals(self, make_paid_order) -> None:
        jan = make_paid_order([{"type": "digital", "price": "10.00"}], created_at=datetime(2026, 1, 15))
        feb = make_paid_order([{"type": "digital", "price": "4.00"}], shipping="1.00", created_at=datetime(2026, 2, 3))
        append_ledger_entry(jan)
        append_ledger_entry(feb)

        assert [e.order_id for e in get_ledger_entries(year=2026, month=2)] == [feb.id]
        assert [e.order_id for e in get_ledger_entries(start=datetime(2026, 1, 1), end=datetime(2026, 1, 31))] == [jan.id]

        entries = get_ledger_entries(year=2026)
        assert [e.order_id for e in entries] == [feb.id, jan.id]
        totals = calculate_ledger_totals(entries)
        assert totals["orders"] == 2
        assert totals["gross_revenue"] == D("15.00")
        assert totals["shipping"] == D("1.00")
        assert totals["item_count"] == 2

    def test_empty_totals(self) -> None:
        totals = calculate_ledger_totals([])
        assert totals["orders"] == 0
        assert totals["net_revenue"] == D("0.00")


class TestBackfill:
    def _history(self, make_paid_order) -> dict[str, Order]:
        return {
            "plain": make_paid_order([{"type": "digital", "price": "12.00"}], processor_fees=None, platform_fees=None),
            "cancelled": make_paid_order([{"type": "digital", "price": "3.00"}], status="cancelled"),
            "test": make_paid_order([{"type": "digital", "price": "3.00"}], is_test=True),
            "test_mode": make_paid_order([{"type": "digital", "price": "3.00"}], payment_method="test_mode"),
        }

    def test_dry_run_writes_nothing(self, make_paid_order) -> None:
        self._history(make_paid_order)
        res = backfill_ledger(dry_run=True)
        assert res["created"] == 1
        assert res["skipped_cancelled"] == 1
        assert res["skipped_test"] == 2
        assert res["preview"][0]["migrated_from"] == "orders"
        assert LedgerEntry.query.count() == 0
        assert AuditLog.query.count() == 0

    def test_backfill_marks_provenance_and_leaves_orders_alone(self, make_paid_order) -> None:
        orders = self._history(make_paid_order)
        res = backfill_ledger()

        assert res["created"] == 1
        assert res["estimated"] == 1
        entry = db.session.get(LedgerEntry, orders["plain"].id)
        assert entry.migrated_from == "orders"
        assert entry.fees_estimated is True
        assert entry.migrated_at is not None
        assert db.session.get(Order, orders["plain"].id).processor_fees is None

        log = AuditLog.query.filter_by(action="ledger_backfill").one()
        assert json.loads(log.meta)["created"] == 1

    def test_rerun_skips_existing(self, make_paid_order) -> None:
        self._history(make_paid_order)
        backfill_ledger()
        res = backfill_ledger()
        assert res["created"] == 0
        assert res["skipped_existing"] == 1
        assert LedgerEntry.query.count() == 1
