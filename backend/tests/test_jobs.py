"""Reconciler and CLI wrappers."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

from settlement.extensions import db
from settlement.jobs.payout_retrier import run_payout_retries
from settlement.jobs.settlement_reconciler import reconcile_settlements
from settlement.models import AuditLog, LedgerEntry, PayeeObligation
from settlement.services.refunds import refund_order


class TestReconcileSettlements:
    def test_finishes_interrupted_settlement(self, make_paid_order) -> None:
        order = make_paid_order([
            {"type": "digital", "product_id": "r1", "price": "6.00", "payee_id": "artist-a", "payee_share": "6.00"},
            {"type": "digital", "product_id": "r2", "price": "2.00", "payee_id": "artist-b", "payee_share": "2.00"},
        ])
        res = reconcile_settlements()

        assert res["obligations_created"] == 2
        assert res["ledger_created"] == 1
        assert db.session.get(LedgerEntry, order.id) is not None
        assert AuditLog.query.filter_by(action="obligations_rebuilt", target_id=order.id).count() == 1

        again = reconcile_settlements()
        assert again["obligations_created"] == 0
        assert again["ledger_created"] == 0

    def test_reports_stuck_processing_without_touching_it(self, make_paid_order) -> None:
        order = make_paid_order([{"type": "digital", "price": "5.00", "payee_id": "artist-a", "payee_share": "5.00"}])
        ob = PayeeObligation(order_id=order.id, payee_id="artist-a", amount=5, status="processing",
                             updated_at=datetime.utcnow() - timedelta(hours=2))
        db.session.add(ob)
        db.session.commit()

        res = reconcile_settlements()
        assert res["stuck_processing"] == 1
        assert res["stuck"] == [ob.id]
        assert db.session.get(PayeeObligation, ob.id).status == "processing"
        log = AuditLog.query.filter_by(action="obligation_stuck").one()
        assert json.loads(log.meta)["payee_id"] == "artist-a"

    def test_fully_refunded_order_gets_no_obligations(self, make_paid_order, card_rail) -> None:
        order = make_paid_order([{"type": "digital", "price": "19.00", "payee_id": "artist-a", "payee_share": "19.00"}])
        assert refund_order(order.id).order.refund_status == "full"

        res = reconcile_settlements()
        assert res["obligations_created"] == 0
        assert PayeeObligation.query.filter_by(order_id=order.id).count() == 0
        assert run_payout_retries()["checked"] == 0
        assert card_rail.transfers == []

    def test_skips_test_orders(self, make_paid_order) -> None:
        make_paid_order([{"type": "digital", "price": "5.00", "payee_id": "artist-a", "payee_share": "5.00"}], is_test=True)
        assert reconcile_settlements()["obligations_created"] == 0


class TestCli:
    def test_retry_payouts_command(self, app) -> None:
        result = app.test_cli_runner().invoke(args=["retry-payouts", "--limit", "5"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["checked"] == 0

    def test_backfill_ledger_dry_run(self, app, make_paid_order) -> None:
        make_paid_order([{"type": "digital", "price": "10.00"}])
        result = app.test_cli_runner().invoke(args=["backfill-ledger", "--dry-run"])
        assert result.exit_code == 0
        out = json.loads(result.stdout)
        assert out["dry_run"] is True
        assert out["created"] == 1
        assert LedgerEntry.query.count() == 0

    def test_reconcile_command(self, app) -> None:
        result = app.test_cli_runner().invoke(args=["reconcile-settlements"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["checked"] == 0
