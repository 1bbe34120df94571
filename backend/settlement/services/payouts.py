"""Payout dispatcher.

An obligation moves through its states by conditional UPDATEs keyed on the
status that was read, so two dispatchers racing on one obligation cannot
both reach the rail.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from flask import current_app

from settlement.errors import ConfigurationError, NotFoundError, RailError, ValidationError
from settlement.extensions import db
from settlement.models import Payee, PayeeObligation, Payout
from settlement.models.obligation import DISPATCHABLE_STATUSES, TERMINAL_STATUSES
from settlement.rails import get_rails
from settlement.services.payees import get_payee, increment_earnings
from settlement.utils.fees import ZERO, FeeSchedule, batch_payout_fee, money
from settlement.utils.notify import notify

OUTCOMES = ("completed", "failed", "cleared", "awaiting_connect", "in_flight")


@dataclass
class DispatchOutcome:
    obligation: PayeeObligation
    outcome: str
    payout: Optional[Payout] = None

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "obligation": self.obligation.to_dict(),
            "payout": self.payout.to_dict() if self.payout is not None else None,
        }


def select_rail(payee: Payee, availability: dict) -> Optional[str]:
    """Pick the rail for a payee: their stated preference if it can be used,
    otherwise card transfer, otherwise batch payout."""
    usable = {
        "stripe": bool(availability.get("stripe")) and payee.stripe_ready,
        "paypal": bool(availability.get("paypal")) and payee.paypal_ready,
    }
    preferred = (payee.payout_method or "").strip().lower()
    if preferred in usable and usable[preferred]:
        return preferred
    if usable["stripe"]:
        return "stripe"
    if usable["paypal"]:
        return "paypal"
    return None


def _transition(obligation_id: int, from_status: str, values: dict) -> bool:
    values = dict(values)
    values.setdefault(PayeeObligation.updated_at, datetime.utcnow())
    updated = db.session.query(PayeeObligation).filter(
        PayeeObligation.id == int(obligation_id),
        PayeeObligation.status == from_status,
    ).update(values, synchronize_session=False)
    return updated == 1


def _batch_sequence(obligation_id: int) -> int:
    """Suffix for the batch rail's sender_batch_id. Only a definite rejection
    moves it on: after a timeout the batch may exist, so the retry reuses the id
    and the rail deduplicates it."""
    rejected = Payout.query.filter(
        Payout.obligation_id == int(obligation_id),
        Payout.method == "paypal",
        Payout.status == "failed",
        Payout.timed_out.is_(False),
    ).count()
    return rejected + 1


def get_obligation(obligation_id: int) -> PayeeObligation:
    ob = db.session.get(PayeeObligation, int(obligation_id), populate_existing=True)
    if ob is None:
        raise NotFoundError(f"Obligation {obligation_id} not found", obligation_id=obligation_id)
    return ob


def dispatch(obligation_id: int) -> DispatchOutcome:
    """Try to pay one obligation. Rail failures land in the obligation's
    state, never in an exception."""
    ob = get_obligation(obligation_id)
    if ob.status in TERMINAL_STATUSES:
        raise ValidationError(f"Obligation {ob.id} is already {ob.status}", obligation_id=int(ob.id), status=ob.status)
    if ob.status not in DISPATCHABLE_STATUSES:
        current_app.logger.info("obligation %s is %s, leaving it to the current dispatcher", ob.id, ob.status)
        return DispatchOutcome(ob, "in_flight")

    read_status = ob.status
    amount = money(ob.amount)

    if amount <= ZERO:
        now = datetime.utcnow()
        if not _transition(ob.id, read_status, {PayeeObligation.status: "cleared", PayeeObligation.completed_at: now}):
            db.session.rollback()
            return DispatchOutcome(get_obligation(obligation_id), "in_flight")
        db.session.commit()
        current_app.logger.info("obligation %s cleared: nothing to pay", ob.id)
        return DispatchOutcome(get_obligation(obligation_id), "cleared")

    payee = get_payee(ob.payee_id)
    rails = get_rails()
    if not rails.any():
        raise ConfigurationError("No payout rail is configured")

    method = select_rail(payee, rails.availability())
    if method is None:
        if read_status != "awaiting_connect":
            if not _transition(ob.id, read_status, {
                PayeeObligation.status: "awaiting_connect",
                PayeeObligation.failure_reason: "Payee has no usable payout method",
            }):
                db.session.rollback()
                return DispatchOutcome(get_obligation(obligation_id), "in_flight")
            db.session.commit()
        current_app.logger.warning("obligation %s awaiting payout setup for %s", ob.id, payee.payee_id)
        return DispatchOutcome(get_obligation(obligation_id), "awaiting_connect")

    if not _transition(ob.id, read_status, {PayeeObligation.status: "processing", PayeeObligation.payout_method: method}):
        db.session.rollback()
        current_app.logger.info("obligation %s already claimed by another dispatcher", ob.id)
        return DispatchOutcome(get_obligation(obligation_id), "in_flight")
    db.session.commit()

    return _execute(ob.id, payee, method, amount, ob.currency or "GBP", int(ob.order_id))


def _execute(obligation_id: int, payee: Payee, method: str, amount: Decimal, currency: str, order_id: int) -> DispatchOutcome:
    rails = get_rails()
    fees = FeeSchedule.from_config(current_app.config)
    rail_fee, net = ZERO, amount
    if method == "paypal":
        rail_fee, net = batch_payout_fee(amount, fees)

    try:
        if method == "stripe":
            ref = rails.card.transfer(
                amount,
                currency,
                payee.stripe_connect_id,
                idempotency_key=f"obligation-{obligation_id}",
                metadata={"obligation_id": obligation_id, "order_id": order_id, "payee_id": payee.payee_id},
                transfer_group=f"ORDER_{order_id}",
            )
        else:
            ref = rails.batch.payout(
                net,
                currency,
                payee.paypal_email,
                sender_batch_id=f"PO-{obligation_id}-{_batch_sequence(obligation_id)}",
                note=f"Payout for order {order_id}",
            )
    except RailError as e:
        reason = (e.message or "rail error")[:500]
        payout = Payout(
            obligation_id=obligation_id, payee_id=payee.payee_id, order_id=order_id,
            gross_amount=amount, rail_fee=rail_fee, amount=net, currency=currency,
            method=method, status="failed", failure_reason=reason, timed_out=bool(e.timeout),
        )
        db.session.add(payout)
        _transition(obligation_id, "processing", {
            PayeeObligation.status: "retry_pending",
            PayeeObligation.failure_reason: reason,
            PayeeObligation.attempts: PayeeObligation.attempts + 1,
        })
        db.session.commit()
        current_app.logger.error("payout for obligation %s via %s failed: %s", obligation_id, method, reason)
        return DispatchOutcome(get_obligation(obligation_id), "failed", payout)

    now = datetime.utcnow()
    payout = Payout(
        obligation_id=obligation_id, payee_id=payee.payee_id, order_id=order_id,
        gross_amount=amount, rail_fee=rail_fee, amount=net, currency=currency,
        method=method, external_ref=ref or None, status="completed", created_at=now,
    )
    db.session.add(payout)
    _transition(obligation_id, "processing", {
        PayeeObligation.status: "completed",
        PayeeObligation.external_ref: ref or None,
        PayeeObligation.failure_reason: None,
        PayeeObligation.completed_at: now,
    })
    increment_earnings(payee.payee_id, net)
    db.session.commit()
    current_app.logger.info("paid %s %s to %s via %s (obligation %s, ref %s)", net, currency, payee.payee_id, method, obligation_id, ref)

    notify("payout_completed", {
        "payee_id": payee.payee_id,
        "payee_email": payee.email,
        "amount": f"{net:.2f}",
        "currency": currency,
        "method": method,
        "order_id": order_id,
    })
    return DispatchOutcome(get_obligation(obligation_id), "completed", payout)


def list_obligations(status: Optional[str] = None, payee_id: Optional[str] = None, limit: int = 200) -> list[PayeeObligation]:
    q = PayeeObligation.query
    if status:
        q = q.filter(PayeeObligation.status == status)
    if payee_id:
        q = q.filter(PayeeObligation.payee_id == payee_id)
    return q.order_by(PayeeObligation.id.desc()).limit(int(limit)).all()
