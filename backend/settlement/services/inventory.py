from __future__ import annotations

from datetime import datetime
from typing import Iterable

from flask import current_app
from sqlalchemy import case
from sqlalchemy.exc import IntegrityError

from settlement.extensions import db
from settlement.models import OrderItem, StockLevel, StockMovement


class DatabaseInventory:
    """Stock counters kept in stock_levels, with an append-only movement log."""

    def restore_stock(self, order_id: int, items: Iterable[OrderItem]) -> list[int]:
        """Put returned physical items back on hand. Returns the ids of the
        line items that were restocked by this call.

        Each line item is restocked at most once: restocked_at is claimed with
        a conditional UPDATE before the counters move, and the movement row is
        unique per line item.
        """
        restored = []
        for item in items:
            if not item.is_physical or not item.product_id:
                continue
            now = datetime.utcnow()
            claimed = db.session.query(OrderItem).filter(
                OrderItem.id == item.id,
                OrderItem.restocked_at.is_(None),
            ).update({OrderItem.restocked_at: now}, synchronize_session=False)
            if claimed != 1:
                continue

            qty = int(item.quantity or 0)
            level = db.session.get(StockLevel, item.product_id)
            if level is None:
                level = StockLevel(product_id=item.product_id, on_hand=0, sold=0)
                db.session.add(level)
                db.session.flush()
            previous = int(level.on_hand or 0)
            db.session.query(StockLevel).filter(StockLevel.product_id == item.product_id).update(
                {
                    StockLevel.on_hand: StockLevel.on_hand + qty,
                    StockLevel.sold: case((StockLevel.sold > qty, StockLevel.sold - qty), else_=0),
                    StockLevel.updated_at: now,
                },
                synchronize_session=False,
            )
            db.session.add(StockMovement(
                product_id=item.product_id,
                order_id=int(order_id),
                order_item_id=int(item.id),
                type="return",
                quantity=qty,
                stock_delta=qty,
                previous_stock=previous,
                new_stock=previous + qty,
                notes=f"Refund restock for order {order_id}",
                created_at=now,
            ))
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                current_app.logger.warning("restock for order item %s already recorded", item.id)
                continue
            restored.append(int(item.id))
            current_app.logger.info("restocked %s x%s (order %s)", item.product_id, qty, order_id)
        return restored


def get_inventory():
    inv = current_app.extensions.get("settlement_inventory")
    if inv is None:
        inv = DatabaseInventory()
        current_app.extensions["settlement_inventory"] = inv
    return inv
