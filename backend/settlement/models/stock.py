from datetime import datetime

from settlement.extensions import db


class StockLevel(db.Model):
    __tablename__ = "stock_levels"

    product_id = db.Column(db.String(64), primary_key=True)
    on_hand = db.Column(db.Integer, nullable=False, default=0)
    sold = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "product_id": self.product_id,
            "on_hand": int(self.on_hand or 0),
            "sold": int(self.sold or 0),
        }


class StockMovement(db.Model):
    __tablename__ = "stock_movements"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    order_id = db.Column(db.Integer, nullable=True, index=True)
    order_item_id = db.Column(db.Integer, nullable=True, unique=True)

    type = db.Column(db.String(16), nullable=False, default="return")  # return/sell/adjust
    quantity = db.Column(db.Integer, nullable=False, default=0)
    stock_delta = db.Column(db.Integer, nullable=False, default=0)
    previous_stock = db.Column(db.Integer, nullable=False, default=0)
    new_stock = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(240), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "product_id": self.product_id,
            "order_id": int(self.order_id) if self.order_id is not None else None,
            "type": self.type,
            "quantity": int(self.quantity),
            "stock_delta": int(self.stock_delta),
            "previous_stock": int(self.previous_stock),
            "new_stock": int(self.new_stock),
            "notes": self.notes or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
