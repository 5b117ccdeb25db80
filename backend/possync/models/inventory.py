from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

ADJUST_ADD = "add"
ADJUST_SUBTRACT = "subtract"
ADJUST_SET = "set"
VALID_ADJUSTMENT_TYPES = (ADJUST_ADD, ADJUST_SUBTRACT, ADJUST_SET)


class StockAdjustment(db.Model):
    """
    Append-only audit record of one stock quantity change.

    INVARIANT: quantity_after = quantity_before + quantity_change, where
    quantity_change is the signed delta derived from adjustment_type.
    Rows are never updated or deleted.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adjustments_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # No FK: history outlives cache replacement and explicit removal
    product_id = db.Column(db.Integer, nullable=False, index=True)

    actor = db.Column(db.String(128), nullable=False)
    adjustment_type = db.Column(db.String(16), nullable=False)

    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<StockAdjustment id={self.id} product_id={self.product_id} "
            f"{self.quantity_before}->{self.quantity_after}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "actor": self.actor,
            "adjustment_type": self.adjustment_type,
            "quantity_change": self.quantity_change,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
