from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

SYNC_UNSYNCED = "UNSYNCED"
SYNC_SYNCED = "SYNCED"


class PosOrder(db.Model):
    """
    Sale committed at the register, independent of upstream availability.

    WHY order_number: it is the local identity sent upstream as the
    _pos_order_id metadata tag, so upstream duplicates can be detected.

    LIFECYCLE:
    - Created once with sync_status=UNSYNCED.
    - UNSYNCED -> SYNCED exactly once (upstream_order_id recorded); never reverts.
    - A push first takes the sync_claim_token lease with a conditional UPDATE,
      so two processes never push the same order at once.
    - After creation only receipt_printed and the sync bookkeeping change.
    """
    __tablename__ = "pos_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_pos_orders_order_number"),
        db.Index("ix_pos_orders_sync_created", "sync_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="completed")

    # Customer reference (optional, walk-in sales have none)
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    # Totals in cents, related by the cart calculator rules
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    cashier_id = db.Column(db.String(64), nullable=False)
    cashier_name = db.Column(db.String(255), nullable=False)

    receipt_printed = db.Column(db.Boolean, nullable=False, default=False)

    # Sync state
    sync_status = db.Column(db.String(16), nullable=False, default=SYNC_UNSYNCED, index=True)
    upstream_order_id = db.Column(db.Integer, nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sync_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_sync_error = db.Column(db.String(512), nullable=True)
    last_sync_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    # Push lease shared by every process; stale after SYNC_CLAIM_LEASE_SECONDS
    sync_claim_token = db.Column(db.String(32), nullable=True)
    sync_claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    lines = db.relationship(
        "PosOrderLine",
        backref="order",
        lazy=True,
        order_by="PosOrderLine.line_number",
        cascade="all, delete-orphan",
    )

    @property
    def is_synced(self) -> bool:
        return self.sync_status == SYNC_SYNCED

    def __repr__(self) -> str:
        return f"<PosOrder id={self.id} number={self.order_number!r} sync={self.sync_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "items": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "receipt_printed": self.receipt_printed,
            "sync_status": self.sync_status,
            "upstream_order_id": self.upstream_order_id,
            "synced_at": to_utc_z(self.synced_at),
            "sync_attempts": self.sync_attempts,
            "last_sync_error": self.last_sync_error,
            "created_at": to_utc_z(self.created_at),
        }


class PosOrderLine(db.Model):
    """Frozen snapshot of a cart line; never follows later catalog changes."""
    __tablename__ = "pos_order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("pos_orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    # No FK: cached products are replaced wholesale on sync
    product_id = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }
