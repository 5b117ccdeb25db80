from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from ..time_utils import to_utc_z, utcnow

STOCK_IN_STOCK = "in_stock"
STOCK_OUT_OF_STOCK = "out_of_stock"
STOCK_ON_BACKORDER = "on_backorder"
VALID_STOCK_STATUSES = (STOCK_IN_STOCK, STOCK_OUT_OF_STOCK, STOCK_ON_BACKORDER)


class CachedProduct(db.Model):
    """
    Local copy of an upstream product.

    IDENTITY: id is the upstream product id (never generated locally).

    STOCK INVARIANT:
    - manage_stock=True -> stock_quantity is non-null and stock_status is
      derived from it (out_of_stock iff quantity <= 0, else in_stock),
      unless stock_status was manually set to on_backorder.
    - stock_quantity is written only by the stock adjustment ledger and by
      wholesale catalog replacement.

    Prices are stored in cents; price_cents is the effective selling price.
    """
    __tablename__ = "cached_products"
    __table_args__ = (
        db.Index("ix_cached_products_sku", "sku"),
        db.Index("ix_cached_products_name", "name"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    price_cents = db.Column(db.Integer, nullable=True)
    regular_price_cents = db.Column(db.Integer, nullable=True)
    sale_price_cents = db.Column(db.Integer, nullable=True)
    on_sale = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(32), nullable=False, default="publish")
    stock_status = db.Column(db.String(16), nullable=False, default=STOCK_IN_STOCK)
    stock_quantity = db.Column(db.Integer, nullable=True)
    manage_stock = db.Column(db.Boolean, nullable=False, default=False)

    categories = db.Column(db.JSON, nullable=True)
    images = db.Column(db.JSON, nullable=True)
    weight = db.Column(db.String(32), nullable=True)
    dimensions = db.Column(db.JSON, nullable=True)
    short_description = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)

    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<CachedProduct id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "sku": self.sku,
            "price": format_cents(self.price_cents),
            "price_cents": self.price_cents,
            "regular_price_cents": self.regular_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "on_sale": self.on_sale,
            "status": self.status,
            "stock_status": self.stock_status,
            "stock_quantity": self.stock_quantity,
            "manage_stock": self.manage_stock,
            "categories": self.categories or [],
            "images": self.images or [],
            "weight": self.weight,
            "dimensions": self.dimensions,
            "short_description": self.short_description,
            "description": self.description,
            "last_synced_at": to_utc_z(self.last_synced_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CachedCustomer(db.Model):
    """
    Local copy of an upstream customer.

    orders_count and total_spent_cents are informational and come from
    upstream; they are never recomputed from local orders.
    """
    __tablename__ = "cached_customers"
    __table_args__ = (
        db.Index("ix_cached_customers_email", "email"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    email = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    display_name = db.Column(db.String(255), nullable=True)
    username = db.Column(db.String(128), nullable=True)

    billing = db.Column(db.JSON, nullable=True)
    shipping = db.Column(db.JSON, nullable=True)
    avatar_url = db.Column(db.String(512), nullable=True)
    date_created = db.Column(db.DateTime(timezone=True), nullable=True)

    orders_count = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)

    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<CachedCustomer id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "username": self.username,
            "billing": self.billing or {},
            "shipping": self.shipping or {},
            "avatar_url": self.avatar_url,
            "date_created": to_utc_z(self.date_created),
            "orders_count": self.orders_count,
            "total_spent_cents": self.total_spent_cents,
            "last_synced_at": to_utc_z(self.last_synced_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
