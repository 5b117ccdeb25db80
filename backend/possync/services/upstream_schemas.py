# Overview: Typed request/response shapes for the upstream commerce API.

"""
Upstream boundary schemas.

Every payload that crosses the UpstreamClient boundary is parsed into (or
built from) one of these dataclasses. Untyped upstream JSON never reaches
the catalog cache or the order ledger.

Wire conventions (WooCommerce REST v3):
- Amounts are decimal strings ("10.50"); "" means unset.
- stock_status is "instock" | "outofstock" | "onbackorder".
- POS orders carry meta_data {"key": "_pos_order_id", "value": <order_number>}.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import UpstreamSchemaError
from ..models.catalog import STOCK_IN_STOCK, STOCK_OUT_OF_STOCK, STOCK_ON_BACKORDER
from ..money import format_cents, optional_cents
from ..time_utils import parse_iso_datetime

POS_ORDER_META_KEY = "_pos_order_id"
POS_CASHIER_META_KEY = "_pos_cashier"

_STOCK_STATUS_FROM_WIRE = {
    "instock": STOCK_IN_STOCK,
    "outofstock": STOCK_OUT_OF_STOCK,
    "onbackorder": STOCK_ON_BACKORDER,
}


def _require_mapping(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise UpstreamSchemaError(f"{what} must be a JSON object")
    return data


def _require_id(data: dict, what: str) -> int:
    value = data.get("id")
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise UpstreamSchemaError(f"{what} has no valid id", details={"id": value})
    return value


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise UpstreamSchemaError("expected an integer, got a boolean")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise UpstreamSchemaError(f"expected an integer, got {value!r}")


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_cents(value: Any) -> int | None:
    try:
        return optional_cents(value)
    except ValueError:
        raise UpstreamSchemaError(f"invalid amount {value!r}")


def _list_of_dicts(value: Any) -> list[dict]:
    if not value:
        return []
    if not isinstance(value, list):
        raise UpstreamSchemaError("expected a list")
    return [item for item in value if isinstance(item, dict)]


def _dict_or_none(value: Any) -> dict | None:
    return value if isinstance(value, dict) else None


def parse_list(data: Any, what: str) -> list:
    if not isinstance(data, list):
        raise UpstreamSchemaError(f"{what} response must be a JSON array")
    return data


@dataclass(frozen=True)
class ProductRecord:
    id: int
    name: str
    slug: str | None
    sku: str | None
    price_cents: int | None
    regular_price_cents: int | None
    sale_price_cents: int | None
    on_sale: bool
    status: str
    stock_status: str
    stock_quantity: int | None
    manage_stock: bool
    categories: list[dict] = field(default_factory=list)
    images: list[dict] = field(default_factory=list)
    weight: str | None = None
    dimensions: dict | None = None
    short_description: str | None = None
    description: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> "ProductRecord":
        data = _require_mapping(data, "product")
        product_id = _require_id(data, "product")
        name = _to_text(data.get("name"))
        if not name:
            raise UpstreamSchemaError("product has no name", details={"id": product_id})

        wire_status = _to_text(data.get("stock_status")) or "instock"
        stock_status = _STOCK_STATUS_FROM_WIRE.get(wire_status)
        if stock_status is None:
            raise UpstreamSchemaError(
                f"unknown stock_status {wire_status!r}", details={"id": product_id}
            )

        return cls(
            id=product_id,
            name=name,
            slug=_to_text(data.get("slug")),
            sku=_to_text(data.get("sku")),
            price_cents=_to_cents(data.get("price")),
            regular_price_cents=_to_cents(data.get("regular_price")),
            sale_price_cents=_to_cents(data.get("sale_price")),
            on_sale=bool(data.get("on_sale", False)),
            status=_to_text(data.get("status")) or "publish",
            stock_status=stock_status,
            stock_quantity=_to_int(data.get("stock_quantity")),
            manage_stock=bool(data.get("manage_stock", False)),
            categories=_list_of_dicts(data.get("categories")),
            images=_list_of_dicts(data.get("images")),
            weight=_to_text(data.get("weight")),
            dimensions=_dict_or_none(data.get("dimensions")),
            short_description=data.get("short_description") or None,
            description=data.get("description") or None,
        )

    def to_cache_fields(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "sku": self.sku,
            "price_cents": self.price_cents,
            "regular_price_cents": self.regular_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "on_sale": self.on_sale,
            "status": self.status,
            "stock_status": self.stock_status,
            "stock_quantity": self.stock_quantity,
            "manage_stock": self.manage_stock,
            "categories": list(self.categories),
            "images": list(self.images),
            "weight": self.weight,
            "dimensions": self.dimensions,
            "short_description": self.short_description,
            "description": self.description,
        }


@dataclass(frozen=True)
class CustomerRecord:
    id: int
    email: str
    first_name: str | None
    last_name: str | None
    username: str | None
    billing: dict | None
    shipping: dict | None
    avatar_url: str | None
    date_created: datetime | None
    orders_count: int
    total_spent_cents: int

    @classmethod
    def from_json(cls, data: Any) -> "CustomerRecord":
        data = _require_mapping(data, "customer")
        customer_id = _require_id(data, "customer")
        email = _to_text(data.get("email"))
        if not email:
            raise UpstreamSchemaError("customer has no email", details={"id": customer_id})

        date_created = None
        raw_date = _to_text(data.get("date_created_gmt") or data.get("date_created"))
        if raw_date:
            try:
                date_created = parse_iso_datetime(raw_date)
            except ValueError:
                raise UpstreamSchemaError(f"invalid date_created {raw_date!r}")

        return cls(
            id=customer_id,
            email=email,
            first_name=_to_text(data.get("first_name")),
            last_name=_to_text(data.get("last_name")),
            username=_to_text(data.get("username")),
            billing=_dict_or_none(data.get("billing")),
            shipping=_dict_or_none(data.get("shipping")),
            avatar_url=_to_text(data.get("avatar_url")),
            date_created=date_created,
            orders_count=_to_int(data.get("orders_count")) or 0,
            total_spent_cents=_to_cents(data.get("total_spent")) or 0,
        )

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.username or self.email

    def to_cache_fields(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "username": self.username,
            "billing": self.billing,
            "shipping": self.shipping,
            "avatar_url": self.avatar_url,
            "date_created": self.date_created,
            "orders_count": self.orders_count,
            "total_spent_cents": self.total_spent_cents,
        }


@dataclass(frozen=True)
class CustomerCreateRequest:
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    billing: dict | None = None
    shipping: dict | None = None

    def to_json(self) -> dict:
        return {
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "billing": self.billing or {
                "first_name": self.first_name,
                "last_name": self.last_name,
                "email": self.email,
                "phone": self.phone or "",
            },
            "shipping": self.shipping or {
                "first_name": self.first_name,
                "last_name": self.last_name,
            },
        }


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: int
    quantity: int
    total_cents: int

    def to_json(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "total": format_cents(self.total_cents),
        }


@dataclass(frozen=True)
class OrderCreateRequest:
    pos_order_id: str
    line_items: tuple[OrderLineRequest, ...]
    customer_id: int = 0
    billing: dict | None = None
    cashier_name: str | None = None
    payment_method: str | None = None
    discount_cents: int = 0
    tax_cents: int = 0
    status: str = "processing"

    def to_json(self) -> dict:
        meta = [{"key": POS_ORDER_META_KEY, "value": self.pos_order_id}]
        if self.cashier_name:
            meta.append({"key": POS_CASHIER_META_KEY, "value": self.cashier_name})
        payload = {
            "status": self.status,
            "customer_id": self.customer_id,
            "billing": self.billing or {},
            "line_items": [line.to_json() for line in self.line_items],
            "meta_data": meta,
        }
        if self.payment_method:
            payload["payment_method"] = self.payment_method
            payload["payment_method_title"] = self.payment_method.title()
            payload["set_paid"] = True
        fee_lines = []
        if self.discount_cents:
            fee_lines.append({
                "name": "POS discount",
                "total": format_cents(-self.discount_cents),
                "tax_status": "none",
            })
        if self.tax_cents:
            fee_lines.append({
                "name": "POS tax",
                "total": format_cents(self.tax_cents),
                "tax_status": "none",
            })
        if fee_lines:
            payload["fee_lines"] = fee_lines
        return payload


@dataclass(frozen=True)
class OrderSummary:
    id: int
    number: str | None
    status: str | None
    total_cents: int | None
    pos_order_id: str | None
    date_created: str | None

    @classmethod
    def from_json(cls, data: Any) -> "OrderSummary":
        data = _require_mapping(data, "order")
        order_id = _require_id(data, "order")
        pos_order_id = None
        for meta in _list_of_dicts(data.get("meta_data")):
            if meta.get("key") == POS_ORDER_META_KEY:
                pos_order_id = _to_text(meta.get("value"))
                break
        return cls(
            id=order_id,
            number=_to_text(data.get("number")),
            status=_to_text(data.get("status")),
            total_cents=_to_cents(data.get("total")),
            pos_order_id=pos_order_id,
            date_created=_to_text(data.get("date_created")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "status": self.status,
            "total_cents": self.total_cents,
            "pos_order_id": self.pos_order_id,
            "date_created": self.date_created,
        }


def stock_update_request(quantity: int) -> dict:
    return {"manage_stock": True, "stock_quantity": int(quantity)}
