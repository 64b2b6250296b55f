"""Domain models for the restaurant POS."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

CENT = Decimal("0.01")

Record = dict[str, Any]


def to_money(value: object) -> Decimal:
    """Convert a backend number or string to a two-place Decimal."""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            # str() first so floats from JSON keep their printed digits.
            amount = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a money amount: {value!r}") from exc
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MenuItem:
    """A sellable menu item as stored by the backend."""

    id: str
    name: str
    price: Decimal
    category: str
    sold_today: int = 0
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> MenuItem:
        return cls(
            id=str(record["id"]),
            name=str(record["name"]),
            price=to_money(record["price"]),
            category=str(record["category"]),
            sold_today=int(record.get("sold_today") or 0),
            is_active=bool(record.get("is_active", True)),
            created_at=str(record.get("created_at") or ""),
            updated_at=str(record.get("updated_at") or ""),
        )


@dataclass(frozen=True)
class Order:
    """A persisted order with its fixed total."""

    id: str
    total: Decimal
    created_at: str

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Order:
        return cls(
            id=str(record["id"]),
            total=to_money(record["total"]),
            created_at=str(record.get("created_at") or ""),
        )


@dataclass(frozen=True)
class OrderItem:
    """One line of a persisted order, priced at submission time."""

    id: str
    order_id: str
    menu_item_id: str
    quantity: int
    price_at_time: Decimal
    created_at: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> OrderItem:
        return cls(
            id=str(record["id"]),
            order_id=str(record["order_id"]),
            menu_item_id=str(record["menu_item_id"]),
            quantity=int(record["quantity"]),
            price_at_time=to_money(record["price_at_time"]),
            created_at=str(record.get("created_at") or ""),
        )


@dataclass(frozen=True)
class CartLine:
    """A pending (item, quantity) pair with the price captured at add time."""

    item: MenuItem
    quantity: int
    unit_price: Decimal

    @property
    def item_id(self) -> str:
        return self.item.id
