from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence

import pytest

from restaurant_pos.backend import (
    MENU_ITEMS,
    ORDER_ITEMS,
    ORDERS,
    BackendError,
    ChangeEvent,
    ChangeHub,
    Filter,
    Ordering,
)
from restaurant_pos.models import MenuItem


class FakeBackend:
    """In-memory backend that records every call and can be told to fail."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {MENU_ITEMS: [], ORDERS: [], ORDER_ITEMS: []}
        self.hub = ChangeHub()
        self.calls: list[tuple[str, str]] = []
        self.inserted: dict[str, list[dict[str, Any]]] = {}
        self.fail_select: dict[str, str] = {}
        self.fail_insert: dict[str, str] = {}
        self.closed = False
        self._ids = itertools.count(1)

    def seed(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        for row in rows:
            record = dict(row)
            record.setdefault("id", f"{table}-{next(self._ids)}")
            self.tables[table].append(record)

    @staticmethod
    def _matches(record: Mapping[str, Any], flt: Filter) -> bool:
        value = record.get(flt.column)
        if flt.op == "eq":
            return value == flt.value
        if flt.op == "gte":
            return value >= flt.value
        raise AssertionError(f"unexpected op {flt.op}")

    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order: Sequence[Ordering] = (),
    ) -> list[dict[str, Any]]:
        self.calls.append(("select", table))
        if table in self.fail_select:
            raise BackendError(self.fail_select[table])
        rows = [dict(r) for r in self.tables[table] if all(self._matches(r, f) for f in filters)]
        for key in reversed(order):
            rows.sort(key=lambda r: r[key.column], reverse=not key.ascending)
        return rows

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        self.calls.append(("insert", table))
        if table in self.fail_insert:
            raise BackendError(self.fail_insert[table])
        saved = []
        for row in rows:
            record = dict(row)
            record["id"] = f"{table}-{next(self._ids)}"
            record.setdefault("created_at", datetime.now(timezone.utc).isoformat(timespec="microseconds"))
            saved.append(record)
        self.tables[table].extend(saved)
        self.inserted.setdefault(table, []).extend(saved)
        self.hub.publish(table, ChangeEvent.INSERT)
        return [dict(r) for r in saved]

    def subscribe(self, table, event, handler):
        return self.hub.subscribe(table, event, handler)

    async def aclose(self) -> None:
        self.closed = True


def menu_record(name: str, price: str, category: str, *, sold_today: int = 0, is_active: bool = True) -> dict:
    return {
        "name": name,
        "price": Decimal(price),
        "category": category,
        "sold_today": sold_today,
        "is_active": is_active,
    }


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def seeded_backend(backend: FakeBackend) -> FakeBackend:
    backend.seed(
        MENU_ITEMS,
        [
            menu_record("Tea", "8.00", "Drinks", sold_today=3),
            menu_record("Chicken Tagine", "60.00", "Tagines", sold_today=1),
            menu_record("Coffee", "10.00", "Drinks"),
            menu_record("Old Soda", "6.00", "Drinks", is_active=False),
            menu_record("Fries", "10.00", "Sides", sold_today=2),
        ],
    )
    return backend


@pytest.fixture
def make_item():
    counter = itertools.count(1)

    def _make(name: str = "Item", price: str = "10.00", category: str = "Mains", item_id: str | None = None) -> MenuItem:
        return MenuItem(
            id=item_id or f"item-{next(counter)}",
            name=name,
            price=Decimal(price),
            category=category,
        )

    return _make


@pytest.fixture
def settle():
    async def _settle(rounds: int = 5) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle
