from dataclasses import replace
from decimal import Decimal

import pytest

from restaurant_pos.backend import ORDER_ITEMS, ORDERS
from restaurant_pos.cart import EMPTY_CART, add_line
from restaurant_pos.models import Order
from restaurant_pos.orders import OrderSubmissionError, daily_stats, submit_order


def _cart(make_item):
    a = make_item("A", "10", item_id="a")
    b = make_item("B", "5", item_id="b")
    return add_line(add_line(add_line(EMPTY_CART, a), a), b)


@pytest.mark.anyio
async def test_submit_writes_order_then_items(backend, make_item):
    submitted = await submit_order(backend, _cart(make_item))

    assert backend.calls == [("insert", ORDERS), ("insert", ORDER_ITEMS)]
    assert backend.inserted[ORDERS][0]["total"] == Decimal("25.00")
    assert submitted.order.total == Decimal("25.00")
    rows = [
        (row["order_id"], row["menu_item_id"], row["quantity"], row["price_at_time"])
        for row in backend.inserted[ORDER_ITEMS]
    ]
    assert rows == [
        (submitted.order.id, "a", 2, Decimal("10.00")),
        (submitted.order.id, "b", 1, Decimal("5.00")),
    ]
    assert [item.quantity for item in submitted.items] == [2, 1]


@pytest.mark.anyio
async def test_submit_empty_cart_makes_no_calls(backend):
    with pytest.raises(ValueError):
        await submit_order(backend, EMPTY_CART)
    assert backend.calls == []


@pytest.mark.anyio
async def test_order_insert_failure_persists_nothing(backend, make_item):
    backend.fail_insert[ORDERS] = "connection refused"

    with pytest.raises(OrderSubmissionError) as excinfo:
        await submit_order(backend, _cart(make_item))

    assert excinfo.value.stage == "order"
    assert excinfo.value.order_id is None
    assert backend.tables[ORDERS] == []
    assert ("insert", ORDER_ITEMS) not in backend.calls


@pytest.mark.anyio
async def test_item_insert_failure_leaves_order_row(backend, make_item):
    backend.fail_insert[ORDER_ITEMS] = "violates foreign key"

    with pytest.raises(OrderSubmissionError) as excinfo:
        await submit_order(backend, _cart(make_item))

    assert excinfo.value.stage == "items"
    assert len(backend.tables[ORDERS]) == 1
    assert excinfo.value.order_id == backend.tables[ORDERS][0]["id"]
    assert backend.tables[ORDER_ITEMS] == []
    assert "violates foreign key" in str(excinfo.value)


def test_daily_stats(make_item):
    orders = [
        Order(id="o1", total=Decimal("25.00"), created_at=""),
        Order(id="o2", total=Decimal("0.10"), created_at=""),
        Order(id="o3", total=Decimal("0.20"), created_at=""),
    ]
    items = [replace(make_item("A"), sold_today=4), replace(make_item("B"), sold_today=3)]

    stats = daily_stats(orders, items)

    assert stats.total_revenue == Decimal("25.30")
    assert stats.order_count == 3
    assert stats.items_sold == 7


def test_daily_stats_empty():
    stats = daily_stats([], [])

    assert stats.total_revenue == Decimal("0.00")
    assert stats.order_count == 0
    assert stats.items_sold == 0


@pytest.mark.anyio
async def test_malformed_item_rows_are_reported_as_items_failure(backend, make_item):
    original_insert = backend.insert

    async def insert(table, rows):
        saved = await original_insert(table, rows)
        return saved if table == ORDERS else [None for _ in saved]

    backend.insert = insert

    with pytest.raises(OrderSubmissionError) as excinfo:
        await submit_order(backend, _cart(make_item))

    assert excinfo.value.stage == "items"
