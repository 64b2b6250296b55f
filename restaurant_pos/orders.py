"""Order submission and daily statistics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from restaurant_pos.backend import ORDER_ITEMS, ORDERS, Backend, BackendError
from restaurant_pos.cart import Cart, total_price
from restaurant_pos.models import CartLine, MenuItem, Order, OrderItem, to_money

logger = logging.getLogger(__name__)


class OrderSubmissionError(Exception):
    """Raised when an order could not be written.

    ``stage`` is ``"order"`` when nothing was persisted, ``"items"`` when the
    order row exists (``order_id``) but its lines could not be saved.
    """

    def __init__(self, message: str, *, stage: str, order_id: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.order_id = order_id


@dataclass(frozen=True)
class SubmittedOrder:
    order: Order
    items: list[OrderItem]
    lines: list[CartLine]


@dataclass(frozen=True)
class DailyStats:
    total_revenue: Decimal
    order_count: int
    items_sold: int


async def submit_order(backend: Backend, cart: Cart) -> SubmittedOrder:
    """Write one order row, then its order item rows, using the captured prices."""
    lines = list(cart)
    if not lines:
        raise ValueError("Cannot submit an empty cart")

    total = total_price(cart)
    try:
        (order_record,) = await backend.insert(ORDERS, [{"total": total}])
        order = Order.from_record(order_record)
    except (BackendError, KeyError, TypeError, ValueError) as exc:
        logger.error("Creating order failed: %s", exc)
        raise OrderSubmissionError(f"Could not create order: {exc}", stage="order") from exc

    rows = [
        {
            "order_id": order.id,
            "menu_item_id": line.item_id,
            "quantity": line.quantity,
            "price_at_time": line.unit_price,
        }
        for line in lines
    ]
    try:
        item_records = await backend.insert(ORDER_ITEMS, rows)
        items = [OrderItem.from_record(record) for record in item_records]
    except (BackendError, KeyError, TypeError, ValueError) as exc:
        # The order row stays behind without lines; it is not rolled back.
        logger.error("Order %s saved without its items: %s", order.id, exc)
        raise OrderSubmissionError(
            f"Order {order.id} was created but its items could not be saved: {exc}",
            stage="items",
            order_id=order.id,
        ) from exc

    logger.info("Order %s submitted: %d line(s), total %s", order.id, len(items), order.total)
    return SubmittedOrder(order=order, items=items, lines=lines)


def daily_stats(orders: Iterable[Order], menu_items: Iterable[MenuItem]) -> DailyStats:
    """Revenue and count over today's orders; items sold from the menu counters."""
    orders = list(orders)
    return DailyStats(
        total_revenue=to_money(sum((order.total for order in orders), Decimal("0"))),
        order_count=len(orders),
        items_sold=sum(item.sold_today for item in menu_items),
    )
