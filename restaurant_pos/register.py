"""Per-session cart state and the confirm-order sequence."""

from __future__ import annotations

import logging
from decimal import Decimal

from restaurant_pos.backend import Backend
from restaurant_pos.cart import EMPTY_CART, Cart, add_line, item_count, remove_line, subtract_lines, total_price
from restaurant_pos.models import MenuItem
from restaurant_pos.orders import SubmittedOrder, submit_order
from restaurant_pos.readers import TodayOrdersReader

logger = logging.getLogger(__name__)


class Register:
    """Owns the cart for one terminal session."""

    def __init__(self, backend: Backend, orders_reader: TodayOrdersReader | None = None) -> None:
        self.backend = backend
        self.orders_reader = orders_reader
        self.cart: Cart = EMPTY_CART
        self.submitting = False

    @property
    def is_empty(self) -> bool:
        return not self.cart

    @property
    def total(self) -> Decimal:
        return total_price(self.cart)

    @property
    def item_count(self) -> int:
        return item_count(self.cart)

    def add(self, item: MenuItem) -> None:
        self.cart = add_line(self.cart, item)

    def remove(self, item_id: str) -> None:
        self.cart = remove_line(self.cart, item_id)

    def clear(self) -> None:
        self.cart = EMPTY_CART

    async def confirm(self) -> SubmittedOrder | None:
        """Submit the cart; returns ``None`` when there was nothing to do.

        Raises ``OrderSubmissionError`` with the cart left as it was.
        """
        if self.is_empty:
            return None
        if self.submitting:
            logger.info("Confirm ignored: a submission is already in flight")
            return None

        self.submitting = True
        try:
            snapshot = self.cart
            submitted = await submit_order(self.backend, snapshot)
            # Lines edited while the write was in flight stay in the cart.
            self.cart = subtract_lines(self.cart, snapshot)
            if self.orders_reader is not None:
                await self.orders_reader.refresh()
            return submitted
        finally:
            self.submitting = False
