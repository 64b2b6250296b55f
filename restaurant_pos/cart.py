"""Cart reducer: pure functions over an immutable sequence of cart lines."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from restaurant_pos.models import CartLine, MenuItem, to_money

Cart = tuple[CartLine, ...]

EMPTY_CART: Cart = ()


def add_line(cart: Cart, item: MenuItem) -> Cart:
    """Add one unit of ``item``; new items append, existing lines keep their place."""
    if any(line.item_id == item.id for line in cart):
        return tuple(
            replace(line, quantity=line.quantity + 1) if line.item_id == item.id else line
            for line in cart
        )
    return cart + (CartLine(item=item, quantity=1, unit_price=to_money(item.price)),)


def remove_line(cart: Cart, item_id: str) -> Cart:
    """Remove one unit of ``item_id``; a line at quantity 1 is dropped entirely."""
    return tuple(
        replace(line, quantity=line.quantity - 1) if line.item_id == item_id else line
        for line in cart
        if not (line.item_id == item_id and line.quantity <= 1)
    )


def line_total(line: CartLine) -> Decimal:
    return line.unit_price * line.quantity


def total_price(cart: Cart) -> Decimal:
    """Exact sum of ``unit_price * quantity`` over all lines."""
    return to_money(sum((line_total(line) for line in cart), Decimal("0")))


def item_count(cart: Cart) -> int:
    return sum(line.quantity for line in cart)


def subtract_lines(cart: Cart, submitted: Cart) -> Cart:
    """Take submitted quantities out of ``cart``, keeping units added since."""
    taken: dict[str, int] = {}
    for line in submitted:
        taken[line.item_id] = taken.get(line.item_id, 0) + line.quantity
    return tuple(
        replace(line, quantity=line.quantity - taken.get(line.item_id, 0))
        for line in cart
        if line.quantity > taken.get(line.item_id, 0)
    )
