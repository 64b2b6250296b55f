"""Rich renderables for the menu, cart and stats panels."""

from __future__ import annotations

from decimal import Decimal
from typing import NamedTuple

from rich.text import Text

from restaurant_pos.cart import line_total
from restaurant_pos.config import CURRENCY_LABEL
from restaurant_pos.models import CartLine, MenuItem
from restaurant_pos.orders import DailyStats


def format_money(amount: Decimal) -> str:
    return f"{amount:.2f} {CURRENCY_LABEL}"


def category_style(category: str) -> str:
    """Return a stable heading style for a category name."""
    palette = ("bold #ffffff on #b23a48", "bold #ffffff on #2f6db5", "bold #0b1f0f on #5fbf72", "bold #1a1a1a on #e0b04a")
    return palette[sum(map(ord, category)) % len(palette)]


def format_category_heading(category: str) -> Text:
    text = Text()
    text.append(f" {category} ", style=category_style(category))
    return text


def format_menu_item(item: MenuItem, in_cart: int = 0) -> Text:
    text = Text()
    text.append(item.name)
    text.append(f"  {format_money(item.price)}", style="bold #ff8a80")
    text.append(f"  sold today: {item.sold_today}", style="dim")
    if in_cart:
        text.append(f"  [x{in_cart}]", style="bold #5fbf72")
    return text


def format_cart_line(line: CartLine) -> Text:
    text = Text()
    text.append(line.item.name)
    text.append(f"  {line.unit_price:.2f} x {line.quantity} = ", style="dim")
    text.append(format_money(line_total(line)), style="bold")
    return text


def format_total(total: Decimal) -> Text:
    text = Text()
    text.append("Total: ", style="bold")
    text.append(format_money(total), style="bold #ff8a80")
    return text


def format_stats(stats: DailyStats) -> Text:
    text = Text()
    text.append(" Revenue ", style="bold #ffffff on #2e7d32")
    text.append(f" {format_money(stats.total_revenue)}   ")
    text.append(" Orders ", style="bold #ffffff on #2f6db5")
    text.append(f" {stats.order_count}   ")
    text.append(" Items sold ", style="bold #ffffff on #6a3fb5")
    text.append(f" {stats.items_sold}")
    return text


class Window(NamedTuple):
    """Rows ``[start, end)`` of a scrolled list plus which overflow markers to draw."""

    start: int
    end: int
    more_above: bool = False
    more_below: bool = False

    @property
    def height(self) -> int:
        return self.end - self.start + self.more_above + self.more_below


def visible_window(total: int, height: int, selected: int | None = None) -> Window:
    """Pick the slice of ``total`` rows to show in ``height`` lines.

    The selected row is always inside the slice, kept near the middle while
    the list scrolls. Marker lines count against ``height``; below three
    lines there is no room for them and the list is cut silently.
    """
    if total <= 0:
        return Window(0, 0)
    height = max(1, height)
    if total <= height:
        return Window(0, total)

    focus = 0 if selected is None else min(max(selected, 0), total - 1)
    if height < 3:
        start = min(max(0, focus - height // 2), total - height)
        return Window(start, start + height)

    if focus < height - 1:
        return Window(0, height - 1, more_below=True)
    if focus >= total - height + 1:
        return Window(total - height + 1, total, more_above=True)

    span = height - 2
    start = min(max(1, focus - span // 2), total - 1 - span)
    return Window(start, start + span, more_above=True, more_below=True)
