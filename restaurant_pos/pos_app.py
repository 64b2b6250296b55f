"""Main Textual app class."""

from __future__ import annotations

import asyncio
import logging

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.reactive import reactive
from textual.widgets import Header, Static
from textual.worker import Worker

from restaurant_pos.backend import Backend
from restaurant_pos.error_screen import ConnectionErrorScreen
from restaurant_pos.models import CartLine, MenuItem
from restaurant_pos.orders import OrderSubmissionError, SubmittedOrder, daily_stats
from restaurant_pos.printer import check_printer_dependencies, print_receipt
from restaurant_pos.readers import MenuReader, TodayOrdersReader
from restaurant_pos.register import Register
from restaurant_pos.rendering import (
    format_cart_line,
    format_category_heading,
    format_menu_item,
    format_money,
    format_stats,
    format_total,
    visible_window,
)

logger = logging.getLogger(__name__)

_FALLBACK_HEIGHT = 8
_MORE_MARKER = Text("\u22ee", style="dim")


class PosApp(App):
    """A Textual point-of-sale: menu, current order and today's figures."""

    TITLE = "Restaurant POS"
    SUB_TITLE = "Menu / Order / Today"

    CSS = """
    Screen {
        layout: vertical;
    }

    #stats-panel {
        height: 3;
        border: round $success;
        padding: 0 1;
        display: none;
    }

    #main-layout {
        height: 1fr;
    }

    #menu-pane {
        width: 3fr;
        border: round $primary;
        padding: 1;
    }

    #cart-pane {
        width: 2fr;
        border: round $secondary;
        padding: 1;
    }

    #menu-list {
        height: 1fr;
        border: tall $surface;
        padding: 0 1;
    }

    #cart-list {
        height: 1fr;
        border: tall $surface;
        padding: 0 1;
    }

    #cart-total {
        height: 1;
        margin-top: 1;
    }

    #status-bar {
        border: heavy $secondary;
        padding: 0 1;
        margin-top: 1;
        height: 4;
    }

    .pane-title {
        text-style: bold;
        margin-bottom: 1;
    }
    """

    pane = reactive("menu")
    menu_selected_index = reactive(0)
    cart_selected_index = reactive(None)
    show_stats = reactive(False)

    BINDINGS = [
        Binding("tab", "switch_pane", "Switch pane", priority=True),
        ("up,k", "move_selection(-1)", "Previous"),
        ("down,j", "move_selection(1)", "Next"),
        ("enter,plus", "add_selected", "Add"),
        ("minus,d", "remove_selected", "Remove"),
        ("s", "toggle_stats", "Stats"),
        Binding("ctrl+s", "confirm_order", "Confirm order", priority=True),
        ("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, backend: Backend, *, printer_enabled: bool = False, owns_backend: bool = False) -> None:
        super().__init__()
        self.backend = backend
        self.owns_backend = owns_backend
        self.printer_enabled = printer_enabled
        self.menu_reader = MenuReader(backend, on_change=self._on_menu_changed)
        self.orders_reader = TodayOrdersReader(backend, on_change=self._on_orders_changed)
        self.till = Register(backend, self.orders_reader)
        self.system_status = ""
        self._error_screen: ConnectionErrorScreen | None = None
        self._submit_worker: Worker[None] | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(id="stats-panel")
        with Horizontal(id="main-layout"):
            with Vertical(id="menu-pane"):
                yield Static("Menu", classes="pane-title")
                yield Static("Loading menu...", id="menu-list")
            with Vertical(id="cart-pane"):
                yield Static("Current Order", classes="pane-title")
                yield Static("(no items yet)", id="cart-list")
                yield Static(id="cart-total")
                yield Static(id="status-bar")

    async def on_mount(self) -> None:
        if self.printer_enabled:
            _, msg = check_printer_dependencies()
            self.system_status = msg
            logger.info("Printer status: %s", msg)
        self._refresh_all()
        await self.menu_reader.start()
        await self.orders_reader.start()

    async def on_unmount(self) -> None:
        try:
            self.menu_reader.close()
        finally:
            try:
                self.orders_reader.close()
            finally:
                if self.owns_backend:
                    await self.backend.aclose()

    @property
    def submitting(self) -> bool:
        worker = self._submit_worker
        return self.till.submitting or (worker is not None and not worker.is_finished)

    def _error_screen_active(self) -> bool:
        return isinstance(self.screen, ConnectionErrorScreen)

    def action_switch_pane(self) -> None:
        if self._error_screen_active():
            return
        self.pane = "cart" if self.pane == "menu" else "menu"
        if self.pane == "cart" and self.cart_selected_index is None and self.till.cart:
            self.cart_selected_index = 0
        self._refresh_all()

    def action_move_selection(self, delta: int) -> None:
        if self._error_screen_active():
            return
        if self.pane == "menu":
            items = self.menu_reader.items
            if items:
                self.menu_selected_index = (self.menu_selected_index + delta) % len(items)
            self._refresh_menu()
            return

        lines = self.till.cart
        if not lines:
            return
        if self.cart_selected_index is None:
            self.cart_selected_index = 0 if delta > 0 else len(lines) - 1
        else:
            self.cart_selected_index = (self.cart_selected_index + delta) % len(lines)
        self._refresh_cart()

    def action_add_selected(self) -> None:
        if self._error_screen_active():
            return
        item = self._selected_item()
        if item is None:
            return
        self.till.add(item)
        if self.pane == "menu":
            self.cart_selected_index = next(
                idx for idx, line in enumerate(self.till.cart) if line.item_id == item.id
            )
        self._refresh_menu()
        self._refresh_cart()

    def action_remove_selected(self) -> None:
        if self._error_screen_active():
            return
        item = self._selected_item()
        if item is None:
            return
        self.till.remove(item.id)
        self._refresh_menu()
        self._refresh_cart()

    def action_toggle_stats(self) -> None:
        if self._error_screen_active():
            return
        self.show_stats = not self.show_stats
        self._refresh_stats()

    def action_confirm_order(self) -> None:
        if self._error_screen_active():
            return
        if self.submitting:
            self.system_status = "Saving in progress, please wait"
            self._refresh_status()
            return
        if self.till.is_empty:
            self.system_status = "Nothing to submit"
            self._refresh_status()
            return

        self.system_status = "Saving order..."
        self._refresh_status()
        self._submit_worker = self.run_worker(self._submit_order(), group="submit", exit_on_error=False)

    async def _submit_order(self) -> None:
        try:
            submitted = await self.till.confirm()
        except OrderSubmissionError as exc:
            self.system_status = "Order not saved. Cart kept, Ctrl+S to retry"
            self.notify(str(exc), title="Order failed", severity="error", timeout=8)
            self._refresh_cart()
            return
        except Exception as exc:
            logger.exception("Unexpected failure while submitting order")
            self.system_status = "Order failed unexpectedly. Cart kept, see log"
            self.notify(f"{type(exc).__name__}: {exc}", title="Order failed", severity="error", timeout=8)
            self._refresh_cart()
            return

        if submitted is None:
            self._refresh_cart()
            return

        self.cart_selected_index = None
        self.system_status = f"Saved order {submitted.order.id[:8]} ({format_money(submitted.order.total)})"
        self._refresh_all()
        if self.printer_enabled:
            await self._print_receipt(submitted)

    async def _print_receipt(self, submitted: SubmittedOrder) -> None:
        try:
            await asyncio.to_thread(print_receipt, submitted)
        except Exception as exc:
            logger.exception("Printing order %s failed", submitted.order.id)
            self.system_status = f"Saved {submitted.order.id[:8]} but print failed: {exc}"
        else:
            self.system_status = f"Saved + printed: {submitted.order.id[:8]}"
        self._refresh_status()

    def _on_menu_changed(self) -> None:
        items = self.menu_reader.items
        if self.menu_selected_index >= len(items):
            self.menu_selected_index = max(0, len(items) - 1)
        self._sync_error_screen()
        self._refresh_menu()
        self._refresh_stats()

    def _on_orders_changed(self) -> None:
        if self.orders_reader.error:
            self.system_status = f"Could not load today's orders: {self.orders_reader.error}"
            self._refresh_status()
        self._refresh_stats()

    def _sync_error_screen(self) -> None:
        error = self.menu_reader.error
        if error:
            if self._error_screen is None:
                self._error_screen = ConnectionErrorScreen(error, on_retry=self.menu_reader.refresh)
                self.push_screen(self._error_screen)
            else:
                self._error_screen.set_message(error)
            return

        screen, self._error_screen = self._error_screen, None
        if screen is not None and self.screen is screen:
            self.pop_screen()
            self.call_after_refresh(self._refresh_all)

    def _selected_item(self) -> MenuItem | None:
        if self.pane == "menu":
            items = self.menu_reader.items
            if not (0 <= self.menu_selected_index < len(items)):
                return None
            return items[self.menu_selected_index]

        line = self._selected_line()
        return line.item if line is not None else None

    def _selected_line(self) -> CartLine | None:
        lines = self.till.cart
        if self.cart_selected_index is None or not (0 <= self.cart_selected_index < len(lines)):
            return None
        return lines[self.cart_selected_index]

    def _quantity_in_cart(self, item_id: str) -> int:
        return next((line.quantity for line in self.till.cart if line.item_id == item_id), 0)

    def _refresh_all(self) -> None:
        self._refresh_stats()
        self._refresh_menu()
        self._refresh_cart()

    def _render_window(self, widget: Static, rows: list[Text], selected_row: int | None) -> None:
        window = visible_window(len(rows), widget.size.height or _FALLBACK_HEIGHT, selected_row)
        lines = Text()
        if window.more_above:
            lines.append_text(_MORE_MARKER)
            lines.append("\n")
        lines.append_text(Text("\n").join(rows[window.start : window.end]))
        if window.more_below:
            lines.append("\n")
            lines.append_text(_MORE_MARKER)
        widget.update(lines)

    def _refresh_stats(self) -> None:
        try:
            panel = self.query_one("#stats-panel", Static)
        except NoMatches:
            return
        panel.display = self.show_stats
        panel.update(format_stats(daily_stats(self.orders_reader.items, self.menu_reader.items)))

    def _refresh_menu(self) -> None:
        try:
            menu_widget = self.query_one("#menu-list", Static)
        except NoMatches:
            return
        if self.menu_reader.loading:
            menu_widget.update("Loading menu...")
            return
        if not self.menu_reader.items:
            menu_widget.update("(menu is empty)")
            return

        rows: list[Text] = []
        selected_row: int | None = None
        flat_index = 0
        for category, items in self.menu_reader.categories():
            rows.append(format_category_heading(category))
            for item in items:
                is_selected = flat_index == self.menu_selected_index
                if is_selected:
                    selected_row = len(rows)
                row = Text("➤ " if is_selected and self.pane == "menu" else "  ")
                row.append_text(format_menu_item(item, self._quantity_in_cart(item.id)))
                rows.append(row)
                flat_index += 1
        self._render_window(menu_widget, rows, selected_row)

    def _refresh_cart(self) -> None:
        try:
            cart_widget = self.query_one("#cart-list", Static)
            total_widget = self.query_one("#cart-total", Static)
        except NoMatches:
            return
        lines = self.till.cart
        total_widget.update(format_total(self.till.total))
        if not lines:
            self.cart_selected_index = None
            cart_widget.update("(no items yet)")
            self._refresh_status()
            return

        if self.cart_selected_index is not None and self.cart_selected_index >= len(lines):
            self.cart_selected_index = len(lines) - 1

        rows = []
        for idx, line in enumerate(lines):
            pointer = "➤ " if idx == self.cart_selected_index and self.pane == "cart" else "  "
            row = Text(pointer)
            row.append_text(format_cart_line(line))
            rows.append(row)
        self._render_window(cart_widget, rows, self.cart_selected_index)
        self._refresh_status()

    def _refresh_status(self) -> None:
        try:
            bar = self.query_one("#status-bar", Static)
        except NoMatches:
            return
        if self.submitting:
            hint = "Saving... (confirm disabled)"
        else:
            hint = "Enter/+ add, -/d remove, Tab switch pane, Ctrl+S confirm, s stats."
        bar.update(f"{hint}\n{self.system_status or 'Ready'}")
