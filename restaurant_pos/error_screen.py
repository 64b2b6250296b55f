"""Blocking screen shown while the menu cannot be loaded."""

from __future__ import annotations

from typing import Awaitable, Callable

from textual.app import ComposeResult
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Static


class ConnectionErrorScreen(Screen[None]):
    """Full-screen read error; stays up until a refresh succeeds."""

    BINDINGS = [
        ("r", "retry", "Retry"),
        ("ctrl+q", "app.quit", "Quit"),
    ]

    CSS = """
    ConnectionErrorScreen {
        align: center middle;
    }

    #error-dialog {
        width: 64;
        height: auto;
        border: round $error;
        background: $panel;
        padding: 1 2;
    }

    #error-title {
        text-style: bold;
        margin-bottom: 1;
        color: #ffb3b3;
    }

    #error-message {
        color: white;
        margin-bottom: 1;
    }

    #error-help {
        color: #dddddd;
    }
    """

    def __init__(self, message: str, on_retry: Callable[[], Awaitable[None]] | None = None) -> None:
        super().__init__()
        self.error_text = message
        self.on_retry = on_retry

    def compose(self) -> ComposeResult:
        with Container(id="error-dialog"):
            yield Static("Connection error", id="error-title")
            yield Static(id="error-message")
            yield Static("Check the backend connection. r retry. Ctrl+Q quit.", id="error-help")

    def on_mount(self) -> None:
        self._refresh_content()

    def set_message(self, message: str) -> None:
        self.error_text = message
        if self.is_mounted:
            self._refresh_content()

    async def action_retry(self) -> None:
        if self.on_retry is not None:
            await self.on_retry()

    def _refresh_content(self) -> None:
        self.query_one("#error-message", Static).update(self.error_text)
