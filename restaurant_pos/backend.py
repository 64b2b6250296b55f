"""Backend collaborator contract shared by the local and hosted backends."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Protocol, Sequence

from restaurant_pos.models import Record

logger = logging.getLogger(__name__)

MENU_ITEMS = "menu_items"
ORDERS = "orders"
ORDER_ITEMS = "order_items"


class BackendError(Exception):
    """Any read, write or transport failure reported by a backend."""


class ChangeEvent(str, Enum):
    ANY = "*"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    def matches(self, event: ChangeEvent) -> bool:
        return self is ChangeEvent.ANY or self is event


ChangeHandler = Callable[[ChangeEvent], None]


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


@dataclass(frozen=True)
class Ordering:
    column: str
    ascending: bool = True


class Subscription:
    """Handle for a registered change handler; ``cancel()`` may be called repeatedly."""

    def __init__(self, table: str, event: ChangeEvent, on_cancel: Callable[[], None]) -> None:
        self.table = table
        self.event = event
        self._on_cancel: Callable[[], None] | None = on_cancel

    @property
    def active(self) -> bool:
        return self._on_cancel is not None

    def cancel(self) -> None:
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()


class Backend(Protocol):
    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order: Sequence[Ordering] = (),
    ) -> list[Record]: ...

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Record]: ...

    def subscribe(self, table: str, event: ChangeEvent, handler: ChangeHandler) -> Subscription: ...

    async def aclose(self) -> None: ...


class ChangeHub:
    """In-process fan-out of change notifications keyed by table."""

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[tuple[ChangeEvent, ChangeHandler]]] = defaultdict(list)

    def subscribe(self, table: str, event: ChangeEvent, handler: ChangeHandler) -> Subscription:
        entry = (event, handler)
        self._handlers[table].append(entry)

        def _remove() -> None:
            entries = self._handlers.get(table, [])
            if entry in entries:
                entries.remove(entry)

        return Subscription(table, event, _remove)

    def handler_count(self, table: str) -> int:
        return len(self._handlers.get(table, []))

    def publish(self, table: str, event: ChangeEvent) -> None:
        for wanted, handler in list(self._handlers.get(table, [])):
            if not wanted.matches(event):
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Change handler failed for %s %s", table, event.value)
