"""Read-through caches over backend collections, refreshed on change notifications."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Generic, TypeVar

from restaurant_pos.backend import (
    MENU_ITEMS,
    ORDERS,
    Backend,
    BackendError,
    ChangeEvent,
    Ordering,
    Subscription,
    eq,
    gte,
)
from restaurant_pos.models import MenuItem, Order, Record

logger = logging.getLogger(__name__)

T = TypeVar("T")


def start_of_local_day(now: datetime | None = None) -> datetime:
    """Midnight of the current local calendar day, timezone-aware."""
    local_now = (now or datetime.now()).astimezone()
    return local_now.replace(hour=0, minute=0, second=0, microsecond=0)


def group_by_category(items: list[MenuItem]) -> list[tuple[str, list[MenuItem]]]:
    """Group an already-sorted sequence, keeping the category order it induces."""
    groups: dict[str, list[MenuItem]] = {}
    for item in items:
        groups.setdefault(item.category, []).append(item)
    return list(groups.items())


class CollectionReader(Generic[T]):
    """Owns one fetched collection plus its loading/error state and subscription."""

    table: str = ""
    event: ChangeEvent = ChangeEvent.ANY

    def __init__(self, backend: Backend, on_change: Callable[[], None] | None = None) -> None:
        self.backend = backend
        self.on_change = on_change
        self.items: list[T] = []
        self.loading = True
        self.error: str | None = None
        self._generation = 0
        self._subscription: Subscription | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    async def _fetch(self) -> list[Record]:
        raise NotImplementedError

    def _parse(self, record: Record) -> T:
        raise NotImplementedError

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.backend.subscribe(self.table, self.event, self._on_notification)
        await self.refresh()

    async def refresh(self) -> None:
        """Re-fetch; a response that was overtaken by a newer fetch is dropped."""
        self._generation += 1
        generation = self._generation
        try:
            records = await self._fetch()
            items = [self._parse(record) for record in records]
        except (BackendError, KeyError, TypeError, ValueError) as exc:
            if generation != self._generation:
                return
            logger.warning("Fetching %s failed: %s", self.table, exc)
            if isinstance(exc, BackendError):
                self.error = str(exc) or f"Could not load {self.table}"
            else:
                self.error = f"Malformed {self.table} record: {exc}"
        else:
            if generation != self._generation:
                logger.debug("Discarding superseded %s response", self.table)
                return
            self.items = items
            self.error = None
        self.loading = False
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def _on_notification(self, event: ChangeEvent) -> None:
        logger.debug("%s changed (%s), refetching", self.table, event.value)
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._refresh_done)

    def _refresh_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background refresh of %s failed", self.table, exc_info=exc)

    def close(self) -> None:
        """Release the subscription and cancel refreshes still in flight."""
        try:
            if self._subscription is not None:
                self._subscription.cancel()
                self._subscription = None
        finally:
            for task in list(self._tasks):
                task.cancel()
            self._tasks.clear()

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def __aenter__(self) -> CollectionReader[T]:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class MenuReader(CollectionReader[MenuItem]):
    """Active menu items sorted by category, then name."""

    table = MENU_ITEMS
    event = ChangeEvent.ANY

    async def _fetch(self) -> list[Record]:
        return await self.backend.select(
            MENU_ITEMS,
            filters=[eq("is_active", True)],
            order=[Ordering("category"), Ordering("name")],
        )

    def _parse(self, record: Record) -> MenuItem:
        return MenuItem.from_record(record)

    def categories(self) -> list[tuple[str, list[MenuItem]]]:
        return group_by_category(self.items)


class TodayOrdersReader(CollectionReader[Order]):
    """Orders created since local midnight, newest first."""

    table = ORDERS
    event = ChangeEvent.INSERT

    def __init__(
        self,
        backend: Backend,
        on_change: Callable[[], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(backend, on_change)
        self.clock = clock

    def day_start_iso(self) -> str:
        now = self.clock() if self.clock is not None else None
        return start_of_local_day(now).astimezone(timezone.utc).isoformat(timespec="microseconds")

    async def _fetch(self) -> list[Record]:
        return await self.backend.select(
            ORDERS,
            filters=[gte("created_at", self.day_start_iso())],
            order=[Ordering("created_at", ascending=False)],
        )

    def _parse(self, record: Record) -> Order:
        return Order.from_record(record)
