"""Local SQLite backend with in-process change notifications."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence, TypeVar
from uuid import uuid4

from restaurant_pos.backend import (
    MENU_ITEMS,
    ORDER_ITEMS,
    ORDERS,
    BackendError,
    ChangeEvent,
    ChangeHandler,
    ChangeHub,
    Filter,
    Ordering,
    Subscription,
)
from restaurant_pos.config import DEFAULT_REQUEST_TIMEOUT_SECONDS
from restaurant_pos.data import SEED_MENU
from restaurant_pos.models import Record

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SQL_OPS = {"eq": "=", "gte": ">="}

TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    MENU_ITEMS: ("id", "name", "price", "category", "sold_today", "is_active", "created_at", "updated_at"),
    ORDERS: ("id", "total", "created_at"),
    ORDER_ITEMS: ("id", "order_id", "menu_item_id", "quantity", "price_at_time", "created_at"),
}

_BOOL_COLUMNS = {"is_active"}

# Writes to a table that fire triggers also change these tables.
_TRIGGERED_UPDATES: dict[str, tuple[str, ...]] = {ORDER_ITEMS: (MENU_ITEMS,)}

SCHEMA = """
CREATE TABLE IF NOT EXISTS menu_items (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    price TEXT NOT NULL,
    category TEXT NOT NULL,
    sold_today INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    total TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS order_items (
    id TEXT PRIMARY KEY,
    order_id TEXT NOT NULL,
    menu_item_id TEXT NOT NULL,
    quantity INTEGER NOT NULL CHECK (quantity > 0),
    price_at_time TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(order_id) REFERENCES orders(id) ON DELETE CASCADE,
    FOREIGN KEY(menu_item_id) REFERENCES menu_items(id)
);

CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at);

CREATE INDEX IF NOT EXISTS idx_order_items_order_id ON order_items(order_id);

CREATE TRIGGER IF NOT EXISTS trg_order_items_sold_today
AFTER INSERT ON order_items
BEGIN
    UPDATE menu_items
    SET sold_today = sold_today + NEW.quantity, updated_at = NEW.created_at
    WHERE id = NEW.menu_item_id;
END;
"""


def utc_now_iso() -> str:
    # Fixed precision keeps stored timestamps comparable as text.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _to_sql_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Decimal):
        return str(value)
    return value


def _columns_for(table: str) -> tuple[str, ...]:
    try:
        return TABLE_COLUMNS[table]
    except KeyError:
        raise BackendError(f"Unknown table: {table}") from None


def _check_column(table: str, column: str) -> str:
    if column not in _columns_for(table):
        raise BackendError(f"Unknown column {column!r} on {table}")
    return column


class SqliteBackend:
    """Backend over a SQLite file; blocking calls run in a worker thread."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        seed: bool = True,
        hub: ChangeHub | None = None,
    ) -> None:
        if str(db_path) == ":memory:":
            raise ValueError("SqliteBackend needs a database file, not :memory:")
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.hub = hub or ChangeHub()
        self.bootstrap_schema(seed=seed)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> SqliteBackend:
        """Build from ``sqlite:///relative.db`` or ``sqlite:////absolute.db``."""
        prefix = "sqlite:///"
        if not url.startswith(prefix) or len(url) == len(prefix):
            raise ValueError(f"Not a sqlite file URL: {url!r}")
        return cls(url[len(prefix) :], **kwargs)

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Lock waits are bounded inside SQLite so writes never outlive their caller.
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def bootstrap_schema(self, *, seed: bool = True) -> None:
        """Create the schema if needed and seed the starter menu into an empty table."""
        conn = self._connect()
        try:
            with conn:
                conn.executescript(SCHEMA)
                if not seed:
                    return
                (count,) = conn.execute("SELECT COUNT(*) FROM menu_items").fetchone()
                if count:
                    return
                now = utc_now_iso()
                conn.executemany(
                    """
                    INSERT INTO menu_items (id, name, price, category, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [(uuid4().hex, name, price, category, now, now) for category, name, price in SEED_MENU],
                )
                logger.info("Seeded %d menu items into %s", len(SEED_MENU), self.db_path)
        finally:
            conn.close()

    async def _run(self, fn: Callable[[], T], *, write: bool = False) -> T:
        """Run a blocking call in a worker thread.

        Reads are abandoned after the timeout. Writes are awaited to completion:
        a commit that lands after we stopped waiting would otherwise be reported
        as a failure.
        """
        try:
            if write:
                return await asyncio.to_thread(fn)
            return await asyncio.wait_for(asyncio.to_thread(fn), self.timeout)
        except asyncio.TimeoutError as exc:
            raise BackendError(f"Database request timed out after {self.timeout:g}s") from exc
        except sqlite3.Error as exc:
            raise BackendError(str(exc)) from exc

    def _row_to_record(self, row: sqlite3.Row) -> Record:
        record = dict(row)
        for column in _BOOL_COLUMNS.intersection(record):
            record[column] = bool(record[column])
        return record

    def _select_sync(self, table: str, filters: Sequence[Filter], order: Sequence[Ordering]) -> list[Record]:
        sql = f"SELECT * FROM {table}"
        params: list[Any] = []
        clauses = []
        for flt in filters:
            op = _SQL_OPS.get(flt.op)
            if op is None:
                raise BackendError(f"Unsupported filter operator: {flt.op}")
            clauses.append(f"{_check_column(table, flt.column)} {op} ?")
            params.append(_to_sql_value(flt.value))
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order:
            sql += " ORDER BY " + ", ".join(
                f"{_check_column(table, o.column)} {'ASC' if o.ascending else 'DESC'}" for o in order
            )

        conn = self._connect()
        try:
            return [self._row_to_record(row) for row in conn.execute(sql, params)]
        finally:
            conn.close()

    def _insert_sync(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Record]:
        columns = _columns_for(table)
        now = utc_now_iso()
        prepared: list[dict[str, Any]] = []
        for row in rows:
            unknown = set(row) - set(columns)
            if unknown:
                raise BackendError(f"Unknown column(s) on {table}: {', '.join(sorted(unknown))}")
            values = {key: _to_sql_value(value) for key, value in row.items()}
            values.setdefault("id", uuid4().hex)
            values.setdefault("created_at", now)
            if "updated_at" in columns:
                values.setdefault("updated_at", now)
            prepared.append(values)

        conn = self._connect()
        try:
            with conn:
                for values in prepared:
                    names = list(values)
                    conn.execute(
                        f"INSERT INTO {table} ({', '.join(names)}) VALUES ({', '.join('?' for _ in names)})",
                        [values[name] for name in names],
                    )
            saved = []
            for values in prepared:
                row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (values["id"],)).fetchone()
                saved.append(self._row_to_record(row))
            return saved
        finally:
            conn.close()

    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order: Sequence[Ordering] = (),
    ) -> list[Record]:
        _columns_for(table)
        return await self._run(lambda: self._select_sync(table, filters, order))

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Record]:
        _columns_for(table)
        if not rows:
            return []
        saved = await self._run(lambda: self._insert_sync(table, rows), write=True)
        logger.debug("Inserted %d row(s) into %s", len(saved), table)
        self.hub.publish(table, ChangeEvent.INSERT)
        for dependent in _TRIGGERED_UPDATES.get(table, ()):
            self.hub.publish(dependent, ChangeEvent.UPDATE)
        return saved

    def subscribe(self, table: str, event: ChangeEvent, handler: ChangeHandler) -> Subscription:
        _columns_for(table)
        return self.hub.subscribe(table, event, handler)

    async def aclose(self) -> None:
        # Connections are opened per call; nothing stays open.
        return None
