"""Hosted backend: PostgREST-style REST calls plus a realtime websocket channel."""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from itertools import count
from typing import Any, Mapping, Sequence

import httpx
import websockets

from restaurant_pos.backend import (
    BackendError,
    ChangeEvent,
    ChangeHandler,
    ChangeHub,
    Filter,
    Ordering,
    Subscription,
)
from restaurant_pos.config import (
    REALTIME_HEARTBEAT_SECONDS,
    REALTIME_RECONNECT_SECONDS,
    BackendSettings,
)
from restaurant_pos.models import Record

logger = logging.getLogger(__name__)

_SCHEMA = "public"


def _encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def query_params(filters: Sequence[Filter], order: Sequence[Ordering]) -> list[tuple[str, str]]:
    """Translate filters and sort keys into PostgREST query parameters."""
    params = [("select", "*")]
    for flt in filters:
        params.append((flt.column, f"{flt.op}.{_encode_value(flt.value)}"))
    if order:
        params.append(("order", ",".join(f"{o.column}.{'asc' if o.ascending else 'desc'}" for o in order)))
    return params


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}: {response.text[:200] or response.reason_phrase}"


class RealtimeChannel:
    """One websocket to the realtime service, multiplexing table subscriptions."""

    def __init__(self, settings: BackendSettings, hub: ChangeHub) -> None:
        base = settings.url.replace("https://", "wss://", 1).replace("http://", "ws://", 1)
        self.url = f"{base}/realtime/v1/websocket?apikey={settings.key}&vsn=1.0.0"
        self.hub = hub
        self._refs = count(1)
        self._joined: dict[str, tuple[str, ChangeEvent]] = {}
        self._ws: Any = None
        self._task: asyncio.Task[None] | None = None

    @staticmethod
    def topic_for(table: str, event: ChangeEvent) -> str:
        suffix = "all" if event is ChangeEvent.ANY else event.value.lower()
        return f"realtime:{_SCHEMA}:{table}:{suffix}"

    def join_message(self, topic: str, table: str, event: ChangeEvent) -> dict[str, Any]:
        return {
            "topic": topic,
            "event": "phx_join",
            "payload": {
                "config": {
                    "postgres_changes": [{"event": event.value, "schema": _SCHEMA, "table": table}],
                }
            },
            "ref": str(next(self._refs)),
        }

    def watch(self, table: str, event: ChangeEvent) -> None:
        topic = self.topic_for(table, event)
        if topic in self._joined:
            return
        self._joined[topic] = (table, event)
        if self._ws is not None:
            asyncio.get_running_loop().create_task(self._send(self.join_message(topic, table, event)))
        self._ensure_running()

    def _ensure_running(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _send(self, message: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.send(json.dumps(message))
        except websockets.ConnectionClosed:
            logger.debug("Realtime socket closed while sending %s", message.get("event"))

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(REALTIME_HEARTBEAT_SECONDS)
            await self._send({"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": str(next(self._refs))})

    def dispatch(self, raw: str | bytes) -> None:
        """Route one incoming frame to the hub."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON realtime frame")
            return
        if message.get("event") != "postgres_changes":
            if message.get("event") == "phx_reply" and (message.get("payload") or {}).get("status") == "error":
                logger.error("Realtime join rejected for %s: %s", message.get("topic"), message.get("payload"))
            return
        subscribed = self._joined.get(message.get("topic", ""))
        if subscribed is None:
            return
        table, _ = subscribed
        data = (message.get("payload") or {}).get("data") or {}
        try:
            event = ChangeEvent(str(data.get("type", "")).upper())
        except ValueError:
            event = ChangeEvent.UPDATE
        self.hub.publish(table, event)

    async def _run(self) -> None:
        while self._joined:
            try:
                async with websockets.connect(self.url) as ws:
                    self._ws = ws
                    logger.info("Realtime channel connected")
                    for topic, (table, event) in list(self._joined.items()):
                        await self._send(self.join_message(topic, table, event))
                    heartbeat = asyncio.create_task(self._heartbeat())
                    try:
                        async for raw in ws:
                            self.dispatch(raw)
                    finally:
                        heartbeat.cancel()
            except (OSError, websockets.WebSocketException) as exc:
                logger.warning("Realtime channel dropped: %s", exc)
            finally:
                self._ws = None
            await asyncio.sleep(REALTIME_RECONNECT_SECONDS)

    async def aclose(self) -> None:
        self._joined.clear()
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class HostedBackend:
    """Backend client for the hosted database service."""

    def __init__(self, settings: BackendSettings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.hub = ChangeHub()
        self.realtime = RealtimeChannel(settings, self.hub)
        self._client = httpx.AsyncClient(
            base_url=f"{settings.url}/rest/v1",
            headers={
                "apikey": settings.key,
                "Authorization": f"Bearer {settings.key}",
                "Content-Type": "application/json",
            },
            timeout=settings.timeout,
            transport=transport,
        )

    async def _request(self, method: str, table: str, **kwargs: Any) -> list[Record]:
        try:
            response = await self._client.request(method, f"/{table}", **kwargs)
        except httpx.TimeoutException as exc:
            raise BackendError(f"Request to {table} timed out after {self.settings.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise BackendError(f"Request to {table} failed: {exc}") from exc
        if response.is_error:
            raise BackendError(_error_message(response))
        try:
            body = response.json()
        except ValueError as exc:
            raise BackendError(f"Invalid JSON from {table}") from exc
        if isinstance(body, dict):
            body = [body]
        return list(body)

    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order: Sequence[Ordering] = (),
    ) -> list[Record]:
        return await self._request("GET", table, params=query_params(filters, order))

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Record]:
        if not rows:
            return []
        content = json.dumps([dict(row) for row in rows], default=_json_default)
        return await self._request(
            "POST",
            table,
            content=content,
            headers={"Prefer": "return=representation"},
        )

    def subscribe(self, table: str, event: ChangeEvent, handler: ChangeHandler) -> Subscription:
        subscription = self.hub.subscribe(table, event, handler)
        self.realtime.watch(table, event)
        return subscription

    async def aclose(self) -> None:
        try:
            await self.realtime.aclose()
        finally:
            await self._client.aclose()
