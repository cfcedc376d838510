# src/countertrade/exchange/bybit/stream.py
from __future__ import annotations

import asyncio
import contextlib
import json
import time
from typing import Any, Callable, Iterable

import structlog
import websockets
from pydantic import ValidationError

from countertrade.core.service import OrderChannel
from countertrade.exchange.bybit.client import sign
from countertrade.exchange.bybit.wire import WsOrder
from countertrade.mirror.models import OrderEvent

log = structlog.get_logger()

ORDER_TOPIC = "order.linear"


def auth_message(api_key: str, api_secret: str, *, expires_ms: int) -> dict[str, Any]:
    return {
        "op": "auth",
        "args": [api_key, expires_ms, sign(api_secret, f"GET/realtime{expires_ms}")],
    }


def parse_order_batch(data: Iterable[Any]) -> list[OrderEvent]:
    """
    Parse the "data" array of an order topic message.

    Entries that do not validate are logged and skipped; the rest of the
    batch is kept in exchange order.
    """
    batch: list[OrderEvent] = []
    for raw in data:
        try:
            batch.append(WsOrder.model_validate(raw).to_event())
        except ValidationError as e:
            order_id = raw.get("orderId") if isinstance(raw, dict) else None
            log.warning("stream.order_unparsable", order_id=order_id, error=str(e))
    return batch


class BybitOrderStream:
    """
    Private v5 WebSocket subscription to the primary account's orders.

    Each order topic message becomes one batch on the channel. On any
    connection error the stream waits reconnect_timeout seconds, then
    reconnects, re-authenticates and re-subscribes. Runs until stop().
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        api_secret: str,
        channel: OrderChannel,
        reconnect_timeout: float = 5.0,
        ping_interval: float = 20.0,
        auth_ttl_ms: int = 10_000,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._api_secret = api_secret
        self._channel = channel
        self._reconnect_timeout = float(reconnect_timeout)
        self._ping_interval = float(ping_interval)
        self._auth_ttl_ms = int(auth_ttl_ms)
        self._connect = connect
        self._stopping = asyncio.Event()
        self._ws: Any = None

    def stop(self) -> None:
        self._stopping.set()
        if self._ws is not None:
            asyncio.ensure_future(self._ws.close())

    async def run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self._session()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._stopping.is_set():
                    break
                log.error("stream.disconnected", error_type=type(e).__name__, error=str(e))
            else:
                if self._stopping.is_set():
                    break
                log.warning("stream.closed")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._reconnect_timeout)
            except asyncio.TimeoutError:
                log.info("stream.reconnecting", url=self._url)

        log.info("stream.stopped")

    async def _session(self) -> None:
        # Bybit expects application-level {"op": "ping"} frames
        async with self._connect(self._url, ping_interval=None) as ws:
            self._ws = ws
            try:
                log.info("stream.connected", url=self._url)
                await self._authenticate(ws)
                await ws.send(json.dumps({"op": "subscribe", "args": [ORDER_TOPIC]}))

                pinger = asyncio.create_task(self._ping_loop(ws))
                try:
                    async for raw in ws:
                        await self._handle(raw)
                finally:
                    await self._stop_pinger(pinger)
            finally:
                self._ws = None

    async def _authenticate(self, ws: Any) -> None:
        expires = int(time.time() * 1000) + self._auth_ttl_ms
        await ws.send(json.dumps(auth_message(self._api_key, self._api_secret, expires_ms=expires)))

        reply = json.loads(await ws.recv())
        if reply.get("op") != "auth" or not reply.get("success"):
            raise ConnectionError(f"Bybit stream auth failed: {reply.get('ret_msg') or reply}")
        log.info("stream.authenticated")

    async def _stop_pinger(self, pinger: asyncio.Task[None]) -> None:
        pinger.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            try:
                await pinger
            except Exception as e:
                # a failed ping means the socket is already gone; the read loop reports that
                log.warning("stream.ping_failed", error_type=type(e).__name__, error=str(e))

    async def _ping_loop(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._ping_interval)
            await ws.send(json.dumps({"op": "ping"}))

    async def _handle(self, raw: str | bytes) -> None:
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("stream.invalid_json", raw=str(raw)[:200])
            return

        topic = msg.get("topic")
        if topic is None:
            op = msg.get("op")
            if op == "subscribe":
                if msg.get("success"):
                    log.info("stream.subscribed", topic=ORDER_TOPIC)
                else:
                    log.error("stream.subscribe_failed", ret_msg=msg.get("ret_msg"))
            elif op not in ("ping", "pong"):
                log.debug("stream.message_ignored", op=op)
            return

        if not topic.startswith("order"):
            log.debug("stream.topic_ignored", topic=topic)
            return

        batch = parse_order_batch(msg.get("data") or [])
        if batch:
            log.debug("stream.batch", topic=topic, size=len(batch))
            await self._channel.put(batch)
