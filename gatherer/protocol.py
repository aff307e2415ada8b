from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Protocol

import httpx
import websockets
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger("sourcemap_gatherer.protocol")

EventHandler = Callable[[dict[str, Any]], None]


class ProtocolError(Exception):
    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ProtocolTimeoutError(ProtocolError):
    pass


class Subscription:
    """Handle returned by ``subscribe``; ``cancel`` detaches the handler."""

    def __init__(self, registry: dict[str, list[EventHandler]], method: str, handler: EventHandler) -> None:
        self._registry = registry
        self.method = method
        self.handler = handler

    @property
    def active(self) -> bool:
        return self.handler in self._registry.get(self.method, [])

    def cancel(self) -> None:
        handlers = self._registry.get(self.method, [])
        if self.handler in handlers:
            handlers.remove(self.handler)


class ProtocolSession(Protocol):
    def subscribe(self, method: str, handler: EventHandler) -> Subscription:
        """Register ``handler`` for events named ``method``."""

    async def send(
        self, method: str, params: dict[str, Any] | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        """Send a command and return its result, raising ProtocolError on failure."""


class CDPSession:
    def __init__(self, ws_url: str, connect_timeout: float = 10.0) -> None:
        self.ws_url = ws_url
        self.connect_timeout = connect_timeout
        self._conn: Any = None
        self._reader_task: asyncio.Task[None] | None = None
        self._next_id = 0
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._handlers: dict[str, list[EventHandler]] = {}

    async def __aenter__(self) -> "CDPSession":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def connect(self) -> None:
        self._conn = await websockets.connect(
            self.ws_url,
            max_size=None,
            ping_interval=None,
            open_timeout=self.connect_timeout,
        )
        self._reader_task = asyncio.create_task(self._reader())
        logger.debug("connected to %s", self.ws_url)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
        if self._reader_task is not None:
            await self._reader_task
            self._reader_task = None
        self._conn = None

    def subscribe(self, method: str, handler: EventHandler) -> Subscription:
        self._handlers.setdefault(method, []).append(handler)
        return Subscription(self._handlers, method, handler)

    async def send(
        self, method: str, params: dict[str, Any] | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        if self._conn is None:
            raise ProtocolError(f"{method}: session is not connected")
        self._next_id += 1
        msg_id = self._next_id
        message: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            message["params"] = params

        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        try:
            await self._conn.send(json.dumps(message))
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise ProtocolTimeoutError(f"{method} timed out after {timeout}s") from None
        except ConnectionClosed as exc:
            raise ProtocolError(f"{method}: connection closed ({exc})") from exc
        finally:
            self._pending.pop(msg_id, None)

        error = response.get("error")
        if error:
            raise ProtocolError(f"{method}: {error.get('message', 'unknown error')}", code=error.get("code"))
        return response.get("result", {})

    def dispatch(self, data: dict[str, Any]) -> None:
        if "id" in data:
            future = self._pending.get(data["id"])
            if future is not None and not future.done():
                future.set_result(data)
            return

        method = data.get("method")
        if not method:
            return
        params = data.get("params", {})
        # Copy so handlers may cancel their own subscription mid-dispatch.
        for handler in list(self._handlers.get(method, [])):
            try:
                handler(params)
            except Exception:
                logger.exception("event handler failed method=%s", method)

    async def _reader(self) -> None:
        try:
            async for raw in self._conn:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("dropping malformed protocol message")
                    continue
                self.dispatch(data)
        except ConnectionClosed:
            logger.debug("connection closed by peer")
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(ProtocolError("connection closed"))


async def discover_page_websocket_url(
    devtools_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None
) -> str:
    list_url = devtools_url.rstrip("/") + "/json/list"
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.get(list_url)
        response.raise_for_status()
        targets = response.json()

    for target in targets:
        if target.get("type") == "page" and target.get("webSocketDebuggerUrl"):
            return str(target["webSocketDebuggerUrl"])
    raise ProtocolError(f"no page target available at {list_url}")
