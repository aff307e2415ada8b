from __future__ import annotations

import asyncio
import json
from typing import Any

from gatherer.protocol import EventHandler, Subscription

MAP_JSON = json.dumps(
    {
        "version": 3,
        "file": "out.js",
        "sourceRoot": "",
        "sources": ["foo.js", "bar.js"],
        "names": ["src", "maps", "are", "fun"],
        "mappings": "AAgBC,SAAQ,CAAEA",
    }
)


class FakeSession:
    """In-memory stand-in for a DevTools session.

    Responses are queued per method and consumed in send order. ``delay`` holds a
    response back so later commands can finish first; ``emit`` lists events fired
    synchronously while the command is handled.
    """

    def __init__(self) -> None:
        self.handlers: dict[str, list[EventHandler]] = {}
        self.responses: dict[str, list[dict[str, Any]]] = {}
        self.sent: list[tuple[str, dict[str, Any] | None, float | None]] = []

    def mock_response(
        self,
        method: str,
        result: dict[str, Any] | None = None,
        *,
        delay: float = 0.0,
        error: Exception | None = None,
        emit: list[tuple[str, dict[str, Any]]] | None = None,
    ) -> "FakeSession":
        self.responses.setdefault(method, []).append(
            {"result": result or {}, "delay": delay, "error": error, "emit": emit or []}
        )
        return self

    def subscribe(self, method: str, handler: EventHandler) -> Subscription:
        self.handlers.setdefault(method, []).append(handler)
        return Subscription(self.handlers, method, handler)

    def emit(self, method: str, params: dict[str, Any]) -> None:
        for handler in list(self.handlers.get(method, [])):
            handler(params)

    def sent_methods(self) -> list[str]:
        return [method for method, _, _ in self.sent]

    async def send(
        self, method: str, params: dict[str, Any] | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        self.sent.append((method, params, timeout))
        queue = self.responses.get(method)
        if not queue:
            raise AssertionError(f"unexpected command {method}")
        response = queue.pop(0)
        for event_method, event_params in response["emit"]:
            self.emit(event_method, event_params)
        if response["delay"]:
            await asyncio.sleep(response["delay"])
        if response["error"] is not None:
            raise response["error"]
        return response["result"]

