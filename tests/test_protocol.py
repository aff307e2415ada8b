from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from gatherer.protocol import CDPSession, ProtocolError, ProtocolTimeoutError, discover_page_websocket_url


class _LoopbackConnection:
    """Answers commands through ``CDPSession.dispatch`` on the next loop turn."""

    def __init__(self, session: CDPSession, replies: dict[str, dict[str, Any]]) -> None:
        self.session = session
        self.replies = replies
        self.sent: list[dict[str, Any]] = []

    async def send(self, raw: str) -> None:
        message = json.loads(raw)
        self.sent.append(message)
        reply = self.replies.get(message["method"])
        if reply is not None:
            asyncio.get_running_loop().call_soon(self.session.dispatch, {"id": message["id"], **reply})


def _session(replies: dict[str, dict[str, Any]]) -> tuple[CDPSession, _LoopbackConnection]:
    session = CDPSession("ws://127.0.0.1:9222/devtools/page/test")
    conn = _LoopbackConnection(session, replies)
    session._conn = conn
    return session, conn


def test_send_resolves_with_result() -> None:
    session, conn = _session({"Runtime.evaluate": {"result": {"result": {"value": "ok"}}}})

    result = asyncio.run(session.send("Runtime.evaluate", {"expression": "1"}))
    assert result == {"result": {"value": "ok"}}
    assert conn.sent == [{"id": 1, "method": "Runtime.evaluate", "params": {"expression": "1"}}]
    assert session._pending == {}


def test_send_raises_on_error_response() -> None:
    session, _ = _session({"Debugger.enable": {"error": {"code": -32601, "message": "method not found"}}})

    with pytest.raises(ProtocolError) as excinfo:
        asyncio.run(session.send("Debugger.enable"))
    assert excinfo.value.code == -32601
    assert "method not found" in str(excinfo.value)


def test_send_times_out_and_clears_pending() -> None:
    session, _ = _session({})

    with pytest.raises(ProtocolTimeoutError):
        asyncio.run(session.send("Runtime.evaluate", timeout=0.01))
    assert session._pending == {}


def test_send_requires_connection() -> None:
    with pytest.raises(ProtocolError):
        asyncio.run(CDPSession("ws://127.0.0.1:1/devtools/page/x").send("Debugger.enable"))


def test_events_dispatch_in_order_and_survive_failing_handler() -> None:
    session = CDPSession("ws://127.0.0.1:9222/devtools/page/test")
    seen: list[str] = []

    def _broken(params: dict[str, Any]) -> None:
        raise RuntimeError("boom")

    session.subscribe("Debugger.scriptParsed", _broken)
    subscription = session.subscribe("Debugger.scriptParsed", lambda params: seen.append(params["url"]))

    session.dispatch({"method": "Debugger.scriptParsed", "params": {"url": "a.js"}})
    session.dispatch({"method": "Debugger.scriptParsed", "params": {"url": "b.js"}})
    assert subscription.active
    subscription.cancel()
    session.dispatch({"method": "Debugger.scriptParsed", "params": {"url": "c.js"}})

    assert seen == ["a.js", "b.js"]
    assert not subscription.active


class _ScriptedConnection:
    """Yields canned frames to the reader, then ends as if the peer hung up."""

    def __init__(self, frames: list[str]) -> None:
        self.frames = frames
        self.sent: list[dict[str, Any]] = []

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def __aiter__(self):
        for frame in self.frames:
            yield frame


def test_reader_skips_malformed_frames_and_fails_pending_commands_on_close() -> None:
    event = {"method": "Debugger.scriptParsed", "params": {"url": "a.js", "sourceMapURL": "a.js.map"}}
    session = CDPSession("ws://127.0.0.1:9222/devtools/page/test")
    conn = _ScriptedConnection(["not json", json.dumps(event)])
    session._conn = conn
    seen: list[dict[str, Any]] = []
    session.subscribe("Debugger.scriptParsed", seen.append)

    async def scenario() -> None:
        pending = asyncio.ensure_future(session.send("Runtime.evaluate", {"expression": "1"}))
        while not session._pending:
            await asyncio.sleep(0)
        await session._reader()
        with pytest.raises(ProtocolError, match="connection closed"):
            await pending

    asyncio.run(scenario())
    assert seen == [event["params"]]
    assert conn.sent == [{"id": 1, "method": "Runtime.evaluate", "params": {"expression": "1"}}]
    assert session._pending == {}


def test_discover_page_websocket_url_picks_first_page() -> None:
    targets = [
        {"type": "service_worker", "webSocketDebuggerUrl": "ws://127.0.0.1:9222/devtools/page/sw"},
        {"type": "page", "webSocketDebuggerUrl": "ws://127.0.0.1:9222/devtools/page/abc"},
    ]

    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/json/list"
        return httpx.Response(200, json=targets)

    url = asyncio.run(
        discover_page_websocket_url("http://127.0.0.1:9222/", transport=httpx.MockTransport(_handler))
    )
    assert url == "ws://127.0.0.1:9222/devtools/page/abc"


def test_discover_page_websocket_url_without_pages() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[]))
    with pytest.raises(ProtocolError):
        asyncio.run(discover_page_websocket_url("http://127.0.0.1:9222", transport=transport))
