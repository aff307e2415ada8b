from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from artifacts.serialization import canonical_json_bytes
from gatherer.config import GathererConfig
from gatherer.gatherers.base import Gatherer
from gatherer.gatherers.factory import build_gatherers
from gatherer.protocol import CDPSession, ProtocolError, ProtocolSession, discover_page_websocket_url

logger = logging.getLogger("sourcemap_gatherer.runtime")

LOAD_EVENT = "Page.loadEventFired"


def _describe(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


async def load_page(session: ProtocolSession, url: str, load_timeout: float, settle_seconds: float) -> None:
    loaded = asyncio.Event()
    subscription = session.subscribe(LOAD_EVENT, lambda params: loaded.set())
    try:
        await session.send("Page.enable")
        result = await session.send("Page.navigate", {"url": url})
        if result.get("errorText"):
            raise ProtocolError(f"navigation to {url} failed: {result['errorText']}")
        try:
            await asyncio.wait_for(loaded.wait(), timeout=load_timeout)
        except asyncio.TimeoutError:
            logger.warning("load event not fired", extra={"url": url, "load_timeout": load_timeout})
        if settle_seconds:
            await asyncio.sleep(settle_seconds)
    finally:
        subscription.cancel()


async def _start_gatherers(
    gatherers: list[Gatherer], session: ProtocolSession, errors: dict[str, str]
) -> list[Gatherer]:
    started: list[Gatherer] = []
    for gatherer in gatherers:
        try:
            await gatherer.start(session)
        except Exception as exc:
            logger.exception("gatherer failed to start", extra={"gatherer": gatherer.name})
            errors[gatherer.name] = _describe(exc)
            continue
        started.append(gatherer)
    return started


async def _stop_gatherers(
    gatherers: list[Gatherer], session: ProtocolSession, errors: dict[str, str]
) -> dict[str, list[Any]]:
    artifacts: dict[str, list[Any]] = {}
    for gatherer in gatherers:
        try:
            artifacts[gatherer.name] = await gatherer.stop(session)
        except Exception as exc:
            logger.exception("gatherer failed to stop", extra={"gatherer": gatherer.name})
            errors[gatherer.name] = _describe(exc)
    return artifacts


async def run_pass_with_session(config: GathererConfig, url: str, session: ProtocolSession) -> dict[str, Any]:
    errors: dict[str, str] = {}
    started = await _start_gatherers(build_gatherers(config), session, errors)
    try:
        await load_page(session, url, config.load_timeout_seconds, config.settle_seconds)
    except ProtocolError as exc:
        logger.warning("page load failed", extra={"url": url, "reason": str(exc)})
        errors["navigation"] = str(exc)
    artifacts = await _stop_gatherers(started, session, errors)

    summary = {name: len(records) for name, records in artifacts.items()}
    logger.info("pass summary", extra={"url": url, "artifact_counts": summary, "failed_steps": sorted(errors)})
    return {"url": url, "artifacts": artifacts, "errors": errors}


async def run_pass(config: GathererConfig, url: str) -> dict[str, Any]:
    ws_url = await discover_page_websocket_url(config.devtools_url, timeout=config.connect_timeout_seconds)
    async with CDPSession(ws_url, connect_timeout=config.connect_timeout_seconds) as session:
        return await run_pass_with_session(config, url, session)


def write_artifacts(path: Path, payload: dict[str, Any]) -> Path:
    target = path.expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(canonical_json_bytes(payload))
    return target
