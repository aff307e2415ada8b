from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from artifacts.schemas import (
    AcquisitionFailure,
    AcquisitionOutcome,
    MapReference,
    ScriptParsedEvent,
    SourceMapResult,
)
from gatherer.gatherers.acquisition import acquire, classify_reference
from gatherer.protocol import ProtocolError, ProtocolSession, Subscription

logger = logging.getLogger("sourcemap_gatherer.source_maps")

SCRIPT_PARSED_EVENT = "Debugger.scriptParsed"


@dataclass(frozen=True)
class _Slot:
    script_url: str
    reference: MapReference
    task: asyncio.Future[AcquisitionOutcome]


class MapAccumulator:
    """Collects one acquisition per ``Debugger.scriptParsed`` carrying a source map.

    Slots are appended in notification order and results are read back in slot order,
    so the output order never depends on which fetch finishes first.
    """

    def __init__(self, fetch_timeout: float | None = None) -> None:
        self.fetch_timeout = fetch_timeout
        self._session: ProtocolSession | None = None
        self._subscription: Subscription | None = None
        self._slots: list[_Slot] = []
        self._closed = False

    @property
    def in_flight(self) -> int:
        return sum(1 for slot in self._slots if not slot.task.done())

    def arm(self, session: ProtocolSession) -> None:
        if self._subscription is not None:
            raise RuntimeError("accumulator is already armed")
        self._session = session
        self._subscription = session.subscribe(SCRIPT_PARSED_EVENT, self.on_script_parsed)

    def on_script_parsed(self, params: dict[str, Any]) -> None:
        if self._closed or self._session is None:
            return
        event = ScriptParsedEvent.model_validate(params)
        reference = classify_reference(event.url, event.source_map_url)
        if reference is None:
            return
        task = asyncio.ensure_future(self._acquire_slot(self._session, event.url, reference))
        self._slots.append(_Slot(script_url=event.url, reference=reference, task=task))

    async def _acquire_slot(
        self, session: ProtocolSession, script_url: str, reference: MapReference
    ) -> AcquisitionOutcome:
        try:
            return await acquire(session, script_url, reference, timeout=self.fetch_timeout)
        except Exception as exc:
            logger.exception("source map acquisition failed", extra={"script_url": script_url})
            return AcquisitionFailure(error_message=f"{exc.__class__.__name__}: {exc}")

    def disarm(self) -> None:
        self._closed = True
        if self._subscription is not None:
            self._subscription.cancel()

    async def finalize(self) -> list[SourceMapResult]:
        if self._subscription is None:
            raise RuntimeError("finalize called before arm")
        if self._closed:
            raise RuntimeError("accumulator is already finalized")
        self._closed = True
        self._subscription.cancel()

        slots = list(self._slots)
        outcomes = await asyncio.gather(*(slot.task for slot in slots))
        return [
            SourceMapResult.from_outcome(slot.script_url, slot.reference, outcome)
            for slot, outcome in zip(slots, outcomes)
        ]


class SourceMapsGatherer:
    name = "SourceMaps"

    def __init__(self, fetch_timeout: float | None = None) -> None:
        self.fetch_timeout = fetch_timeout
        self._accumulator: MapAccumulator | None = None

    async def start(self, session: ProtocolSession) -> None:
        self._accumulator = None
        accumulator = MapAccumulator(fetch_timeout=self.fetch_timeout)
        accumulator.arm(session)
        try:
            await session.send("Debugger.enable")
        except ProtocolError:
            accumulator.disarm()
            raise
        self._accumulator = accumulator

    async def stop(self, session: ProtocolSession) -> list[SourceMapResult]:
        if self._accumulator is None:
            raise RuntimeError("stop called before start")
        accumulator, self._accumulator = self._accumulator, None
        try:
            results = await accumulator.finalize()
        finally:
            await session.send("Debugger.disable")

        failed = sum(1 for result in results if result.error_message is not None)
        logger.info("source maps collected", extra={"total": len(results), "failed": failed})
        return results
