from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel

from gatherer.protocol import ProtocolSession


class Gatherer(Protocol):
    name: str

    async def start(self, session: ProtocolSession) -> None:
        """Begin observing the session before the page loads."""

    async def stop(self, session: ProtocolSession) -> list[BaseModel]:
        """Finish observing and return the collected artifact records."""
