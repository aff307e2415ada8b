from __future__ import annotations

from gatherer.config import GathererConfig
from gatherer.gatherers.base import Gatherer
from gatherer.gatherers.source_maps import SourceMapsGatherer


def build_gatherers(config: GathererConfig) -> list[Gatherer]:
    return [SourceMapsGatherer(fetch_timeout=config.fetch_timeout_seconds)]
