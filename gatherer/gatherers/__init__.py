from gatherer.gatherers.acquisition import acquire, classify_reference
from gatherer.gatherers.base import Gatherer
from gatherer.gatherers.source_maps import MapAccumulator, SourceMapsGatherer

__all__ = [
    "Gatherer",
    "MapAccumulator",
    "SourceMapsGatherer",
    "acquire",
    "classify_reference",
]
