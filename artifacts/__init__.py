"""Artifact schemas produced by page gatherers."""

from artifacts.enums import FetchKind, OutcomeKind, ReferenceKind
from artifacts.schemas import (
    AcquisitionFailure,
    AcquisitionSuccess,
    FetchedText,
    FetchError,
    InlineReference,
    RemoteReference,
    ScriptParsedEvent,
    SourceMapResult,
)

__all__ = [
    "ScriptParsedEvent",
    "InlineReference",
    "RemoteReference",
    "AcquisitionSuccess",
    "AcquisitionFailure",
    "FetchedText",
    "FetchError",
    "SourceMapResult",
    "ReferenceKind",
    "OutcomeKind",
    "FetchKind",
]
