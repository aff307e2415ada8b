from __future__ import annotations

from enum import Enum


class ReferenceKind(str, Enum):
    INLINE = "inline"
    REMOTE = "remote"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class FetchKind(str, Enum):
    TEXT = "text"
    ERROR = "error"
