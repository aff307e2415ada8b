"""Obtain and parse the source map payload behind one ``sourceMapURL``.

Inline references (``data:`` URLs) are decoded locally. Remote references are fetched
from inside the page with a single ``Runtime.evaluate`` so the request carries the
page's cookies and origin. Every failure is returned as an ``AcquisitionFailure``;
nothing here raises for a bad map.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any
from urllib.parse import unquote_to_bytes, urljoin, urlparse

from artifacts.schemas import (
    AcquisitionFailure,
    AcquisitionOutcome,
    AcquisitionSuccess,
    FetchedText,
    FetchError,
    FetchResponse,
    InlineReference,
    MapReference,
    RemoteReference,
)
from gatherer.protocol import ProtocolError, ProtocolSession

logger = logging.getLogger("sourcemap_gatherer.acquisition")

DATA_URL_PREFIX = "data:"

FETCH_AS_TEXT_EXPRESSION = """(async (url) => {
  try {
    const response = await fetch(url);
    return await response.text();
  } catch (err) {
    return {errorMessage: err.toString()};
  }
})(%s)"""


def resolve_map_url(source_map_url: str, script_url: str) -> str | None:
    try:
        resolved = urljoin(script_url, source_map_url)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if not parsed.scheme:
        return None
    return resolved


def classify_reference(script_url: str, source_map_url: str) -> MapReference | None:
    if not source_map_url:
        return None
    if source_map_url.startswith(DATA_URL_PREFIX):
        return InlineReference(data_url=source_map_url)
    return RemoteReference(url=source_map_url, resolved_url=resolve_map_url(source_map_url, script_url))


_ASCII_WHITESPACE = b" \t\n\r\f\v"


class _ConstantRejected(ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name


def _reject_constant(name: str) -> Any:
    raise _ConstantRejected(name)


def _constant_position(text: str, name: str) -> int:
    # First occurrence outside a string literal; everything before it parsed cleanly.
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif text.startswith(name, index):
            return index
    return len(text)


def describe_json_error(exc: json.JSONDecodeError) -> str:
    pos = exc.pos
    if exc.msg.startswith("Unterminated string"):
        pos = len(exc.doc)
    elif exc.msg.startswith("Invalid \\escape") and exc.doc[pos : pos + 1] == "\\":
        # Reported at the backslash; the offending character follows it.
        pos += 1
    return _unexpected_token(exc.doc, pos)


def _unexpected_token(text: str, pos: int) -> str:
    if pos >= len(text):
        return "SyntaxError: Unexpected end of JSON input"
    return f"SyntaxError: Unexpected token {text[pos]} in JSON at position {pos}"


def parse_map_text(text: str) -> AcquisitionOutcome:
    try:
        value: Any = json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        return AcquisitionFailure(error_message=describe_json_error(exc))
    except _ConstantRejected as exc:
        pos = _constant_position(text, exc.name)
        if exc.name.startswith("-"):
            pos += 1
        return AcquisitionFailure(error_message=_unexpected_token(text, pos))
    if not isinstance(value, dict):
        return AcquisitionFailure(error_message="TypeError: source map is not a JSON object")

    # Index maps may reference sections by url; only inline section maps are usable.
    sections = value.get("sections")
    if isinstance(sections, list):
        value["sections"] = [section for section in sections if isinstance(section, dict) and section.get("map")]
    return AcquisitionSuccess(map=value)


def decode_data_url(data_url: str) -> str:
    header, sep, payload = data_url.partition(",")
    if not sep:
        raise ValueError("data url has no payload")
    raw = unquote_to_bytes(payload)
    if header.lower().endswith(";base64"):
        stripped = raw.translate(None, _ASCII_WHITESPACE)
        raw = base64.b64decode(stripped + b"=" * (-len(stripped) % 4), validate=True)
    return raw.decode("utf-8", errors="replace")


def acquire_inline(reference: InlineReference) -> AcquisitionOutcome:
    try:
        text = decode_data_url(reference.data_url)
    except ValueError as exc:
        return AcquisitionFailure(error_message=f"{exc.__class__.__name__}: {exc}")
    return parse_map_text(text)


async def fetch_map_text(session: ProtocolSession, url: str, timeout: float | None = None) -> FetchResponse:
    params = {
        "expression": FETCH_AS_TEXT_EXPRESSION % json.dumps(url),
        "awaitPromise": True,
        "returnByValue": True,
    }
    try:
        response = await session.send("Runtime.evaluate", params, timeout=timeout)
    except ProtocolError as exc:
        return FetchError(error_message=str(exc))

    details = response.get("exceptionDetails")
    if details:
        exception = details.get("exception") or {}
        return FetchError(error_message=str(exception.get("description") or details.get("text") or "evaluation failed"))

    value = (response.get("result") or {}).get("value")
    if isinstance(value, str):
        return FetchedText(text=value)
    if isinstance(value, dict) and "errorMessage" in value:
        return FetchError(error_message=str(value["errorMessage"]))
    return FetchError(error_message=f"TypeError: unexpected fetch result of type {type(value).__name__}")


async def acquire(
    session: ProtocolSession,
    script_url: str,
    reference: MapReference,
    timeout: float | None = None,
) -> AcquisitionOutcome:
    if isinstance(reference, InlineReference):
        return acquire_inline(reference)

    if reference.resolved_url is None:
        return AcquisitionFailure(error_message=f"Could not resolve map url: {reference.url}")

    logger.debug("fetching source map", extra={"script_url": script_url, "map_url": reference.resolved_url})
    response = await fetch_map_text(session, reference.resolved_url, timeout=timeout)
    if isinstance(response, FetchError):
        return AcquisitionFailure(error_message=response.error_message)
    return parse_map_text(response.text)
