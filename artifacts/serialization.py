from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        # Absent optional fields are omitted rather than written as null.
        dumped = value.model_dump(mode="json", by_alias=True)
        return {key: item for key, item in dumped.items() if item is not None}
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def canonical_json_bytes(value: BaseModel | dict[str, Any] | list[Any]) -> bytes:
    encoded = json.dumps(_jsonable(value), sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return encoded.encode("utf-8")


def canonical_json_text(value: BaseModel | dict[str, Any] | list[Any]) -> str:
    return canonical_json_bytes(value).decode("utf-8")
