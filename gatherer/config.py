from __future__ import annotations

import os
try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - only for Python < 3.11
    import tomli as tomllib  # type: ignore[import-not-found]
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class GathererConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    devtools_url: str = "http://127.0.0.1:9222"
    fetch_timeout_seconds: float | None = Field(default=None, gt=0, le=600)
    connect_timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    load_timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    settle_seconds: float = Field(default=1.0, ge=0, le=120)
    output_path: str = "source-maps.json"

    @field_validator("devtools_url", "output_path")
    @classmethod
    def validate_non_empty(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("field cannot be empty")
        return cleaned

    @field_validator("devtools_url")
    @classmethod
    def validate_devtools_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("devtools_url must be an http(s) url")
        return value.rstrip("/")


def default_config_path() -> Path:
    return Path.cwd() / "sourcemap-gatherer.toml"


def default_config_text() -> str:
    return (
        'devtools_url = "http://127.0.0.1:9222"\n'
        "# fetch_timeout_seconds = 1.5\n"
        "connect_timeout_seconds = 10.0\n"
        "load_timeout_seconds = 30.0\n"
        "settle_seconds = 1.0\n"
        'output_path = "source-maps.json"\n'
    )


def init_config(config_path: Path | None = None) -> Path:
    path = (config_path or default_config_path()).expanduser().resolve(strict=False)
    if path.exists():
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_config_text(), encoding="utf-8")
    return path


def load_config(config_path: Path | None = None) -> GathererConfig:
    path = (config_path or default_config_path()).expanduser()
    raw: dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("rb") as handle:
                raw = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"invalid config file {path}: {exc}") from exc

    env_devtools_url = os.getenv("SMG_DEVTOOLS_URL")
    if env_devtools_url:
        raw["devtools_url"] = env_devtools_url

    try:
        return GathererConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"invalid config {path}: {exc}") from exc
