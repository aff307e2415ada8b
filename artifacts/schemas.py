from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from artifacts.enums import FetchKind, OutcomeKind, ReferenceKind


class ScriptParsedEvent(BaseModel):
    """Subset of the ``Debugger.scriptParsed`` params this gatherer reads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    url: str = ""
    source_map_url: str = Field(default="", alias="sourceMapURL")


class InlineReference(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal[ReferenceKind.INLINE] = ReferenceKind.INLINE
    data_url: str = Field(min_length=1)


class RemoteReference(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal[ReferenceKind.REMOTE] = ReferenceKind.REMOTE
    url: str = Field(min_length=1)
    # None when ``url`` could not be resolved against the script url.
    resolved_url: str | None = None


MapReference = Annotated[Union[InlineReference, RemoteReference], Field(discriminator="kind")]


class AcquisitionSuccess(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal[OutcomeKind.SUCCESS] = OutcomeKind.SUCCESS
    map: dict[str, Any]


class AcquisitionFailure(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal[OutcomeKind.FAILURE] = OutcomeKind.FAILURE
    error_message: str


AcquisitionOutcome = Annotated[Union[AcquisitionSuccess, AcquisitionFailure], Field(discriminator="kind")]


class FetchedText(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal[FetchKind.TEXT] = FetchKind.TEXT
    text: str


class FetchError(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal[FetchKind.ERROR] = FetchKind.ERROR
    error_message: str


FetchResponse = Annotated[Union[FetchedText, FetchError], Field(discriminator="kind")]


class SourceMapResult(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    script_url: str = Field(alias="scriptUrl")
    source_map_url: str | None = Field(default=None, alias="sourceMapUrl")
    map: dict[str, Any] | None = None
    error_message: str | None = Field(default=None, alias="errorMessage")

    @model_validator(mode="after")
    def validate_map_or_error(self) -> "SourceMapResult":
        if (self.map is None) == (self.error_message is None):
            raise ValueError("exactly one of map or errorMessage must be set")
        return self

    @classmethod
    def from_outcome(
        cls,
        script_url: str,
        reference: InlineReference | RemoteReference,
        outcome: AcquisitionSuccess | AcquisitionFailure,
    ) -> "SourceMapResult":
        source_map_url = reference.resolved_url if isinstance(reference, RemoteReference) else None
        if isinstance(outcome, AcquisitionSuccess):
            return cls(script_url=script_url, source_map_url=source_map_url, map=outcome.map)
        return cls(script_url=script_url, source_map_url=source_map_url, error_message=outcome.error_message)
