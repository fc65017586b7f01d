from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from cutoff.core.config import settings
from cutoff.core.errors import ValidationError


class ProcessIn(BaseModel):
    """A validated processing request: which bucket asset to filter and at what cutoff."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    asset_name: str = Field(alias="fileName", strict=True)
    cutoff_frequency: float = Field(alias="filterFrequency", strict=True)

    @field_validator("asset_name")
    @classmethod
    def _check_asset_name(cls, v: str) -> str:
        if not v:
            raise ValueError("File name is required")
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("File name must not contain a path")
        return v

    @field_validator("cutoff_frequency")
    @classmethod
    def _check_cutoff(cls, v: float) -> float:
        # NaN fails both comparisons below
        if not v >= settings.MIN_FREQUENCY:
            raise ValueError(f"Frequency must be at least {settings.MIN_FREQUENCY:g}")
        if not v <= settings.MAX_FREQUENCY:
            raise ValueError(f"Frequency cannot exceed {settings.MAX_FREQUENCY:g}")
        return v


class ProcessOut(BaseModel):
    message: str
    url: str


class ErrorOut(BaseModel):
    error: str


def format_validation_errors(errors: list[dict[str, Any]]) -> str:
    parts: list[str] = []
    for err in errors:
        msg = str(err.get("msg", "invalid value")).removeprefix("Value error, ")
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "invalid request"


def parse_process_request(payload: Any) -> ProcessIn:
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    try:
        return ProcessIn.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(format_validation_errors(e.errors())) from e
