"""
Generation Payload Schema

The JSON object the answer prompt asks the model to return. Models are
sloppy, so the schema is lenient: unknown keys are ignored, numbers are
clamped and malformed citation entries are dropped rather than failing the
whole payload.
"""

import math
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def _finite(value: Any) -> Optional[float]:
    """value as a finite float, or None"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def note_id_text(value: Any) -> Optional[str]:
    """
    Normalize a note id the model wrote into its citations array.

    Strings are stripped, integral finite numbers become their decimal form.
    Anything else (bools, fractions, Infinity/NaN, lists) is not an id.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return None
    if isinstance(value, str):
        return value.strip() or None
    return None


class CitationPayload(BaseModel):
    """One entry of the model's ``citations`` array"""
    model_config = ConfigDict(extra="ignore")

    note_id: str
    snippet: str = ""
    relevance: Optional[float] = Field(default=None, description="0.0-1.0, clamped")

    @field_validator("note_id", mode="before")
    @classmethod
    def _coerce_note_id(cls, value):
        note_id = note_id_text(value)
        if note_id is None:
            raise ValueError(f"not a note id: {value!r}")
        return note_id

    @field_validator("snippet", mode="before")
    @classmethod
    def _coerce_snippet(cls, value):
        return "" if value is None else str(value).replace("\x00", "")

    @field_validator("relevance", mode="before")
    @classmethod
    def _clamp_relevance(cls, value):
        number = _finite(value)
        return None if number is None else _clamp_unit(number)


class GenerationPayload(BaseModel):
    """The model's answer object"""
    model_config = ConfigDict(extra="ignore")

    answer: Optional[str] = None
    citations: List[CitationPayload] = Field(default_factory=list)
    confidence: Optional[float] = None
    query_type: Optional[str] = None
    no_relevant_notes: bool = False
    refusal_reason: Optional[str] = None

    @field_validator("answer", "refusal_reason", "query_type", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("citations", mode="before")
    @classmethod
    def _drop_malformed_citations(cls, value):
        if not isinstance(value, list):
            return []
        return [
            item for item in value
            if isinstance(item, dict) and note_id_text(item.get("note_id")) is not None
        ]

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        number = _finite(value)
        if number is None:
            return None
        # "85" almost always means a percentage
        if 1.0 < number <= 100.0:
            number /= 100.0
        return _clamp_unit(number)

    @field_validator("no_relevant_notes", mode="before")
    @classmethod
    def _coerce_flag(cls, value):
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1")
        return bool(value)
