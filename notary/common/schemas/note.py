"""
Note Schema

A note is the unit of personal knowledge the answerer reasons over.
Notes are read-only to the answering pipeline: the model is frozen so a
note cannot change underneath a running query.
"""

import re
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

_HYPHEN_RUN_RE = re.compile(r"-{2,}")


def normalize_tag(tag: str) -> str:
    """Normalize a tag to lowercase kebab-case.

    Spaces become hyphens, anything that is not alphanumeric or a hyphen is
    dropped, hyphen runs collapse and leading/trailing hyphens are trimmed.

    >>> normalize_tag("  Machine Learning!! ")
    'machine-learning'
    """
    lowered = tag.strip().lower().replace(" ", "-")
    kept = "".join(ch for ch in lowered if ch.isalnum() or ch == "-")
    return _HYPHEN_RUN_RE.sub("-", kept).strip("-")


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Normalize tags, dropping empties and duplicates (first occurrence wins)"""
    seen = set()
    result = []
    for tag in tags:
        normalized = normalize_tag(str(tag))
        if normalized and normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result


def note_sort_key(note_id: str) -> Tuple[int, int, str]:
    """Sort key that orders numeric ids numerically and the rest lexically"""
    if note_id.isdigit():
        return (0, int(note_id), note_id)
    return (1, 0, note_id)


class Note(BaseModel):
    """A stored note as seen by the answerer"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque note id, unique within a store")
    content: str = Field(..., description="Note body as written by the user")
    tags: FrozenSet[str] = Field(default_factory=frozenset)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None
    content_enhanced: Optional[str] = Field(
        default=None,
        description="LLM-enhanced rewrite of the note, shown to the model when present",
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        return frozenset(normalize_tags(value))

    @field_validator("created_at", "updated_at")
    @classmethod
    def _ensure_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps are taken to be UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def display_content(self) -> str:
        """Text shown to the model for this note"""
        return self.content_enhanced or self.content

    @property
    def searchable_text(self) -> str:
        """Every piece of text a citation may legitimately quote from"""
        if self.content_enhanced and self.content_enhanced != self.content:
            return f"{self.content}\n{self.content_enhanced}"
        return self.content
