"""
Notary Schemas

Pydantic models for stored notes and for the JSON payload the answer
prompt asks the model to produce.
"""

from .note import Note, normalize_tag, normalize_tags, note_sort_key
from .generation import CitationPayload, GenerationPayload

__all__ = [
    "Note",
    "normalize_tag",
    "normalize_tags",
    "note_sort_key",
    "CitationPayload",
    "GenerationPayload",
]
